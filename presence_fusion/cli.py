"""
Command-line interface for the presence fusion pipeline
"""

import asyncio
import json
import logging
import sys
from typing import Any, Dict, List, Optional

import click

from presence_fusion.config.settings import Settings, get_settings, load_settings_from_file, validate_settings
from presence_fusion.fusion.engine import FusionEngine
from presence_fusion.fusion.tracker import PresenceTarget
from presence_fusion.logger import get_logger, setup_logging
from presence_fusion.services.collaborators import InMemoryDetectionLog, LoggingAlertSink
from presence_fusion.services.perimeter_guard import PerimeterGuard
from presence_fusion.services.zone import PerimeterZone, SensitivityLevel
from presence_fusion.testing.simulated import SimulatedScene

logger = get_logger(__name__)


def get_settings_with_config(config_file: Optional[str] = None) -> Settings:
    """Get settings with optional config file."""
    if config_file:
        return load_settings_from_file(config_file)
    return get_settings()


def target_to_dict(target: PresenceTarget) -> Dict[str, Any]:
    """JSON-friendly view of a target."""
    data = {
        "id": target.id,
        "type": target.target_type.value,
        "confidence": round(target.confidence, 4),
        "angle": target.angle,
        "distance": target.distance,
        "is_moving": target.is_moving,
        "sources": sorted(s.value for s in target.sources),
        "last_updated": target.last_updated,
    }
    if target.classification is not None:
        data["classification_confidence"] = round(target.classification.confidence, 4)
    return data


def _print_targets(targets: List[PresenceTarget], output_format: str) -> None:
    if output_format == "json":
        click.echo(json.dumps([target_to_dict(t) for t in targets], indent=2))
        return

    if not targets:
        click.echo("No targets")
        return
    for target in targets:
        distance = f"{target.distance:.2f}m" if target.distance is not None else "-"
        angle = f"{target.angle:.0f}°" if target.angle is not None else "-"
        sources = ",".join(sorted(s.value for s in target.sources))
        click.echo(
            f"{target.id[:8]}  {target.target_type.value:<14} "
            f"conf={target.confidence:.2f}  {angle:>5}  {distance:>7}  "
            f"{'moving' if target.is_moving else 'still':<6}  [{sources}]"
        )


@click.group()
@click.option(
    '--config',
    '-c',
    type=click.Path(exists=True),
    help='Path to configuration file'
)
@click.option(
    '--verbose',
    '-v',
    is_flag=True,
    help='Enable verbose logging'
)
@click.option(
    '--debug',
    is_flag=True,
    help='Enable debug mode'
)
@click.pass_context
def cli(ctx, config: Optional[str], verbose: bool, debug: bool):
    """Presence Fusion Command Line Interface."""

    ctx.ensure_object(dict)
    ctx.obj['config_file'] = config
    ctx.obj['verbose'] = verbose
    ctx.obj['debug'] = debug

    settings = get_settings_with_config(config)
    setup_logging(settings)

    if debug:
        logging.getLogger().setLevel(logging.DEBUG)
        logging.getLogger('presence_fusion').setLevel(logging.DEBUG)
        logger.debug("Debug mode enabled")
    elif verbose:
        logging.getLogger().setLevel(logging.INFO)
        logging.getLogger('presence_fusion').setLevel(logging.INFO)
        logger.info("Verbose mode enabled")


async def simulate_command(
    settings: Settings,
    duration: float,
    seed: int,
    empty: bool,
    realtime: bool,
) -> List[PresenceTarget]:
    """Run the fusion engine over a simulated scene and return the final targets."""
    scene = SimulatedScene(seed=seed, subject_present=not empty)
    engine = FusionEngine.from_settings(settings)

    await engine.start(scene.streams(duration, realtime=realtime))
    try:
        await engine.drain()
        targets = engine.targets
        logger.info(f"Simulation finished: {engine.get_stats()}")
    finally:
        await engine.stop()
    return targets


async def guard_command(
    settings: Settings,
    calibration: float,
    duration: float,
    sensitivity: SensitivityLevel,
    seed: int,
) -> Dict[str, Any]:
    """Calibrate on an empty scene, then guard while a subject walks in."""
    engine = FusionEngine.from_settings(settings)
    alert_sink = LoggingAlertSink()
    detection_log = InMemoryDetectionLog()
    guard = PerimeterGuard(
        engine,
        alert_sink,
        detection_log,
        sample_interval_s=settings.calibration_sample_interval_s,
        error_retry_s=settings.guard_error_retry_s,
    )

    quiet = SimulatedScene(seed=seed, subject_present=False)
    await engine.start(quiet.streams(calibration, realtime=True))
    try:
        baseline = await guard.calibrate(calibration)
    finally:
        await engine.stop()

    await guard.configure_zone(PerimeterZone(name="simulated", sensitivity=sensitivity))

    busy = SimulatedScene(seed=seed + 1, subject_present=True)
    await engine.start(busy.streams(duration, realtime=True))
    await guard.start_guarding()
    try:
        await engine.drain()
    finally:
        report = guard.get_status()
        await guard.stop_guarding()
        await engine.stop()

    return {
        "baseline_samples": baseline.sample_count,
        "final_status": report.status.value,
        "deviation": round(report.deviation, 2),
        "alerts_raised": report.alerts_raised,
        "events_logged": len(detection_log),
    }


@cli.command()
@click.option('--duration', default=5.0, type=float, help='Seconds of simulated signal (default: 5)')
@click.option('--seed', default=42, type=int, help='Random seed (default: 42)')
@click.option('--empty', is_flag=True, help='Simulate an empty scene')
@click.option('--realtime', is_flag=True, help='Pace readings at their sample rates')
@click.option(
    '--format',
    'output_format',
    type=click.Choice(['text', 'json']),
    default='text',
    help='Output format (default: text)'
)
@click.pass_context
def simulate(ctx, duration: float, seed: int, empty: bool, realtime: bool, output_format: str):
    """Fuse a simulated scene and print the resulting targets."""

    try:
        settings = get_settings_with_config(ctx.obj.get('config_file'))
        targets = asyncio.run(simulate_command(settings, duration, seed, empty, realtime))
        _print_targets(targets, output_format)
    except KeyboardInterrupt:
        logger.info("Received interrupt signal, shutting down...")
        sys.exit(0)
    except Exception as e:
        logger.error(f"Simulation failed: {e}")
        sys.exit(1)


@cli.command()
@click.option('--calibration', default=2.0, type=float, help='Calibration seconds (default: 2)')
@click.option('--duration', default=5.0, type=float, help='Guarding seconds (default: 5)')
@click.option(
    '--sensitivity',
    type=click.Choice([s.value for s in SensitivityLevel]),
    default=SensitivityLevel.MEDIUM.value,
    help='Zone sensitivity (default: medium)'
)
@click.option('--seed', default=42, type=int, help='Random seed (default: 42)')
@click.pass_context
def guard(ctx, calibration: float, duration: float, sensitivity: str, seed: int):
    """Calibrate and guard a simulated zone."""

    try:
        settings = get_settings_with_config(ctx.obj.get('config_file'))
        summary = asyncio.run(
            guard_command(settings, calibration, duration, SensitivityLevel(sensitivity), seed)
        )
        click.echo(json.dumps(summary, indent=2))
    except KeyboardInterrupt:
        logger.info("Received interrupt signal, shutting down...")
        sys.exit(0)
    except Exception as e:
        logger.error(f"Guard run failed: {e}")
        sys.exit(1)


@cli.command()
@click.pass_context
def config(ctx):
    """Show the effective configuration."""

    settings = get_settings_with_config(ctx.obj.get('config_file'))
    click.echo(json.dumps(settings.model_dump(), indent=2, default=str))

    issues = validate_settings(settings)
    if issues:
        for issue in issues:
            click.echo(f"  ! {issue}", err=True)
        sys.exit(1)


if __name__ == '__main__':
    cli()
