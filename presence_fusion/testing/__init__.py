"""
Testing utilities for the presence fusion pipeline.

Code in this package produces synthetic readings for development and
tests ONLY. Do not import it from production code paths.
"""

from presence_fusion.testing.simulated import SimulatedScene

__all__ = ["SimulatedScene"]
