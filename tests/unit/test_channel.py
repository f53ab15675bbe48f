"""
Unit tests for the bounded reading channel.
"""

from __future__ import annotations

import asyncio

import pytest

from presence_fusion.fusion.channel import BackpressurePolicy, ReadingChannel


class TestReadingChannel:
    def test_capacity_must_be_positive(self):
        with pytest.raises(ValueError):
            ReadingChannel(capacity=0)

    @pytest.mark.asyncio
    async def test_fifo_order(self):
        channel = ReadingChannel(capacity=4)
        for item in (1, 2, 3):
            await channel.put(item)
        assert [await channel.get() for _ in range(3)] == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_block_policy_waits_for_space(self):
        channel = ReadingChannel(capacity=1, policy=BackpressurePolicy.BLOCK)
        await channel.put("a")

        producer = asyncio.create_task(channel.put("b"))
        await asyncio.sleep(0.01)
        assert not producer.done()

        assert await channel.get() == "a"
        await asyncio.wait_for(producer, timeout=1.0)
        assert await channel.get() == "b"
        assert channel.get_stats()["dropped_items"] == 0

    @pytest.mark.asyncio
    async def test_drop_oldest_policy(self):
        channel = ReadingChannel(capacity=2, policy=BackpressurePolicy.DROP_OLDEST)
        for item in (1, 2, 3):
            await channel.put(item)

        assert channel.qsize() == 2
        assert [await channel.get(), await channel.get()] == [2, 3]

        stats = channel.get_stats()
        assert stats["dropped_items"] == 1
        assert stats["total_items"] == 3
        assert stats["policy"] == "drop_oldest"

    @pytest.mark.asyncio
    async def test_join_after_processing(self):
        channel = ReadingChannel(capacity=2, policy=BackpressurePolicy.DROP_OLDEST)
        for item in (1, 2, 3):
            await channel.put(item)
        for _ in range(2):
            await channel.get()
            channel.task_done()
        await asyncio.wait_for(channel.join(), timeout=1.0)

    @pytest.mark.asyncio
    async def test_clear_discards_items(self):
        channel = ReadingChannel(capacity=4)
        for item in (1, 2, 3):
            await channel.put(item)
        channel.clear()
        assert channel.qsize() == 0
        await asyncio.wait_for(channel.join(), timeout=1.0)
