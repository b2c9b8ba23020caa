"""Tests for the scan progress channel."""

from __future__ import annotations

import asyncio

import pytest

from codetrack.services.scan_channel import ScanChannel, ScanDone, ScanFailed, ScanState


async def _collect(channel: ScanChannel) -> list[str]:
    return [line async for line in channel.lines()]


class TestScanChannel:
    async def test_success_ends_with_done(self):
        channel = ScanChannel()
        await channel.emit(ScanState.STARTING, "starting")
        await channel.emit(ScanState.CLONING, "cloning repo")
        await channel.finish(ScanDone(snapshot_id=1, envelope_id=2))

        assert await _collect(channel) == ["starting\n", "cloning repo\n", "done\n"]
        assert channel.state == ScanState.DONE
        assert channel.finished

    async def test_failure_ends_with_error_line(self):
        channel = ScanChannel()
        await channel.emit(ScanState.DIFFING, "running diff")
        await channel.finish(ScanFailed(ScanState.DIFFING, "diff failed: exit code 2"))

        assert await _collect(channel) == ["running diff\n", "error: diff failed: exit code 2\n"]
        assert channel.outcome.state == ScanState.DIFFING
        assert channel.state == ScanState.ERROR

    async def test_exactly_one_terminal_event(self):
        channel = ScanChannel()
        await channel.finish(ScanDone(snapshot_id=1, envelope_id=1))
        await channel.finish(ScanFailed(ScanState.DONE, "late"))
        assert await _collect(channel) == ["done\n"]
        assert isinstance(channel.outcome, ScanDone)

    async def test_emit_after_finish_rejected(self):
        channel = ScanChannel()
        await channel.finish(ScanFailed(ScanState.STARTING, "x"))
        with pytest.raises(RuntimeError):
            await channel.emit(ScanState.CLONING, "cloning repo")

    async def test_producer_blocks_when_consumer_lags(self):
        channel = ScanChannel(maxsize=2)

        async def produce():
            for i in range(5):
                await channel.emit(ScanState.EXTRACTING, f"step {i}")
            await channel.finish(ScanDone(snapshot_id=1, envelope_id=1))

        producer = asyncio.create_task(produce())
        await asyncio.sleep(0.05)
        assert not producer.done()

        lines = await _collect(channel)
        await producer
        assert lines[-1] == "done\n"
        assert len(lines) == 6

    async def test_cancel_stops_producer(self):
        channel = ScanChannel(maxsize=1)

        async def produce():
            while True:
                await channel.emit(ScanState.EXTRACTING, "tick")

        channel.task = asyncio.create_task(produce())
        await asyncio.sleep(0.05)
        channel.cancel()
        with pytest.raises(asyncio.CancelledError):
            await channel.task
