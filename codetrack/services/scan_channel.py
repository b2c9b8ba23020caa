"""Progress channel between a running scan and whoever is watching it."""

from __future__ import annotations

import asyncio
import enum
from collections.abc import AsyncIterator
from dataclasses import dataclass, field


class ScanState(str, enum.Enum):
    STARTING = "STARTING"
    CLONING = "CLONING"
    EXTRACTING = "EXTRACTING"
    DIFFING = "DIFFING"
    PERSISTING = "PERSISTING"
    DONE = "DONE"
    ERROR = "ERROR"


@dataclass(frozen=True)
class ScanEvent:
    state: ScanState
    message: str

    def line(self) -> str:
        """Wire form: one UTF-8 line per event."""
        return f"{self.message}\n"


@dataclass(frozen=True)
class ScanDone:
    snapshot_id: int
    envelope_id: int
    superseded: int = 0
    counts: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class ScanFailed:
    state: ScanState  # last state reached before the failure
    reason: str


ScanOutcome = ScanDone | ScanFailed

_CLOSED = object()


class ScanChannel:
    """Bounded queue of ScanEvents ending with exactly one terminal event.

    The producer blocks when the consumer falls ``maxsize`` events behind.
    Success ends with a ``done`` line, failure with ``error: <reason>``.
    """

    def __init__(self, maxsize: int = 32) -> None:
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.outcome: ScanOutcome | None = None
        self.state = ScanState.STARTING
        self.task: asyncio.Task | None = None

    @property
    def finished(self) -> bool:
        return self.outcome is not None

    async def emit(self, state: ScanState, message: str) -> None:
        if self.finished:
            raise RuntimeError("scan channel already finished")
        self.state = state
        await self._queue.put(ScanEvent(state, message))

    async def finish(self, outcome: ScanOutcome) -> None:
        """Record the outcome and close the channel. Later calls are ignored."""
        if self.finished:
            return
        self.outcome = outcome
        if isinstance(outcome, ScanDone):
            self.state = ScanState.DONE
            await self._queue.put(ScanEvent(ScanState.DONE, "done"))
        else:
            self.state = ScanState.ERROR
            await self._queue.put(ScanEvent(ScanState.ERROR, f"error: {outcome.reason}"))
        await self._queue.put(_CLOSED)

    async def events(self) -> AsyncIterator[ScanEvent]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item

    async def lines(self) -> AsyncIterator[str]:
        async for event in self.events():
            yield event.line()

    def cancel(self) -> None:
        """Stop the producer task, e.g. when the consumer disconnects."""
        if self.task is not None and not self.task.done():
            self.task.cancel()
