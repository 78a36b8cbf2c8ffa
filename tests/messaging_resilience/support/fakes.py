from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator

from messaging_resilience.errors import PushConnectionError


class FakeLogger:
    """Capture structured logger events for assertions."""

    def __init__(self) -> None:
        self.events: list[str] = []
        self.calls: list[tuple[str, str, dict[str, object]]] = []

    def _record(self, level: str, event: str, **kwargs: object) -> None:
        self.events.append(event)
        self.calls.append((level, event, kwargs))

    def info(self, event: str, **kwargs: object) -> None:
        self._record("info", event, **kwargs)

    def warning(self, event: str, **kwargs: object) -> None:
        self._record("warning", event, **kwargs)

    def error(self, event: str, **kwargs: object) -> None:
        self._record("error", event, **kwargs)

    def exception(self, event: str, **kwargs: object) -> None:
        self._record("exception", event, **kwargs)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1_000.0) -> None:
        self._now = start

    def now(self) -> float:
        return self._now

    def advance(self, seconds: float) -> None:
        self._now += seconds


class RecordingSleep:
    """Async sleep double that records delays and optionally advances a clock."""

    def __init__(self, clock: FakeClock | None = None) -> None:
        self.delays: list[float] = []
        self._clock = clock

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        if self._clock is not None:
            self._clock.advance(delay)
        await asyncio.sleep(0)


class FakePushConnection:
    """Push connection fed from a queue; ``None`` in the queue ends the stream."""

    def __init__(self) -> None:
        self.frames: asyncio.Queue[str | bytes | Exception | None] = asyncio.Queue()
        self.closed = False

    def feed(self, frame: str | bytes) -> None:
        self.frames.put_nowait(frame)

    def drop(self) -> None:
        self.frames.put_nowait(None)

    def fail(self, message: str = "socket reset") -> None:
        self.frames.put_nowait(PushConnectionError(message))

    async def __aiter__(self) -> AsyncIterator[str | bytes]:
        while True:
            frame = await self.frames.get()
            if frame is None:
                return
            if isinstance(frame, Exception):
                raise frame
            yield frame

    async def close(self) -> None:
        self.closed = True


class FakePushTransport:
    """Transport double returning scripted connections or failures.

    Each ``connect`` pops the next scripted outcome; once the script runs out
    every further connect fails.
    """

    def __init__(self, outcomes: list[FakePushConnection | Exception] | None = None):
        self.outcomes = list(outcomes or [])
        self.urls: list[str] = []
        self.closed = False

    async def connect(self, url: str) -> FakePushConnection:
        self.urls.append(url)
        if not self.outcomes:
            raise PushConnectionError("connection refused")
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def close(self) -> None:
        self.closed = True
