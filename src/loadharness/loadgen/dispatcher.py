from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Awaitable, Callable, Iterable

import httpx

from loadharness.loadgen.client import TransportError, send_request
from loadharness.metrics import Measurement

logger = logging.getLogger(__name__)

SendFn = Callable[[httpx.AsyncClient, str], Awaitable[Measurement]]

_CLOSED = object()


class MeasurementSink:
    """Multi-producer, single-consumer channel; closes once, iterates once."""

    def __init__(self, capacity: int) -> None:
        self._queue: asyncio.Queue[object] = asyncio.Queue(maxsize=capacity + 1)
        self._closed = False
        self._consumed = False
        self._barrier: asyncio.Task[None] | None = None

    @property
    def closed(self) -> bool:
        return self._closed

    async def put(self, measurement: Measurement) -> None:
        if self._closed:
            msg = "Cannot put a measurement on a closed sink"
            raise RuntimeError(msg)
        await self._queue.put(measurement)

    def close(self) -> None:
        if self._closed:
            msg = "Sink is already closed"
            raise RuntimeError(msg)
        self._closed = True
        self._queue.put_nowait(_CLOSED)

    def close_when_done(self, tasks: Iterable[asyncio.Task[int]]) -> None:
        if self._barrier is not None:
            msg = "Sink already has a completion barrier"
            raise RuntimeError(msg)
        self._barrier = asyncio.create_task(self._wait_and_close(list(tasks)))

    async def _wait_and_close(self, tasks: list[asyncio.Task[int]]) -> None:
        try:
            outcomes = await asyncio.gather(*tasks, return_exceptions=True)
        finally:
            self.close()
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome

    def __aiter__(self) -> AsyncIterator[Measurement]:
        return self._drain()

    async def _drain(self) -> AsyncIterator[Measurement]:
        if self._consumed:
            msg = "Sink has already been consumed"
            raise RuntimeError(msg)
        self._consumed = True
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                break
            yield item  # type: ignore[misc]
        if self._barrier is not None:
            # surfaces unexpected worker failures to the consumer
            await self._barrier


async def run_worker(
    user_id: int,
    client: httpx.AsyncClient,
    url: str,
    requests_per_user: int,
    sink: MeasurementSink,
    cancel: asyncio.Event,
    send: SendFn = send_request,
) -> int:
    """Issue up to `requests_per_user` calls, checking `cancel` only between calls."""
    emitted = 0
    for i in range(requests_per_user):
        if cancel.is_set():
            logger.debug("user %d cancelled after %d of %d requests", user_id, i, requests_per_user)
            break
        try:
            measurement = await send(client, url)
        except TransportError as exc:
            logger.warning("user %d request %d dropped (%s): %s", user_id, i, exc.error_type.value, exc)
            continue
        await sink.put(measurement)
        emitted += 1
    return emitted


class Dispatcher:
    def __init__(self, client: httpx.AsyncClient, send: SendFn = send_request) -> None:
        self.client = client
        self.send = send

    def run(
        self,
        cancel: asyncio.Event,
        virtual_users: int,
        requests_per_user: int,
        url: str,
    ) -> MeasurementSink:
        sink = MeasurementSink(virtual_users * requests_per_user)
        tasks = [
            asyncio.create_task(
                run_worker(user_id, self.client, url, requests_per_user, sink, cancel, self.send),
                name=f"virtual-user-{user_id}",
            )
            for user_id in range(virtual_users)
        ]
        logger.debug("dispatched %d virtual users against %s", virtual_users, url)
        sink.close_when_done(tasks)
        return sink
