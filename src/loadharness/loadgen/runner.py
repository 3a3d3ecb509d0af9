from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, replace

import httpx

from loadharness.config import RunRequest
from loadharness.loadgen.client import REQUEST_METHOD, send_request
from loadharness.loadgen.dispatcher import Dispatcher, SendFn
from loadharness.metrics import AggregateResult, aggregate_stream
from loadharness.metrics.aggregator import Clock
from loadharness.storage import PersistenceError, ResultRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RunReport:
    result: AggregateResult
    run_id: int | None = None
    persistence_error: str | None = None

    @property
    def persisted(self) -> bool:
        return self.run_id is not None


async def run_load_test(
    request: RunRequest,
    client: httpx.AsyncClient,
    repository: ResultRepository | None = None,
    cancel: asyncio.Event | None = None,
    send: SendFn = send_request,
    clock: Clock = time.perf_counter,
) -> RunReport:
    if cancel is None:
        cancel = asyncio.Event()
    if request.method.upper() != REQUEST_METHOD:
        logger.info("method %s requested, issuing %s", request.method, REQUEST_METHOD)
    logger.info(
        "starting run: %d users x %d requests against %s",
        request.virtual_users,
        request.requests_per_user,
        request.url,
    )
    run_cancel = asyncio.Event()
    relay = asyncio.create_task(_relay(cancel, run_cancel))
    try:
        sink = Dispatcher(client, send=send).run(
            run_cancel,
            request.virtual_users,
            request.requests_per_user,
            request.url,
        )
        result = await aggregate_stream(sink, request.virtual_users, clock=clock)
    finally:
        # stops workers left behind if this run is torn down mid-flight
        run_cancel.set()
        relay.cancel()
    result = replace(result, url=request.url, method=REQUEST_METHOD)
    logger.info(
        "run finished: %d requests, %d errors in %.0fms",
        result.total_requests,
        result.total_errors,
        result.total_duration_ms,
    )
    if repository is None:
        return RunReport(result=result)
    try:
        run_id = await asyncio.to_thread(repository.save, result)
    except PersistenceError as exc:
        logger.exception("could not persist run against %s", request.url)
        return RunReport(result=result, persistence_error=str(exc))
    return RunReport(result=replace(result, run_id=run_id), run_id=run_id)


async def _relay(source: asyncio.Event, target: asyncio.Event) -> None:
    await source.wait()
    target.set()
