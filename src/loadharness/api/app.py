from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import httpx
from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from loadharness.config import AppConfig, RunRequest
from loadharness.loadgen.client import create_client
from loadharness.loadgen.runner import run_load_test
from loadharness.storage import PersistenceError, Storage, default_storage

logger = logging.getLogger(__name__)


class TriggerBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    url: str = Field(min_length=1)
    method: str = "POST"
    num_users: int = Field(alias="numUsers", ge=0)
    num_reqs: int = Field(alias="numReqs", ge=0)


def create_app(
    config: AppConfig,
    storage: Storage | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    store = storage if storage is not None else default_storage(config.database)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        app.state.cancel = asyncio.Event()
        async with create_client(config.http, transport=transport) as client:
            app.state.client = client
            yield
            # in-flight runs stop at their next request boundary
            app.state.cancel.set()

    app = FastAPI(title="loadharness", lifespan=lifespan)
    app.state.config = config
    app.state.storage = store

    @app.exception_handler(RequestValidationError)
    async def _bad_body(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"detail": "Failed to decode request body", "errors": jsonable_encoder(exc.errors())},
        )

    @app.post("/test")
    async def trigger_run(body: TriggerBody, request: Request) -> JSONResponse:
        run_request = RunRequest(
            url=body.url,
            method=body.method,
            virtual_users=body.num_users,
            requests_per_user=body.num_reqs,
        )
        state = request.app.state
        report = await run_load_test(run_request, state.client, state.storage, state.cancel)
        content: dict[str, Any] = {"run_id": report.run_id, "result": report.result.to_record()}
        if report.persistence_error is not None:
            content["error"] = report.persistence_error
            return JSONResponse(status_code=500, content=content)
        return JSONResponse(status_code=200, content=content)

    @app.get("/runs")
    def list_runs(request: Request) -> list[dict[str, Any]]:
        try:
            frame = request.app.state.storage.list_runs()
        except PersistenceError as exc:
            logger.exception("listing runs failed")
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        return [
            {
                "id": int(row["id"]),
                "created_at": row["created_at"].isoformat(),
                "url": row["url"],
                "total_requests": int(row["total_requests"]),
                "total_errors": int(row["total_errors"]),
                "tps_average": float(row["tps_average"]),
            }
            for row in frame.to_dict(orient="records")
        ]

    @app.get("/runs/{run_id}")
    def get_run(run_id: int, request: Request) -> dict[str, Any]:
        try:
            result = request.app.state.storage.fetch(run_id)
        except PersistenceError as exc:
            logger.exception("lookup of run %d failed", run_id)
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        if result is None:
            raise HTTPException(status_code=404, detail=f"Run {run_id} not found")
        return {"run_id": result.run_id, "result": result.to_record()}

    return app
