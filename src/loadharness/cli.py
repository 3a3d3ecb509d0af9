from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path

import uvicorn

from loadharness.api import create_app
from loadharness.config import AppConfig, DatabaseConfig, HttpClientConfig, RunRequest, ServerConfig
from loadharness.loadgen.client import create_client
from loadharness.loadgen.runner import RunReport, run_load_test
from loadharness.storage import PersistenceError, Storage, default_storage

logger = logging.getLogger(__name__)


def _build_config(args: argparse.Namespace) -> AppConfig:
    return AppConfig(
        server=ServerConfig(host=args.host, port=args.port),
        database=DatabaseConfig(path=Path(args.db)),
        http=HttpClientConfig(
            max_connections=args.max_connections,
            keepalive_expiry_sec=args.keepalive_expiry,
            timeout_sec=args.timeout,
        ),
    )


async def _run(config: AppConfig, request: RunRequest, storage: Storage | None) -> RunReport:
    async with create_client(config.http) as client:
        return await run_load_test(request, client, storage)


def _cmd_run(config: AppConfig, args: argparse.Namespace) -> int:
    request = RunRequest(
        url=args.target,
        method=args.method,
        virtual_users=args.users,
        requests_per_user=args.requests,
    )
    storage = None if args.no_store else default_storage(config.database)
    report = asyncio.run(_run(config, request, storage))
    print(report.result.summary())
    if report.persistence_error is not None:
        print(f"Run not stored: {report.persistence_error}")
        return 1
    if report.run_id is not None:
        print(f"Run complete: {report.run_id}")
    return 0


def _cmd_serve(config: AppConfig, args: argparse.Namespace) -> int:
    logger.debug("config: %s", config.to_metadata())
    uvicorn.run(create_app(config), host=config.server.host, port=config.server.port)
    return 0


def _cmd_show(config: AppConfig, args: argparse.Namespace) -> int:
    result = default_storage(config.database).fetch(args.run_id)
    if result is None:
        print(f"Run {args.run_id} not found")
        return 1
    print(result.summary())
    return 0


def _cmd_list(config: AppConfig, args: argparse.Namespace) -> int:
    runs = default_storage(config.database).list_runs()
    if runs.empty:
        print("No runs stored")
        return 0
    print(runs.to_string(index=False))
    return 0


def _cmd_delete(config: AppConfig, args: argparse.Namespace) -> int:
    if not default_storage(config.database).soft_delete(args.run_id):
        print(f"Run {args.run_id} not found")
        return 1
    print(f"Run {args.run_id} deleted")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="HTTP load-testing harness")
    parser.add_argument("--db", default=str(DatabaseConfig().path))
    parser.add_argument("--log-level", default="INFO")
    parser.add_argument("--host", default=ServerConfig().host)
    parser.add_argument("--port", type=int, default=ServerConfig().port)
    parser.add_argument("--max-connections", type=int, default=HttpClientConfig().max_connections)
    parser.add_argument("--keepalive-expiry", type=float, default=HttpClientConfig().keepalive_expiry_sec)
    parser.add_argument("--timeout", type=float, default=HttpClientConfig().timeout_sec)
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run a load test and print the summary")
    run.add_argument("--target", required=True, help="Target URL")
    run.add_argument("--method", default="POST", help="Accepted for compatibility; POST is always sent")
    run.add_argument("--users", type=int, default=10)
    run.add_argument("--requests", type=int, default=10)
    run.add_argument("--no-store", action="store_true")
    run.set_defaults(handler=_cmd_run)

    serve = sub.add_parser("serve", help="Start the HTTP control endpoint")
    serve.set_defaults(handler=_cmd_serve)

    show = sub.add_parser("show", help="Print a stored run")
    show.add_argument("run_id", type=int)
    show.set_defaults(handler=_cmd_show)

    list_ = sub.add_parser("list", help="List stored runs")
    list_.set_defaults(handler=_cmd_list)

    delete = sub.add_parser("delete", help="Soft-delete a stored run")
    delete.add_argument("run_id", type=int)
    delete.set_defaults(handler=_cmd_delete)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config = _build_config(args)
    try:
        return args.handler(config, args)
    except PersistenceError as exc:
        logger.error("result store unavailable: %s", exc)
        print(f"Result store error: {exc}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
