import argparse
import asyncio
import json
import logging
import sys
from typing import Optional, Sequence

from prometheus_client import start_http_server

from orchestrator.domain.errors import StoreUnavailableError
from orchestrator.domain.states import JobType
from orchestrator.settings import settings
from worker.client import JobsClient
from worker.registry import HandlerRegistry
from worker.runner import WorkerRunner
from worker.tasks import dry_run_toggle

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:8000"

def parse_toggle(item: str) -> tuple[str, bool]:
    key, sep, value = item.partition("=")
    if not key or not sep or value.lower() not in ("true", "false"):
        raise argparse.ArgumentTypeError(f"toggle must look like key=true|false, got {item!r}")
    return key, value.lower() == "true"

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="jobctl", description="Run workers and manage jobs")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run a worker loop against the job store")
    run.add_argument("--worker-id")
    run.add_argument("--tasks", action="append", default=[], help="Module exposing register(registry); repeatable")
    run.add_argument("--dry-run", action="store_true", help="Run every job as a dry run, replacing --tasks handlers")
    run.add_argument("--max-jobs", type=int)

    for name in ("enqueue", "cancel", "show"):
        p = sub.add_parser(name)
        p.add_argument("--base-url", default=DEFAULT_BASE_URL)
        p.add_argument("--api-key", default=settings.API_KEY)
        if name == "enqueue":
            p.add_argument("type", choices=[t.value for t in JobType])
            p.add_argument("--toggle", action="append", default=[], type=parse_toggle, help="key=true|false; repeatable")
            p.add_argument("--payload", help="JSON payload; toggles are merged into it")
            p.add_argument("--max-attempts", type=int)
        else:
            p.add_argument("job_id")
        if name == "cancel":
            p.add_argument("--reason")

    return parser

def build_registry(task_modules: Sequence[str], dry_run: bool) -> HandlerRegistry:
    registry = HandlerRegistry()
    registry.add_middleware(dry_run_toggle)
    for module_path in task_modules:
        registry.load(module_path)
    if dry_run:
        # Last, so it replaces whatever --tasks registered
        registry.load("worker.tasks")
    return registry

async def _run_worker(args) -> int:
    registry = build_registry(args.tasks, args.dry_run)
    if not registry.job_types:
        logger.error("No task handlers registered; pass --tasks or --dry-run")
        return 2

    if settings.WORKER_METRICS_PORT:
        start_http_server(settings.WORKER_METRICS_PORT)

    runner = WorkerRunner(registry, worker_id=args.worker_id)
    try:
        await runner.run(max_jobs=args.max_jobs)
    except StoreUnavailableError as e:
        logger.critical("Job store unavailable, exiting: %s", e)
        return 1
    return 0

async def _client_command(args) -> int:
    async with JobsClient(args.base_url, api_key=args.api_key) as client:
        if args.command == "enqueue":
            payload = json.loads(args.payload) if args.payload else {}
            toggles = dict(args.toggle)
            if toggles:
                payload.setdefault("toggles", {}).update(toggles)
            job_id = await client.enqueue(args.type, payload, args.max_attempts)
            print(job_id)
        elif args.command == "cancel":
            job = await client.cancel(args.job_id, reason=args.reason)
            print(json.dumps(job, indent=2))
        else:
            print(json.dumps(await client.get(args.job_id), indent=2))
    return 0

def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "run":
        return asyncio.run(_run_worker(args))
    return asyncio.run(_client_command(args))

if __name__ == "__main__":
    sys.exit(main())
