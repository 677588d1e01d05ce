"""
Built-in task bodies.

The real bodies drive a browser against the portal and live outside this
repo; they are plugged in with `jobctl run --tasks some.module`. What ships
here is the dry-run body, which exercises the whole lease lifecycle without
touching the portal. A single job opts in with `toggles.dryRun`; a whole
worker with `jobctl run --dry-run`.
"""

from orchestrator.domain.models import TaskResult
from orchestrator.domain.states import JobType
from worker.context import JobContext
from worker.registry import Handler, HandlerRegistry

async def dry_run(payload: dict, ctx: JobContext) -> TaskResult:
    toggles = payload.get("toggles") or {}
    await ctx.info("Dry-run mode: skipping browser automation", toggles=toggles)
    await ctx.checkpoint()
    await ctx.info("STEP:complete")
    return TaskResult(summary="Dry-run completed", data={"ok": True, "toggles": toggles})

async def dry_run_toggle(payload: dict, ctx: JobContext, call_next: Handler) -> TaskResult:
    """Middleware: jobs enqueued with toggles.dryRun skip their handler."""
    toggles = payload.get("toggles") or {}
    if toggles.get("dryRun"):
        return await dry_run(payload, ctx)
    return await call_next(payload, ctx)

def register(registry: HandlerRegistry) -> None:
    for job_type in JobType:
        registry.register(job_type, dry_run)
