import importlib
import logging
from typing import Any, Awaitable, Callable, Optional

from orchestrator.domain.errors import UnknownJobTypeError
from orchestrator.domain.models import TaskResult
from orchestrator.domain.states import JobType
from worker.context import JobContext

logger = logging.getLogger(__name__)

Handler = Callable[[dict, JobContext], Awaitable[TaskResult]]
Middleware = Callable[[dict, JobContext, Handler], Awaitable[TaskResult]]

class HandlerRegistry:
    """
    Maps job type -> task body. New job types are added by registering a
    handler, the worker loop never branches on type.
    """

    def __init__(self):
        self._handlers: dict[str, Handler] = {}
        self.middlewares: list[Middleware] = []

    def register(self, job_type: JobType | str, handler: Optional[Handler] = None):
        """Registers a handler. Without `handler` it works as a decorator."""
        key = JobType(job_type).value

        def decorator(fn: Handler) -> Handler:
            if key in self._handlers:
                logger.warning("Replacing handler for %s", key)
            self._handlers[key] = fn
            return fn

        if handler is not None:
            return decorator(handler)
        return decorator

    def add_middleware(self, middleware: Middleware):
        self.middlewares.append(middleware)

    def load(self, module_path: str) -> None:
        """Imports a task module; it must expose `register(registry)`."""
        module = importlib.import_module(module_path)
        register = getattr(module, "register", None)
        if register is None:
            raise ImportError(f"{module_path} has no register(registry) function")
        register(self)

    def __contains__(self, job_type: str) -> bool:
        return job_type in self._handlers

    @property
    def job_types(self) -> list[str]:
        return sorted(self._handlers)

    def resolve(self, job_type: str) -> Handler:
        try:
            return self._handlers[job_type]
        except KeyError:
            raise UnknownJobTypeError(job_type) from None

    async def dispatch(self, job_type: str, payload: dict, ctx: JobContext) -> TaskResult:
        # Resolved innermost, so a middleware can answer for a type with no handler
        async def handler(p, c):
            return await self.resolve(job_type)(p, c)

        chain = handler

        # Apply middleware in reverse order (onion): first added runs outermost
        for mw in reversed(self.middlewares):
            def make_wrapper(current_mw, current_chain):
                async def wrapper(p, c):
                    return await current_mw(p, c, current_chain)
                return wrapper
            chain = make_wrapper(mw, chain)

        result = await chain(payload, ctx)
        return _as_task_result(result)

def _as_task_result(result: Any) -> TaskResult:
    if isinstance(result, TaskResult):
        return result
    if result is None:
        return TaskResult()
    if isinstance(result, dict):
        return TaskResult(data=result)
    raise TypeError(f"Handler returned {type(result).__name__}, expected TaskResult or dict")
