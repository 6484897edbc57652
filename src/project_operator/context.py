"""Request-scoped context passed as the first argument of every operation.

A ReconcileContext carries the managed project, a logger bound to it, and the
deadline of the current invocation. Nothing about a reconciliation lives in
module state; two projects reconciling concurrently never share a context.
"""

from __future__ import annotations

import asyncio
import contextvars
import functools
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from .client import request_timeout
from .models import ManagedProject

T = TypeVar("T")


class DeadlineExceededError(TimeoutError):
    """Raised when the invocation deadline passes before a remote call starts."""

    pass


class ProjectLoggerAdapter(logging.LoggerAdapter):  # type: ignore[type-arg]
    """Merges the bound project fields into every record's extra fields."""

    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        kwargs["extra"] = {**(self.extra or {}), **kwargs.get("extra", {})}
        return msg, kwargs


@dataclass
class ReconcileContext:
    """Execution context of one project reconciliation.

    Attributes:
        project: The managed project being reconciled.
        log: Logger carrying project, namespace and project_id fields.
        deadline: Event-loop time after which remote calls are refused.
    """

    project: ManagedProject
    log: logging.LoggerAdapter  # type: ignore[type-arg]
    deadline: float | None = None
    remote_calls: int = field(default=0, init=False)

    @classmethod
    def for_project(
        cls,
        project: ManagedProject,
        logger: logging.Logger,
        timeout_seconds: float | None = None,
    ) -> ReconcileContext:
        """Create a context for a project, starting its deadline now."""
        deadline = None
        if timeout_seconds is not None:
            deadline = asyncio.get_running_loop().time() + timeout_seconds
        adapter = ProjectLoggerAdapter(
            logger,
            {
                "project": project.metadata.name,
                "namespace": project.metadata.namespace,
                "project_id": project.spec.project_id,
            },
        )
        return cls(project=project, log=adapter, deadline=deadline)

    @property
    def project_id(self) -> str:
        return self.project.spec.project_id

    @property
    def namespace(self) -> str:
        return self.project.metadata.namespace

    def remaining(self) -> float | None:
        """Seconds left before the deadline (None when unbounded)."""
        if self.deadline is None:
            return None
        return self.deadline - asyncio.get_running_loop().time()

    async def call(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run a blocking remote call on the executor, bounded by the deadline.

        Cancellation of the awaiting task abandons the call without rollback;
        the next cycle re-diffs whatever state it left behind. The remaining
        time is also handed to the client as its request timeout, so an
        abandoned executor thread stops once the HTTP call times out.

        Raises:
            DeadlineExceededError: If the deadline has already passed.
            TimeoutError: If the deadline passes while the call runs.
        """
        remaining = self.remaining()
        if remaining is not None and remaining <= 0:
            raise DeadlineExceededError(
                f"reconciliation deadline exceeded before calling {getattr(fn, '__name__', fn)}"
            )
        self.remote_calls += 1
        call_context = contextvars.copy_context()
        call_context.run(request_timeout.set, remaining)
        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(
            None, functools.partial(call_context.run, fn, *args, **kwargs)
        )
        return await asyncio.wait_for(future, timeout=remaining)
