"""
Inpaint session: the component that owns one execution context.

The session creates its execution context on first use, routes responses to
the backend lifecycle or the coordinator by kind, and releases the context
on close(). A dead worker is noticed through the context's termination
callback; the next request starts a fresh one.

Example:
    >>> with InpaintSession(EraserConfig()) as session:
    ...     session.request_load().result(timeout=60)
    ...     handle = session.submit(image_buffer, surface.snapshot())
    ...     outcome = handle.result(timeout=120)
"""

import logging
import threading
from concurrent.futures import Future
from typing import Any, Callable, Dict, Optional

from OE_Libs.config import EraserConfig
from OE_Libs.constants import MSG_LOAD, MSG_PROCESS
from OE_Libs.errors import MalformedMessageError
from OE_Libs.MaskingLib.pixel_buffers import PixelBuffer
from OE_Libs.ProcessingLib.backend_lifecycle import BackendLifecycle
from OE_Libs.ProcessingLib.coordinator import JobHandle, ProcessingCoordinator
from OE_Libs.ProcessingLib.execution_context import (
    ExecutionContext,
    ProcessExecutionContext,
    ThreadExecutionContext,
)
from OE_Libs.ProcessingLib.messages import parse_response
from OE_Libs.ProcessingLib.worker import WorkerOptions

logger = logging.getLogger(__name__)

ContextFactory = Callable[[], ExecutionContext]


class InpaintSession:
    """
    Lifecycle + coordinator + one lazily started execution context.

    Args:
        config: Pipeline configuration (validated here)
        context_factory: Builds the execution context; defaults to a
                         process or thread context depending on
                         config.use_process
    """

    def __init__(
        self,
        config: Optional[EraserConfig] = None,
        context_factory: Optional[ContextFactory] = None,
    ):
        self.config = config or EraserConfig()
        self.config.validate()
        self._context_factory = context_factory or self._default_context_factory
        self._context: Optional[ExecutionContext] = None
        self._context_lock = threading.Lock()
        self._closed = False

        self.lifecycle = BackendLifecycle(self._post, load_timeout=self.config.load_timeout)
        self.coordinator = ProcessingCoordinator(
            self.lifecycle,
            self._post,
            radius=self.config.inpaint_radius,
            threshold=self.config.mask_threshold,
            method=self.config.inpaint_method,
            job_timeout=self.config.job_timeout,
        )

    def _default_context_factory(self) -> ExecutionContext:
        options = WorkerOptions.from_config(self.config)
        if self.config.use_process:
            return ProcessExecutionContext(options)
        return ThreadExecutionContext(options)

    @property
    def context(self) -> Optional[ExecutionContext]:
        return self._context

    def _ensure_context(self) -> ExecutionContext:
        with self._context_lock:
            if self._closed:
                raise RuntimeError("Session is closed")

            context = self._context
            if context is None or not context.is_alive:
                context = self._context_factory()
                context.set_listener(self._on_message, self._on_terminated)
                context.start()
                self._context = context
                logger.debug(f"Execution context created: {type(context).__name__}")
            return context

    def _post(self, message: Dict[str, Any]) -> None:
        self._ensure_context().post(message)

    def _on_message(self, message: Any) -> None:
        try:
            response = parse_response(message)
        except MalformedMessageError as e:
            logger.warning(f"Ignored malformed response: {e}")
            return

        if response.kind == MSG_LOAD:
            self.lifecycle.handle_response(response)
        elif response.kind == MSG_PROCESS:
            self.coordinator.handle_response(response)

    def _on_terminated(self, reason: str) -> None:
        with self._context_lock:
            dead = self._context
            self._context = None

        self.coordinator.handle_context_lost(reason)
        self.lifecycle.mark_lost(reason)
        if dead is not None:
            dead.close(timeout=1.0)

    def request_load(self) -> Future:
        """Load the backend (see BackendLifecycle.request_load)."""
        return self.lifecycle.request_load()

    def submit(self, image: PixelBuffer, mask: PixelBuffer) -> JobHandle:
        """Submit one job (see ProcessingCoordinator.submit)."""
        return self.coordinator.submit(image, mask)

    def cancel(self) -> bool:
        """Abandon the running job, if any."""
        return self.coordinator.cancel()

    def close(self) -> None:
        """Fail anything outstanding and release the execution context."""
        with self._context_lock:
            if self._closed:
                return
            self._closed = True
            context = self._context
            self._context = None

        self.coordinator.reset()
        self.lifecycle.reset()
        if context is not None:
            context.close()
        logger.info("Inpaint session closed")

    def __enter__(self) -> "InpaintSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
