"""
Load state machine for the processing backend.

    UNLOADED --request_load()--> LOADING --success--> READY
                                    |
                                    +----failure----> FAILED --request_load()--> LOADING

Loading happens in the worker; this class only tracks state and resolves the
future handed to callers when the worker's load response arrives. Only one
load request is ever outstanding: callers arriving while LOADING share the
same future.
"""

import logging
import threading
from concurrent.futures import Future
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from OE_Libs.constants import DEFAULT_LOAD_TIMEOUT, MSG_LOAD
from OE_Libs.errors import BackendLoadError
from OE_Libs.ProcessingLib.messages import LoadRequest, Response
from OE_Libs.ProcessingLib.worker import normalize_error

logger = logging.getLogger(__name__)

StateListener = Callable[["BackendState", Optional[str]], None]


class BackendState(Enum):
    UNLOADED = "unloaded"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


class BackendLifecycle:
    """
    Tracks whether the worker's processing backend is usable.

    Args:
        post: Callable that sends a request dict to the execution context
        load_timeout: Seconds to wait for a load response (0 disables)

    Example:
        >>> lifecycle = BackendLifecycle(context.post)
        >>> lifecycle.request_load().result(timeout=30)
        True
        >>> lifecycle.state
        <BackendState.READY: 'ready'>
    """

    def __init__(
        self,
        post: Callable[[Dict[str, Any]], None],
        load_timeout: float = DEFAULT_LOAD_TIMEOUT,
    ):
        self._post = post
        self.load_timeout = float(load_timeout)
        self._lock = threading.Lock()
        self._state = BackendState.UNLOADED
        self._failure_reason: Optional[str] = None
        self._pending: Optional[Future] = None
        self._timer: Optional[threading.Timer] = None
        self._listeners: List[StateListener] = []

    @property
    def state(self) -> BackendState:
        return self._state

    @property
    def failure_reason(self) -> Optional[str]:
        return self._failure_reason

    @property
    def is_ready(self) -> bool:
        return self._state == BackendState.READY

    def add_state_listener(self, listener: StateListener) -> None:
        """Call listener(state, reason) after every state change."""
        self._listeners.append(listener)

    def _notify(self, state: BackendState, reason: Optional[str]) -> None:
        for listener in list(self._listeners):
            try:
                listener(state, reason)
            except Exception:
                logger.exception("Backend state listener failed")

    def request_load(self) -> Future:
        """
        Make sure the backend is loaded.

        Returns:
            A Future resolving to True once READY, or raising
            BackendLoadError(reason) if loading fails
        """
        with self._lock:
            if self._state == BackendState.READY:
                done: Future = Future()
                done.set_result(True)
                return done

            if self._state == BackendState.LOADING and self._pending is not None:
                return self._pending

            future: Future = Future()
            self._pending = future
            self._state = BackendState.LOADING
            self._failure_reason = None
            self._start_timer(future)

        logger.info("Loading processing backend")
        self._notify(BackendState.LOADING, None)

        try:
            self._post(LoadRequest().to_message())
        except Exception as e:
            self._fail_pending(future, normalize_error(e))

        return future

    def _start_timer(self, future: Future) -> None:
        if self.load_timeout <= 0:
            return
        timer = threading.Timer(self.load_timeout, self._on_timeout, args=(future,))
        timer.daemon = True
        self._timer = timer
        timer.start()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timeout(self, future: Future) -> None:
        self._fail_pending(future, f"Backend load timed out after {self.load_timeout:g}s")

    def _fail_pending(self, future: Future, reason: str) -> None:
        with self._lock:
            if self._pending is not future or self._state != BackendState.LOADING:
                return
            self._state = BackendState.FAILED
            self._failure_reason = reason
            self._pending = None
            self._cancel_timer()

        logger.error(f"Processing backend failed to load: {reason}")
        future.set_exception(BackendLoadError(reason))
        self._notify(BackendState.FAILED, reason)

    def handle_response(self, response: Response) -> None:
        """Apply a load response from the worker."""
        if response.kind != MSG_LOAD:
            logger.warning(f"Lifecycle ignored a '{response.kind}' response")
            return

        with self._lock:
            future = self._pending
            if self._state != BackendState.LOADING or future is None:
                logger.warning(f"Unexpected load response while {self._state.value}; ignored")
                return
            if response.success:
                self._state = BackendState.READY
                self._pending = None
                self._cancel_timer()

        if response.success:
            logger.info("Processing backend ready")
            future.set_result(True)
            self._notify(BackendState.READY, None)
        else:
            self._fail_pending(future, response.error or "Unknown error")

    def mark_lost(self, reason: str) -> None:
        """The worker died: whatever was loaded is gone."""
        with self._lock:
            if self._state not in (BackendState.READY, BackendState.LOADING):
                return
            future = self._pending
            self._state = BackendState.FAILED
            self._failure_reason = reason
            self._pending = None
            self._cancel_timer()

        logger.error(f"Processing backend lost: {reason}")
        if future is not None and not future.done():
            future.set_exception(BackendLoadError(reason))
        self._notify(BackendState.FAILED, reason)

    def reset(self) -> None:
        """Forget any loaded state; the next request_load() starts over."""
        with self._lock:
            future = self._pending
            self._pending = None
            self._state = BackendState.UNLOADED
            self._failure_reason = None
            self._cancel_timer()

        if future is not None and not future.done():
            future.set_exception(BackendLoadError("Backend load was reset"))
        self._notify(BackendState.UNLOADED, None)
