"""
Worker side of the processing pipeline.

The Worker owns the processing backend (cv2 by default) once loaded and
answers requests with Response envelopes. It is used by both execution
contexts: ProcessExecutionContext runs worker_main() in a child process,
ThreadExecutionContext calls Worker.handle() on a background thread.

No exception leaves Worker.handle(): failures become failed responses with a
plain string error.

Classes:
    WorkerOptions: Backend module, readiness symbol and polling bounds
    Worker: Request dispatcher holding the loaded backend

Functions:
    normalize_error: Turn any raised value into a message string
    wait_for_symbol: Bounded wait for an attribute to appear on a module
    worker_main: Message loop run inside the worker process
"""

import importlib
import logging
import time
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, Optional

from OE_Libs.constants import (
    DEFAULT_BACKEND_MODULE,
    DEFAULT_BACKEND_POLL_ATTEMPTS,
    DEFAULT_BACKEND_POLL_INTERVAL,
    DEFAULT_BACKEND_SYMBOL,
    FIELD_JOB_ID,
    FIELD_KIND,
    MSG_LOAD,
    MSG_PROCESS,
)
from OE_Libs.errors import MalformedMessageError
from OE_Libs.ProcessingLib.inpaint_executor import run_inpaint
from OE_Libs.ProcessingLib.messages import (
    LoadRequest,
    ProcessRequest,
    Response,
    ShutdownRequest,
    parse_request,
)

logger = logging.getLogger(__name__)


@dataclass
class WorkerOptions:
    """Settings the worker needs before it receives any request.

    Attributes:
        backend_module: Module to import as the processing backend
        backend_symbol: Attribute whose presence means the backend is usable
        poll_attempts: How many times to re-check backend_symbol after import
        poll_interval: Seconds between checks
    """
    backend_module: str = DEFAULT_BACKEND_MODULE
    backend_symbol: str = DEFAULT_BACKEND_SYMBOL
    poll_attempts: int = DEFAULT_BACKEND_POLL_ATTEMPTS
    poll_interval: float = DEFAULT_BACKEND_POLL_INTERVAL

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkerOptions":
        """Create from dictionary."""
        filtered = {k: v for k, v in data.items()
                    if k in cls.__dataclass_fields__}
        return cls(**filtered)

    @classmethod
    def from_config(cls, config: Any) -> "WorkerOptions":
        """Build options from an EraserConfig."""
        return cls(
            backend_module=config.backend_module,
            backend_symbol=config.backend_symbol,
            poll_attempts=config.backend_poll_attempts,
            poll_interval=config.backend_poll_interval,
        )


def normalize_error(error: Any) -> str:
    """
    Convert a raised value into a non-empty message string.

    Native backends sometimes raise with a bare numeric code or no message
    at all; those become '<TypeName>: error code N' or '<TypeName>'.
    """
    if isinstance(error, BaseException):
        if len(error.args) == 1 and isinstance(error.args[0], int) and not isinstance(error.args[0], bool):
            return f"{type(error).__name__}: error code {error.args[0]}"
        message = str(error).strip()
        return message or type(error).__name__

    message = str(error).strip()
    return message or "Unknown error"


def wait_for_symbol(
    module: Any,
    symbol: str,
    attempts: int,
    interval: float,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """
    Check for module.symbol, retrying a bounded number of times.

    Returns:
        True once the attribute exists, False after attempts re-checks
    """
    if hasattr(module, symbol):
        return True

    for _ in range(max(0, int(attempts))):
        sleep(interval)
        if hasattr(module, symbol):
            return True

    return False


class Worker:
    """
    Dispatches requests to handlers by kind.

    Example:
        >>> worker = Worker(WorkerOptions())
        >>> worker.handle({"kind": "load"})
        {'kind': 'load', 'success': True}
    """

    def __init__(self, options: Optional[WorkerOptions] = None):
        self.options = options or WorkerOptions()
        self.backend: Any = None
        self._handlers: Dict[type, Callable[[Any], Optional[Response]]] = {
            LoadRequest: self._handle_load,
            ProcessRequest: self._handle_process,
            ShutdownRequest: self._handle_shutdown,
        }

    @property
    def is_loaded(self) -> bool:
        return self.backend is not None

    def handle(self, message: Any) -> Optional[Dict[str, Any]]:
        """
        Handle one request message.

        Args:
            message: Request dict as produced by a request's to_message()

        Returns:
            Response dict, or None when no response is due (shutdown or an
            unrecognised kind)
        """
        try:
            request = parse_request(message)
        except MalformedMessageError as e:
            return self._reject_malformed(message, e)

        handler = self._handlers[type(request)]
        try:
            response = handler(request)
        except Exception as e:
            logger.exception(f"Worker: {request.KIND} handler failed")
            response = self._failed_response(request, normalize_error(e))
        return response.to_message() if response is not None else None

    @staticmethod
    def _failed_response(request: Any, reason: str) -> Optional[Response]:
        if isinstance(request, LoadRequest):
            return Response.load_failed(reason)
        if isinstance(request, ProcessRequest):
            return Response.process_failed(request.job_id, reason)
        return None

    def _reject_malformed(self, message: Any, error: MalformedMessageError) -> Optional[Dict[str, Any]]:
        kind = message.get(FIELD_KIND) if isinstance(message, dict) else None
        logger.warning(f"Worker: malformed request ({error})")

        if kind == MSG_LOAD:
            return Response.load_failed(str(error)).to_message()

        if kind == MSG_PROCESS:
            job_id = message.get(FIELD_JOB_ID)
            if isinstance(job_id, bool) or not isinstance(job_id, int):
                job_id = None
            return Response.process_failed(job_id, str(error)).to_message()

        return None

    def _handle_load(self, request: LoadRequest) -> Response:
        if self.backend is not None:
            return Response.load_succeeded()

        options = self.options
        try:
            module = importlib.import_module(options.backend_module)
            if not wait_for_symbol(
                module,
                options.backend_symbol,
                options.poll_attempts,
                options.poll_interval,
            ):
                raise RuntimeError(
                    f"Backend '{options.backend_module}' loaded but "
                    f"'{options.backend_symbol}' never became available"
                )
        except Exception as e:
            reason = normalize_error(e)
            logger.error(f"Worker: failed to load backend '{options.backend_module}': {reason}")
            return Response.load_failed(reason)

        self.backend = module
        logger.info(f"Worker: backend '{options.backend_module}' loaded")
        return Response.load_succeeded()

    def _handle_process(self, request: ProcessRequest) -> Response:
        if self.backend is None:
            return Response.process_failed(request.job_id, "Processing backend not loaded")

        started = time.perf_counter()
        try:
            pixels = run_inpaint(
                request.image_pixels,
                request.mask_pixels,
                request.width,
                request.height,
                radius=request.radius,
                threshold=request.threshold,
                method=request.method,
                backend=self.backend,
            )
        except Exception as e:
            reason = normalize_error(e)
            logger.error(f"Worker: job {request.job_id} failed: {reason}")
            return Response.process_failed(request.job_id, reason)

        elapsed = time.perf_counter() - started
        logger.debug(f"Worker: job {request.job_id} finished in {elapsed:.2f}s")
        return Response.process_succeeded(request.job_id, pixels, request.width, request.height)

    def _handle_shutdown(self, request: ShutdownRequest) -> None:
        logger.debug("Worker: shutdown requested")
        return None


def worker_main(conn: Any, options: Dict[str, Any], log_level: int = logging.WARNING) -> None:
    """
    Message loop of the worker process.

    Reads request dicts from conn until a shutdown request arrives or the
    parent end of the pipe closes.

    Args:
        conn: Child end of a multiprocessing Pipe
        options: WorkerOptions as a dict
        log_level: Logging level inherited from the parent process
    """
    logging.basicConfig(level=log_level)
    worker = Worker(WorkerOptions.from_dict(options))

    while True:
        try:
            message = conn.recv()
        except (EOFError, OSError):
            logger.debug("Worker: parent connection closed")
            break

        response = worker.handle(message)
        if response is not None:
            try:
                conn.send(response)
            except (BrokenPipeError, OSError) as e:
                logger.debug(f"Worker: could not send response: {e}")
                break

        if isinstance(message, dict) and message.get(FIELD_KIND) == ShutdownRequest.KIND:
            break

    conn.close()
