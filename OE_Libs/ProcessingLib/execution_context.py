"""
Isolated execution contexts that host the Worker.

Both contexts accept request dicts through post() and hand response dicts to
a listener callback. The listener runs on a background thread of the calling
process, never on the thread that called post().

Classes:
    ExecutionContext: Common listener plumbing and lifecycle interface
    ProcessExecutionContext: Worker in a spawned child process (default)
    ThreadExecutionContext: Worker on a background thread of this process
"""

import logging
import multiprocessing
import queue
import threading
from typing import Any, Callable, Dict, Optional

from OE_Libs.errors import ExecutionError
from OE_Libs.ProcessingLib.messages import ShutdownRequest
from OE_Libs.ProcessingLib.worker import Worker, WorkerOptions, worker_main

logger = logging.getLogger(__name__)

MessageListener = Callable[[Dict[str, Any]], None]
TerminationListener = Callable[[str], None]


class ExecutionContext:
    """
    Base class for worker hosts.

    Subclasses implement start(), post(), close() and is_alive, and call
    _deliver() for each response and _terminated() if the worker dies.
    """

    def __init__(self):
        self._on_message: Optional[MessageListener] = None
        self._on_terminated: Optional[TerminationListener] = None

    def set_listener(
        self,
        on_message: MessageListener,
        on_terminated: Optional[TerminationListener] = None,
    ) -> None:
        """Register the callbacks for responses and unexpected termination."""
        self._on_message = on_message
        self._on_terminated = on_terminated

    def start(self) -> None:
        raise NotImplementedError

    def post(self, message: Dict[str, Any]) -> None:
        raise NotImplementedError

    def close(self, timeout: float = 5.0) -> None:
        raise NotImplementedError

    @property
    def is_alive(self) -> bool:
        raise NotImplementedError

    def _deliver(self, message: Any) -> None:
        listener = self._on_message
        if listener is None:
            logger.warning("Response received with no listener attached; dropped")
            return
        try:
            listener(message)
        except Exception:
            logger.exception("Response listener failed")

    def _terminated(self, reason: str) -> None:
        logger.error(f"Execution context terminated: {reason}")
        listener = self._on_terminated
        if listener is None:
            return
        try:
            listener(reason)
        except Exception:
            logger.exception("Termination listener failed")


class ProcessExecutionContext(ExecutionContext):
    """
    Runs the worker in a spawned child process connected by a Pipe.

    A daemon thread in this process reads responses from the pipe and hands
    them to the listener.
    """

    def __init__(self, options: Optional[WorkerOptions] = None):
        super().__init__()
        self.options = options or WorkerOptions()
        self._process = None
        self._conn = None
        self._reader: Optional[threading.Thread] = None
        self._send_lock = threading.Lock()
        self._closing = False

    @property
    def is_alive(self) -> bool:
        return self._process is not None and self._process.is_alive()

    def start(self) -> None:
        if self._process is not None:
            return

        mp_context = multiprocessing.get_context("spawn")
        parent_conn, child_conn = mp_context.Pipe()
        process = mp_context.Process(
            target=worker_main,
            args=(child_conn, self.options.to_dict(), logging.getLogger().getEffectiveLevel()),
            name="open-eraser-worker",
            daemon=True,
        )
        process.start()
        child_conn.close()

        self._process = process
        self._conn = parent_conn
        self._closing = False
        self._reader = threading.Thread(
            target=self._read_loop,
            name="open-eraser-listener",
            daemon=True,
        )
        self._reader.start()
        logger.info(f"Worker process started (pid {process.pid})")

    def _read_loop(self) -> None:
        conn = self._conn
        while True:
            try:
                message = conn.recv()
            except (EOFError, OSError):
                break
            self._deliver(message)

        if not self._closing:
            process = self._process
            if process is not None:
                process.join(timeout=1.0)
            exit_code = process.exitcode if process is not None else None
            self._terminated(f"Worker process exited unexpectedly (exit code {exit_code})")

    def post(self, message: Dict[str, Any]) -> None:
        """
        Send a request to the worker process.

        Raises:
            ExecutionError: If the process is not running or the pipe is broken
        """
        if self._conn is None or self._closing:
            raise ExecutionError("Worker process is not running")

        with self._send_lock:
            try:
                self._conn.send(message)
            except (BrokenPipeError, OSError) as e:
                raise ExecutionError(f"Could not send to worker process: {e}") from e

    def close(self, timeout: float = 5.0) -> None:
        """Ask the worker to exit, then release the process and pipe."""
        if self._process is None:
            return

        self._closing = True
        with self._send_lock:
            try:
                self._conn.send(ShutdownRequest().to_message())
            except (BrokenPipeError, OSError):
                pass

        self._process.join(timeout)
        if self._process.is_alive():
            logger.warning("Worker process did not exit; terminating")
            self._process.terminate()
            self._process.join(timeout)

        self._conn.close()
        if self._reader is not None and self._reader is not threading.current_thread():
            self._reader.join(timeout)

        logger.info("Worker process stopped")
        self._process = None
        self._conn = None
        self._reader = None


class ThreadExecutionContext(ExecutionContext):
    """
    Runs the worker on a background thread of the current process.

    Useful where spawning processes is not possible. OpenCV releases the GIL
    while inpainting, so the UI thread stays responsive.
    """

    _STOP = object()

    def __init__(self, options: Optional[WorkerOptions] = None):
        super().__init__()
        self.options = options or WorkerOptions()
        self.worker = Worker(self.options)
        self._queue: "queue.Queue[Any]" = queue.Queue()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(
            target=self._run,
            name="open-eraser-worker",
            daemon=True,
        )
        self._thread.start()
        logger.info("Worker thread started")

    def _run(self) -> None:
        while True:
            message = self._queue.get()
            if message is self._STOP:
                break

            response = self.worker.handle(message)
            if response is not None:
                self._deliver(response)

            if isinstance(message, dict) and message.get("kind") == ShutdownRequest.KIND:
                break

    def post(self, message: Dict[str, Any]) -> None:
        if not self.is_alive:
            raise ExecutionError("Worker thread is not running")
        self._queue.put(message)

    def close(self, timeout: float = 5.0) -> None:
        if self._thread is None:
            return
        self._queue.put(self._STOP)
        self._thread.join(timeout)
        if self._thread.is_alive():
            logger.warning("Worker thread still busy at shutdown; leaving it as daemon")
        else:
            logger.info("Worker thread stopped")
        self._thread = None
