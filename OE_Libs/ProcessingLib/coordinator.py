"""
Processing coordinator: runs one inpainting job at a time.

submit() checks its preconditions synchronously and raises before anything
is sent to the worker:

    BackendNotReady    backend is not READY
    JobInFlight        another job is still queued or running
    DimensionMismatch  image and mask differ in size

Once accepted, the image and mask buffers are detached (moved) into the
request and the caller gets a JobHandle. Everything that goes wrong after
that (worker error, timeout, cancellation, worker death) resolves the
handle with a failed JobResult instead of raising.

Classes:
    JobState: QUEUED, RUNNING, SUCCEEDED, FAILED
    JobResult: Success flag plus result buffer or error message
    JobHandle: Caller's view of a submitted job
    ProcessingCoordinator: Submission, correlation and timeout handling
"""

import itertools
import logging
import threading
from concurrent.futures import Future
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional

from OE_Libs.constants import (
    DEFAULT_INPAINT_METHOD,
    DEFAULT_INPAINT_RADIUS,
    DEFAULT_JOB_TIMEOUT,
    DEFAULT_MASK_THRESHOLD,
    FIELD_HEIGHT,
    FIELD_PIXELS,
    FIELD_WIDTH,
    MSG_PROCESS,
)
from OE_Libs.errors import (
    BackendNotReady,
    BufferDetachedError,
    DimensionMismatch,
    JobInFlight,
)
from OE_Libs.MaskingLib.pixel_buffers import Dims, PixelBuffer
from OE_Libs.ProcessingLib.backend_lifecycle import BackendLifecycle
from OE_Libs.ProcessingLib.messages import ProcessRequest, Response
from OE_Libs.ProcessingLib.worker import normalize_error

logger = logging.getLogger(__name__)


class JobState(Enum):
    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class JobResult:
    """Outcome of one job.

    Attributes:
        job_id: Id of the job
        success: True if the worker returned pixels
        result: Result buffer on success (same size as the input)
        error: Message on failure
    """
    job_id: int
    success: bool
    result: Optional[PixelBuffer] = None
    error: Optional[str] = None


@dataclass
class Job:
    id: int
    dims: Dims
    state: JobState = JobState.QUEUED
    future: Future = field(default_factory=Future, repr=False)
    timer: Optional[threading.Timer] = field(default=None, repr=False)


class JobHandle:
    """Caller's view of a submitted job."""

    def __init__(self, job: Job, coordinator: "ProcessingCoordinator"):
        self._job = job
        self._coordinator = coordinator

    @property
    def job_id(self) -> int:
        return self._job.id

    @property
    def state(self) -> JobState:
        return self._job.state

    def done(self) -> bool:
        return self._job.future.done()

    def result(self, timeout: Optional[float] = None) -> JobResult:
        """Block until the job resolves (raises TimeoutError on timeout)."""
        return self._job.future.result(timeout)

    def add_done_callback(self, callback: Callable[[JobResult], None]) -> None:
        """Call callback(JobResult) when the job resolves, possibly right away."""
        self._job.future.add_done_callback(lambda future: callback(future.result()))

    def cancel(self) -> bool:
        """Abandon the job locally; a late worker response is discarded."""
        return self._coordinator.cancel(self._job.id)


class ProcessingCoordinator:
    """
    Bridges submissions to the worker and responses back to callers.

    Args:
        lifecycle: Backend lifecycle that must be READY to submit
        post: Callable that sends a request dict to the execution context
        radius: Inpainting neighborhood radius sent with each job
        threshold: Mask binarization cutoff sent with each job
        method: Inpainting method sent with each job
        job_timeout: Seconds before an unanswered job fails (0 disables)
    """

    def __init__(
        self,
        lifecycle: BackendLifecycle,
        post: Callable[[Dict[str, Any]], None],
        radius: int = DEFAULT_INPAINT_RADIUS,
        threshold: int = DEFAULT_MASK_THRESHOLD,
        method: str = DEFAULT_INPAINT_METHOD,
        job_timeout: float = DEFAULT_JOB_TIMEOUT,
    ):
        self.lifecycle = lifecycle
        self._post = post
        self.radius = int(radius)
        self.threshold = int(threshold)
        self.method = method
        self.job_timeout = float(job_timeout)
        self._lock = threading.Lock()
        self._current: Optional[Job] = None
        self._ids = itertools.count(1)

    @property
    def current_job_id(self) -> Optional[int]:
        job = self._current
        return job.id if job is not None else None

    @property
    def is_busy(self) -> bool:
        return self._current is not None

    def submit(self, image: PixelBuffer, mask: PixelBuffer) -> JobHandle:
        """
        Start inpainting image with mask.

        Both buffers are detached on success and must not be used afterwards.

        Returns:
            JobHandle for the running job

        Raises:
            BackendNotReady: If the backend has not finished loading
            JobInFlight: If another job is queued or running
            DimensionMismatch: If image and mask sizes differ
            BufferDetachedError: If either buffer was already transferred
        """
        if not self.lifecycle.is_ready:
            logger.warning("Job rejected: backend not ready")
            raise BackendNotReady()

        with self._lock:
            if self._current is not None:
                logger.warning(f"Job rejected: job {self._current.id} still in flight")
                raise JobInFlight(self._current.id)

            if image.dims != mask.dims:
                logger.error(f"Job rejected: image {image.dims} vs mask {mask.dims}")
                raise DimensionMismatch(image.dims, mask.dims)

            for buffer in (image, mask):
                if buffer.is_detached:
                    raise BufferDetachedError(f"{buffer!r} was already transferred")

            job = Job(id=next(self._ids), dims=image.dims)
            self._current = job

        width, height = job.dims
        request = ProcessRequest(
            job_id=job.id,
            image_pixels=image.detach(),
            mask_pixels=mask.detach(),
            width=width,
            height=height,
            radius=self.radius,
            threshold=self.threshold,
            method=self.method,
        )

        with self._lock:
            if self._current is job:
                job.state = JobState.RUNNING
                self._start_timer(job)

        logger.info(f"Job {job.id} submitted ({width}x{height})")
        try:
            self._post(request.to_message())
        except Exception as e:
            self._fail(job.id, f"Could not start processing: {normalize_error(e)}")

        return JobHandle(job, self)

    def _start_timer(self, job: Job) -> None:
        if self.job_timeout <= 0:
            return
        timer = threading.Timer(self.job_timeout, self._on_timeout, args=(job.id,))
        timer.daemon = True
        job.timer = timer
        timer.start()

    def _on_timeout(self, job_id: int) -> None:
        self._fail(job_id, f"Job {job_id} timed out after {self.job_timeout:g}s")

    def _finish(self, job_id: int, result: JobResult) -> bool:
        with self._lock:
            job = self._current
            if job is None or job.id != job_id:
                return False
            self._current = None
            job.state = JobState.SUCCEEDED if result.success else JobState.FAILED
            if job.timer is not None:
                job.timer.cancel()
                job.timer = None

        if result.success:
            logger.info(f"Job {job_id} succeeded")
        else:
            logger.error(f"Job {job_id} failed: {result.error}")
        job.future.set_result(result)
        return True

    def _fail(self, job_id: int, error: str) -> bool:
        return self._finish(job_id, JobResult(job_id=job_id, success=False, error=error))

    def handle_response(self, response: Response) -> None:
        """Apply a process response from the worker; stale or bad ones are ignored."""
        if response.kind != MSG_PROCESS:
            logger.warning(f"Coordinator ignored a '{response.kind}' response")
            return

        job = self._current
        if job is None or response.job_id != job.id:
            logger.warning(
                f"Discarded response for job {response.job_id}; "
                f"current job is {job.id if job else None}"
            )
            return

        if not response.success:
            self._fail(job.id, response.error or "Unknown error")
            return

        payload = response.payload or {}
        dims = (payload.get(FIELD_WIDTH), payload.get(FIELD_HEIGHT))
        if dims != job.dims:
            self._fail(job.id, f"Result is {dims[0]}x{dims[1]}, expected {job.dims[0]}x{job.dims[1]}")
            return

        try:
            result = PixelBuffer(dims[0], dims[1], payload.get(FIELD_PIXELS))
        except (TypeError, ValueError) as e:
            self._fail(job.id, f"Invalid result buffer: {e}")
            return

        self._finish(job.id, JobResult(job_id=job.id, success=True, result=result))

    def cancel(self, job_id: Optional[int] = None) -> bool:
        """
        Abandon the current job (or job_id if given and current).

        Returns:
            True if a job was abandoned
        """
        job = self._current
        if job is None or (job_id is not None and job.id != job_id):
            return False
        return self._fail(job.id, f"Job {job.id} cancelled")

    def reset(self) -> None:
        """Resolve any stuck job so new submissions are accepted."""
        job = self._current
        if job is not None:
            self._fail(job.id, f"Job {job.id} abandoned by reset")

    def handle_context_lost(self, reason: str) -> None:
        """The worker died; the running job can never complete."""
        job = self._current
        if job is not None:
            self._fail(job.id, f"Processing failed: {reason}")
