"""
Error types raised by the Open Eraser processing pipeline.

Every error derives from InpaintingError so callers at the UI boundary can
handle the whole family in one place.
"""


class InpaintingError(Exception):
    """Base class for all pipeline errors."""


class BufferDetachedError(InpaintingError):
    """A pixel buffer was accessed after its ownership was transferred."""


class BackendLoadError(InpaintingError):
    """The isolated execution context failed to load the processing backend."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class BackendNotReady(InpaintingError):
    """A job was submitted before the backend finished loading."""

    def __init__(self, message: str = "Processing backend is not loaded; load the backend first"):
        super().__init__(message)


class JobInFlight(InpaintingError):
    """A job was submitted while another one is still running."""

    def __init__(self, job_id: int):
        super().__init__(f"Job {job_id} is still running")
        self.job_id = job_id


class DimensionMismatch(InpaintingError):
    """Image and mask buffers differ in size."""

    def __init__(self, image_dims, mask_dims):
        super().__init__(
            f"Image is {image_dims[0]}x{image_dims[1]} but mask is "
            f"{mask_dims[0]}x{mask_dims[1]}"
        )
        self.image_dims = image_dims
        self.mask_dims = mask_dims


class ExecutionError(InpaintingError):
    """The reconstruction failed inside the isolated execution context."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class MalformedMessageError(InpaintingError):
    """A message crossing the context boundary could not be parsed."""
