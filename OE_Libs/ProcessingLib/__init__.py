"""
ProcessingLib - Off-thread inpainting for Open Eraser

This module contains the worker that runs OpenCV inpainting in an isolated
execution context, the message protocol it speaks, and the interactive-side
components that load the backend and coordinate jobs.

Modules:
    messages: Request dataclasses and the shared response envelope
    inpaint_executor: Mask binarization and reconstruction on RGBA8 buffers
    worker: Request dispatch inside the isolated context
    execution_context: Process- and thread-hosted workers
    backend_lifecycle: UNLOADED/LOADING/READY/FAILED state machine
    coordinator: One-job-at-a-time submission and response handling
    session: Component-scoped owner of the execution context
"""

from OE_Libs.ProcessingLib.messages import (
    LoadRequest,
    ProcessRequest,
    Response,
    ShutdownRequest,
    parse_request,
    parse_response,
)
from OE_Libs.ProcessingLib.inpaint_executor import binarize_mask, run_inpaint
from OE_Libs.ProcessingLib.worker import (
    Worker,
    WorkerOptions,
    normalize_error,
    wait_for_symbol,
    worker_main,
)
from OE_Libs.ProcessingLib.execution_context import (
    ExecutionContext,
    ProcessExecutionContext,
    ThreadExecutionContext,
)
from OE_Libs.ProcessingLib.backend_lifecycle import BackendLifecycle, BackendState
from OE_Libs.ProcessingLib.coordinator import (
    JobHandle,
    JobResult,
    JobState,
    ProcessingCoordinator,
)
from OE_Libs.ProcessingLib.session import InpaintSession

__all__ = [
    "LoadRequest",
    "ProcessRequest",
    "Response",
    "ShutdownRequest",
    "parse_request",
    "parse_response",
    "binarize_mask",
    "run_inpaint",
    "Worker",
    "WorkerOptions",
    "normalize_error",
    "wait_for_symbol",
    "worker_main",
    "ExecutionContext",
    "ProcessExecutionContext",
    "ThreadExecutionContext",
    "BackendLifecycle",
    "BackendState",
    "JobHandle",
    "JobResult",
    "JobState",
    "ProcessingCoordinator",
    "InpaintSession",
]
