"""
Message protocol between the interactive side and the worker.

Requests are small dataclasses tagged by a class-level KIND. Every response
uses one envelope, Response, whose `kind` says which request it answers.
Messages cross the boundary as plain dicts (picklable for multiprocessing
pipes) and are parsed back with parse_request() / parse_response(), which
raise MalformedMessageError for anything they do not recognise.

Classes:
    LoadRequest: Ask the worker to load the processing backend
    ProcessRequest: Ask the worker to inpaint one image/mask pair
    ShutdownRequest: Ask the worker loop to exit
    Response: Shared response envelope

Functions:
    parse_request: dict -> request dataclass
    parse_response: dict -> Response
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

from OE_Libs.constants import (
    DEFAULT_INPAINT_METHOD,
    DEFAULT_INPAINT_RADIUS,
    DEFAULT_MASK_THRESHOLD,
    FIELD_ERROR,
    FIELD_HEIGHT,
    FIELD_JOB_ID,
    FIELD_KIND,
    FIELD_PAYLOAD,
    FIELD_PIXELS,
    FIELD_SUCCESS,
    FIELD_WIDTH,
    MSG_LOAD,
    MSG_PROCESS,
    MSG_SHUTDOWN,
)
from OE_Libs.errors import MalformedMessageError


@dataclass
class LoadRequest:
    KIND = MSG_LOAD

    def to_message(self) -> Dict[str, Any]:
        return {FIELD_KIND: self.KIND}


@dataclass
class ProcessRequest:
    """Inpainting job parameters.

    Attributes:
        job_id: Coordinator-assigned id echoed back in the response
        image_pixels: RGBA8 image bytes (ownership moved from the sender)
        mask_pixels: RGBA8 mask bytes (ownership moved from the sender)
        width: Width of both buffers
        height: Height of both buffers
        radius: Inpainting neighborhood radius
        threshold: Mask binarization cutoff
        method: 'telea' or 'ns'
    """
    KIND = MSG_PROCESS

    job_id: int
    image_pixels: bytes = field(repr=False)
    mask_pixels: bytes = field(repr=False)
    width: int
    height: int
    radius: int = DEFAULT_INPAINT_RADIUS
    threshold: int = DEFAULT_MASK_THRESHOLD
    method: str = DEFAULT_INPAINT_METHOD

    def to_message(self) -> Dict[str, Any]:
        return {
            FIELD_KIND: self.KIND,
            FIELD_JOB_ID: self.job_id,
            "image_pixels": self.image_pixels,
            "mask_pixels": self.mask_pixels,
            FIELD_WIDTH: self.width,
            FIELD_HEIGHT: self.height,
            "radius": self.radius,
            "threshold": self.threshold,
            "method": self.method,
        }


@dataclass
class ShutdownRequest:
    KIND = MSG_SHUTDOWN

    def to_message(self) -> Dict[str, Any]:
        return {FIELD_KIND: self.KIND}


Request = Union[LoadRequest, ProcessRequest, ShutdownRequest]


@dataclass
class Response:
    """Response envelope shared by every request kind.

    Attributes:
        kind: Kind of the request being answered
        success: Whether the request succeeded
        job_id: Echoed job id (process responses only)
        payload: Result data on success ({'pixels', 'width', 'height'} for process)
        error: Normalized error message on failure
    """
    kind: str
    success: bool
    job_id: Optional[int] = None
    payload: Optional[Dict[str, Any]] = field(default=None, repr=False)
    error: Optional[str] = None

    @classmethod
    def load_succeeded(cls) -> "Response":
        return cls(kind=MSG_LOAD, success=True)

    @classmethod
    def load_failed(cls, error: str) -> "Response":
        return cls(kind=MSG_LOAD, success=False, error=error)

    @classmethod
    def process_succeeded(cls, job_id: int, pixels: bytes, width: int, height: int) -> "Response":
        return cls(
            kind=MSG_PROCESS,
            success=True,
            job_id=job_id,
            payload={FIELD_PIXELS: pixels, FIELD_WIDTH: width, FIELD_HEIGHT: height},
        )

    @classmethod
    def process_failed(cls, job_id: Optional[int], error: str) -> "Response":
        return cls(kind=MSG_PROCESS, success=False, job_id=job_id, error=error)

    def to_message(self) -> Dict[str, Any]:
        message: Dict[str, Any] = {FIELD_KIND: self.kind, FIELD_SUCCESS: self.success}
        if self.job_id is not None:
            message[FIELD_JOB_ID] = self.job_id
        if self.payload is not None:
            message[FIELD_PAYLOAD] = self.payload
        if self.error is not None:
            message[FIELD_ERROR] = self.error
        return message


def _require_dict(message: Any) -> Dict[str, Any]:
    if not isinstance(message, dict):
        raise MalformedMessageError(f"Expected a dict message, got {type(message).__name__}")
    return message


def _require_int(message: Dict[str, Any], key: str) -> int:
    value = message.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        raise MalformedMessageError(f"Field '{key}' must be an integer, got {value!r}")
    return value


def _require_bytes(message: Dict[str, Any], key: str) -> bytes:
    value = message.get(key)
    if not isinstance(value, (bytes, bytearray, memoryview)):
        raise MalformedMessageError(f"Field '{key}' must be bytes, got {type(value).__name__}")
    return bytes(value)


def _optional_int(message: Dict[str, Any], key: str, default: int) -> int:
    if key not in message:
        return default
    return _require_int(message, key)


def _optional_str(message: Dict[str, Any], key: str, default: str) -> str:
    value = message.get(key, default)
    if not isinstance(value, str):
        raise MalformedMessageError(f"Field '{key}' must be a string, got {value!r}")
    return value


def parse_request(message: Any) -> Request:
    """
    Parse a request dict sent to the worker.

    Raises:
        MalformedMessageError: If the kind is unknown or fields are invalid
    """
    message = _require_dict(message)
    kind = message.get(FIELD_KIND)

    if kind == MSG_LOAD:
        return LoadRequest()

    if kind == MSG_SHUTDOWN:
        return ShutdownRequest()

    if kind == MSG_PROCESS:
        return ProcessRequest(
            job_id=_require_int(message, FIELD_JOB_ID),
            image_pixels=_require_bytes(message, "image_pixels"),
            mask_pixels=_require_bytes(message, "mask_pixels"),
            width=_require_int(message, FIELD_WIDTH),
            height=_require_int(message, FIELD_HEIGHT),
            radius=_optional_int(message, "radius", DEFAULT_INPAINT_RADIUS),
            threshold=_optional_int(message, "threshold", DEFAULT_MASK_THRESHOLD),
            method=_optional_str(message, "method", DEFAULT_INPAINT_METHOD),
        )

    raise MalformedMessageError(f"Unknown request kind: {kind!r}")


def parse_response(message: Any) -> Response:
    """
    Parse a response dict sent back by the worker.

    Raises:
        MalformedMessageError: If the envelope or a success payload is invalid
    """
    message = _require_dict(message)
    kind = message.get(FIELD_KIND)
    if kind not in (MSG_LOAD, MSG_PROCESS):
        raise MalformedMessageError(f"Unknown response kind: {kind!r}")

    success = message.get(FIELD_SUCCESS)
    if not isinstance(success, bool):
        raise MalformedMessageError(f"Response 'success' must be a bool, got {success!r}")

    job_id = message.get(FIELD_JOB_ID)
    if job_id is not None and (isinstance(job_id, bool) or not isinstance(job_id, int)):
        raise MalformedMessageError(f"Response job_id must be an integer, got {job_id!r}")

    error = message.get(FIELD_ERROR)
    if not success:
        return Response(
            kind=kind,
            success=False,
            job_id=job_id,
            error=str(error) if error is not None else "Unknown error",
        )

    payload = None
    if kind == MSG_PROCESS:
        raw_payload = _require_dict(message.get(FIELD_PAYLOAD))
        payload = {
            FIELD_PIXELS: _require_bytes(raw_payload, FIELD_PIXELS),
            FIELD_WIDTH: _require_int(raw_payload, FIELD_WIDTH),
            FIELD_HEIGHT: _require_int(raw_payload, FIELD_HEIGHT),
        }

    return Response(kind=kind, success=True, job_id=job_id, payload=payload)
