"""
RGBA8 pixel buffers shared by the capture surface, the coordinator and the
result renderer.

A PixelBuffer owns its bytes until detach() moves them out. After that the
buffer is unusable: every access raises BufferDetachedError. This is how
buffers handed to the worker are kept from being read or written by the
sender afterwards.

Classes:
    PixelBuffer: Width, height and tightly packed RGBA8 bytes

Type Aliases:
    Dims: (width, height) tuple
"""

from typing import Any, Optional, Tuple

from PIL import Image

from OE_Libs.constants import RGBA_CHANNELS
from OE_Libs.errors import BufferDetachedError

Dims = Tuple[int, int]


def expected_length(width: int, height: int) -> int:
    """Number of bytes an RGBA8 buffer of the given size holds."""
    return width * height * RGBA_CHANNELS


class PixelBuffer:
    """
    Row-major RGBA8 pixel data with no row padding.

    Example:
        >>> buffer = PixelBuffer.blank(2, 1)
        >>> buffer.dims
        (2, 1)
        >>> data = buffer.detach()
        >>> len(data)
        8
        >>> buffer.is_detached
        True
    """

    __slots__ = ("_width", "_height", "_data")

    def __init__(self, width: int, height: int, data: Any):
        """
        Args:
            width: Width in pixels (> 0)
            height: Height in pixels (> 0)
            data: bytes-like RGBA8 data of length width * height * 4

        Raises:
            ValueError: If dimensions are not positive or the length is wrong
            TypeError: If data is not bytes-like
        """
        if int(width) <= 0 or int(height) <= 0:
            raise ValueError(f"Buffer dimensions must be positive, got {width}x{height}")

        if not isinstance(data, (bytes, bytearray, memoryview)):
            raise TypeError(f"Expected bytes-like pixel data, got {type(data)}")

        width = int(width)
        height = int(height)
        if len(data) != expected_length(width, height):
            raise ValueError(
                f"Buffer length {len(data)} does not match {width}x{height} RGBA "
                f"({expected_length(width, height)} bytes)"
            )

        self._width = width
        self._height = height
        self._data: Optional[bytearray] = bytearray(data)

    @classmethod
    def blank(cls, width: int, height: int) -> "PixelBuffer":
        """Create an all-zero (fully transparent) buffer."""
        return cls(width, height, bytearray(expected_length(int(width), int(height))))

    @classmethod
    def from_image(cls, image: Any) -> "PixelBuffer":
        """
        Create a buffer from a PIL Image (converted to RGBA).

        Raises:
            TypeError: If image is not a PIL Image
        """
        if not hasattr(image, "mode"):
            raise TypeError(f"Expected PIL Image, got {type(image)}")

        rgba = image.convert("RGBA")
        return cls(rgba.width, rgba.height, rgba.tobytes())

    def _require_attached(self) -> bytearray:
        if self._data is None:
            raise BufferDetachedError(
                f"{self._width}x{self._height} buffer was transferred and can no longer be used"
            )
        return self._data

    @property
    def width(self) -> int:
        return self._width

    @property
    def height(self) -> int:
        return self._height

    @property
    def dims(self) -> Dims:
        return (self._width, self._height)

    @property
    def is_detached(self) -> bool:
        return self._data is None

    @property
    def data(self) -> bytearray:
        """The live pixel bytes. Raises BufferDetachedError once detached."""
        return self._require_attached()

    def detach(self) -> bytes:
        """
        Move the pixel bytes out of this buffer.

        Returns:
            The pixel data

        Raises:
            BufferDetachedError: If the buffer was already detached
        """
        data = self._require_attached()
        self._data = None
        return bytes(data)

    def to_image(self) -> Any:
        """Return an RGBA PIL Image holding a copy of the pixels."""
        return Image.frombytes("RGBA", self.dims, bytes(self._require_attached()))

    def pixel(self, x: int, y: int) -> Tuple[int, int, int, int]:
        """Return the RGBA tuple at (x, y)."""
        data = self._require_attached()
        if not (0 <= x < self._width and 0 <= y < self._height):
            raise IndexError(f"Pixel ({x}, {y}) outside {self._width}x{self._height}")
        offset = (y * self._width + x) * RGBA_CHANNELS
        return tuple(data[offset:offset + RGBA_CHANNELS])

    def __repr__(self) -> str:
        state = "detached" if self.is_detached else "attached"
        return f"PixelBuffer({self._width}x{self._height}, {state})"
