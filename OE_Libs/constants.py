"""
Constants and configuration values for Open Eraser.

This module centralizes all constant values, magic numbers, and
default settings used throughout the application.
"""

# Pixel layout
RGBA_CHANNELS = 4

# Mask painting
MASK_KEEP_COLOR = (0, 0, 0, 0)
MASK_STROKE_COLOR = (255, 0, 0, 128)

# Brush size bounds (native pixels)
DEFAULT_BRUSH_MIN = 5
DEFAULT_BRUSH_MAX = 50
DEFAULT_BRUSH_DIAMETER = 20

# Inpainting
DEFAULT_MASK_THRESHOLD = 10
DEFAULT_INPAINT_RADIUS = 3
DEFAULT_INPAINT_METHOD = "telea"
INPAINT_METHODS = ("telea", "ns")

# Processing backend
DEFAULT_BACKEND_MODULE = "cv2"
DEFAULT_BACKEND_SYMBOL = "inpaint"
DEFAULT_BACKEND_POLL_ATTEMPTS = 20
DEFAULT_BACKEND_POLL_INTERVAL = 0.05
DEFAULT_LOAD_TIMEOUT = 60.0
DEFAULT_JOB_TIMEOUT = 120.0

# Message kinds
MSG_LOAD = "load"
MSG_PROCESS = "process"
MSG_SHUTDOWN = "shutdown"

# Message field names
FIELD_KIND = "kind"
FIELD_SUCCESS = "success"
FIELD_JOB_ID = "job_id"
FIELD_PAYLOAD = "payload"
FIELD_ERROR = "error"
FIELD_PIXELS = "pixels"
FIELD_WIDTH = "width"
FIELD_HEIGHT = "height"

# Export
DEFAULT_EXPORT_TEMPLATE = "watermark_removed_{TIMESTAMP}.png"
DEFAULT_EXPORT_FORMAT = "PNG"

# Config persistence
CONFIG_FILE_NAME = "open_eraser.json"
LOG_LEVEL_ENV_VAR = "OPEN_ERASER_LOG_LEVEL"

# UI constants
DEFAULT_WINDOW_WIDTH = 1400
DEFAULT_WINDOW_HEIGHT = 850
PREVIEW_MIN_SIZE = 450

# Supported file formats
SUPPORTED_STANDARD_IMAGES = {".png", ".jpg", ".jpeg", ".bmp", ".gif", ".tiff", ".webp"}
