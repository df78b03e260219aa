"""
Application configuration for Open Eraser.

The configuration is a flat dataclass persisted as JSON. Unknown keys in a
stored file are ignored so older files keep loading after fields change.

Classes:
    EraserConfig: All tunable settings of the inpainting pipeline and UI

Functions:
    load_config: Load configuration from a JSON file (defaults on failure)
    save_config: Save configuration to a JSON file
"""

import json
import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict

from OE_Libs.constants import (
    DEFAULT_BACKEND_MODULE,
    DEFAULT_BACKEND_POLL_ATTEMPTS,
    DEFAULT_BACKEND_POLL_INTERVAL,
    DEFAULT_BACKEND_SYMBOL,
    DEFAULT_BRUSH_DIAMETER,
    DEFAULT_BRUSH_MAX,
    DEFAULT_BRUSH_MIN,
    DEFAULT_EXPORT_TEMPLATE,
    DEFAULT_INPAINT_METHOD,
    DEFAULT_INPAINT_RADIUS,
    DEFAULT_JOB_TIMEOUT,
    DEFAULT_LOAD_TIMEOUT,
    DEFAULT_MASK_THRESHOLD,
    INPAINT_METHODS,
)

logger = logging.getLogger(__name__)


@dataclass
class EraserConfig:
    """Configuration for the eraser pipeline.

    Attributes:
        inpaint_radius: Neighborhood radius passed to the reconstruction (1-100)
        inpaint_method: 'telea' (fast marching) or 'ns' (Navier-Stokes)
        mask_threshold: Gray intensity above which a mask pixel is erased (0-254)
        brush_min: Smallest brush diameter in native pixels
        brush_max: Largest brush diameter in native pixels
        brush_default: Initial brush diameter
        backend_module: Module imported by the worker as processing backend
        backend_symbol: Attribute that must exist on the backend once loaded
        backend_poll_attempts: Bounded retries while waiting for backend_symbol
        backend_poll_interval: Seconds between those retries
        load_timeout: Seconds before an unanswered load fails (0 = no timeout)
        job_timeout: Seconds before an unanswered job fails (0 = no timeout)
        use_process: Run the worker in a separate process instead of a thread
        export_template: Filename template for downloaded results
        export_overwrite: Allow replacing an existing export file
    """
    inpaint_radius: int = DEFAULT_INPAINT_RADIUS
    inpaint_method: str = DEFAULT_INPAINT_METHOD
    mask_threshold: int = DEFAULT_MASK_THRESHOLD
    brush_min: int = DEFAULT_BRUSH_MIN
    brush_max: int = DEFAULT_BRUSH_MAX
    brush_default: int = DEFAULT_BRUSH_DIAMETER
    backend_module: str = DEFAULT_BACKEND_MODULE
    backend_symbol: str = DEFAULT_BACKEND_SYMBOL
    backend_poll_attempts: int = DEFAULT_BACKEND_POLL_ATTEMPTS
    backend_poll_interval: float = DEFAULT_BACKEND_POLL_INTERVAL
    load_timeout: float = DEFAULT_LOAD_TIMEOUT
    job_timeout: float = DEFAULT_JOB_TIMEOUT
    use_process: bool = True
    export_template: str = DEFAULT_EXPORT_TEMPLATE
    export_overwrite: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EraserConfig":
        """Create from dictionary."""
        filtered = {k: v for k, v in data.items()
                    if k in cls.__dataclass_fields__}
        return cls(**filtered)

    def validate(self) -> None:
        """
        Check that all values are within their allowed ranges.

        Raises:
            ValueError: If any value is out of range
        """
        if not 1 <= int(self.inpaint_radius) <= 100:
            raise ValueError(f"inpaint_radius must be 1-100, got {self.inpaint_radius}")

        if self.inpaint_method not in INPAINT_METHODS:
            raise ValueError(
                f"Unknown inpaint_method: {self.inpaint_method}. "
                f"Use one of: {', '.join(INPAINT_METHODS)}"
            )

        if not 0 <= int(self.mask_threshold) <= 254:
            raise ValueError(f"mask_threshold must be 0-254, got {self.mask_threshold}")

        if self.brush_min < 1 or self.brush_max < self.brush_min:
            raise ValueError(
                f"Invalid brush range: {self.brush_min}-{self.brush_max}"
            )

        if not self.brush_min <= self.brush_default <= self.brush_max:
            raise ValueError(
                f"brush_default {self.brush_default} outside "
                f"{self.brush_min}-{self.brush_max}"
            )

        if not str(self.backend_module).strip():
            raise ValueError("backend_module cannot be empty")

        if self.backend_poll_attempts < 0 or self.backend_poll_interval < 0:
            raise ValueError("backend polling values cannot be negative")

        if self.load_timeout < 0 or self.job_timeout < 0:
            raise ValueError("timeouts cannot be negative")

        if not str(self.export_template).strip():
            raise ValueError("export_template cannot be empty")


def load_config(config_path: Path) -> EraserConfig:
    """
    Load configuration from a JSON file.

    Missing, unreadable or invalid files fall back to the defaults.

    Args:
        config_path: Path to the JSON configuration file

    Returns:
        The loaded (or default) configuration
    """
    try:
        payload = json.loads(config_path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return EraserConfig()
    except (json.JSONDecodeError, OSError) as e:
        logger.warning(f"Could not read config {config_path}: {e}; using defaults")
        return EraserConfig()

    if not isinstance(payload, dict):
        logger.warning(f"Config {config_path} is not a JSON object; using defaults")
        return EraserConfig()

    try:
        config = EraserConfig.from_dict(payload)
        config.validate()
    except (TypeError, ValueError) as e:
        logger.warning(f"Invalid config {config_path}: {e}; using defaults")
        return EraserConfig()

    return config


def save_config(config_path: Path, config: EraserConfig) -> None:
    """Save configuration to a JSON file."""
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(json.dumps(config.to_dict(), indent=2), encoding="utf-8")
