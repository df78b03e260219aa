"""
Pytest configuration and shared fixtures for Open Eraser tests.

This module provides shared test fixtures and configuration
used across multiple test modules.
"""

import pytest
from PIL import Image

from OE_Libs.config import EraserConfig
from OE_Libs.ProcessingLib.session import InpaintSession


@pytest.fixture
def sample_image():
    """
    Provide a 64x48 RGBA test image: gray with a dark bar across the middle.

    Returns:
        PIL Image in RGBA mode
    """
    image = Image.new("RGBA", (64, 48), (128, 128, 128, 255))
    image.paste((20, 20, 20, 255), (0, 20, 64, 28))
    return image


@pytest.fixture
def thread_session():
    """
    Provide an InpaintSession whose worker runs on a background thread.

    The session is closed after the test.
    """
    session = InpaintSession(EraserConfig(use_process=False))
    yield session
    session.close()
