import os
import sys
import pytest
from unittest.mock import MagicMock, patch

import numpy as np
import pygame

# Ensure the package can be imported without installation
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


@pytest.fixture(autouse=True)
def mock_pygame_display():
    """
    Headless pygame.
    Image decoding/encoding stays real; anything that could open a window is patched.
    """
    with patch('pygame.init'), \
         patch('pygame.display'), \
         patch('pygame.event'), \
         patch('pygame.mouse'), \
         patch('pygame.key'):
        yield


@pytest.fixture
def mock_moderngl():
    """Mock moderngl context for texture tests."""
    with patch('moderngl.create_context') as mock_create:
        ctx = MagicMock()
        mock_create.return_value = ctx
        yield ctx


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    """Run the test from a temporary working directory."""
    monkeypatch.chdir(tmp_path)
    return tmp_path


def write_png(path, width=8, height=6, color=(200, 40, 40, 255)):
    """Write a solid-color PNG and return its path."""
    path = os.fspath(path)
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    surface = pygame.Surface((width, height), pygame.SRCALPHA, 32)
    surface.fill(color)
    pygame.image.save(surface, path)
    return path


@pytest.fixture
def png_factory(workdir):
    """Create PNG files relative to the temporary working directory."""
    def factory(relative_path, width=8, height=6, color=(200, 40, 40, 255)):
        write_png(workdir / relative_path, width, height, color)
        return relative_path
    return factory


@pytest.fixture
def pixels():
    """A small RGBA pixel array with a gradient, so encoding is not trivial."""
    arr = np.zeros((5, 7, 4), dtype=np.uint8)
    arr[..., 0] = np.arange(7, dtype=np.uint8) * 30
    arr[..., 1] = (np.arange(5, dtype=np.uint8) * 50)[:, None]
    arr[..., 2] = 90
    arr[..., 3] = 255
    return arr


@pytest.fixture
def event_bus():
    """Fresh EventBus for each test."""
    from vtt.core.events import EventBus
    return EventBus()


@pytest.fixture
def world():
    """Fresh WorldState for each test."""
    from vtt.core.world import WorldState
    return WorldState()


@pytest.fixture
def store():
    """Fresh AssetStore for each test."""
    from vtt.resources.assets import AssetStore
    return AssetStore()


@pytest.fixture
def session(workdir):
    """Session rooted in the temporary working directory."""
    from vtt.config import SessionConfig
    from vtt.session import Session
    return Session(SessionConfig())
