"""
View-side helpers: cameras and per-view textures.

Exports:
- Camera, CameraState: Smoothed view framing and its saved snapshot
- ViewTextureCache: Asset pixels as moderngl textures, one cache per view
"""

from vtt.graphics.camera import Camera, CameraState
from vtt.graphics.texture import ViewTextureCache

__all__ = ["Camera", "CameraState", "ViewTextureCache"]
