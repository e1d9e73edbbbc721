"""
Per-view texture cache.

Each display has its own GL context, so every asset is uploaded once per
view. Pixels come from the AssetStore; this module only turns them into
``moderngl`` textures and keeps them until released.
"""

from __future__ import annotations

import moderngl

from vtt.resources.assets import AssetStore


class ViewTextureCache:
    """
    Lazily materializes assets into textures for one view.

    Usage:
        dm_textures = ViewTextureCache(dm_ctx, store)
        texture = dm_textures.get(token.asset)
        if texture is not None:
            ...
    """

    def __init__(
        self,
        ctx: moderngl.Context,
        store: AssetStore,
        filter_mode: tuple[int, int] = (moderngl.LINEAR, moderngl.LINEAR),
    ):
        self.ctx = ctx
        self.store = store
        self.filter_mode = filter_mode
        self._textures: dict[int, moderngl.Texture] = {}

    def __len__(self) -> int:
        return len(self._textures)

    def get(self, handle: int | None) -> moderngl.Texture | None:
        """
        Texture for an asset handle.

        Returns:
            The texture, or None when the asset is unresolved or failed
        """
        if handle is None:
            return None
        if handle in self._textures:
            return self._textures[handle]

        if not self.store.ensure_loaded(handle):
            return None

        asset = self.store.get(handle)
        texture = self.ctx.texture(asset.size, 4, asset.pixels.tobytes())
        texture.filter = self.filter_mode
        self._textures[handle] = texture
        return texture

    def release(self, handle: int) -> None:
        """Free one texture (it is rebuilt on the next get())."""
        texture = self._textures.pop(handle, None)
        if texture is not None:
            texture.release()

    def clear(self) -> None:
        """Free all textures."""
        for texture in self._textures.values():
            texture.release()
        self._textures.clear()
