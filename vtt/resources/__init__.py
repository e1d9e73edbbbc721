"""
Image assets shared by maps and tokens.
"""

from vtt.resources.assets import (
    Asset,
    AssetStore,
    asset_key,
    normalize_asset_path,
    scan_assets,
)

__all__ = ["Asset", "AssetStore", "asset_key", "normalize_asset_path", "scan_assets"]
