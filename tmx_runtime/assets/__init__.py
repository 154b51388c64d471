"""Asset loading: raw files, tilesets, templates, maps, worlds and projects"""

from .server import AssetServer, AssetHandle, LoadState
from .loader import RawLoader, ResourceCache
from .map import MapAsset
from .tileset import TilesetAsset
from .template import TemplateAsset
from .world import WorldAsset
from .project import ProjectProperties
from .images import ImageAsset
from .animation import TileAnimation, AnimationState

__all__ = [
    "AssetServer",
    "AssetHandle",
    "LoadState",
    "RawLoader",
    "ResourceCache",
    "MapAsset",
    "TilesetAsset",
    "TemplateAsset",
    "WorldAsset",
    "ProjectProperties",
    "ImageAsset",
    "TileAnimation",
    "AnimationState",
]
