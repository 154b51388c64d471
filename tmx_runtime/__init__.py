"""
Tiled map runtime - load .tmx/.tsx/.tx/.world files, resolve tiles,
normalize objects, deserialize typed custom properties and generate
physics colliders.

Requisitos:
    pip install numpy pillow zstandard pydantic orjson
"""

import logging

from .errors import (
    TiledError, ParseError, IoError, InvalidPath, ImageDecodeError,
    PropertyError, PropertyConversionError, MissingFieldError, RegistryError,
)
from .config import TiledConfig, LayerZConfig
from .assets import AssetServer, AssetHandle, LoadState, MapAsset, TilesetAsset
from .properties import (
    PropertyTypeRegistry, Variant, tiled_class, tiled_enum, register_complex_enum,
    export_types_to_json, export_to_tiled_project,
)
from .map.spawn import MapSpawner, SpawnedMap, SpawnedLayer, SpawnedObject, spawn_map
from .physics import PhysicsConfig, TileColliderStrategy, attach_physics
from .runtime import TiledRuntime, SpawnedWorld

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.1.0"
__all__ = [
    "TiledError",
    "ParseError",
    "IoError",
    "InvalidPath",
    "ImageDecodeError",
    "PropertyError",
    "PropertyConversionError",
    "MissingFieldError",
    "RegistryError",
    "TiledConfig",
    "LayerZConfig",
    "AssetServer",
    "AssetHandle",
    "LoadState",
    "MapAsset",
    "TilesetAsset",
    "PropertyTypeRegistry",
    "Variant",
    "tiled_class",
    "tiled_enum",
    "register_complex_enum",
    "export_types_to_json",
    "export_to_tiled_project",
    "MapSpawner",
    "SpawnedMap",
    "SpawnedLayer",
    "SpawnedObject",
    "spawn_map",
    "PhysicsConfig",
    "TileColliderStrategy",
    "attach_physics",
    "TiledRuntime",
    "SpawnedWorld",
]
