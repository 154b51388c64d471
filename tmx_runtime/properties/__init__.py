"""Typed custom properties: registry, deserialization and Tiled export"""

from .registry import (
    PropertyTypeRegistry, Variant, UInt, Vec2, Vec3, LinearRgba, TiledRef,
    default_registry, tiled_class, tiled_enum, register_complex_enum,
)
from .deserialize import PropertyDeserializer
from .export import export_types_json, export_types_to_json, export_to_tiled_project

__all__ = [
    "PropertyTypeRegistry",
    "Variant",
    "UInt",
    "Vec2",
    "Vec3",
    "LinearRgba",
    "TiledRef",
    "default_registry",
    "tiled_class",
    "tiled_enum",
    "register_complex_enum",
    "PropertyDeserializer",
    "export_types_json",
    "export_types_to_json",
    "export_to_tiled_project",
]
