"""Collider shapes, tile collider merging and physics settings"""

from .shapes import (
    RectangleShape, CircleShape, ConvexPolygonShape, TriMeshShape,
    PolylineShape, CompoundShape, build_object_collider, tile_collider,
)
from .merger import TileColliderStrategy, LayerColliders, build_layer_colliders
from .config import BodyType, PhysicsConfig, PhysicsSettings, ObjectBody, build_object_body
from .plugin import PhysicsPlugin, attach_physics

__all__ = [
    "RectangleShape",
    "CircleShape",
    "ConvexPolygonShape",
    "TriMeshShape",
    "PolylineShape",
    "CompoundShape",
    "build_object_collider",
    "tile_collider",
    "TileColliderStrategy",
    "LayerColliders",
    "build_layer_colliders",
    "BodyType",
    "PhysicsConfig",
    "PhysicsSettings",
    "ObjectBody",
    "build_object_body",
    "PhysicsPlugin",
    "attach_physics",
]
