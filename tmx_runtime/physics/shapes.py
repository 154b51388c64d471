"""
Collider shapes built from Tiled objects

=============================================================================
SHAPES
=============================================================================

The shapes here are plain data, ready to hand to a physics engine:

    RectangleShape(width, height)        centered on its position
    CircleShape(radius)
    ConvexPolygonShape(vertices)         counter-clockwise hull
    TriMeshShape(vertices, indices)      arbitrary (concave) polygons
    PolylineShape(vertices)              open chain, no thickness
    CompoundShape(parts)                 [(offset, rotation, shape), ...]

=============================================================================
OBJECT → SHAPE
=============================================================================

    rectangle   → RectangleShape(w, h)
    ellipse     → CircleShape(max(w, h) / 2)     enclosing circle
    polygon     → ConvexPolygonShape, or TriMeshShape (fan from vertex 0)
                  when the points are not convex
    polyline    → PolylineShape
    point       → CircleShape(1)                 small sensor
    tile        → RectangleShape(w, h)
    text        → no collider

=============================================================================
TILE COLLISION SHAPES
=============================================================================

Shapes drawn in the Tiled collision editor are positioned from the tile's
TOP-LEFT corner, Y down. Colliders are positioned from the tile CENTER,
Y up:

    +----------------+         offset of a rect (x, y, w, h):
    | (x,y)          |
    |   +----+       |           ( x + w/2 - tw/2,
    |   |    |   ·   |  ← center  -(y + h/2 - th/2) )
    |   +----+       |
    +----------------+

Tiled rotations are clockwise degrees; colliders use counter-clockwise
radians, hence the sign flip.

=============================================================================
"""

import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple, Union

from tmx_manager import (
    MapObject,
    SHAPE_ELLIPSE, SHAPE_POINT, SHAPE_POLYGON, SHAPE_POLYLINE, SHAPE_RECTANGLE, SHAPE_TEXT,
)

from ..map.objects import NormalizedObject, ObjectShape

logger = logging.getLogger(__name__)

Vec2 = Tuple[float, float]

# Below these, a lone tile shape counts as centered and unrotated
OFFSET_EPSILON_SQUARED = 0.01
ROTATION_EPSILON = 0.01

POINT_RADIUS = 1.0


@dataclass(frozen=True)
class RectangleShape:
    width: float
    height: float

    @property
    def half_extents(self) -> Vec2:
        return (self.width / 2, self.height / 2)


@dataclass(frozen=True)
class CircleShape:
    radius: float


@dataclass(frozen=True)
class ConvexPolygonShape:
    vertices: Tuple[Vec2, ...]


@dataclass(frozen=True)
class TriMeshShape:
    vertices: Tuple[Vec2, ...]
    indices: Tuple[Tuple[int, int, int], ...]


@dataclass(frozen=True)
class PolylineShape:
    vertices: Tuple[Vec2, ...]


@dataclass(frozen=True)
class CompoundShape:
    parts: Tuple[Tuple[Vec2, float, 'Shape'], ...] = field(default_factory=tuple)


Shape = Union[RectangleShape, CircleShape, ConvexPolygonShape, TriMeshShape,
              PolylineShape, CompoundShape]


# =============================================================================
# POLYGONS
# =============================================================================

def _cross(o: Vec2, a: Vec2, b: Vec2) -> float:
    return (a[0] - o[0]) * (b[1] - o[1]) - (a[1] - o[1]) * (b[0] - o[0])


def convex_hull(points: Sequence[Vec2]) -> List[Vec2]:
    """
    Counter-clockwise convex hull (monotone chain), collinear points dropped.

    Returns fewer than 3 points when the input is degenerate.
    """
    pts = sorted(set((float(x), float(y)) for x, y in points))
    if len(pts) < 3:
        return pts

    lower: List[Vec2] = []
    for p in pts:
        while len(lower) >= 2 and _cross(lower[-2], lower[-1], p) <= 0:
            lower.pop()
        lower.append(p)

    upper: List[Vec2] = []
    for p in reversed(pts):
        while len(upper) >= 2 and _cross(upper[-2], upper[-1], p) <= 0:
            upper.pop()
        upper.append(p)

    return lower[:-1] + upper[:-1]


def fan_triangulate(vertices: Sequence[Vec2]) -> TriMeshShape:
    """Triangle fan from vertex 0: (0, 1, 2), (0, 2, 3), ..."""
    indices = tuple((0, i, i + 1) for i in range(1, len(vertices) - 1))
    return TriMeshShape(tuple(vertices), indices)


def polygon_shape(vertices: Sequence[Vec2], context: str = "polygon") -> Shape:
    """
    Convex polygon if every vertex lies on the hull, triangle mesh otherwise.
    """
    vertices = [(float(x), float(y)) for x, y in vertices]
    hull = convex_hull(vertices)
    unique = {v for v in vertices}

    if len(hull) >= 3 and len(hull) == len(unique):
        return ConvexPolygonShape(tuple(hull))

    if len(vertices) < 3:
        logger.warning("%s has %d vertices, cannot build a polygon collider; "
                       "using an empty triangle mesh", context, len(vertices))
    else:
        logger.warning("%s is not convex (or is collinear); falling back to a "
                       "triangle mesh, which is slower to collide", context)
    return fan_triangulate(vertices)


# =============================================================================
# OBJECT COLLIDERS
# =============================================================================

def build_object_collider(obj: NormalizedObject) -> Optional[Shape]:
    """Collider for a normalized map object, None for text."""
    shape = obj.shape
    if shape == ObjectShape.RECTANGLE or shape == ObjectShape.TILE:
        return RectangleShape(obj.width, obj.height)
    if shape == ObjectShape.ELLIPSE:
        return CircleShape(max(obj.width, obj.height) / 2)
    if shape == ObjectShape.POLYGON:
        return polygon_shape(obj.vertices or [], f"Object {obj.id} polygon")
    if shape == ObjectShape.POLYLINE:
        return PolylineShape(tuple(obj.vertices or []))
    if shape == ObjectShape.POINT:
        return CircleShape(POINT_RADIUS)
    return None


def _tile_shape(obj: MapObject, tile_size: Tuple[int, int]) -> Optional[Tuple[Vec2, float, Shape]]:
    """One collision-editor object as (offset from tile center, rotation, shape)."""
    tcx, tcy = tile_size[0] / 2, tile_size[1] / 2
    rotation = -math.radians(obj.rotation)
    anchor = (obj.x - tcx, -(obj.y - tcy))

    if obj.shape == SHAPE_TEXT:
        return None
    if obj.gid is not None:
        # Tile objects are anchored at their bottom-left corner
        offset = (obj.x + obj.width / 2 - tcx, -(obj.y - obj.height / 2 - tcy))
        return offset, rotation, RectangleShape(obj.width, obj.height)
    if obj.shape == SHAPE_RECTANGLE or obj.shape == SHAPE_ELLIPSE:
        offset = (obj.x + obj.width / 2 - tcx, -(obj.y + obj.height / 2 - tcy))
        if obj.shape == SHAPE_RECTANGLE:
            return offset, rotation, RectangleShape(obj.width, obj.height)
        return offset, rotation, CircleShape(max(obj.width, obj.height) / 2)
    if obj.shape == SHAPE_POLYGON:
        vertices = [(x, -y) for x, y in obj.points]
        return anchor, rotation, polygon_shape(vertices, f"Collision polygon {obj.id}")
    if obj.shape == SHAPE_POLYLINE:
        return anchor, rotation, PolylineShape(tuple((x, -y) for x, y in obj.points))
    if obj.shape == SHAPE_POINT:
        return anchor, rotation, CircleShape(POINT_RADIUS)
    return None


def extract_tile_collision_shapes(tileset, local_id: int) -> List[Tuple[Vec2, float, Shape]]:
    """
    Collision shapes of one tile, positioned relative to the tile center.

    Returns an empty list for tiles without collision objects.
    """
    shapes = []
    for obj in tileset.tile_collision(local_id):
        part = _tile_shape(obj, tileset.tile_size)
        if part is not None:
            shapes.append(part)
    return shapes


def combine_shapes(parts: List[Tuple[Vec2, float, Shape]]) -> Optional[Shape]:
    """
    A single centered, unrotated shape is returned as-is; anything else
    becomes a CompoundShape.
    """
    if not parts:
        return None
    if len(parts) == 1:
        (ox, oy), rotation, shape = parts[0]
        if ox * ox + oy * oy < OFFSET_EPSILON_SQUARED and abs(rotation) < ROTATION_EPSILON:
            return shape
    return CompoundShape(tuple(parts))


def tile_collider(tileset, local_id: int) -> Optional[Shape]:
    """Collider of one tile relative to its center, None if it has none."""
    return combine_shapes(extract_tile_collision_shapes(tileset, local_id))
