"""
Tile collider merging

=============================================================================
WHY MERGE?
=============================================================================

A 100x100 level whose walls are solid 16x16 tiles can easily have 3000
collision tiles. One collider per tile means 3000 bodies (or compound
parts) for the physics engine, and seams between neighbours that snag
moving bodies. Most of those tiles carry the SAME full-tile rectangle, so
runs of them can be replaced by a few large rectangles:

    Tiles with collision            Merged
    ┌──┬──┬──┬──┐                   ┌───────────┐
    │██│██│██│██│                   │     A     │
    ├──┼──┼──┼──┤                   ├──┬────────┘
    │██│  │  │  │          →        │  │
    ├──┼──┼──┼──┤                   │B │
    │██│  │  │  │                   │  │
    └──┴──┴──┴──┘                   └──┘

=============================================================================
GREEDY MERGING
=============================================================================

Mergeable tiles are grouped by (tileset, tile id, rect size). Per group,
an occupancy grid is scanned in row-major order:

    1. take the first occupied cell (sx, sy)
    2. extend RIGHT while the next cell is occupied        → width w
    3. extend DOWN while the whole next row of w cells is  → height h
    4. clear the w x h block, emit one rectangle

The emitted rectangle is centered at ((sx + w/2)·tw, (H - sy - h/2)·th)
in world coordinates (Y up) and is w·tw by h·th pixels.

Tiles whose collision is anything else (several shapes, an offset, a
rotation, a partial rectangle, a polygon...) are passed through unmerged.

=============================================================================
"""

import logging
import struct
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np

from ..map.tiles import CHUNK_SIZE, TileInstance, TileLayerGrid
from .shapes import (
    CompoundShape, RectangleShape, Shape, extract_tile_collision_shapes, tile_collider,
)

logger = logging.getLogger(__name__)

Vec2 = Tuple[float, float]

# Collision rects within this distance of the tile origin / full tile size merge
MERGE_TOLERANCE = 0.1


class TileColliderStrategy(Enum):
    DISABLED = "disabled"
    PER_TILE = "per_tile"
    COMPOUND_MERGED = "compound_merged"
    COMPOUND_CHUNKED = "compound_chunked"


@dataclass(frozen=True)
class ColliderPlacement:
    """A collider positioned in layer space (world units, Y up)."""
    position: Vec2
    rotation: float
    shape: Shape


@dataclass
class MergeStats:
    input_cells: int = 0
    merged_rects: int = 0
    passthrough: int = 0

    @property
    def output_colliders(self) -> int:
        return self.merged_rects + self.passthrough

    @property
    def reduction_ratio(self) -> float:
        """Input cells per output collider (1.0 = no reduction)."""
        if self.output_colliders == 0:
            return 1.0
        return self.input_cells / self.output_colliders

    def add(self, other: 'MergeStats'):
        self.input_cells += other.input_cells
        self.merged_rects += other.merged_rects
        self.passthrough += other.passthrough


@dataclass
class LayerColliders:
    """Colliders generated for one tile layer."""
    strategy: TileColliderStrategy
    colliders: List[ColliderPlacement] = field(default_factory=list)
    stats: MergeStats = field(default_factory=MergeStats)

    def parts(self) -> List[ColliderPlacement]:
        """Every primitive collider, compounds expanded into layer space."""
        result = []
        for placement in self.colliders:
            if isinstance(placement.shape, CompoundShape):
                px, py = placement.position
                for (ox, oy), rotation, shape in placement.shape.parts:
                    result.append(ColliderPlacement((px + ox, py + oy), rotation, shape))
            else:
                result.append(placement)
        return result

    def __len__(self) -> int:
        return len(self.colliders)


def _f32_bits(value: float) -> int:
    return struct.unpack('<I', struct.pack('<f', value))[0]


def mergeable_rect(instance: TileInstance) -> Optional[Tuple[float, float]]:
    """
    (w, h) of the tile's collision rect if the tile can be merged.

    Mergeable means exactly one collision object, a plain rectangle at
    the tile origin, unrotated and covering the whole tile.
    """
    collision = instance.collision
    if len(collision) != 1:
        return None
    obj = collision[0]
    if obj.shape != "rectangle" or obj.gid is not None:
        return None
    if abs(obj.x) > MERGE_TOLERANCE or abs(obj.y) > MERGE_TOLERANCE:
        return None
    if abs(obj.rotation) > MERGE_TOLERANCE:
        return None
    tw, th = instance.tileset.tile_size
    if abs(obj.width - tw) > MERGE_TOLERANCE or abs(obj.height - th) > MERGE_TOLERANCE:
        return None
    return (obj.width, obj.height)


def greedy_rectangles(occupancy: np.ndarray) -> List[Tuple[int, int, int, int]]:
    """
    Cover the True cells of a (rows, cols) bool grid with rectangles.

    Returns (x, y, w, h) tuples in scanline order. The input is not modified.
    """
    occ = occupancy.copy()
    rows, cols = occ.shape
    rects = []
    for sy, sx in np.argwhere(occ):
        if not occ[sy, sx]:
            continue
        w = 1
        while sx + w < cols and occ[sy, sx + w]:
            w += 1
        h = 1
        while sy + h < rows and occ[sy + h, sx:sx + w].all():
            h += 1
        occ[sy:sy + h, sx:sx + w] = False
        rects.append((int(sx), int(sy), w, h))
    return rects


def _merge_cells(cells: Iterable[Tuple[int, int, TileInstance]], grid_size: Tuple[int, int],
                 tile_size: Tuple[float, float]) -> Tuple[List[Tuple[Vec2, float, Shape]], MergeStats]:
    """Merge a set of cells; returns ((world pos, rotation, shape) parts, stats)."""
    width, height = grid_size
    tw, th = tile_size
    stats = MergeStats()
    groups: Dict[tuple, List[Tuple[int, int]]] = defaultdict(list)
    parts: List[Tuple[Vec2, float, Shape]] = []

    for x, y, instance in cells:
        if not instance.collision:
            continue
        stats.input_cells += 1
        rect = mergeable_rect(instance)
        if rect is not None:
            key = (instance.tileset_index, instance.local_id, _f32_bits(rect[0]), _f32_bits(rect[1]))
            groups[key].append((x, y))
            continue

        flipped_y = height - 1 - y
        center = ((x + 0.5) * tw, (flipped_y + 0.5) * th)
        for (ox, oy), rotation, shape in extract_tile_collision_shapes(instance.tileset, instance.local_id):
            parts.append(((center[0] + ox, center[1] + oy), rotation, shape))
            stats.passthrough += 1

    merged = []
    for key in sorted(groups):
        occupancy = np.zeros((height, width), dtype=bool)
        for x, y in groups[key]:
            occupancy[y, x] = True
        for sx, sy, w, h in greedy_rectangles(occupancy):
            center = ((sx + w / 2) * tw, (height - sy - h / 2) * th)
            merged.append((center, 0.0, RectangleShape(w * tw, h * th)))
    stats.merged_rects = len(merged)
    return merged + parts, stats


def _per_tile(grid: TileLayerGrid, tile_size: Tuple[float, float]) -> LayerColliders:
    tw, th = tile_size
    result = LayerColliders(TileColliderStrategy.PER_TILE)
    for x, y, instance in grid:
        shape = tile_collider(instance.tileset, instance.local_id)
        if shape is None:
            continue
        result.stats.input_cells += 1
        result.stats.passthrough += 1
        flipped_y = grid.height - 1 - y
        result.colliders.append(
            ColliderPlacement(((x + 0.5) * tw, (flipped_y + 0.5) * th), 0.0, shape)
        )
    return result


def _compound(parts: List[Tuple[Vec2, float, Shape]], anchor: Vec2) -> ColliderPlacement:
    ax, ay = anchor
    shifted = tuple(((px - ax, py - ay), rotation, shape) for (px, py), rotation, shape in parts)
    return ColliderPlacement(anchor, 0.0, CompoundShape(shifted))


def build_layer_colliders(grid: TileLayerGrid, tile_size: Tuple[float, float],
                          strategy: TileColliderStrategy = TileColliderStrategy.COMPOUND_MERGED
                          ) -> LayerColliders:
    """
    Generate the colliders of a tile layer.

    Parameters:
    -----------
    grid : TileLayerGrid
    tile_size : (float, float)
        Map tile size (grid cells are this big in world units)
    strategy : TileColliderStrategy
        DISABLED          nothing
        PER_TILE          one collider per tile, at the tile center
        COMPOUND_MERGED   one compound at the layer origin, merged rects
                          plus passthrough shapes
        COMPOUND_CHUNKED  the same per 16x16 chunk of the grid, one
                          compound per non-empty chunk anchored at the
                          chunk's bottom-left corner
    """
    if strategy == TileColliderStrategy.DISABLED:
        return LayerColliders(strategy)
    if strategy == TileColliderStrategy.PER_TILE:
        result = _per_tile(grid, tile_size)
    elif strategy == TileColliderStrategy.COMPOUND_MERGED:
        parts, stats = _merge_cells(grid, (grid.width, grid.height), tile_size)
        result = LayerColliders(strategy, stats=stats)
        if parts:
            result.colliders.append(_compound(parts, (0.0, 0.0)))
    else:
        result = LayerColliders(strategy)
        chunks: Dict[Tuple[int, int], list] = defaultdict(list)
        for x, y, instance in grid:
            chunks[(x // CHUNK_SIZE, y // CHUNK_SIZE)].append((x, y, instance))
        tw, th = tile_size
        for cx, cy in sorted(chunks, key=lambda c: (c[1], c[0])):
            parts, stats = _merge_cells(chunks[(cx, cy)], (grid.width, grid.height), tile_size)
            result.stats.add(stats)
            if parts:
                bottom_row = min((cy + 1) * CHUNK_SIZE, grid.height)
                anchor = (float(cx * CHUNK_SIZE * tw), float((grid.height - bottom_row) * th))
                result.colliders.append(_compound(parts, anchor))

    stats = result.stats
    logger.info("Layer %r colliders (%s): %d collision cells -> %d merged rects + %d passthrough "
                "shapes (ratio %.2f)", grid.name, strategy.value, stats.input_cells,
                stats.merged_rects, stats.passthrough, stats.reduction_ratio)
    return result
