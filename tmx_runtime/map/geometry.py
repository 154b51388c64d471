"""
Map geometry: tile <-> world coordinates

=============================================================================
COORDINATE SYSTEMS
=============================================================================

TILED (tile coordinates)            WORLD (runtime coordinates)
origin top-left, Y down             origin bottom-left, Y up

    (0,0) ──▶ x                       y
      │  +---+---+---+                ▲  +---+---+---+
      ▼  | 0 | 1 | 2 |  row 0         │  | 0 | 1 | 2 |  row 0 (y = (H-1)·th)
      y  +---+---+---+                │  +---+---+---+
         | 3 | 4 | 5 |  row 1         │  | 3 | 4 | 5 |  row 1 (y = 0)
         +---+---+---+              (0,0)+---+---+---+ ──▶ x

The flip happens in exactly one place: row ty of the map becomes world
row H-1-ty. Everything that produces world positions goes through this
module or uses the same formula.

=============================================================================
"""

import math
from dataclasses import dataclass
from typing import Optional, Tuple

Vec2 = Tuple[float, float]


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle, min inclusive and max exclusive."""
    min: Vec2
    max: Vec2

    @property
    def width(self) -> float:
        return self.max[0] - self.min[0]

    @property
    def height(self) -> float:
        return self.max[1] - self.min[1]

    @property
    def size(self) -> Vec2:
        return (self.width, self.height)

    @property
    def center(self) -> Vec2:
        return ((self.min[0] + self.max[0]) / 2, (self.min[1] + self.max[1]) / 2)

    def contains(self, point: Vec2) -> bool:
        x, y = point
        return self.min[0] <= x < self.max[0] and self.min[1] <= y < self.max[1]


class MapGeometry:
    """
    Size, tile size and world bounds of a map.

    Parameters:
    -----------
    size : (int, int)
        Map size in tiles (W, H). For infinite maps this is the chunk-aligned
        extent of the content.
    tile_size : (int, int)
        Tile size in pixels (tw, th)
    """

    def __init__(self, size: Tuple[int, int], tile_size: Tuple[int, int]):
        self.size = size
        self.tile_size = tile_size
        w, h = size
        tw, th = tile_size
        self.bounds = Rect((0.0, 0.0), (float(w * tw), float(h * th)))

    @classmethod
    def from_map(cls, map_asset) -> 'MapGeometry':
        return cls(map_asset.size, map_asset.tile_size)

    def in_tile_bounds(self, tx: int, ty: int) -> bool:
        return 0 <= tx < self.size[0] and 0 <= ty < self.size[1]

    def tile_to_world(self, tx: int, ty: int) -> Optional[Vec2]:
        """World position of the CENTER of tile (tx, ty); None if outside."""
        if not self.in_tile_bounds(tx, ty):
            return None
        tw, th = self.tile_size
        flipped_y = self.size[1] - 1 - ty
        return ((tx + 0.5) * tw, (flipped_y + 0.5) * th)

    def world_to_tile(self, wx: float, wy: float) -> Optional[Tuple[int, int]]:
        """Tile containing world point (wx, wy); None if outside the bounds."""
        if not self.bounds.contains((wx, wy)):
            return None
        tw, th = self.tile_size
        w, h = self.size
        tx = min(int(math.floor(wx / tw)), w - 1)
        world_row = int(math.floor(wy / th))
        ty = max(0, h - 1 - world_row)
        return (tx, ty)

    def tile_rect(self, tx: int, ty: int) -> Optional[Rect]:
        """World rectangle covered by tile (tx, ty); None if outside."""
        if not self.in_tile_bounds(tx, ty):
            return None
        tw, th = self.tile_size
        flipped_y = self.size[1] - 1 - ty
        x0 = float(tx * tw)
        y0 = float(flipped_y * th)
        return Rect((x0, y0), (x0 + tw, y0 + th))

    def __repr__(self):
        return f"MapGeometry(size={self.size}, tile_size={self.tile_size})"
