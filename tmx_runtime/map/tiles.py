"""
Tile resolution: GIDs to (tileset, local id, flips)

=============================================================================
GID LAYOUT
=============================================================================

    bit  31   30   29   28 ........................... 0
        [ H ][ V ][ D ][        global tile id         ]

    H = 0x80000000  flipped horizontally
    V = 0x40000000  flipped vertically
    D = 0x20000000  flipped diagonally (swap x/y, applied before H/V)

After masking, id 0 is an empty cell. Any other id belongs to the tileset
with the LARGEST first_gid <= id:

    first_gids: [1, 101, 201]       sorted once per map
    id 150  → bisect_right → tileset at first_gid 101, local id 49

=============================================================================
"""

import bisect
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from tmx_manager import TileLayer

logger = logging.getLogger(__name__)

FLIPPED_HORIZONTALLY_FLAG = 0x80000000
FLIPPED_VERTICALLY_FLAG = 0x40000000
FLIPPED_DIAGONALLY_FLAG = 0x20000000
GID_MASK = 0x1FFFFFFF

CHUNK_SIZE = 16


def split_gid(gid: int) -> Tuple[int, bool, bool, bool]:
    """Split a raw GID into (id, flipped_h, flipped_v, flipped_d)."""
    return (
        gid & GID_MASK,
        bool(gid & FLIPPED_HORIZONTALLY_FLAG),
        bool(gid & FLIPPED_VERTICALLY_FLAG),
        bool(gid & FLIPPED_DIAGONALLY_FLAG),
    )


@dataclass(frozen=True)
class TileInstance:
    """
    A resolved tile cell.

    tileset_index is the position of the tileset in the map's tileset
    table (document order), tileset is the shared TilesetAsset itself.
    """
    tileset_index: int
    local_id: int
    flip_h: bool = False
    flip_v: bool = False
    flip_d: bool = False
    gid: int = 0
    tileset: object = field(default=None, compare=False, repr=False)

    @property
    def collision(self):
        return self.tileset.tile_collision(self.local_id)

    @property
    def properties(self):
        return self.tileset.tile_properties(self.local_id)

    @property
    def animation(self):
        return self.tileset.tile_animation(self.local_id)


class TileResolver:
    """
    Resolves GIDs against a map's tileset table.

    Parameters:
    -----------
    tilesets : sequence of TilesetAsset
        In document order (the tileset index)
    first_gids : sequence of int
        first_gid of each tileset, same order
    map_path : str
        Only used in diagnostics

    Unresolvable GIDs (no tileset, or local id past the tile count) yield
    None. The first one is logged as a warning, every one is counted in
    `unresolved`.
    """

    def __init__(self, tilesets: Sequence, first_gids: Sequence[int], map_path: str = ""):
        if len(tilesets) != len(first_gids):
            raise ValueError("tilesets and first_gids differ in length")
        self.tilesets = list(tilesets)
        self.first_gids = list(first_gids)
        self.map_path = map_path
        order = sorted(range(len(self.first_gids)), key=lambda i: self.first_gids[i])
        self._sorted_first_gids = [self.first_gids[i] for i in order]
        self._sorted_indices = order
        self._cache: Dict[int, Optional[TileInstance]] = {}
        self.unresolved = 0
        self._warned = False

    def tileset_index_for(self, tile_id: int) -> Optional[int]:
        """Index of the tileset owning a (masked) tile id, or None."""
        if tile_id <= 0:
            return None
        pos = bisect.bisect_right(self._sorted_first_gids, tile_id) - 1
        if pos < 0:
            return None
        return self._sorted_indices[pos]

    def resolve(self, gid: int) -> Optional[TileInstance]:
        """TileInstance for a raw GID, None for empty or unresolvable cells."""
        if gid in self._cache:
            instance = self._cache[gid]
            if instance is None and gid & GID_MASK:
                self.unresolved += 1
            return instance

        tile_id, flip_h, flip_v, flip_d = split_gid(gid)
        instance = None
        if tile_id != 0:
            index = self.tileset_index_for(tile_id)
            if index is not None:
                tileset = self.tilesets[index]
                local_id = tile_id - self.first_gids[index]
                if local_id < tileset.tile_count:
                    instance = TileInstance(
                        tileset_index=index,
                        local_id=local_id,
                        flip_h=flip_h,
                        flip_v=flip_v,
                        flip_d=flip_d,
                        gid=gid,
                        tileset=tileset,
                    )
            if instance is None:
                self.unresolved += 1
                if not self._warned:
                    self._warned = True
                    logger.warning("Map %s: GID %d does not match any tileset, "
                                   "treating as empty (further cases are only counted)",
                                   self.map_path, tile_id)

        self._cache[gid] = instance
        return instance


class TileLayerGrid:
    """
    Dense, pre-resolved grid of one tile layer.

    Cell (x, y) is stored at index y * width + x, y counting rows DOWN as
    in Tiled. For infinite maps the grid spans the map's bounding chunk
    rectangle and cell (0, 0) is Tiled tile `origin`.

    Attributes:
    -----------
    width, height : int
    cells : List[Optional[TileInstance]]
    gids : np.ndarray (height, width) uint32
        Raw GIDs (flags included), 0 where empty
    origin : (int, int)
        Tiled tile coordinate of cell (0, 0)
    """

    def __init__(self, width: int, height: int, cells: List[Optional[TileInstance]],
                 gids: np.ndarray, layer_id: int = 0, name: str = "",
                 origin: Tuple[int, int] = (0, 0)):
        if len(cells) != width * height:
            raise ValueError(f"grid of {width}x{height} needs {width * height} cells, got {len(cells)}")
        self.width = width
        self.height = height
        self.cells = cells
        self.gids = gids
        self.layer_id = layer_id
        self.name = name
        self.origin = origin

    @classmethod
    def from_layer(cls, layer: TileLayer, resolver: TileResolver,
                   size: Tuple[int, int], origin: Tuple[int, int] = (0, 0)) -> 'TileLayerGrid':
        """
        Resolve every cell of a raw tile layer.

        Parameters:
        -----------
        layer : tmx_manager.TileLayer
        resolver : TileResolver
        size : (int, int)
            Grid size; the map size (chunk-aligned for infinite maps)
        origin : (int, int)
            Tiled tile coordinate of cell (0, 0) (nonzero only for infinite maps)
        """
        width, height = size
        gids = np.zeros((height, width), dtype=np.uint32)

        if layer.data.chunks:
            ox, oy = origin
            for chunk in layer.data.chunks:
                block = np.frombuffer(chunk.tiles.tobytes(), dtype=np.uint32)
                block = block.reshape(chunk.height, chunk.width)
                gx, gy = chunk.x - ox, chunk.y - oy
                # Clip to the grid (chunks are always inside for chunk-aligned sizes)
                x0, y0 = max(gx, 0), max(gy, 0)
                x1, y1 = min(gx + chunk.width, width), min(gy + chunk.height, height)
                if x0 < x1 and y0 < y1:
                    gids[y0:y1, x0:x1] = block[y0 - gy:y1 - gy, x0 - gx:x1 - gx]
        elif len(layer.data.tiles):
            data = np.frombuffer(layer.data.tiles.tobytes(), dtype=np.uint32)
            data = data.reshape(layer.height, layer.width)
            h = min(height, layer.height)
            w = min(width, layer.width)
            gids[:h, :w] = data[:h, :w]

        cells = [resolver.resolve(int(gid)) for gid in gids.ravel()]
        return cls(width, height, cells, gids, layer_id=layer.id, name=layer.name, origin=origin)

    def get(self, x: int, y: int) -> Optional[TileInstance]:
        if 0 <= x < self.width and 0 <= y < self.height:
            return self.cells[y * self.width + x]
        return None

    def __len__(self) -> int:
        return len(self.cells)

    def __iter__(self) -> Iterator[Tuple[int, int, TileInstance]]:
        """Yield (x, y, instance) for every non-empty cell in row-major order."""
        for index, instance in enumerate(self.cells):
            if instance is not None:
                yield index % self.width, index // self.width, instance

    @property
    def tile_count(self) -> int:
        return sum(1 for cell in self.cells if cell is not None)
