"""
Tileset assets

=============================================================================
ATLAS vs COLLECTION
=============================================================================

ATLAS tilesets cut one spritesheet into a grid. For local id i with C
columns, the tile occupies (in image pixels, top-left origin):

    col = i % C
    row = i // C
    min = (margin + col * (tw + spacing), margin + row * (th + spacing))
    max = min + (tw, th)

    margin
    ├─┐
    ┌─┬────┬─┬────┬─ ...
    │ │ 0  │ │ 1  │          spacing between columns and rows
    │ ├────┤ ├────┤
    │ │ C  │ │C+1 │
    └─┴────┴─┴────┴─ ...

COLLECTION tilesets carry one image per tile and have no grid:
grid_size is (0, 0) and tile ids can be sparse.

=============================================================================
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from PIL import Image as PILImage

from tmx_manager import Image, MapObject, Property, Tileset

from .animation import AnimationFrame, TileAnimation
from .images import ImageAsset
from .paths import normalize_path, normalize_properties

logger = logging.getLogger(__name__)

ImageLoader = Callable[[str, Image], ImageAsset]


@dataclass
class TileData:
    """Per-tile metadata kept by a TilesetAsset."""
    local_id: int
    type: str = ""
    probability: float = 1.0
    properties: Dict[str, Property] = field(default_factory=dict)
    image: Optional[ImageAsset] = None
    collision: List[MapObject] = field(default_factory=list)
    animation: Optional[TileAnimation] = None


def _derive_columns(raw: Tileset, image_width: int) -> int:
    """Columns of an atlas whose TSX omits them (older Tiled versions)."""
    step = raw.tilewidth + raw.spacing
    if step <= 0 or image_width <= 0:
        return 0
    return max(0, (image_width - 2 * raw.margin + raw.spacing) // step)


class TilesetAsset:
    """
    Indexable catalog of the tiles of one tileset.

    Attributes:
    -----------
    path : str
        Cache key: the .tsx path, or "<map path>#tileset<N>" when embedded
    name : str
    tile_size : (int, int)
    margin, spacing : int
    columns, rows : int
        Atlas grid (0, 0 for collections)
    tile_count : int
    tile_offset : (int, int)
        Drawing offset from the .tsx <tileoffset>
    image : ImageAsset or None
        Spritesheet for atlas tilesets
    tiles : Dict[int, TileData]
        Only tiles that carry metadata or their own image
    properties : Dict[str, Property]
        Tileset-level properties (file paths normalized)
    """

    def __init__(self, path: str, name: str, tile_size: Tuple[int, int],
                 margin: int = 0, spacing: int = 0, columns: int = 0,
                 tile_count: int = 0, image: Optional[ImageAsset] = None,
                 tiles: Optional[Dict[int, TileData]] = None,
                 properties: Optional[Dict[str, Property]] = None,
                 tile_offset: Tuple[int, int] = (0, 0)):
        self.path = path
        self.name = name
        self.tile_size = tile_size
        self.margin = margin
        self.spacing = spacing
        self.image = image
        self.tile_offset = tile_offset
        self.tiles = tiles or {}
        self.properties = properties or {}

        if image is not None:
            self.columns = columns
            self.tile_count = tile_count
            self.rows = math.ceil(tile_count / columns) if columns > 0 else 0
        else:
            # Collections: ids may be sparse and exceed the declared count
            max_id = max(self.tiles) if self.tiles else -1
            self.columns = 0
            self.rows = 0
            self.tile_count = max(tile_count, max_id + 1)

    # =========================================================================
    # CONSTRUCTION
    # =========================================================================

    @classmethod
    def from_raw(cls, raw: Tileset, path: str, context: str,
                 load_image: ImageLoader) -> 'TilesetAsset':
        """
        Build the catalog from a parsed tileset.

        Parameters:
        -----------
        raw : tmx_manager.Tileset
            Parsed .tsx or embedded <tileset>
        path : str
            Cache key for this tileset
        context : str
            Root-relative path of the file containing the <tileset> element;
            image sources and file properties are resolved against it
        load_image : callable
            (normalized path, tmx_manager.Image) -> ImageAsset
        """
        atlas = None
        if raw.image is not None and raw.image.source:
            atlas = load_image(normalize_path(context, raw.image.source), raw.image)

        columns = raw.columns
        tile_count = raw.tilecount
        if atlas is not None:
            if columns <= 0:
                columns = _derive_columns(raw, atlas.width or raw.image.width or 0)
            if tile_count <= 0 and columns > 0:
                step_y = raw.tileheight + raw.spacing
                height = atlas.height or raw.image.height or 0
                rows = max(0, (height - 2 * raw.margin + raw.spacing) // step_y) if step_y else 0
                tile_count = rows * columns

        tiles: Dict[int, TileData] = {}
        for tile_id, tile in sorted(raw.tiles.items()):
            if atlas is not None and tile_id >= tile_count:
                logger.warning("Tileset %s: tile %d is outside the tile count (%d), dropped",
                               path, tile_id, tile_count)
                continue

            image = None
            if tile.image is not None and tile.image.source:
                image = load_image(normalize_path(context, tile.image.source), tile.image)

            animation = None
            if tile.animation:
                animation = TileAnimation(
                    [AnimationFrame(f.tileid, f.duration) for f in tile.animation]
                )

            tiles[tile_id] = TileData(
                local_id=tile_id,
                type=tile.type,
                probability=tile.probability,
                properties=normalize_properties(context, tile.properties),
                image=image,
                collision=list(tile.objectgroup.objects) if tile.objectgroup else [],
                animation=animation,
            )

        asset = cls(
            path=path,
            name=raw.name,
            tile_size=(raw.tilewidth, raw.tileheight),
            margin=raw.margin,
            spacing=raw.spacing,
            columns=columns,
            tile_count=tile_count,
            image=atlas,
            tiles=tiles,
            properties=normalize_properties(context, raw.properties),
            tile_offset=raw.tileoffset,
        )
        logger.debug("Tileset %s: %d tiles, grid %s, %s", path, asset.tile_count,
                     asset.grid_size, "collection" if asset.is_image_collection else "atlas")
        return asset

    # =========================================================================
    # QUERIES
    # =========================================================================

    @property
    def is_image_collection(self) -> bool:
        """True iff the tileset has no atlas image."""
        return self.image is None

    @property
    def grid_size(self) -> Tuple[int, int]:
        """(columns, rows) of the atlas, (0, 0) for collections."""
        return (self.columns, self.rows)

    def has_tile(self, local_id: int) -> bool:
        return 0 <= local_id < self.tile_count

    def tile_image_for(self, local_id: int) -> Optional[ImageAsset]:
        """
        Image that holds the tile's pixels.

        Atlas tilesets return the spritesheet for every id (combine with
        tile_rect()); collections return the tile's own image or None.
        """
        if self.image is not None:
            return self.image
        tile = self.tiles.get(local_id)
        return tile.image if tile is not None else None

    def tile_rect(self, local_id: int) -> Optional[Tuple[int, int, int, int]]:
        """
        (left, top, right, bottom) of a tile inside the atlas image.

        None for collections and ids outside the grid.
        """
        if self.image is None or self.columns <= 0 or not self.has_tile(local_id):
            return None
        tw, th = self.tile_size
        col = local_id % self.columns
        row = local_id // self.columns
        left = self.margin + col * (tw + self.spacing)
        top = self.margin + row * (th + self.spacing)
        return (left, top, left + tw, top + th)

    def crop_tile(self, local_id: int) -> Optional[PILImage.Image]:
        """Decoded pixels of one tile (cropped from the atlas if needed)."""
        if self.image is not None:
            rect = self.tile_rect(local_id)
            return self.image.crop(rect) if rect is not None else None
        tile = self.tiles.get(local_id)
        if tile is None or tile.image is None:
            return None
        return tile.image.image

    def tile_collision(self, local_id: int) -> List[MapObject]:
        """Collision objects drawn in the Tiled collision editor (may be empty)."""
        tile = self.tiles.get(local_id)
        return tile.collision if tile is not None else []

    def tile_animation(self, local_id: int) -> Optional[TileAnimation]:
        tile = self.tiles.get(local_id)
        return tile.animation if tile is not None else None

    def tile_properties(self, local_id: int) -> Dict[str, Property]:
        tile = self.tiles.get(local_id)
        return tile.properties if tile is not None else {}

    def image_paths(self) -> List[str]:
        """Every image this tileset depends on."""
        paths = [self.image.path] if self.image is not None else []
        paths.extend(t.image.path for t in self.tiles.values() if t.image is not None)
        return paths

    def __repr__(self):
        return f"TilesetAsset({self.path!r}, tiles={self.tile_count}, grid={self.grid_size})"
