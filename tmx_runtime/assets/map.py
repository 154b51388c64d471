"""
Map assets

=============================================================================
WHAT A MapAsset ADDS TO THE RAW MAP
=============================================================================

tmx_manager.TiledMap is the file as written. MapAsset is the map as the
runtime needs it:

- Tilesets resolved: external .tsx references replaced by shared
  TilesetAssets, kept in document order (the tileset index) with their
  first_gids in a parallel table.
- Templates merged: every object that names a .tx gets the template's
  attributes and properties under its own.
- Paths normalized: every file-typed property (nested class members
  included) holds a root-relative path.
- Bounds precomputed, including the chunk extent of infinite maps.

=============================================================================
INFINITE MAPS
=============================================================================

Infinite maps store tiles in 16x16 chunks placed anywhere, including at
negative coordinates. The map extent is the bounding rectangle of every
chunk of every tile layer, in chunk units:

         chunk x:  -1     0     1
                 ┌─────┬─────┬─────┐
    chunk y: 0   │  A  │     │  B  │     topleft_chunk     = (-1, 0)
                 ├─────┼─────┼─────┤     bottomright_chunk = ( 1, 1)
             1   │     │  C  │     │     size = (3*16, 2*16) tiles
                 └─────┴─────┴─────┘

Grid cell (0, 0) is Tiled tile (topleft.x*16, topleft.y*16). The offset
(here 16*tw pixels in x) shifts content that Tiled placed at negative
coordinates back into the nonnegative quadrant.

=============================================================================
"""

import dataclasses
import logging
import math
from typing import Dict, Iterator, List, Optional, Tuple

from tmx_manager import (
    ImageLayer, MapObject, ObjectGroup, Property, TileLayer, TiledMap,
)

from ..map.geometry import MapGeometry, Rect
from ..map.tiles import CHUNK_SIZE, TileLayerGrid, TileResolver
from .images import ImageAsset
from .paths import normalize_path, normalize_properties
from .template import TemplateAsset, apply_template
from .tileset import TilesetAsset

logger = logging.getLogger(__name__)


def chunk_extent(raw: TiledMap) -> Optional[Tuple[Tuple[int, int], Tuple[int, int]]]:
    """
    Bounding chunk rectangle over all tile layers of an infinite map.

    Returns ((min_cx, min_cy), (max_cx, max_cy)) in chunk units, or None
    when no layer has any chunk.
    """
    min_cx = min_cy = math.inf
    max_cx = max_cy = -math.inf
    for layer in raw.get_all_layers_flat():
        if not isinstance(layer, TileLayer):
            continue
        for chunk in layer.data.chunks:
            if chunk.width <= 0 or chunk.height <= 0:
                continue
            min_cx = min(min_cx, chunk.x // CHUNK_SIZE)
            min_cy = min(min_cy, chunk.y // CHUNK_SIZE)
            max_cx = max(max_cx, (chunk.x + chunk.width - 1) // CHUNK_SIZE)
            max_cy = max(max_cy, (chunk.y + chunk.height - 1) // CHUNK_SIZE)
    if min_cx == math.inf:
        return None
    return (int(min_cx), int(min_cy)), (int(max_cx), int(max_cy))


class MapAsset:
    """
    A fully resolved map, immutable once built.

    Attributes:
    -----------
    path : str
    raw : tmx_manager.TiledMap
    orientation : str
    size : (int, int)
        Tiles; chunk-aligned content extent for infinite maps
    tile_size : (int, int)
    infinite : bool
    tilesets : List[TilesetAsset]
        In document order; the list index is the tileset index
    first_gids : List[int]
    resolver : TileResolver
    bounds : Rect
    offset : (float, float)
        Pixel shift that moves infinite-map content to x, y >= 0
    topleft_chunk, bottomright_chunk : (int, int)
    properties : Dict[str, Property]
    layer_properties : Dict[int, Dict[str, Property]]
        Keyed by layer id, groups included
    objects : Dict[int, List[MapObject]]
        Template-merged objects of each object layer, keyed by layer id
    object_properties : Dict[int, Dict[str, Property]]
        Keyed by object id
    object_templates : Dict[int, TemplateAsset]
        Template of each templated object, keyed by object id
    images : Dict[int, ImageAsset]
        Image of each image layer, keyed by layer id
    """

    def __init__(self, path: str, raw: TiledMap, tilesets: List[TilesetAsset],
                 templates: Optional[Dict[str, TemplateAsset]] = None,
                 images: Optional[Dict[int, ImageAsset]] = None):
        self.path = path
        self.raw = raw
        self.orientation = raw.orientation
        self.tile_size = (raw.tilewidth, raw.tileheight)
        self.infinite = raw.infinite
        self.tilesets = list(tilesets)
        self.first_gids = [ts.firstgid for ts in raw.tilesets]
        self.resolver = TileResolver(self.tilesets, self.first_gids, path)
        self.images = dict(images or {})
        self.properties = normalize_properties(path, raw.properties)

        self._compute_extent()
        self._collect_layers(templates or {})

    # =========================================================================
    # CONSTRUCTION
    # =========================================================================

    def _compute_extent(self):
        tw, th = self.tile_size
        self.offset = (0.0, 0.0)
        self.topleft_chunk = (0, 0)
        self.bottomright_chunk = (0, 0)

        if not self.infinite:
            self.size = (self.raw.width, self.raw.height)
        else:
            extent = chunk_extent(self.raw)
            if extent is None:
                self.size = (0, 0)
            else:
                (min_cx, min_cy), (max_cx, max_cy) = extent
                self.topleft_chunk = (min_cx, min_cy)
                self.bottomright_chunk = (max_cx, max_cy)
                self.size = ((max_cx - min_cx + 1) * CHUNK_SIZE,
                             (max_cy - min_cy + 1) * CHUNK_SIZE)
                self.offset = (
                    float(-min_cx * CHUNK_SIZE * tw) if min_cx < 0 else 0.0,
                    float(-min_cy * CHUNK_SIZE * th) if min_cy < 0 else 0.0,
                )

        w, h = self.size
        self.bounds = Rect((0.0, 0.0), (float(w * tw), float(h * th)))

    def _collect_layers(self, templates: Dict[str, TemplateAsset]):
        self.layer_properties: Dict[int, Dict[str, Property]] = {}
        self.objects: Dict[int, List[MapObject]] = {}
        self.object_properties: Dict[int, Dict[str, Property]] = {}
        self.object_templates: Dict[int, TemplateAsset] = {}

        for layer in self.raw.get_all_layers_flat(include_groups=True):
            if layer.id in self.layer_properties:
                logger.warning("Map %s: duplicate layer id %d", self.path, layer.id)
            self.layer_properties[layer.id] = normalize_properties(self.path, layer.properties)

            if isinstance(layer, TileLayer) and not self.infinite:
                if (layer.width, layer.height) != self.size:
                    logger.warning("Map %s: layer %r is %dx%d, map is %dx%d",
                                   self.path, layer.name, layer.width, layer.height, *self.size)

            if isinstance(layer, ObjectGroup):
                self.objects[layer.id] = [self._merge_object(obj, templates)
                                          for obj in layer.objects]

    def _merge_object(self, obj: MapObject, templates: Dict[str, TemplateAsset]) -> MapObject:
        local = normalize_properties(self.path, obj.properties)
        obj = dataclasses.replace(obj, properties=local)

        if obj.template:
            template_path = normalize_path(self.path, obj.template)
            template = templates.get(template_path)
            if template is None:
                logger.warning("Map %s: object %d uses template %s which was not loaded",
                               self.path, obj.id, template_path)
            else:
                obj = apply_template(obj, template.object)
                self.object_templates[obj.id] = template

        if obj.id in self.object_properties:
            logger.warning("Map %s: duplicate object id %d", self.path, obj.id)
        self.object_properties[obj.id] = obj.properties
        return obj

    # =========================================================================
    # DEPENDENCIES
    # =========================================================================

    @staticmethod
    def template_paths(path: str, raw: TiledMap) -> List[str]:
        """Normalized paths of every template a raw map references."""
        seen = []
        for _, obj in raw.iter_objects():
            if obj.template:
                template_path = normalize_path(path, obj.template)
                if template_path not in seen:
                    seen.append(template_path)
        return seen

    # =========================================================================
    # QUERIES
    # =========================================================================

    @property
    def geometry(self) -> MapGeometry:
        return MapGeometry(self.size, self.tile_size)

    @property
    def chunk_origin(self) -> Tuple[int, int]:
        """Tiled tile coordinate of grid cell (0, 0)."""
        return (self.topleft_chunk[0] * CHUNK_SIZE, self.topleft_chunk[1] * CHUNK_SIZE)

    @property
    def layers(self):
        return self.raw.layers

    def iter_layers(self) -> Iterator:
        """Every layer, groups included, depth-first in document order."""
        return iter(self.raw.get_all_layers_flat(include_groups=True))

    def tile_layers(self) -> List[TileLayer]:
        return [layer for layer in self.raw.get_all_layers_flat() if isinstance(layer, TileLayer)]

    def get_layer(self, layer_id: int):
        for layer in self.iter_layers():
            if layer.id == layer_id:
                return layer
        return None

    def get_layer_by_name(self, name: str):
        return self.raw.get_layer_by_name(name)

    def tileset_for_gid(self, gid: int) -> Optional[Tuple[TilesetAsset, int]]:
        """(tileset, first_gid) owning a GID, or None."""
        index = self.resolver.tileset_index_for(gid & 0x1FFFFFFF)
        if index is None:
            return None
        return self.tilesets[index], self.first_gids[index]

    def layer_grid(self, layer: TileLayer) -> TileLayerGrid:
        """Resolved grid of one of this map's tile layers."""
        return TileLayerGrid.from_layer(layer, self.resolver, self.size, self.chunk_origin)

    def image_for_layer(self, layer: ImageLayer) -> Optional[ImageAsset]:
        return self.images.get(layer.id)

    def __repr__(self):
        return (f"MapAsset({self.path!r}, size={self.size}, tile_size={self.tile_size}, "
                f"tilesets={len(self.tilesets)}, infinite={self.infinite})")
