"""
Object normalization

=============================================================================
FROM TILED OBJECTS TO CANONICAL SHAPES
=============================================================================

    Tiled shape          ObjectShape       payload
    -----------          -----------       -------
    rectangle {w, h}     RECTANGLE         width, height
    ellipse {w, h}       ELLIPSE           width, height
    polygon {pts}        POLYGON           vertices, Y negated
    polyline {pts}       POLYLINE          vertices, Y negated
    point                POINT             -
    tile {gid, w, h}     TILE              TileInstance, width, height
    text {...}           TEXT              the text payload

Positions use the world convention (Y up): an object at Tiled (x, y) is
placed at (x, -y, 0). Vertex lists keep the file's order.

=============================================================================
"""

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

from tmx_manager import (
    MapObject, Property, Text,
    SHAPE_ELLIPSE, SHAPE_POINT, SHAPE_POLYGON, SHAPE_POLYLINE, SHAPE_TEXT,
)

from .tiles import TileInstance, TileResolver, split_gid

logger = logging.getLogger(__name__)

Vec2 = Tuple[float, float]


class ObjectShape(Enum):
    RECTANGLE = "rectangle"
    ELLIPSE = "ellipse"
    POLYGON = "polygon"
    POLYLINE = "polyline"
    POINT = "point"
    TILE = "tile"
    TEXT = "text"


@dataclass
class NormalizedObject:
    """
    An object in runtime form.

    position is (x, -y, 0); rotation is the Tiled angle in radians.
    vertices is set for polygons and polylines only, tile for tile objects
    only, text for text objects only.
    """
    id: int
    name: str
    type: str
    shape: ObjectShape
    position: Tuple[float, float, float]
    rotation: float = 0.0
    width: float = 0.0
    height: float = 0.0
    vertices: Optional[List[Vec2]] = None
    tile: Optional[TileInstance] = None
    text: Optional[Text] = None
    visible: bool = True
    layer_id: int = 0
    properties: Dict[str, Property] = field(default_factory=dict)
    template: Optional[str] = None

    @property
    def size(self) -> Vec2:
        return (self.width, self.height)


def _flip_vertices(points: List[Vec2]) -> List[Vec2]:
    return [(float(x), -float(y)) for x, y in points]


class ObjectNormalizer:
    """
    Normalizes the objects of one map.

    Parameters:
    -----------
    resolver : TileResolver
        The map's resolver, used for tile objects
    templates : Dict[int, TemplateAsset]
        Template of each templated object (MapAsset.object_templates).
        A tile object that kept its template's gid resolves against the
        template's own tileset.
    """

    def __init__(self, resolver: TileResolver, templates: Optional[Dict] = None):
        self.resolver = resolver
        self.templates = templates or {}

    @classmethod
    def for_map(cls, map_asset) -> 'ObjectNormalizer':
        return cls(map_asset.resolver, map_asset.object_templates)

    def _resolve_tile(self, obj: MapObject) -> Optional[TileInstance]:
        template = self.templates.get(obj.id)
        if template is not None and 'gid' not in obj.explicit:
            local_id = template.resolve_local_id(obj.gid)
            if local_id is None:
                return None
            _, flip_h, flip_v, flip_d = split_gid(obj.gid)
            return TileInstance(tileset_index=-1, local_id=local_id, flip_h=flip_h,
                                flip_v=flip_v, flip_d=flip_d, gid=obj.gid,
                                tileset=template.tileset)
        return self.resolver.resolve(obj.gid)

    def _template_path(self, obj: MapObject) -> Optional[str]:
        template = self.templates.get(obj.id)
        if template is not None:
            return template.path
        return obj.template or None

    def normalize(self, obj: MapObject, layer_id: int = 0) -> NormalizedObject:
        """Convert one (template-merged) raw object."""
        result = NormalizedObject(
            id=obj.id,
            name=obj.name,
            type=obj.type,
            shape=ObjectShape.RECTANGLE,
            position=(obj.x, -obj.y, 0.0),
            rotation=math.radians(obj.rotation),
            width=obj.width,
            height=obj.height,
            visible=obj.visible,
            layer_id=layer_id,
            properties=obj.properties,
            template=self._template_path(obj),
        )

        if obj.gid is not None:
            tile = self._resolve_tile(obj)
            if tile is not None:
                result.shape = ObjectShape.TILE
                result.tile = tile
            else:
                logger.warning("Object %d (%r): GID %d does not resolve to a tile, "
                               "treating it as a rectangle", obj.id, obj.name,
                               obj.gid & 0x1FFFFFFF)
        elif obj.shape == SHAPE_ELLIPSE:
            result.shape = ObjectShape.ELLIPSE
        elif obj.shape == SHAPE_POLYGON:
            result.shape = ObjectShape.POLYGON
            result.vertices = _flip_vertices(obj.points)
        elif obj.shape == SHAPE_POLYLINE:
            result.shape = ObjectShape.POLYLINE
            result.vertices = _flip_vertices(obj.points)
        elif obj.shape == SHAPE_POINT:
            result.shape = ObjectShape.POINT
        elif obj.shape == SHAPE_TEXT:
            result.shape = ObjectShape.TEXT
            result.text = obj.text

        return result

    def normalize_all(self, objects: List[MapObject], layer_id: int = 0) -> List[NormalizedObject]:
        return [self.normalize(obj, layer_id) for obj in objects]
