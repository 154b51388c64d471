"""Map geometry, tile resolution and object normalization"""

from .geometry import MapGeometry, Rect
from .tiles import TileInstance, TileResolver, TileLayerGrid
from .objects import NormalizedObject, ObjectNormalizer, ObjectShape
from .events import EventDispatcher

__all__ = [
    "MapGeometry",
    "Rect",
    "TileInstance",
    "TileResolver",
    "TileLayerGrid",
    "NormalizedObject",
    "ObjectNormalizer",
    "ObjectShape",
    "EventDispatcher",
]
