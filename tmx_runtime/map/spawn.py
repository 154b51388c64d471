"""
Spawning: from a loaded MapAsset to a runtime layer tree

=============================================================================
WHAT SPAWNING PRODUCES
=============================================================================

    SpawnedMap
    ├── SpawnedLayer "Background"  (IMAGE,   z = 0)
    ├── SpawnedLayer "Gameplay"    (GROUP,   z = 0)
    │   ├── SpawnedLayer "Ground"  (TILES,   z = 1)   grid: TileLayerGrid
    │   └── SpawnedLayer "Things"  (OBJECTS, z = 2)   objects: [SpawnedObject]
    └── SpawnedLayer "Foreground"  (TILES,   z = 3)

=============================================================================
Z-ORDERING
=============================================================================

Tiled draws layers in document order, later on top. Leaf layers are
counted depth-first and leaf n gets z = offset + n * multiplier.
Groups get z = 0 so their children keep absolute depths. Hidden layers
inside a group are not spawned and not counted.

=============================================================================
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple

from tmx_manager import ImageLayer, LayerGroup, ObjectGroup, TileLayer

from ..config import LayerZConfig
from ..properties.deserialize import PropertyDeserializer
from .events import (
    EventDispatcher, GroupLayerSpawned, ImageLayerSpawned, MapSpawned,
    ObjectLayerSpawned, ObjectSpawned, TileLayerSpawned,
)
from .geometry import MapGeometry
from .objects import NormalizedObject, ObjectNormalizer
from .tiles import TileLayerGrid

logger = logging.getLogger(__name__)


class LayerType(Enum):
    TILES = "tiles"
    OBJECTS = "objects"
    IMAGE = "image"
    GROUP = "group"


@dataclass
class SpawnedObject:
    object: NormalizedObject
    components: Dict[str, Any] = field(default_factory=dict)
    body: Any = None

    @property
    def id(self) -> int:
        return self.object.id

    @property
    def name(self) -> str:
        return self.object.name


@dataclass
class SpawnedLayer:
    """
    One spawned layer.

    transform is (offset_x, -offset_y, z), relative to the parent group.
    Exactly one of grid (TILES), objects (OBJECTS), image_path (IMAGE) or
    children (GROUP) carries the content.
    """
    layer_id: int
    name: str
    layer_type: LayerType
    transform: Tuple[float, float, float]
    parallax: Tuple[float, float] = (1.0, 1.0)
    opacity: float = 1.0
    visible: bool = True
    properties: Dict[str, Any] = field(default_factory=dict)
    components: Dict[str, Any] = field(default_factory=dict)
    grid: Optional[TileLayerGrid] = None
    objects: List[SpawnedObject] = field(default_factory=list)
    image: Any = None
    image_path: Optional[str] = None
    children: List['SpawnedLayer'] = field(default_factory=list)
    colliders: Any = None

    @property
    def z(self) -> float:
        return self.transform[2]


@dataclass
class SpawnedMap:
    map: Any
    geometry: MapGeometry
    layers: List[SpawnedLayer] = field(default_factory=list)
    components: Dict[str, Any] = field(default_factory=dict)
    events: List[Any] = field(default_factory=list)

    @property
    def path(self) -> str:
        return self.map.path

    @property
    def offset(self) -> Tuple[float, float]:
        return self.map.offset

    def iter_layers(self) -> Iterator[SpawnedLayer]:
        """Every spawned layer, depth-first."""
        def walk(layers):
            for layer in layers:
                yield layer
                yield from walk(layer.children)
        return walk(self.layers)

    def find_layer(self, name: str) -> Optional[SpawnedLayer]:
        for layer in self.iter_layers():
            if layer.name == name:
                return layer
        return None

    def tile_layers(self) -> List[SpawnedLayer]:
        return [l for l in self.iter_layers() if l.layer_type == LayerType.TILES]

    def objects(self) -> List[SpawnedObject]:
        return [o for l in self.iter_layers() for o in l.objects]

    def find_object(self, object_id: int) -> Optional[SpawnedObject]:
        for obj in self.objects():
            if obj.id == object_id:
                return obj
        return None


class MapSpawner:
    """
    Builds SpawnedMaps from MapAssets.

    Parameters:
    -----------
    registry : PropertyTypeRegistry
        Registered types are attached as components
    loader : AssetServer, optional
        Used for file-typed fields
    z_config : LayerZConfig, optional
    dispatcher : EventDispatcher, optional
        Receives every event as it is emitted
    """

    def __init__(self, registry, loader=None, z_config: Optional[LayerZConfig] = None,
                 dispatcher: Optional[EventDispatcher] = None):
        self.deserializer = PropertyDeserializer(registry, loader)
        self.z_config = z_config or LayerZConfig()
        self.dispatcher = dispatcher or EventDispatcher()

    def spawn(self, map_asset) -> SpawnedMap:
        """Derive the full runtime tree of a map."""
        spawned = SpawnedMap(map=map_asset, geometry=map_asset.geometry)
        deserializer = self.deserializer.with_context(map_asset.path)
        spawned.components = deserializer.attach_components(
            map_asset.properties, map_asset.raw.type)

        context = _SpawnContext(map_asset, spawned, ObjectNormalizer.for_map(map_asset),
                                deserializer)
        spawned.layers = self._spawn_layers(map_asset.layers, context, inside_group=False)

        self._emit(spawned, MapSpawned(map_asset.path, map_asset.properties, spawned))
        logger.info("Spawned map %s: %d layers, %d objects", map_asset.path,
                    context.leaf_count, len(spawned.objects()))
        return spawned

    def respawn(self, spawned: SpawnedMap) -> SpawnedMap:
        """Discard a spawned tree and derive it again from the same asset."""
        return self.spawn(spawned.map)

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _emit(self, spawned: SpawnedMap, event):
        spawned.events.append(event)
        self.dispatcher.emit(event)

    def _spawn_layers(self, layers, context: '_SpawnContext', inside_group: bool) -> List[SpawnedLayer]:
        result = []
        for layer in layers:
            if inside_group and not layer.visible:
                continue
            result.append(self._spawn_layer(layer, context))
        return result

    def _spawn_layer(self, layer, context: '_SpawnContext') -> SpawnedLayer:
        map_asset = context.map_asset
        properties = map_asset.layer_properties.get(layer.id, {})

        if isinstance(layer, LayerGroup):
            layer_type = LayerType.GROUP
            z = 0.0
        else:
            layer_type = (LayerType.TILES if isinstance(layer, TileLayer)
                          else LayerType.OBJECTS if isinstance(layer, ObjectGroup)
                          else LayerType.IMAGE)
            z = self.z_config.z_for(context.leaf_count)
            context.leaf_count += 1

        spawned_layer = SpawnedLayer(
            layer_id=layer.id,
            name=layer.name,
            layer_type=layer_type,
            transform=(layer.offsetx, -layer.offsety, z),
            parallax=(layer.parallaxx, layer.parallaxy),
            opacity=layer.opacity,
            visible=layer.visible,
            properties=properties,
            components=context.deserializer.attach_components(properties, layer.type),
        )
        path = map_asset.path

        if layer_type == LayerType.GROUP:
            self._emit(context.spawned, GroupLayerSpawned(
                path, layer.id, layer.name, properties, spawned_layer))
            spawned_layer.children = self._spawn_layers(layer.layers, context, inside_group=True)

        elif layer_type == LayerType.TILES:
            spawned_layer.grid = map_asset.layer_grid(layer)
            self._emit(context.spawned, TileLayerSpawned(
                path, layer.id, layer.name, properties, spawned_layer))

        elif layer_type == LayerType.OBJECTS:
            self._emit(context.spawned, ObjectLayerSpawned(
                path, layer.id, layer.name, properties, spawned_layer))
            for obj in map_asset.objects.get(layer.id, []):
                normalized = context.normalizer.normalize(obj, layer.id)
                spawned_object = SpawnedObject(
                    normalized,
                    context.deserializer.attach_components(normalized.properties, normalized.type),
                )
                spawned_layer.objects.append(spawned_object)
                self._emit(context.spawned, ObjectSpawned(
                    path, layer.id, obj.id, obj.name, normalized.properties, spawned_object))

        elif isinstance(layer, ImageLayer) and layer.image is not None:
            image = map_asset.images.get(layer.id)
            spawned_layer.image = image
            spawned_layer.image_path = image.path if image is not None else None
            if spawned_layer.image_path:
                self._emit(context.spawned, ImageLayerSpawned(
                    path, layer.id, layer.name, spawned_layer.image_path, properties, spawned_layer))

        return spawned_layer


class _SpawnContext:
    def __init__(self, map_asset, spawned: SpawnedMap, normalizer: ObjectNormalizer,
                 deserializer: PropertyDeserializer):
        self.map_asset = map_asset
        self.spawned = spawned
        self.normalizer = normalizer
        self.deserializer = deserializer
        self.leaf_count = 0


def spawn_map(map_asset, registry, loader=None, z_config: Optional[LayerZConfig] = None,
              dispatcher: Optional[EventDispatcher] = None) -> SpawnedMap:
    """One-shot MapSpawner(...).spawn(map_asset)."""
    return MapSpawner(registry, loader, z_config, dispatcher).spawn(map_asset)
