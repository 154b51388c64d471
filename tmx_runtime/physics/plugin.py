"""
Physics collider generation hooked into spawning

    dispatcher = EventDispatcher()
    attach_physics(dispatcher, PhysicsConfig(), registry)
    spawned = MapSpawner(registry, server, dispatcher=dispatcher).spawn(map_asset)

    spawned.find_layer("Ground").colliders    # LayerColliders
    spawned.find_object(7).body               # ObjectBody

Runs once the whole map tree exists (on MapSpawned). Object settings come
from the object's `avian::PhysicsSettings` component, else from its
layer's, else from the PhysicsConfig defaults.
"""

import logging
from typing import Optional

from ..map.events import EventDispatcher, MapSpawned
from ..map.spawn import LayerType, SpawnedLayer, SpawnedMap
from .config import (
    PHYSICS_SETTINGS_TYPE, PhysicsConfig, PhysicsSettings, build_object_body,
    register_physics_types,
)
from .merger import build_layer_colliders

logger = logging.getLogger(__name__)


class PhysicsPlugin:
    """Fills SpawnedLayer.colliders and SpawnedObject.body for a spawned map."""

    def __init__(self, config: Optional[PhysicsConfig] = None):
        self.config = config or PhysicsConfig()

    def on_map_spawned(self, event: MapSpawned):
        if event.target is not None:
            self.apply(event.target)

    def apply(self, spawned: SpawnedMap):
        tile_size = spawned.geometry.tile_size
        bodies = 0
        for layer in spawned.iter_layers():
            if layer.layer_type == LayerType.TILES and self.config.enable_tile_colliders:
                layer.colliders = build_layer_colliders(
                    layer.grid, tile_size, self.config.tile_collider_strategy)
            elif layer.layer_type == LayerType.OBJECTS:
                bodies += self._object_bodies(layer)
        logger.debug("Physics for %s: %d object bodies", spawned.path, bodies)

    def _object_bodies(self, layer: SpawnedLayer) -> int:
        layer_settings = _settings_of(layer.components)
        count = 0
        for spawned_object in layer.objects:
            settings = _settings_of(spawned_object.components) or layer_settings
            spawned_object.body = build_object_body(spawned_object.object, self.config, settings)
            if spawned_object.body is not None:
                count += 1
        return count


def _settings_of(components) -> Optional[PhysicsSettings]:
    settings = components.get(PHYSICS_SETTINGS_TYPE)
    return settings if isinstance(settings, PhysicsSettings) else None


def attach_physics(dispatcher: EventDispatcher, config: Optional[PhysicsConfig] = None,
                   registry=None) -> PhysicsPlugin:
    """
    Subscribe collider generation to a dispatcher.

    With a registry, the physics types are registered too so that
    PhysicsSettings properties deserialize into components. A frozen
    registry without them only gets the config defaults.
    """
    if registry is not None:
        if registry.is_frozen:
            if registry.get_class(PHYSICS_SETTINGS_TYPE) is None:
                logger.warning("Registry is frozen without %s; objects use physics defaults",
                               PHYSICS_SETTINGS_TYPE)
        else:
            register_physics_types(registry)

    plugin = PhysicsPlugin(config)
    dispatcher.subscribe(MapSpawned, plugin.on_map_spawned)
    return plugin
