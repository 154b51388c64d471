"""
TiledRuntime: one object wiring assets, property types and spawning

=============================================================================
USAGE
=============================================================================

    @tiled_class("Health")
    @dataclass
    class Health:
        max: float = 100.0

    runtime = TiledRuntime(TiledConfig(asset_root="assets",
                                       export_types_path="tiled_types.json"),
                           physics=PhysicsConfig())
    level = runtime.load_map("maps/level1.tmx")
    world = runtime.load_world("maps/overworld.world")

The first load starts the runtime: the registry is frozen, the type
descriptor is exported (if configured) and the project file is loaded
(if configured). Registering types after that raises RegistryError.

=============================================================================
WORLD COORDINATES
=============================================================================

World files place maps with Tiled pixel coordinates (y down, origin at the
map's top-left corner). Spawned maps are placed by their bottom-left
corner in y-up world space:

    position = (x, -(y + map_height_px))

=============================================================================
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .assets.project import ProjectProperties
from .assets.server import AssetServer
from .config import TiledConfig
from .map.events import EventDispatcher
from .map.spawn import MapSpawner, SpawnedMap
from .physics.config import PhysicsConfig
from .physics.plugin import PhysicsPlugin, attach_physics
from .properties.export import export_types_to_json
from .properties.registry import PropertyTypeRegistry, default_registry

logger = logging.getLogger(__name__)


@dataclass
class SpawnedWorldMap:
    path: str
    position: Tuple[float, float]
    map: Optional[SpawnedMap] = None


@dataclass
class SpawnedWorld:
    path: str
    maps: List[SpawnedWorldMap] = field(default_factory=list)

    @property
    def is_spawned(self) -> bool:
        return bool(self.maps) and all(m.map is not None for m in self.maps)

    def find_map(self, path: str) -> Optional[SpawnedWorldMap]:
        for world_map in self.maps:
            if world_map.path == path:
                return world_map
        return None


class TiledRuntime:
    """
    Parameters:
    -----------
    config : TiledConfig, optional
    registry : PropertyTypeRegistry, optional
        Defaults to the process-wide registry filled by @tiled_class
    physics : PhysicsConfig, optional
        Generates tile-layer colliders and object bodies when given
    """

    def __init__(self, config: Optional[TiledConfig] = None,
                 registry: Optional[PropertyTypeRegistry] = None,
                 physics: Optional[PhysicsConfig] = None):
        self.config = config or TiledConfig()
        self.registry = registry if registry is not None else default_registry()
        self.server = AssetServer(self.config.asset_root, load_images=self.config.load_images)
        self.dispatcher = EventDispatcher()
        self.physics: Optional[PhysicsPlugin] = None
        if physics is not None:
            self.physics = attach_physics(self.dispatcher, physics, self.registry)
        self.project: Optional[ProjectProperties] = None
        self.spawner: Optional[MapSpawner] = None

    @property
    def is_started(self) -> bool:
        return self.spawner is not None

    def start(self):
        """Freeze the registry, export types and load the project. Idempotent."""
        if self.spawner is not None:
            return
        self.registry.freeze()
        if self.config.export_types_path is not None:
            export_types_to_json(self.registry, self.config.export_types_path)
        if self.config.project_path:
            self.project = self.server.load_project(self.config.project_path)
        self.spawner = MapSpawner(self.registry, self.server, self.config.layer_z, self.dispatcher)

    def load_map(self, path: str) -> SpawnedMap:
        self.start()
        return self.spawner.spawn(self.server.load_map(path))

    def load_world(self, path: str) -> SpawnedWorld:
        self.start()
        world = self.server.load_world(path)
        spawned = SpawnedWorld(path)
        for world_map in world.maps:
            map_asset = world_map.asset
            height = world_map.height
            if height is None:
                height = map_asset.bounds.height
            spawned.maps.append(SpawnedWorldMap(
                path=world_map.path,
                position=(float(world_map.x), -float(world_map.y + height)),
                map=self.spawner.spawn(map_asset),
            ))
        logger.info("Spawned world %s: %d maps", path, len(spawned.maps))
        return spawned

    def respawn(self, spawned: SpawnedMap) -> SpawnedMap:
        self.start()
        return self.spawner.respawn(spawned)

    def release(self, path: str):
        self.server.release(path)
