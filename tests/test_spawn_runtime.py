import math
from dataclasses import dataclass
from typing import Optional

import orjson
import pytest

from tmx_runtime.assets.server import AssetHandle
from tmx_runtime.config import LayerZConfig, TiledConfig
from tmx_runtime.errors import RegistryError
from tmx_runtime.map.events import (
    EventDispatcher, GroupLayerSpawned, ImageLayerSpawned, MapSpawned, ObjectLayerSpawned,
    ObjectSpawned, TileLayerSpawned,
)
from tmx_runtime.map.objects import ObjectShape
from tmx_runtime.map.spawn import LayerType, MapSpawner, spawn_map
from tmx_runtime.physics.config import BodyType, PhysicsConfig
from tmx_runtime.physics.merger import TileColliderStrategy
from tmx_runtime.physics.shapes import CircleShape, RectangleShape
from tmx_runtime.runtime import TiledRuntime


@dataclass
class Chest:
    gold: int = 0
    locked: bool = True


@dataclass
class Loot:
    icon: Optional[AssetHandle] = None


PHYSICS_TMX = """\
    <map width="2" height="2" tilewidth="16" tileheight="16">
     <objectgroup id="1" name="Bodies">
      <properties>
       <property name="physics" type="class" propertytype="avian::PhysicsSettings">
        <properties>
         <property name="body_type" propertytype="avian::BodyType" value="Dynamic"/>
        </properties>
       </property>
      </properties>
      <object id="1" x="0" y="0" width="8" height="8"/>
      <object id="2" x="8" y="8" width="8" height="8">
       <properties>
        <property name="physics" type="class" propertytype="avian::PhysicsSettings">
         <properties>
          <property name="friction" type="float" value="0.1"/>
         </properties>
        </property>
       </properties>
      </object>
      <object id="3" x="0" y="16"><text>hello</text></object>
     </objectgroup>
    </map>"""

LOOT_TMX = """\
    <map width="1" height="1" tilewidth="16" tileheight="16">
     <properties>
      <property name="loot" type="class" propertytype="game::Loot">
       <properties>
        <property name="icon" value="../art/icon.png"/>
       </properties>
      </property>
     </properties>
     <objectgroup id="1" name="Things">
      <object id="1" name="broken" x="0" y="0">
       <properties>
        <property name="loot" type="class" propertytype="game::Loot">
         <properties>
          <property name="icon" value="../../outside.png"/>
         </properties>
        </property>
       </properties>
      </object>
     </objectgroup>
    </map>"""

SMALL_TMX = """\
    <map width="1" height="1" tilewidth="16" tileheight="16">
     <layer id="1" name="Off" width="1" height="1" visible="0"><data encoding="csv">0</data></layer>
     <layer id="2" name="On" width="1" height="1"><data encoding="csv">0</data></layer>
    </map>"""


@pytest.fixture
def level(level_assets, server):
    return server.load_map("maps/level.tmx")


def _runtime(assets, registry, **kwargs):
    physics = kwargs.pop("physics", None)
    config = TiledConfig(asset_root=assets.root, load_images=False, **kwargs)
    return TiledRuntime(config, registry=registry, physics=physics)


class TestSpawn:
    def test_layer_tree(self, level, registry, server):
        spawned = spawn_map(level, registry, server)
        assert [(l.name, l.layer_type) for l in spawned.layers] == [
            ("Ground", LayerType.TILES),
            ("Gameplay", LayerType.GROUP),
            ("Sky", LayerType.IMAGE),
        ]
        gameplay = spawned.find_layer("Gameplay")
        assert gameplay.transform == (8.0, -4.0, 0.0)
        # the hidden layer inside the group is not spawned
        assert [child.name for child in gameplay.children] == ["Things"]
        assert spawned.find_layer("Hidden") is None
        assert spawned.find_layer("Ground").grid.tile_count == 7
        sky = spawned.find_layer("Sky")
        assert sky.image_path == "images/sky.png"
        assert sky.parallax == (0.5, 1.0)

    def test_z_order(self, level, registry):
        spawned = spawn_map(level, registry, z_config=LayerZConfig(offset=10.0, multiplier=2.0))
        depths = {l.name: l.z for l in spawned.iter_layers()}
        assert depths == {"Ground": 10.0, "Gameplay": 0.0, "Things": 12.0, "Sky": 14.0}

    def test_top_level_hidden_layers_are_spawned(self, assets, server, registry):
        assets.write("maps/small.tmx", SMALL_TMX)
        spawned = spawn_map(server.load_map("maps/small.tmx"), registry)
        off, on = spawned.layers
        assert not off.visible
        assert (off.z, on.z) == (0.0, 1.0)

    def test_objects(self, level, registry):
        spawned = spawn_map(level, registry)
        assert [o.name for o in spawned.objects()] == ["spawn", "zone", "ramp", "chest"]
        spawn_point = spawned.find_object(1).object
        assert spawn_point.shape == ObjectShape.POINT
        assert spawn_point.position == (32.0, -16.0, 0.0)
        zone = spawned.find_object(2).object
        assert zone.rotation == pytest.approx(math.pi / 2)
        assert spawned.find_object(3).object.vertices == [(0.0, 0.0), (16.0, 0.0), (16.0, 16.0)]
        chest = spawned.find_object(4).object
        assert chest.shape == ObjectShape.TILE
        assert chest.tile.local_id == 3
        assert chest.template == "templates/chest.tx"

    def test_components(self, level, registry, server):
        registry.register_class("Chest", Chest)
        spawned = spawn_map(level, registry, server)
        assert spawned.find_object(4).components == {"Chest": Chest(gold=50, locked=False)}
        assert spawned.find_object(1).components == {}

    def test_string_file_members_resolve_against_the_map(self, assets, server, registry, caplog):
        registry.register_class("game::Loot", Loot)
        assets.write("maps/loot.tmx", LOOT_TMX)
        with caplog.at_level("WARNING"):
            spawned = spawn_map(server.load_map("maps/loot.tmx"), registry, server)
        assert spawned.components["game::Loot"].icon == AssetHandle("art/icon.png")
        # the escaping path only drops that one component
        assert spawned.find_object(1).components == {}
        assert "Skipping property 'loot'" in caplog.text

    def test_events(self, level, registry):
        dispatcher = EventDispatcher()
        received = []
        for event_type in (MapSpawned, TileLayerSpawned, GroupLayerSpawned, ObjectLayerSpawned,
                           ObjectSpawned, ImageLayerSpawned):
            dispatcher.subscribe(event_type, received.append)

        spawned = MapSpawner(registry, dispatcher=dispatcher).spawn(level)
        assert received == spawned.events
        assert [type(e) for e in received] == [
            TileLayerSpawned, GroupLayerSpawned, ObjectLayerSpawned,
            ObjectSpawned, ObjectSpawned, ObjectSpawned, ObjectSpawned,
            ImageLayerSpawned, MapSpawned,
        ]
        assert received[0] == TileLayerSpawned("maps/level.tmx", 1, "Ground")
        assert received[7].image_path == "images/sky.png"
        assert [e.object_id for e in received if isinstance(e, ObjectSpawned)] == [1, 2, 3, 4]
        assert received[-1].target is spawned
        assert received[-1].properties["music"].value == "music/theme.ogg"

    def test_unsubscribe(self, level, registry):
        dispatcher = EventDispatcher()
        received = []
        dispatcher.subscribe(MapSpawned, received.append)
        dispatcher.unsubscribe(MapSpawned, received.append)
        MapSpawner(registry, dispatcher=dispatcher).spawn(level)
        assert received == []

    def test_respawn_builds_a_fresh_tree(self, level, registry):
        spawner = MapSpawner(registry)
        first = spawner.spawn(level)
        second = spawner.respawn(first)
        assert second is not first
        assert second.map is first.map
        assert second.find_object(1) is not first.find_object(1)
        assert [l.name for l in second.iter_layers()] == [l.name for l in first.iter_layers()]


class TestPhysicsPlugin:
    def test_level_colliders(self, level_assets, registry):
        runtime = _runtime(level_assets, registry, physics=PhysicsConfig())
        spawned = runtime.load_map("maps/level.tmx")

        ground = spawned.find_layer("Ground").colliders
        assert ground.strategy == TileColliderStrategy.COMPOUND_MERGED
        top_row = [p for p in ground.parts() if p.shape == RectangleShape(64, 16)]
        assert [p.position for p in top_row] == [(32.0, 40.0)]

        spawn_body = spawned.find_object(1).body
        assert spawn_body.shape == CircleShape(1.0)
        assert spawn_body.body_type == BodyType.Static
        chest_body = spawned.find_object(4).body
        assert chest_body.shape == RectangleShape(16, 16)
        assert chest_body.offset == (8.0, 8.0)
        assert chest_body.position == (48.0, -48.0)

    def test_tile_colliders_disabled(self, level_assets, registry):
        runtime = _runtime(level_assets, registry,
                           physics=PhysicsConfig().with_tile_colliders(False))
        spawned = runtime.load_map("maps/level.tmx")
        assert spawned.find_layer("Ground").colliders is None
        assert spawned.find_object(2).body is not None

    def test_settings_precedence(self, assets, registry):
        assets.write("maps/physics.tmx", PHYSICS_TMX)
        runtime = _runtime(assets, registry, physics=PhysicsConfig().with_friction(0.8))
        spawned = runtime.load_map("maps/physics.tmx")

        from_layer = spawned.find_object(1).body
        assert from_layer.body_type == BodyType.Dynamic
        assert from_layer.friction == 0.5
        from_object = spawned.find_object(2).body
        assert from_object.body_type == BodyType.Static
        assert from_object.friction == 0.1
        assert spawned.find_object(3).body is None

    def test_defaults_without_settings(self, level_assets, registry):
        runtime = _runtime(level_assets, registry, physics=PhysicsConfig().with_friction(0.8))
        body = runtime.load_map("maps/level.tmx").find_object(2).body
        assert body.friction == 0.8
        assert body.offset == (16.0, -8.0)

    def test_respawn_regenerates_bodies(self, level_assets, registry):
        runtime = _runtime(level_assets, registry, physics=PhysicsConfig())
        first = runtime.load_map("maps/level.tmx")
        second = runtime.respawn(first)
        assert second.find_object(1).body is not None
        assert second.find_object(1).body is not first.find_object(1).body


class TestRuntime:
    def test_start_freezes_and_exports(self, level_assets, registry, tmp_path):
        registry.register_class("Chest", Chest)
        types_path = tmp_path / "out" / "types.json"
        runtime = _runtime(level_assets, registry, export_types_path=types_path)
        assert not runtime.is_started

        runtime.load_map("maps/level.tmx")
        assert runtime.is_started
        assert registry.is_frozen
        assert [t["name"] for t in orjson.loads(types_path.read_bytes())] == ["Chest"]
        with pytest.raises(RegistryError):
            registry.register_class("Late", Chest)

    def test_physics_types_are_exported(self, level_assets, registry, tmp_path):
        types_path = tmp_path / "types.json"
        runtime = _runtime(level_assets, registry, export_types_path=types_path,
                           physics=PhysicsConfig())
        runtime.start()
        names = [t["name"] for t in orjson.loads(types_path.read_bytes())]
        assert names == ["avian::PhysicsSettings", "avian::BodyType"]

    def test_project_is_loaded_on_start(self, level_assets, registry):
        level_assets.write("game.tiled-project", orjson.dumps({"properties": [
            {"name": "title", "type": "string", "value": "Dungeon"}]}))
        runtime = _runtime(level_assets, registry, project_path="game.tiled-project")
        runtime.start()
        assert runtime.project.get_property("title").value == "Dungeon"

    def test_frozen_registry_without_physics_types(self, registry, caplog):
        registry.freeze()
        with caplog.at_level("WARNING"):
            runtime = TiledRuntime(registry=registry, physics=PhysicsConfig())
        assert runtime.physics is not None
        assert "physics defaults" in caplog.text

    def test_load_world(self, level_assets, registry):
        level_assets.write("maps/small.tmx", SMALL_TMX)
        level_assets.write("maps/overworld.world", orjson.dumps({"maps": [
            {"fileName": "level.tmx", "x": 0, "y": 0, "width": 64, "height": 48},
            {"fileName": "small.tmx", "x": 64, "y": 16},
        ]}))
        runtime = _runtime(level_assets, registry)
        world = runtime.load_world("maps/overworld.world")
        assert world.is_spawned
        assert [(m.path, m.position) for m in world.maps] == [
            ("maps/level.tmx", (0.0, -48.0)),
            ("maps/small.tmx", (64.0, -32.0)),
        ]
        assert world.find_map("maps/small.tmx").map.find_layer("On") is not None
        assert world.find_map("maps/nope.tmx") is None

    def test_release(self, level_assets, registry):
        runtime = _runtime(level_assets, registry)
        runtime.load_map("maps/level.tmx")
        runtime.release("maps/level.tmx")
        assert not runtime.server.is_loaded("maps/level.tmx")
