import enum
from dataclasses import dataclass, field
from typing import Annotated, Optional

import orjson
import pytest

from tmx_manager import Color, Property
from tmx_runtime.assets.server import AssetHandle
from tmx_runtime.errors import MissingFieldError, PropertyConversionError, RegistryError
from tmx_runtime.properties.deserialize import PropertyDeserializer, color_to_linear
from tmx_runtime.properties.registry import (
    FieldKind, LinearRgba, TiledRef, UInt, Variant, Vec2, tiled_class, tiled_enum,
)


class Direction(enum.Enum):
    North = 0
    South = 1
    East = 2
    West = 3


@dataclass
class Melee:
    damage: int = 1


@dataclass
class Projectile:
    speed: float
    damage: int
    piercing: bool = False


@dataclass
class Health:
    max: int = 100
    regen: Optional[float] = None
    tint: Optional[LinearRgba] = None


@dataclass
class Enemy:
    health: Health = field(default_factory=Health)
    facing: Direction = Direction.South
    attack: Annotated[object, TiledRef("game::Attack")] = None
    level: UInt = 1
    spawn: Vec2 = Vec2(0.0, 0.0)
    icon: Optional[AssetHandle] = None


@pytest.fixture
def game_registry(registry):
    registry.register_enum("game::Direction", Direction)
    registry.register_complex_enum("game::Attack", [
        Variant.unit("None"),
        Variant.struct("Melee", Melee),
        Variant.struct("Projectile", Projectile),
        Variant.tuple("Teleport", lambda x, y: ("teleport", x, y), float, float),
    ], default="None")
    registry.register_class("game::Health", Health)
    registry.register_class("game::Enemy", Enemy)
    return registry


def _class(name, property_type, *members):
    return Property(name, "class", {m.name: m for m in members}, property_type)


class TestRegistry:
    def test_field_kinds(self, game_registry):
        kinds = {f.name: f.type for f in game_registry.get_class("game::Enemy").fields}
        assert kinds["health"].kind == FieldKind.CLASS
        assert kinds["health"].name == "game::Health"
        assert kinds["facing"].kind == FieldKind.ENUM
        assert kinds["attack"].name == "game::Attack"
        assert kinds["level"].kind == FieldKind.UINT
        assert kinds["spawn"].kind == FieldKind.VEC2
        assert kinds["icon"].kind == FieldKind.FILE
        assert kinds["icon"].optional

    def test_names_are_unique_across_kinds(self, game_registry):
        with pytest.raises(RegistryError, match="already registered"):
            game_registry.register_class("game::Direction", Melee)

    def test_frozen(self, game_registry):
        game_registry.freeze()
        with pytest.raises(RegistryError, match="frozen"):
            game_registry.register_class("game::Melee", Melee)

    def test_unknown_field_type(self, registry):
        @dataclass
        class Holder:
            value: complex = 0j

        with pytest.raises(RegistryError, match="unsupported field type"):
            registry.register_class("Holder", Holder)

    def test_decorators(self, registry):
        @tiled_enum("ui::Align", registry)
        class Align(enum.Enum):
            Left = "l"
            Right = "r"

        @tiled_class("ui::Label", registry)
        @dataclass
        class Label:
            align: Align = Align.Left

        assert registry.name_for_type(Label) == "ui::Label"
        assert "ui::Align" in registry

    def test_complex_enum_default_must_exist(self, registry):
        with pytest.raises(RegistryError):
            registry.register_complex_enum("Bad", [Variant.unit("A")], default="B")


class TestDeserializer:
    def test_simple_enum(self, game_registry):
        prop = Property("dir", "string", "East", "game::Direction")
        assert PropertyDeserializer(game_registry).deserialize_property(prop) is Direction.East

    @pytest.mark.parametrize("name", ["Up", "north"])
    def test_unknown_variant(self, game_registry, name):
        prop = Property("dir", "string", name, "game::Direction")
        with pytest.raises(PropertyConversionError, match="not a variant"):
            PropertyDeserializer(game_registry).deserialize_property(prop)

    def test_complex_enum_struct_variant(self, game_registry):
        prop = _class("attack", "game::Attack",
                      Property(":variant", "string", "Projectile", "game::Attack:::variant"),
                      Property("speed", "float", 3.5),
                      Property("damage", "int", 7),
                      Property("piercing", "bool", True))
        value = PropertyDeserializer(game_registry).deserialize_property(prop)
        assert value == Projectile(speed=3.5, damage=7, piercing=True)

    def test_complex_enum_tuple_and_unit(self, game_registry):
        deserializer = PropertyDeserializer(game_registry)
        teleport = _class("attack", "game::Attack",
                          Property(":variant", "string", "Teleport"),
                          Property("0", "float", 1.0), Property("1", "int", 2))
        assert deserializer.deserialize_property(teleport) == ("teleport", 1.0, 2.0)
        # a value left at its default is written without members
        assert deserializer.deserialize_property(_class("attack", "game::Attack")) == "None"

    def test_complex_enum_without_variant_is_rejected(self, game_registry, caplog):
        prop = _class("attack", "game::Attack", Property("damage", "int", 7))
        deserializer = PropertyDeserializer(game_registry)
        with pytest.raises(PropertyConversionError, match="missing :variant") as info:
            deserializer.deserialize_property(prop)
        assert info.value.field == ":variant"
        with caplog.at_level("WARNING"):
            assert deserializer.attach_components({"attack": prop}) == {}
        assert "Skipping property 'attack'" in caplog.text

    def test_complex_enum_missing_field(self, game_registry):
        prop = _class("attack", "game::Attack",
                      Property(":variant", "string", "Projectile"),
                      Property("speed", "float", 3.5))
        with pytest.raises(MissingFieldError) as info:
            PropertyDeserializer(game_registry).deserialize_property(prop)
        assert info.value.field == "damage"

    def test_nested_class_with_defaults(self, game_registry, server):
        enemy = {
            "health": _class("health", "game::Health", Property("max", "int", 250),
                             Property("tint", "color", Color(255, 255, 255, 255))),
            "facing": Property("facing", "string", "West", "game::Direction"),
            "level": Property("level", "int", 3),
            "spawn": Property("spawn", "string", "4.5, -2"),
            "icon": Property("icon", "file", "icons/slime.png"),
        }
        value = PropertyDeserializer(game_registry, server).deserialize_class("game::Enemy", enemy)
        assert value.health.max == 250
        assert value.health.regen is None
        assert value.health.tint == LinearRgba(1.0, 1.0, 1.0, 1.0)
        assert value.facing is Direction.West
        assert value.attack is None
        assert value.level == 3
        assert value.spawn == Vec2(4.5, -2.0)
        assert value.icon == AssetHandle("icons/slime.png")
        assert value.icon.server is server

    def test_string_file_value_is_relative_to_its_file(self, game_registry, server):
        deserializer = PropertyDeserializer(game_registry, server, "maps/m.tmx")
        bag = {"icon": Property("icon", "string", "../art/icon.png")}
        enemy = deserializer.deserialize_class("game::Enemy", bag)
        assert enemy.icon == AssetHandle("art/icon.png")
        # file-typed values were normalized by the loader already
        bag = {"icon": Property("icon", "file", "icons/slime.png")}
        assert deserializer.deserialize_class("game::Enemy", bag).icon == AssetHandle("icons/slime.png")

    @pytest.mark.parametrize("prop", [
        Property("icon", "string", "../../outside.png"),
        Property("icon", "file", "/etc/passwd"),
    ])
    def test_invalid_asset_path_is_a_conversion_error(self, game_registry, prop):
        deserializer = PropertyDeserializer(game_registry, context="maps/m.tmx")
        with pytest.raises(PropertyConversionError, match="invalid asset path") as info:
            deserializer.deserialize_class("game::Enemy", {"icon": prop})
        assert info.value.field == "icon"

    def test_empty_optional_is_none(self, game_registry):
        bag = {"regen": Property("regen", "float", "")}
        assert PropertyDeserializer(game_registry).deserialize_class("game::Health", bag).regen is None

    @pytest.mark.parametrize("prop", [
        Property("level", "int", -1),
        Property("level", "string", "3"),
        Property("spawn", "string", "1,2,3"),
        Property("facing", "int", 2),
    ])
    def test_conversion_errors(self, game_registry, prop):
        with pytest.raises(PropertyConversionError):
            PropertyDeserializer(game_registry).deserialize_class("game::Enemy", {prop.name: prop})

    def test_srgb_to_linear(self):
        color = color_to_linear(Color(128, 0, 255, 255))
        assert color.r == pytest.approx(0.2158605, abs=1e-6)
        assert color.g == 0.0
        assert color.b == pytest.approx(1.0)


class TestAttachComponents:
    def test_registered_types_become_components(self, game_registry, caplog):
        properties = {
            "hp": _class("hp", "game::Health", Property("max", "int", 10)),
            "dir": Property("dir", "string", "North", "game::Direction"),
            "other": _class("other", "mod::Unknown"),
            "plain": Property("plain", "int", 5),
        }
        with caplog.at_level("DEBUG", logger="tmx_runtime.properties.deserialize"):
            components = PropertyDeserializer(game_registry).attach_components(properties)
        assert components == {"game::Health": Health(max=10), "game::Direction": Direction.North}
        assert "unregistered type 'mod::Unknown'" in caplog.text

    def test_malformed_value_is_skipped(self, game_registry, caplog):
        properties = {
            "hp": _class("hp", "game::Health", Property("max", "string", "lots")),
            "dir": Property("dir", "string", "South", "game::Direction"),
        }
        with caplog.at_level("WARNING"):
            components = PropertyDeserializer(game_registry).attach_components(properties)
        assert components == {"game::Direction": Direction.South}
        assert "Skipping property 'hp'" in caplog.text

    def test_object_class_takes_whole_bag(self, game_registry):
        properties = {"max": Property("max", "int", 42), "regen": Property("regen", "float", 0.5)}
        components = PropertyDeserializer(game_registry).attach_components(properties, "game::Health")
        assert components["game::Health"] == Health(max=42, regen=0.5)


class TestExport:
    def test_layout(self, game_registry):
        from tmx_runtime.properties.export import build_property_types

        entries = build_property_types(game_registry)
        assert [(e["id"], e["name"], e["type"]) for e in entries] == [
            (1, "game::Attack", "class"),
            (2, "game::Enemy", "class"),
            (3, "game::Health", "class"),
            (4, "game::Attack:::variant", "enum"),
            (5, "game::Direction", "enum"),
        ]
        assert list(entries[0]) == ["color", "drawFill", "id", "members", "name", "type", "useAs"]
        assert entries[4]["values"] == ["North", "South", "East", "West"]
        assert entries[3]["values"] == ["None", "Melee", "Projectile", "Teleport"]

    def test_complex_enum_members(self, game_registry):
        from tmx_runtime.properties.export import build_property_types

        attack = build_property_types(game_registry)[0]
        assert attack["members"][0] == {
            "name": ":variant", "propertyType": "game::Attack:::variant",
            "type": "string", "value": "None",
        }
        assert [m["name"] for m in attack["members"]] == [
            ":variant", "damage", "speed", "piercing", "0", "1"]

    def test_member_defaults(self, game_registry):
        from tmx_runtime.properties.export import build_property_types

        enemy = {m["name"]: m for m in build_property_types(game_registry)[1]["members"]}
        assert enemy["health"] == {"name": "health", "propertyType": "game::Health",
                                   "type": "class", "value": {}}
        assert enemy["facing"]["value"] == "South"
        assert enemy["attack"]["type"] == "class"
        assert enemy["level"] == {"name": "level", "type": "int", "value": 1}
        assert enemy["spawn"]["value"] == "0,0"
        assert enemy["icon"] == {"name": "icon", "type": "file", "value": ""}

    def test_export_is_deterministic(self, game_registry, tmp_path):
        from tmx_runtime.properties.export import export_types_json, export_types_to_json

        path = tmp_path / "types.json"
        export_types_to_json(game_registry, path)
        first = path.read_bytes()
        export_types_to_json(game_registry, path)
        assert path.read_bytes() == first == export_types_json(game_registry)
        assert first.startswith(b'[\n  {\n    "color"')

    def test_ids_survive_reexport(self, registry, tmp_path):
        from tmx_runtime.properties.export import export_types_to_json

        path = tmp_path / "types.json"
        path.write_bytes(orjson.dumps([{"id": 7, "name": "game::Direction"}]))
        registry.register_enum("game::Direction", Direction)
        registry.register_class("game::Melee", Melee)
        ids = {e["name"]: e["id"] for e in export_types_to_json(registry, path)}
        assert ids == {"game::Direction": 7, "game::Melee": 1}

    def test_project_merge_keeps_manual_types(self, game_registry, tmp_path):
        from tmx_runtime.properties.export import export_to_tiled_project

        project_path = tmp_path / "game.tiled-project"
        project_path.write_bytes(orjson.dumps({
            "folders": ["."],
            "propertyTypes": [
                {"id": 1, "name": "editor::Note", "type": "class", "members": []},
                {"id": 9, "name": "game::Health", "type": "class", "members": []},
            ],
        }))
        project = export_to_tiled_project(game_registry, project_path)
        by_name = {t["name"]: t["id"] for t in project["propertyTypes"]}
        assert by_name["editor::Note"] == 1
        assert by_name["game::Health"] == 9
        assert sorted(by_name.values()) == [1, 2, 3, 4, 5, 9]
        assert project["folders"] == ["."]
        assert orjson.loads(project_path.read_bytes()) == project

    def test_new_project_skeleton(self, game_registry, tmp_path):
        from tmx_runtime.properties.export import export_to_tiled_project

        project = export_to_tiled_project(game_registry, tmp_path / "new" / "game.tiled-project")
        assert project["compatibilityVersion"] == 1100
        assert len(project["propertyTypes"]) == 5

    def test_exported_enum_values_deserialize(self, game_registry, tmp_path):
        from tmx_runtime.assets.project import ProjectProperties
        from tmx_runtime.properties.export import export_to_tiled_project

        path = tmp_path / "game.tiled-project"
        payload = orjson.loads(orjson.dumps(export_to_tiled_project(game_registry, path)))
        project = ProjectProperties.from_json(str(path), payload)
        deserializer = PropertyDeserializer(game_registry)
        values = project.get_enum("game::Direction").values
        assert [
            deserializer.deserialize_property(Property("dir", "string", v, "game::Direction"))
            for v in values
        ] == list(Direction)
        variant_default = project.get_member_value("game::Attack", ":variant")
        attack = _class("attack", "game::Attack", Property(":variant", "string", variant_default))
        assert deserializer.deserialize_property(attack) == "None"

    def test_color_hex_round_trip(self):
        from tmx_runtime.properties.export import color_to_hex

        assert color_to_hex(color_to_linear(Color(128, 64, 255, 200))) == "#c88040ff"
