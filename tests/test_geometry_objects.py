import math

import pytest

from tmx_manager import MapObject, SHAPE_POLYGON, SHAPE_TEXT, Text
from tmx_runtime.map.geometry import MapGeometry, Rect
from tmx_runtime.map.objects import ObjectNormalizer, ObjectShape
from tmx_runtime.map.tiles import TileResolver, split_gid

from conftest import make_tileset


class TestGeometry:
    geometry = MapGeometry((10, 8), (16, 16))

    def test_bounds(self):
        assert self.geometry.bounds == Rect((0.0, 0.0), (160.0, 128.0))

    def test_tile_to_world_is_center_with_y_flipped(self):
        assert self.geometry.tile_to_world(0, 0) == (8.0, 120.0)
        assert self.geometry.tile_to_world(9, 7) == (152.0, 8.0)
        assert self.geometry.tile_to_world(10, 0) is None

    def test_world_to_tile(self):
        assert self.geometry.world_to_tile(8.0, 120.0) == (0, 0)
        assert self.geometry.world_to_tile(0.0, 0.0) == (0, 7)
        assert self.geometry.world_to_tile(159.9, 127.9) == (9, 0)
        assert self.geometry.world_to_tile(160.0, 10.0) is None
        assert self.geometry.world_to_tile(-0.1, 10.0) is None

    @pytest.mark.parametrize("tx,ty", [(0, 0), (3, 5), (9, 7)])
    def test_round_trip(self, tx, ty):
        assert self.geometry.world_to_tile(*self.geometry.tile_to_world(tx, ty)) == (tx, ty)

    @pytest.mark.parametrize("point", [(0.0, 0.0), (3.2, 127.5), (47.9, 60.1), (159.99, 0.01), (100.0, 64.0)])
    def test_world_point_stays_in_its_tile(self, point):
        tile = self.geometry.world_to_tile(*point)
        rect = self.geometry.tile_rect(*tile)
        assert rect.contains(point)
        assert rect.contains(self.geometry.tile_to_world(*tile))
        assert self.geometry.world_to_tile(*self.geometry.tile_to_world(*tile)) == tile

    def test_tile_rect(self):
        rect = self.geometry.tile_rect(2, 7)
        assert rect == Rect((32.0, 0.0), (48.0, 16.0))
        assert rect.center == (40.0, 8.0)
        assert self.geometry.tile_rect(-1, 0) is None

    def test_empty_map(self):
        geometry = MapGeometry((0, 0), (16, 16))
        assert geometry.world_to_tile(0.0, 0.0) is None
        assert geometry.tile_to_world(0, 0) is None


def test_split_gid():
    assert split_gid(0xA0000005) == (5, True, False, True)
    assert split_gid(0x40000001) == (1, False, True, False)


class TestObjectNormalizer:
    tileset = make_tileset({0: [], 1: []}, tile_count=4)
    normalizer = ObjectNormalizer(TileResolver([tileset], [1], "test.tmx"))

    def test_rectangle(self):
        obj = self.normalizer.normalize(
            MapObject(id=1, name="zone", type="Trigger", x=10, y=20, width=30, height=40,
                      rotation=90), layer_id=3)
        assert obj.shape == ObjectShape.RECTANGLE
        assert obj.position == (10, -20, 0.0)
        assert obj.rotation == pytest.approx(math.pi / 2)
        assert obj.size == (30, 40)
        assert obj.layer_id == 3
        assert obj.type == "Trigger"

    def test_polygon_vertices_flip_y(self):
        obj = self.normalizer.normalize(MapObject(id=2, x=0, y=0, shape=SHAPE_POLYGON,
                                                  points=[(0, 0), (16, 0), (16, 16)]))
        assert obj.shape == ObjectShape.POLYGON
        assert obj.vertices == [(0.0, 0.0), (16.0, 0.0), (16.0, -16.0)]

    def test_tile_object(self):
        obj = self.normalizer.normalize(MapObject(id=3, gid=0x80000002, width=16, height=16))
        assert obj.shape == ObjectShape.TILE
        assert obj.tile.local_id == 1
        assert obj.tile.flip_h

    def test_unresolved_tile_falls_back_to_rectangle(self, caplog):
        with caplog.at_level("WARNING"):
            obj = self.normalizer.normalize(MapObject(id=4, gid=99, width=16, height=16))
        assert obj.shape == ObjectShape.RECTANGLE
        assert obj.tile is None
        assert "does not resolve" in caplog.text

    def test_text(self):
        obj = self.normalizer.normalize(MapObject(id=5, shape=SHAPE_TEXT, text=Text("hi")))
        assert obj.shape == ObjectShape.TEXT
        assert obj.text.text == "hi"


def test_template_tile_object_uses_template_tileset(level_assets, server):
    level = server.load_map("maps/level.tmx")
    normalizer = ObjectNormalizer.for_map(level)
    chest = normalizer.normalize(level.objects[3][3], layer_id=3)
    assert chest.shape == ObjectShape.TILE
    assert chest.tile.tileset_index == -1
    assert chest.tile.local_id == 3
    assert chest.position == (48, -48, 0.0)
