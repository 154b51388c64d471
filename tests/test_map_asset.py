import pytest

from tmx_runtime.assets.map import chunk_extent
from tmx_runtime.assets.server import LoadState
from tmx_runtime.errors import IoError, ParseError
from tmx_runtime.map.tiles import TileResolver

from conftest import TERRAIN_TSX


def _infinite_map(chunks):
    body = "".join(
        f'<chunk x="{x}" y="{y}" width="16" height="16">{",".join(["0"] * 255 + [str(gid)])}</chunk>'
        for x, y, gid in chunks
    )
    return f"""<map orientation="orthogonal" width="30" height="20" tilewidth="16"
        tileheight="16" infinite="1">
        <tileset firstgid="1" name="t" tilewidth="16" tileheight="16" tilecount="4" columns="2">
            <image source="t.png" width="32" height="32"/>
        </tileset>
        <layer id="1" name="L" width="30" height="20"><data encoding="csv">{body}</data></layer>
    </map>"""


class TestTileset:
    def test_catalog(self, level_assets, server):
        tileset = server.load_tileset("tilesets/terrain.tsx")
        assert tileset.name == "terrain"
        assert tileset.tile_count == 4
        assert tileset.grid_size == (2, 2)
        assert not tileset.is_image_collection
        assert tileset.image.path == "tilesets/terrain.png"
        assert tileset.image.size == (32, 32)
        assert tileset.properties["footsteps"].value == "sounds/grass.ogg"
        assert tileset.tile_collision(0)[0].width == 16
        assert tileset.tile_collision(3) == []
        assert tileset.tile_animation(2).total_duration_ms == 250
        assert tileset.tile_properties(2)["water"].value is True
        assert tileset.tile_rect(4) is None

    def test_collection_tile_count_covers_sparse_ids(self, assets, server):
        assets.write("tilesets/props.tsx", """\
            <tileset name="props" tilewidth="32" tileheight="32" tilecount="2" columns="0">
             <tile id="0"><image source="tree.png" width="32" height="32"/></tile>
             <tile id="7"><image source="rock.png" width="32" height="32"/></tile>
            </tileset>""")
        tileset = server.load_tileset("tilesets/props.tsx")
        assert tileset.is_image_collection
        assert tileset.grid_size == (0, 0)
        assert tileset.tile_count == 8
        assert tileset.tile_image_for(7).path == "tilesets/rock.png"
        assert tileset.tile_image_for(3) is None
        assert tileset.image_paths() == ["tilesets/tree.png", "tilesets/rock.png"]

    def test_columns_derived_from_image(self, assets, server):
        assets.write("tilesets/old.tsx", """\
            <tileset name="old" tilewidth="16" tileheight="16" margin="1" spacing="2">
             <image source="old.png" width="70" height="36"/>
             <tile id="9" class="Beyond"/>
            </tileset>""")
        tileset = server.load_tileset("tilesets/old.tsx")
        # (70 - 2 + 2) // 18 = 3 columns, (36 - 2 + 2) // 18 = 2 rows
        assert tileset.grid_size == (3, 2)
        assert tileset.tile_count == 6
        assert 9 not in tileset.tiles
        assert tileset.tile_rect(4) == (19, 19, 35, 35)


class TestMapAsset:
    def test_level(self, level_assets, server):
        level = server.load_map("maps/level.tmx")
        assert level.size == (4, 3)
        assert level.tile_size == (16, 16)
        assert level.bounds.max == (64.0, 48.0)
        assert level.offset == (0.0, 0.0)
        assert level.first_gids == [1]
        assert level.properties["music"].value == "music/theme.ogg"
        assert level.tilesets[0] is server.load_tileset("tilesets/terrain.tsx")
        assert set(level.layer_properties) == {1, 2, 3, 4, 5}
        assert level.image_for_layer(level.get_layer(5)).path == "images/sky.png"

    def test_template_merge(self, level_assets, server):
        level = server.load_map("maps/level.tmx")
        chest = level.objects[3][3]
        assert (chest.x, chest.y) == (48, 48)
        assert chest.name == "chest"
        assert chest.type == "Chest"
        assert chest.gid == 4
        assert chest.properties["gold"].value == 50
        assert chest.properties["locked"].value is False
        assert level.object_templates[4].path == "templates/chest.tx"
        assert level.object_properties[4] is chest.properties

    def test_grid(self, level_assets, server):
        level = server.load_map("maps/level.tmx")
        grid = level.layer_grid(level.get_layer_by_name("Ground"))
        assert (grid.width, grid.height) == (4, 3)
        assert grid.tile_count == 7
        flipped = grid.get(3, 2)
        assert flipped.local_id == 0
        assert flipped.flip_h and not flipped.flip_v
        assert grid.get(0, 2).local_id == 1
        assert grid.get(0, 1) is None

    def test_dependency_states(self, level_assets, server):
        server.load_map("maps/level.tmx")
        assert server.load_state("maps/level.tmx") == LoadState.LOADED
        assert server.recursive_state("maps/level.tmx") == LoadState.LOADED
        assert set(server.dependencies("maps/level.tmx")) == {
            "tilesets/terrain.tsx", "templates/chest.tx", "images/sky.png",
        }
        assert server.load_state("maps/other.tmx") == LoadState.NOT_LOADED

    def test_release_drops_unreferenced_dependencies(self, level_assets, server):
        server.load_map("maps/level.tmx")
        server.release("maps/level.tmx")
        assert server.load_state("maps/level.tmx") == LoadState.NOT_LOADED
        assert server.load_state("tilesets/terrain.tsx") == LoadState.NOT_LOADED
        assert server.loaded_paths() == []
        assert "tilesets/terrain.tsx" not in server.loader.cache

    def test_release_keeps_shared_dependencies(self, level_assets, server):
        level_assets.write("maps/other.tmx", """\
            <map width="1" height="1" tilewidth="16" tileheight="16">
             <tileset firstgid="1" source="../tilesets/terrain.tsx"/>
            </map>""")
        server.load_map("maps/level.tmx")
        server.load_map("maps/other.tmx")
        server.release("maps/level.tmx")
        assert server.load_state("templates/chest.tx") == LoadState.NOT_LOADED
        assert server.load_state("tilesets/terrain.tsx") == LoadState.LOADED
        assert server.is_loaded("maps/other.tmx")

    def test_missing_tileset_fails_the_map(self, assets, server):
        assets.write("maps/lonely.tmx", """\
            <map width="1" height="1" tilewidth="16" tileheight="16">
             <tileset firstgid="1" source="gone.tsx"/>
            </map>""")
        with pytest.raises(IoError):
            server.load_map("maps/lonely.tmx")
        assert server.load_state("maps/lonely.tmx") == LoadState.FAILED
        assert server.recursive_state("maps/lonely.tmx") == LoadState.FAILED

    def test_unexpected_error_fails_the_load(self, level_assets, server, monkeypatch):
        def broken(path):
            raise RuntimeError("disk on fire")

        with monkeypatch.context() as patch:
            patch.setattr(server.loader, "load_tileset", broken)
            with pytest.raises(RuntimeError):
                server.load_tileset("tilesets/terrain.tsx")
        assert server.load_state("tilesets/terrain.tsx") == LoadState.FAILED
        # a failed asset can be loaded again
        assert server.load_tileset("tilesets/terrain.tsx").name == "terrain"
        assert server.load_state("tilesets/terrain.tsx") == LoadState.LOADED

    def test_handle(self, level_assets, server):
        handle = server.handle("maps/../tilesets/terrain.tsx")
        assert handle.path == "tilesets/terrain.tsx"
        assert handle.get() is server.load_tileset("tilesets/terrain.tsx")


class TestInfiniteMaps:
    def test_negative_chunks(self, assets, server):
        assets.write("maps/inf.tmx", _infinite_map([(-16, -16, 1), (16, 0, 2)]))
        level = server.load_map("maps/inf.tmx")
        assert level.infinite
        assert chunk_extent(level.raw) == ((-1, -1), (1, 0))
        assert level.size == (48, 32)
        assert level.topleft_chunk == (-1, -1)
        assert level.chunk_origin == (-16, -16)
        assert level.offset == (256.0, 256.0)

        grid = level.layer_grid(level.raw.layers[0])
        assert (grid.width, grid.height) == (48, 32)
        # last cell of each chunk holds the tile
        assert grid.get(15, 15).local_id == 0
        assert grid.get(47, 31).local_id == 1
        assert grid.tile_count == 2

    def test_empty_infinite_map(self, assets, server):
        assets.write("maps/void.tmx", """\
            <map width="10" height="10" tilewidth="16" tileheight="16" infinite="1">
             <layer id="1" name="L" width="10" height="10"><data encoding="csv"></data></layer>
            </map>""")
        level = server.load_map("maps/void.tmx")
        assert level.size == (0, 0)
        assert level.offset == (0.0, 0.0)


class TestResolver:
    def test_out_of_range_gid_warns_once(self, assets, server, caplog):
        assets.write("tilesets/terrain.tsx", TERRAIN_TSX)
        tileset = server.load_tileset("tilesets/terrain.tsx")
        resolver = TileResolver([tileset], [1], "maps/x.tmx")
        assert resolver.resolve(0) is None
        assert resolver.resolve(4).local_id == 3
        with caplog.at_level("WARNING"):
            assert resolver.resolve(5) is None
            assert resolver.resolve(9) is None
            assert resolver.resolve(5) is None
        assert resolver.unresolved == 3
        assert len([r for r in caplog.records if "does not match" in r.getMessage()]) == 1

    def test_tileset_order_is_kept(self, assets, server):
        assets.write("tilesets/terrain.tsx", TERRAIN_TSX)
        tileset = server.load_tileset("tilesets/terrain.tsx")
        resolver = TileResolver([tileset, tileset], [5, 1])
        assert resolver.resolve(6).tileset_index == 0
        assert resolver.resolve(2).tileset_index == 1
        assert resolver.tileset_index_for(0) is None


def test_bad_layer_data(assets, server):
    assets.write("maps/short.tmx", """\
        <map width="2" height="2" tilewidth="16" tileheight="16">
         <layer id="1" name="L" width="2" height="2"><data encoding="csv">1,1,1</data></layer>
        </map>""")
    with pytest.raises(ParseError):
        server.load_map("maps/short.tmx")
