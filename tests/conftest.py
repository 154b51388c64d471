"""Shared fixtures: asset trees written under tmp_path and tile grid builders."""

import array
import textwrap

import pytest

from tmx_manager import LayerData, MapObject, TileLayer
from tmx_runtime.assets.images import ImageAsset
from tmx_runtime.assets.server import AssetServer
from tmx_runtime.assets.tileset import TileData, TilesetAsset
from tmx_runtime.map.tiles import TileLayerGrid, TileResolver
from tmx_runtime.properties.registry import PropertyTypeRegistry


TERRAIN_TSX = """\
<?xml version="1.0" encoding="UTF-8"?>
<tileset version="1.10" name="terrain" tilewidth="16" tileheight="16" tilecount="4" columns="2">
 <properties>
  <property name="footsteps" type="file" value="../sounds/grass.ogg"/>
 </properties>
 <image source="terrain.png" width="32" height="32"/>
 <tile id="0" class="Wall">
  <objectgroup draworder="index">
   <object id="1" x="0" y="0" width="16" height="16"/>
  </objectgroup>
 </tile>
 <tile id="1">
  <objectgroup draworder="index">
   <object id="1" x="0" y="8" width="16" height="8"/>
  </objectgroup>
 </tile>
 <tile id="2">
  <properties>
   <property name="water" type="bool" value="true"/>
  </properties>
  <animation>
   <frame tileid="2" duration="100"/>
   <frame tileid="3" duration="150"/>
  </animation>
 </tile>
</tileset>
"""

CHEST_TX = """\
<?xml version="1.0" encoding="UTF-8"?>
<template>
 <tileset firstgid="1" source="../tilesets/terrain.tsx"/>
 <object name="chest" type="Chest" gid="4" width="16" height="16">
  <properties>
   <property name="gold" type="int" value="10"/>
   <property name="locked" type="bool" value="false"/>
  </properties>
 </object>
</template>
"""

LEVEL_TMX = """\
<?xml version="1.0" encoding="UTF-8"?>
<map version="1.10" orientation="orthogonal" renderorder="right-down" width="4" height="3"
     tilewidth="16" tileheight="16" infinite="0" nextlayerid="6" nextobjectid="5">
 <properties>
  <property name="music" type="file" value="../music/theme.ogg"/>
 </properties>
 <tileset firstgid="1" source="../tilesets/terrain.tsx"/>
 <layer id="1" name="Ground" width="4" height="3">
  <data encoding="csv">
1,1,1,1,
0,0,0,0,
2,0,3,2147483649
</data>
 </layer>
 <group id="2" name="Gameplay" offsetx="8" offsety="4">
  <objectgroup id="3" name="Things">
   <object id="1" name="spawn" x="32" y="16"><point/></object>
   <object id="2" name="zone" x="0" y="0" width="32" height="16" rotation="90"/>
   <object id="3" name="ramp" x="16" y="32">
    <polygon points="0,0 16,0 16,-16"/>
   </object>
   <object id="4" template="../templates/chest.tx" x="48" y="48">
    <properties>
     <property name="gold" type="int" value="50"/>
    </properties>
   </object>
  </objectgroup>
  <layer id="4" name="Hidden" width="4" height="3" visible="0">
   <data encoding="csv">
0,0,0,0,
0,0,0,0,
0,0,0,0
</data>
  </layer>
 </group>
 <imagelayer id="5" name="Sky" parallaxx="0.5">
  <image source="../images/sky.png" width="64" height="48"/>
 </imagelayer>
</map>
"""


class AssetTree:
    """Writes files below a temporary asset root."""

    def __init__(self, root):
        self.root = root

    def write(self, path: str, content):
        target = self.root.joinpath(*path.split("/"))
        target.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            target.write_bytes(content)
        else:
            target.write_text(textwrap.dedent(content), encoding="utf-8")
        return target


@pytest.fixture
def assets(tmp_path):
    return AssetTree(tmp_path / "assets")


@pytest.fixture
def level_assets(assets):
    """A small level: one external tileset, a template and an image layer."""
    assets.write("tilesets/terrain.tsx", TERRAIN_TSX)
    assets.write("templates/chest.tx", CHEST_TX)
    assets.write("maps/level.tmx", LEVEL_TMX)
    return assets


@pytest.fixture
def server(assets):
    return AssetServer(assets.root, load_images=False)


@pytest.fixture
def registry():
    return PropertyTypeRegistry()


# =============================================================================
# GRID BUILDERS
# =============================================================================

def rect_object(x, y, width, height, rotation=0.0, obj_id=1) -> MapObject:
    return MapObject(id=obj_id, x=x, y=y, width=width, height=height, rotation=rotation)


def make_tileset(collisions, tile_size=(16, 16), tile_count=None) -> TilesetAsset:
    """Atlas tileset whose tile i has the collision objects collisions[i]."""
    tiles = {
        local_id: TileData(local_id=local_id, collision=list(objects))
        for local_id, objects in collisions.items()
    }
    count = tile_count if tile_count is not None else max(collisions, default=-1) + 1
    atlas = ImageAsset("tiles.png", tile_size[0] * 4, tile_size[1] * 4)
    return TilesetAsset("tiles.tsx", "tiles", tile_size, columns=4, tile_count=count,
                        image=atlas, tiles=tiles)


def make_layer(rows, layer_id=1, name="Ground") -> TileLayer:
    height = len(rows)
    width = len(rows[0]) if rows else 0
    data = LayerData(encoding="csv", tiles=array.array("I", [g for row in rows for g in row]))
    return TileLayer(name=name, width=width, height=height, id=layer_id, data=data)


def make_grid(rows, tileset, first_gid=1) -> TileLayerGrid:
    layer = make_layer(rows)
    resolver = TileResolver([tileset], [first_gid], "test.tmx")
    return TileLayerGrid.from_layer(layer, resolver, (layer.width, layer.height))


def cells(width, height, filled, gid=1):
    """rows of `height` x `width` GIDs with `gid` at every (x, y) in filled."""
    rows = [[0] * width for _ in range(height)]
    for x, y in filled:
        rows[y][x] = gid
    return rows
