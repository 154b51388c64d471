"""
World assets (.world)

A Tiled world places several maps on one plane:

    {
        "type": "world",
        "maps": [
            {"fileName": "level1.tmx", "x": 0,   "y": 0, "width": 640, "height": 480},
            {"fileName": "level2.tmx", "x": 640, "y": 0, "width": 640, "height": 480}
        ],
        "onlyShowAdjacentMaps": false
    }

Positions are pixels, top-left origin, like everything Tiled writes.
"""

from dataclasses import dataclass
from typing import Any, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from ..errors import ParseError
from .paths import normalize_path


class WorldMapEntry(BaseModel):
    model_config = ConfigDict(extra="ignore")

    file_name: str = Field(validation_alias=AliasChoices("fileName", "filename"))
    x: int = 0
    y: int = 0
    width: Optional[int] = None
    height: Optional[int] = None


class WorldFile(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: Optional[str] = None
    maps: List[WorldMapEntry] = Field(default_factory=list)
    only_show_adjacent_maps: bool = Field(default=False, alias="onlyShowAdjacentMaps")


@dataclass
class WorldMap:
    """One map of a world; `asset` is filled in once the map is loaded."""
    path: str
    x: int
    y: int
    width: Optional[int] = None
    height: Optional[int] = None
    asset: Any = None


class WorldAsset:
    """
    A loaded world manifest.

    maps keeps file order. Map paths are normalized against the world
    file, so they can be loaded like any other asset path.
    """

    def __init__(self, path: str, maps: List[WorldMap], only_show_adjacent_maps: bool = False):
        self.path = path
        self.maps = maps
        self.only_show_adjacent_maps = only_show_adjacent_maps

    @classmethod
    def from_json(cls, path: str, payload: Any) -> 'WorldAsset':
        try:
            world = WorldFile.model_validate(payload)
        except ValidationError as e:
            raise ParseError(path, f"invalid world file ({e.error_count()} errors: "
                                   f"{e.errors()[0]['msg']})") from e
        maps = [
            WorldMap(path=normalize_path(path, entry.file_name), x=entry.x, y=entry.y,
                     width=entry.width, height=entry.height)
            for entry in world.maps
        ]
        return cls(path, maps, world.only_show_adjacent_maps)

    @property
    def map_paths(self) -> List[str]:
        return [m.path for m in self.maps]

    @property
    def is_loaded(self) -> bool:
        return all(m.asset is not None for m in self.maps)

    def __repr__(self):
        return f"WorldAsset({self.path!r}, maps={len(self.maps)})"
