"""
Raw file access and the shared resource cache

=============================================================================
LOADING LAYERS
=============================================================================

    RawLoader                    reads bytes below the asset root and hands
        │                        them to tmx_manager / orjson
        ▼
    ResourceCache                keeps parsed .tsx and .tx files so that a
        │                        tileset used by ten maps is parsed once
        ▼
    tmx_manager.TiledMap etc.    raw dataclasses, one-to-one with the XML

Everything above this module works with root-relative asset paths only.
The loader is the single place where such a path becomes a filesystem
path, so it is also where escaping the root is refused.

=============================================================================
"""

import logging
import threading
from pathlib import Path
from typing import Any, Callable, Dict, Optional, TypeVar, Union

import orjson

from tmx_manager import Template, TiledMap, Tileset, TmxFormatError

from ..errors import IoError, ParseError
from .paths import canonicalize

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ResourceCache:
    """
    Parsed tilesets and templates shared across map loads.

    The lock is held for the whole read-and-parse of a missing entry, so
    two maps loading the same .tsx concurrently still parse it once.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._tilesets: Dict[str, Tileset] = {}
        self._templates: Dict[str, Template] = {}

    def _get_or_parse(self, table: Dict[str, T], path: str,
                      parse: Callable[[], T]) -> T:
        with self._lock:
            cached = table.get(path)
            if cached is not None:
                logger.debug("Cache hit for %s", path)
                return cached
            value = parse()
            table[path] = value
            return value

    def tileset(self, path: str, parse: Callable[[], Tileset]) -> Tileset:
        return self._get_or_parse(self._tilesets, path, parse)

    def template(self, path: str, parse: Callable[[], Template]) -> Template:
        return self._get_or_parse(self._templates, path, parse)

    def release(self, path: str):
        """Drop a cached entry (next request parses the file again)."""
        with self._lock:
            self._tilesets.pop(path, None)
            self._templates.pop(path, None)

    def clear(self):
        with self._lock:
            self._tilesets.clear()
            self._templates.clear()

    def __contains__(self, path: str) -> bool:
        with self._lock:
            return path in self._tilesets or path in self._templates

    def __len__(self) -> int:
        with self._lock:
            return len(self._tilesets) + len(self._templates)


class RawLoader:
    """
    Reads Tiled artifacts from a directory tree.

    Parameters:
    -----------
    root : str or Path
        The asset root; every path passed to the loader is relative to it
    cache : ResourceCache, optional
        Shared cache (a private one is created if omitted)
    """

    def __init__(self, root: Union[str, Path], cache: Optional[ResourceCache] = None):
        self.root = Path(root)
        self.cache = cache if cache is not None else ResourceCache()

    def resolve(self, path: str) -> Path:
        """Map a root-relative asset path to a filesystem path."""
        return self.root.joinpath(*canonicalize(path).split("/"))

    def read_bytes(self, path: str) -> bytes:
        try:
            return self.resolve(path).read_bytes()
        except OSError as e:
            raise IoError(path, e.strerror or str(e)) from e

    def _parse(self, path: str, parse: Callable[[bytes, str], T]) -> T:
        data = self.read_bytes(path)
        try:
            return parse(data, path)
        except TmxFormatError as e:
            raise ParseError(path, e.reason) from e

    def load_map(self, path: str) -> TiledMap:
        """Parse a .tmx file (maps are not cached, MapAsset owns them)."""
        raw = self._parse(path, TiledMap.parse)
        logger.debug("Parsed map %s (%d tilesets, %d layers)",
                     path, len(raw.tilesets), len(raw.layers))
        return raw

    def load_tileset(self, path: str) -> Tileset:
        """Parse a .tsx file, at most once while it stays cached."""
        return self.cache.tileset(path, lambda: self._parse(path, Tileset.parse))

    def load_template(self, path: str) -> Template:
        """Parse a .tx file, at most once while it stays cached."""
        return self.cache.template(path, lambda: self._parse(path, Template.parse))

    def load_json(self, path: str) -> Any:
        """Read a JSON document (.world, .tiled-project, exported types)."""
        data = self.read_bytes(path)
        try:
            return orjson.loads(data)
        except orjson.JSONDecodeError as e:
            raise ParseError(path, str(e)) from e
