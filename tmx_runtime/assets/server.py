"""
Asset server: loads assets with their dependencies and tracks their state

=============================================================================
DEPENDENCY GRAPH
=============================================================================

    level1.world
    ├── maps/level1.tmx
    │   ├── tilesets/dungeon.tsx
    │   │   └── tilesets/dungeon.png
    │   ├── templates/chest.tx
    │   │   └── tilesets/items.tsx
    │   │       └── tilesets/items.png
    │   └── images/sky.png            (image layer)
    └── maps/level2.tmx
        └── tilesets/dungeon.tsx      (shared: loaded once)

Each node has a LoadState. An asset is ready for spawning only when its
recursive state is LOADED, i.e. the asset AND everything below it loaded.
Loading is synchronous: load_map() returns once the whole subtree is in.

Dropping an asset with release() also drops every dependency that no
other loaded asset still uses.

=============================================================================
"""

import dataclasses
import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Set, Union

from tmx_manager import Image, ImageLayer

from ..errors import TiledError
from .images import ImageAsset, load_image
from .loader import RawLoader, ResourceCache
from .map import MapAsset
from .paths import canonicalize, normalize_path, normalize_properties
from .project import ProjectProperties
from .template import TemplateAsset
from .tileset import TilesetAsset
from .world import WorldAsset

logger = logging.getLogger(__name__)


class LoadState(Enum):
    NOT_LOADED = "not_loaded"
    LOADING = "loading"
    LOADED = "loaded"
    FAILED = "failed"


@dataclass
class AssetHandle:
    """
    Reference to an asset by path, resolved on demand.

    File-typed properties deserialize into handles, so referencing a large
    file from a property costs nothing until someone calls get().
    """
    path: str
    server: Optional['AssetServer'] = field(default=None, compare=False, repr=False)

    def get(self) -> Any:
        if self.server is None:
            raise TiledError(f"handle {self.path!r} is not bound to an asset server")
        return self.server.load(self.path)


class AssetServer:
    """
    Loads and owns every asset below one asset root.

    Parameters:
    -----------
    root : str or Path
        Asset root directory
    cache : ResourceCache, optional
        Shared parse cache for .tsx/.tx files
    load_images : bool
        Decode images with Pillow (False keeps only their declared size)
    """

    def __init__(self, root: Union[str, Path], cache: Optional[ResourceCache] = None,
                 load_images: bool = True):
        self.loader = RawLoader(root, cache)
        self.load_images = load_images
        self._lock = threading.RLock()
        self._assets: Dict[str, Any] = {}
        self._states: Dict[str, LoadState] = {}
        self._dependencies: Dict[str, List[str]] = {}

    @property
    def root(self) -> Path:
        return self.loader.root

    # =========================================================================
    # LOADING
    # =========================================================================

    def _load(self, path: str, build: Callable[[List[str]], Any]) -> Any:
        """Load `path` once; `build` appends the paths it depends on to its argument."""
        path = canonicalize(path)
        with self._lock:
            if self._states.get(path) == LoadState.LOADED:
                return self._assets[path]

            self._states[path] = LoadState.LOADING
            dependencies: List[str] = []
            try:
                asset = build(dependencies)
            except Exception:
                self._states[path] = LoadState.FAILED
                self._dependencies[path] = dependencies
                raise

            self._assets[path] = asset
            self._dependencies[path] = dependencies
            self._states[path] = LoadState.LOADED
            return asset

    def load(self, path: str) -> Any:
        """Load any asset, dispatching on the file extension."""
        suffix = Path(path).suffix.lower()
        if suffix == '.tmx':
            return self.load_map(path)
        if suffix == '.tsx':
            return self.load_tileset(path)
        if suffix == '.tx':
            return self.load_template(path)
        if suffix == '.world':
            return self.load_world(path)
        if suffix == '.tiled-project':
            return self.load_project(path)
        return self.load_image(path)

    def handle(self, path: str) -> AssetHandle:
        return AssetHandle(canonicalize(path), self)

    def load_image(self, path: str, image: Optional[Image] = None) -> ImageAsset:
        """Load an image; `image` is the Tiled <image> element that named it."""
        def build(deps):
            return load_image(
                self.loader, path,
                trans=image.trans if image else None,
                decode=self.load_images,
                width=image.width if image else None,
                height=image.height if image else None,
            )
        return self._load(path, build)

    def _tileset_from_raw(self, raw, key: str, context: str, deps: List[str]) -> TilesetAsset:
        def load_tile_image(image_path: str, image: Image) -> ImageAsset:
            deps.append(image_path)
            return self.load_image(image_path, image)
        return TilesetAsset.from_raw(raw, key, context, load_tile_image)

    def load_tileset(self, path: str) -> TilesetAsset:
        """Load an external .tsx tileset (shared by every map using it)."""
        def build(deps):
            raw = self.loader.load_tileset(path)
            return self._tileset_from_raw(raw, path, path, deps)
        return self._load(path, build)

    def load_template(self, path: str) -> TemplateAsset:
        """Load a .tx template and the tileset its tile object refers to."""
        def build(deps):
            raw = self.loader.load_template(path)
            obj = dataclasses.replace(
                raw.object, properties=normalize_properties(path, raw.object.properties)
            )
            tileset = None
            first_gid = 0
            if raw.tileset is not None:
                first_gid = raw.tileset.firstgid
                if raw.tileset.is_reference:
                    tileset_path = normalize_path(path, raw.tileset.source)
                    deps.append(tileset_path)
                    tileset = self.load_tileset(tileset_path)
                else:
                    tileset = self._tileset_from_raw(raw.tileset, f"{path}#tileset0", path, deps)
            return TemplateAsset(path=path, object=obj, tileset=tileset, first_gid=first_gid)
        return self._load(path, build)

    def load_map(self, path: str) -> MapAsset:
        """
        Load a .tmx map with all its dependencies.

        Order: tilesets, then templates, then image-layer images. The map
        asset is only built (and returned) once all of them loaded.
        """
        def build(deps):
            raw = self.loader.load_map(path)

            tilesets = []
            for index, raw_tileset in enumerate(raw.tilesets):
                if raw_tileset.is_reference:
                    tileset_path = normalize_path(path, raw_tileset.source)
                    deps.append(tileset_path)
                    tilesets.append(self.load_tileset(tileset_path))
                else:
                    tilesets.append(self._tileset_from_raw(
                        raw_tileset, f"{path}#tileset{index}", path, deps))

            templates = {}
            for template_path in MapAsset.template_paths(path, raw):
                deps.append(template_path)
                templates[template_path] = self.load_template(template_path)

            images = {}
            for layer in raw.get_all_layers_flat():
                if isinstance(layer, ImageLayer) and layer.image is not None:
                    image_path = normalize_path(path, layer.image.source)
                    deps.append(image_path)
                    images[layer.id] = self.load_image(image_path, layer.image)

            asset = MapAsset(path, raw, tilesets, templates, images)
            logger.info("Loaded map %s: %dx%d tiles, %d tilesets, %d templates, %d images",
                        path, asset.size[0], asset.size[1], len(tilesets),
                        len(templates), len(images))
            return asset
        return self._load(path, build)

    def load_world(self, path: str) -> WorldAsset:
        """Load a .world manifest and every map it places."""
        def build(deps):
            world = WorldAsset.from_json(path, self.loader.load_json(path))
            for world_map in world.maps:
                deps.append(world_map.path)
                world_map.asset = self.load_map(world_map.path)
            logger.info("Loaded world %s: %d maps", path, len(world.maps))
            return world
        return self._load(path, build)

    def load_project(self, path: str) -> ProjectProperties:
        def build(deps):
            return ProjectProperties.from_json(path, self.loader.load_json(path))
        return self._load(path, build)

    # =========================================================================
    # STATE
    # =========================================================================

    def get(self, path: str) -> Any:
        """The loaded asset, or None."""
        with self._lock:
            return self._assets.get(canonicalize(path))

    def load_state(self, path: str) -> LoadState:
        with self._lock:
            return self._states.get(canonicalize(path), LoadState.NOT_LOADED)

    def dependencies(self, path: str) -> List[str]:
        with self._lock:
            return list(self._dependencies.get(canonicalize(path), []))

    def recursive_state(self, path: str) -> LoadState:
        """
        State of an asset together with everything it depends on.

        FAILED if anything in the subtree failed, LOADED only if everything
        loaded, otherwise the least advanced state found.
        """
        with self._lock:
            return self._recursive_state(canonicalize(path), set())

    def _recursive_state(self, path: str, visited: Set[str]) -> LoadState:
        visited.add(path)
        state = self._states.get(path, LoadState.NOT_LOADED)
        if state != LoadState.LOADED:
            return state
        result = LoadState.LOADED
        for dep in self._dependencies.get(path, []):
            if dep in visited:
                continue
            dep_state = self._recursive_state(dep, visited)
            if dep_state == LoadState.FAILED:
                return LoadState.FAILED
            if dep_state != LoadState.LOADED:
                result = dep_state
        return result

    def is_loaded(self, path: str) -> bool:
        return self.recursive_state(path) == LoadState.LOADED

    def release(self, path: str):
        """
        Forget an asset and any dependency nothing else refers to.

        The parse cache entries of released .tsx/.tx files are dropped too,
        so loading them again re-reads the files.
        """
        with self._lock:
            self._release(canonicalize(path))

    def _release(self, path: str):
        if path not in self._states:
            return
        self._assets.pop(path, None)
        self._states.pop(path, None)
        dependencies = self._dependencies.pop(path, [])
        self.loader.cache.release(path)
        logger.debug("Released %s", path)

        for dep in dependencies:
            still_used = any(dep in deps for deps in self._dependencies.values())
            if not still_used:
                self._release(dep)

    def loaded_paths(self) -> List[str]:
        with self._lock:
            return sorted(p for p, s in self._states.items() if s == LoadState.LOADED)
