"""
Asset path normalization

=============================================================================
WHY NORMALIZE?
=============================================================================

Tiled stores every file reference RELATIVE to the file that contains it:

    assets/
    ├── maps/
    │   └── level1.tmx        <tileset source="../tilesets/dungeon.tsx"/>
    └── tilesets/
        ├── dungeon.tsx       <image source="dungeon.png"/>
        └── dungeon.png

The same image can therefore be spelled in many ways depending on who
refers to it. The runtime keys its caches by ONE canonical spelling: a
path relative to the asset root, with forward slashes and without any
"." or ".." component:

    normalize_path("maps/level1.tmx", "../tilesets/dungeon.tsx")
        → "tilesets/dungeon.tsx"

    normalize_path("tilesets/dungeon.tsx", "dungeon.png")
        → "tilesets/dungeon.png"

References that already start with "assets/" are taken as root-relative
(some projects keep the asset folder name in their paths):

    normalize_path("maps/level1.tmx", "assets/foo/bar.png")
        → "foo/bar.png"

A path that climbs above the root is rejected with InvalidPath.

=============================================================================
"""

import dataclasses
import posixpath
import re
from typing import Dict

from tmx_manager import Property

from ..errors import InvalidPath

ASSET_PREFIX = "assets/"

_DRIVE = re.compile(r"^[A-Za-z]:/")


def canonicalize(path: str) -> str:
    """
    Resolve "." and ".." in a root-relative path.

    Raises InvalidPath when the result would leave the root, is absolute,
    or is empty.
    """
    path = path.replace("\\", "/")
    if path.startswith("/") or _DRIVE.match(path):
        raise InvalidPath(path, "absolute paths are not allowed")

    parts = []
    for part in path.split("/"):
        if part in ("", "."):
            continue
        if part == "..":
            if not parts:
                raise InvalidPath(path)
            parts.pop()
        else:
            parts.append(part)

    if not parts:
        raise InvalidPath(path, "empty path")
    return "/".join(parts)


def normalize_path(context: str, target: str) -> str:
    """
    Resolve a Tiled file reference.

    Parameters:
    -----------
    context : str
        Root-relative path of the file that contains the reference
    target : str
        The reference exactly as written in that file

    Returns:
    --------
    str : Root-relative canonical path
    """
    target = target.replace("\\", "/")
    if not target:
        raise InvalidPath(target, "empty path")

    if target.startswith(ASSET_PREFIX):
        return canonicalize(target[len(ASSET_PREFIX):])

    if target.startswith("/") or _DRIVE.match(target):
        raise InvalidPath(target, "absolute paths are not allowed")

    base = posixpath.dirname(context.replace("\\", "/"))
    return canonicalize(posixpath.join(base, target) if base else target)


def normalize_properties(context: str, properties: Dict[str, Property]) -> Dict[str, Property]:
    """
    Return a copy of a property bag with every file path normalized.

    Recurses into class values, so a file member nested at any depth is
    rewritten too. Empty file values ("no file chosen") stay empty.
    """
    result = {}
    for name, prop in properties.items():
        if prop.type == "file" and prop.value:
            prop = dataclasses.replace(prop, value=normalize_path(context, prop.value))
        elif prop.type == "class" and isinstance(prop.value, dict):
            prop = dataclasses.replace(prop, value=normalize_properties(context, prop.value))
        result[name] = prop
    return result
