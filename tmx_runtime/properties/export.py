"""
Export of registered types to Tiled

=============================================================================
ROUND TRIP
=============================================================================

    Python registry ──export──▶ propertyTypes JSON ──import──▶ Tiled editor
          ▲                                                        │
          └──────────── deserialize ◀── map files ◀──── designer ──┘

The exported descriptor is what Tiled's "Custom Types Editor" shows:

    [
      {
        "color": "#000000",
        "drawFill": true,
        "id": 1,
        "members": [
          {"name": "max", "type": "int", "value": 100}
        ],
        "name": "game::Health",
        "type": "class",
        "useAs": ["property"]
      },
      {
        "id": 2,
        "name": "game::Direction",
        "storageType": "string",
        "type": "enum",
        "values": ["North", "South", "East", "West"],
        "valuesAsFlags": false
      }
    ]

Keys are written in a fixed (alphabetical, as Tiled does) order and
entries in a fixed order: classes sorted by name, then enums sorted by
name. Exporting twice gives byte-identical files.

A complex enum exports as a class whose first member is ":variant"
(typed by the synthetic enum "<Name>:::variant"), followed by the union
of the fields of all variants.

=============================================================================
"""

import enum
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

import orjson

from ..assets.server import AssetHandle
from ..errors import ParseError
from .registry import (
    ComplexEnumInfo, FieldKind, FieldSchema, LinearRgba, PropertyTypeRegistry, Vec2, Vec3,
)
from .deserialize import VARIANT_FIELD

logger = logging.getLogger(__name__)

DEFAULT_PROJECT = {
    "automappingRulesFile": "",
    "commands": [],
    "compatibilityVersion": 1100,
    "extensionsPath": "extensions",
    "folders": ["."],
    "properties": [],
    "propertyTypes": [],
}


def linear_to_srgb(c: float) -> float:
    if c <= 0.0031308:
        return c * 12.92
    return 1.055 * (c ** (1 / 2.4)) - 0.055


def color_to_hex(color: LinearRgba) -> str:
    """LinearRgba to Tiled's #aarrggbb."""
    def byte(v: float) -> int:
        return max(0, min(255, round(v * 255)))
    return "#{:02x}{:02x}{:02x}{:02x}".format(
        byte(color.a), byte(linear_to_srgb(color.r)),
        byte(linear_to_srgb(color.g)), byte(linear_to_srgb(color.b)))


def _fmt_number(value: float) -> str:
    return f"{value:g}"


def _member(schema: FieldSchema, registry: PropertyTypeRegistry) -> Dict[str, Any]:
    """Descriptor of one class member, keys in Tiled's order."""
    kind = schema.type.kind
    default = schema.default_value() if schema.has_default else None

    if kind == FieldKind.BOOL:
        return {"name": schema.name, "type": "bool", "value": bool(default) if default is not None else False}
    if kind == FieldKind.INT or kind == FieldKind.UINT:
        return {"name": schema.name, "type": "int", "value": int(default) if default is not None else 0}
    if kind == FieldKind.FLOAT:
        return {"name": schema.name, "type": "float", "value": float(default) if default is not None else 0.0}
    if kind == FieldKind.STRING:
        return {"name": schema.name, "type": "string", "value": default if default is not None else ""}
    if kind == FieldKind.COLOR:
        value = color_to_hex(default) if isinstance(default, LinearRgba) else ""
        return {"name": schema.name, "type": "color", "value": value}
    if kind == FieldKind.FILE:
        value = default.path if isinstance(default, AssetHandle) else ""
        return {"name": schema.name, "type": "file", "value": value}
    if kind == FieldKind.VEC2 or kind == FieldKind.VEC3:
        if isinstance(default, (Vec2, Vec3)):
            value = ",".join(_fmt_number(v) for v in default)
        else:
            value = "0,0" if kind == FieldKind.VEC2 else "0,0,0"
        return {"name": schema.name, "type": "string", "value": value}
    if kind == FieldKind.CLASS:
        return {"name": schema.name, "propertyType": schema.type.name, "type": "class", "value": {}}

    # ENUM
    simple = registry.get_enum(schema.type.name)
    if simple is not None:
        if isinstance(default, enum.Enum):
            value = default.name
        else:
            value = simple.variants[0] if simple.variants else ""
        return {"name": schema.name, "propertyType": schema.type.name, "type": "string", "value": value}
    return {"name": schema.name, "propertyType": schema.type.name, "type": "class", "value": {}}


def _class_entry(type_id: int, name: str, members: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {
        "color": "#000000",
        "drawFill": True,
        "id": type_id,
        "members": members,
        "name": name,
        "type": "class",
        "useAs": ["property"],
    }


def _enum_entry(type_id: int, name: str, values: List[str]) -> Dict[str, Any]:
    return {
        "id": type_id,
        "name": name,
        "storageType": "string",
        "type": "enum",
        "values": values,
        "valuesAsFlags": False,
    }


def _complex_members(info: ComplexEnumInfo, registry: PropertyTypeRegistry) -> List[Dict[str, Any]]:
    members = [{
        "name": VARIANT_FIELD,
        "propertyType": info.discriminant_enum_name,
        "type": "string",
        "value": info.default,
    }]
    seen: Dict[str, Dict[str, Any]] = {}
    for variant in info.variants:
        for schema in variant.fields:
            member = _member(schema, registry)
            previous = seen.get(schema.name)
            if previous is None:
                seen[schema.name] = member
                members.append(member)
            elif (previous["type"], previous.get("propertyType")) != (member["type"], member.get("propertyType")):
                logger.warning("%s: field %r of variant %s is %s but an earlier variant declared "
                               "it as %s; keeping the first", info.name, schema.name, variant.name,
                               member["type"], previous["type"])
    return members


def assign_ids(names: Iterable[str], existing: Optional[Dict[str, int]] = None,
               reserved: Iterable[int] = ()) -> Dict[str, int]:
    """
    Give each name an id.

    Names found in `existing` keep their id; the others take the smallest
    ids not used by `existing` or `reserved`, in order.
    """
    existing = existing or {}
    names = list(names)
    result: Dict[str, int] = {}
    taken = set(reserved)
    for name in names:
        if name in existing:
            result[name] = existing[name]
            taken.add(existing[name])
    next_id = 1
    for name in names:
        if name in result:
            continue
        while next_id in taken:
            next_id += 1
        result[name] = next_id
        taken.add(next_id)
    return result


def build_property_types(registry: PropertyTypeRegistry,
                         existing_ids: Optional[Dict[str, int]] = None,
                         reserved_ids: Iterable[int] = ()) -> List[Dict[str, Any]]:
    """
    The propertyTypes descriptor for every registered type.

    Order: classes (registered classes and complex enums) by name, then
    enums (simple enums and synthetic ":::variant" enums) by name.
    """
    classes: List[Tuple[str, List[Dict[str, Any]]]] = []
    for info in registry.classes:
        classes.append((info.name, [_member(f, registry) for f in info.fields]))
    enums: List[Tuple[str, List[str]]] = [(info.name, list(info.variants)) for info in registry.enums]
    for info in registry.complex_enums:
        classes.append((info.name, _complex_members(info, registry)))
        enums.append((info.discriminant_enum_name, info.variant_names))

    classes.sort(key=lambda c: c[0])
    enums.sort(key=lambda e: e[0])

    ids = assign_ids([c[0] for c in classes] + [e[0] for e in enums], existing_ids, reserved_ids)
    entries = [_class_entry(ids[name], name, members) for name, members in classes]
    entries.extend(_enum_entry(ids[name], name, values) for name, values in enums)
    return entries


def dumps(payload: Any) -> bytes:
    """Serialize like every export: 2-space indent, trailing newline."""
    return orjson.dumps(payload, option=orjson.OPT_INDENT_2) + b"\n"


def export_types_json(registry: PropertyTypeRegistry) -> bytes:
    """The descriptor as bytes, ids numbered from 1."""
    return dumps(build_property_types(registry))


def _read_json(path: Path) -> Any:
    try:
        return orjson.loads(path.read_bytes())
    except orjson.JSONDecodeError as e:
        raise ParseError(str(path), str(e)) from e


def export_types_to_json(registry: PropertyTypeRegistry, path: Union[str, Path]) -> List[Dict[str, Any]]:
    """
    Write the descriptor to `path`.

    If the file already holds a descriptor, types keep the ids they had
    there, so Tiled projects that imported it stay consistent.
    """
    path = Path(path)
    existing: Dict[str, int] = {}
    if path.exists():
        previous = _read_json(path)
        if isinstance(previous, list):
            existing = {e["name"]: e["id"] for e in previous
                        if isinstance(e, dict) and "name" in e and "id" in e}

    entries = build_property_types(registry, existing)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(dumps(entries))
    logger.info("Exported %d property types to %s", len(entries), path)
    return entries


def export_to_tiled_project(registry: PropertyTypeRegistry, project_path: Union[str, Path]) -> Dict[str, Any]:
    """
    Merge the registered types into a .tiled-project file.

    Types already in the project keep their ids; types authored by hand in
    Tiled (names not produced by the registry) are kept untouched. A
    missing project file is created from a default skeleton.
    """
    project_path = Path(project_path)
    if project_path.exists():
        project = _read_json(project_path)
        if not isinstance(project, dict):
            raise ParseError(str(project_path), "project file must be a JSON object")
    else:
        project = {key: (list(value) if isinstance(value, list) else value)
                   for key, value in DEFAULT_PROJECT.items()}

    current = [t for t in project.get("propertyTypes", []) if isinstance(t, dict)]
    exported_names = set(registry_type_names(registry))
    manual = [t for t in current if t.get("name") not in exported_names]
    existing = {t["name"]: t["id"] for t in current
                if t.get("name") in exported_names and "id" in t}
    reserved = [t["id"] for t in manual if "id" in t]

    entries = build_property_types(registry, existing, reserved)
    project["propertyTypes"] = sorted(manual + entries, key=lambda t: t.get("id", 0))

    project_path.parent.mkdir(parents=True, exist_ok=True)
    project_path.write_bytes(dumps(project))
    logger.info("Exported %d property types into %s (%d kept from the project)",
                len(entries), project_path, len(manual))
    return project


def registry_type_names(registry: PropertyTypeRegistry) -> List[str]:
    """Every name an export of `registry` produces."""
    names = [info.name for info in registry.classes]
    names.extend(info.name for info in registry.enums)
    for info in registry.complex_enums:
        names.append(info.name)
        names.append(info.discriminant_enum_name)
    return sorted(names)
