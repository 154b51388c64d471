"""
Registry of custom property types

=============================================================================
WHAT GETS REGISTERED
=============================================================================

Tiled lets designers attach values of project-defined CLASSES and ENUMS
to maps, layers, tiles and objects. To receive those values as Python
objects, the matching Python types are registered under the Tiled name:

    @tiled_class("game::Health")
    @dataclass
    class Health:
        max: int = 100
        regen: Optional[float] = None

    @tiled_enum("game::Direction")
    class Direction(Enum):
        North = 0
        South = 1

    register_complex_enum("game::Attack", [
        Variant.unit("None"),
        Variant.struct("Melee", Melee),
        Variant.struct("Projectile", Projectile),
    ], default="None")

Field kinds are read from the dataclass annotations:

    bool, int, float, str      BOOL, INT, FLOAT, STRING
    UInt                       UINT (rejects negative values)
    LinearRgba                 COLOR
    AssetHandle                FILE
    Vec2, Vec3                 VEC2, VEC3 ("x,y" / "x,y,z" strings)
    a registered dataclass     CLASS(name)
    a registered Enum          ENUM(name)
    Optional[X]                X, may be absent
    Annotated[X, TiledRef(n)]  CLASS/ENUM n (for complex enums)

Names are unique across classes and enums. The registry is frozen before
the first map load; registering afterwards raises RegistryError.

=============================================================================
"""

import dataclasses
import enum
import logging
import threading
import types
from dataclasses import dataclass
from typing import (
    Annotated, Any, Callable, Dict, List, NamedTuple, NewType, Optional, Sequence,
    Tuple, Union, get_args, get_origin, get_type_hints,
)

from ..assets.server import AssetHandle
from ..errors import RegistryError

logger = logging.getLogger(__name__)


# =============================================================================
# VALUE TYPES
# =============================================================================

UInt = NewType("UInt", int)


class Vec2(NamedTuple):
    x: float
    y: float


class Vec3(NamedTuple):
    x: float
    y: float
    z: float


@dataclass(frozen=True)
class LinearRgba:
    """Color with linear (not sRGB-encoded) channels in [0, 1]."""
    r: float
    g: float
    b: float
    a: float = 1.0


@dataclass(frozen=True)
class TiledRef:
    """Annotated marker naming the Tiled type of a field explicitly."""
    name: str


# =============================================================================
# SCHEMA
# =============================================================================

class FieldKind(enum.Enum):
    BOOL = "bool"
    INT = "int"
    UINT = "uint"
    FLOAT = "float"
    STRING = "string"
    COLOR = "color"
    FILE = "file"
    CLASS = "class"
    ENUM = "enum"
    VEC2 = "vec2"
    VEC3 = "vec3"


class _Missing:
    def __repr__(self):
        return "MISSING"


MISSING = _Missing()


@dataclass(frozen=True)
class FieldType:
    kind: FieldKind
    name: Optional[str] = None      # Referenced class/enum name
    optional: bool = False


@dataclass(frozen=True)
class FieldSchema:
    name: str
    type: FieldType
    default: Any = MISSING
    default_factory: Optional[Callable[[], Any]] = None

    @property
    def has_default(self) -> bool:
        return self.default is not MISSING or self.default_factory is not None

    def default_value(self) -> Any:
        if self.default_factory is not None:
            return self.default_factory()
        return self.default


@dataclass
class ClassInfo:
    name: str
    fields: List[FieldSchema]
    factory: Callable[..., Any]
    python_type: Optional[type] = None

    def build(self, values: Dict[str, Any]) -> Any:
        return self.factory(**values)


@dataclass
class EnumInfo:
    """A simple (unit-only) enum, stored by Tiled as a string."""
    name: str
    variants: List[str]
    values: Dict[str, Any]
    python_type: Optional[type] = None

    def lookup(self, variant: str) -> Any:
        return self.values[variant]


@dataclass
class VariantInfo:
    name: str
    kind: str                       # "unit", "struct" or "tuple"
    fields: List[FieldSchema]
    build: Callable[[Dict[str, Any]], Any]


@dataclass
class ComplexEnumInfo:
    """An enum whose variants carry data, stored by Tiled as a class."""
    name: str
    variants: List[VariantInfo]
    default: str
    python_type: Optional[type] = None

    @property
    def variant_names(self) -> List[str]:
        return [v.name for v in self.variants]

    @property
    def discriminant_enum_name(self) -> str:
        """Name of the synthetic enum that lists the variant names."""
        return f"{self.name}:::variant"

    def variant(self, name: str) -> Optional[VariantInfo]:
        for variant in self.variants:
            if variant.name == name:
                return variant
        return None


@dataclass(frozen=True)
class Variant:
    """
    Declaration of one complex-enum variant.

        Variant.unit("None")                       value: "None" (or `value`)
        Variant.struct("Melee", Melee)             fields from the dataclass
        Variant.tuple("Teleport", Teleport, str)   fields named "0", "1", ...
    """
    name: str
    kind: str
    target: Any = None
    types: Tuple[Any, ...] = ()

    @classmethod
    def unit(cls, name: str, value: Any = MISSING) -> 'Variant':
        return cls(name, "unit", name if value is MISSING else value)

    @classmethod
    def struct(cls, name: str, dataclass_type: type) -> 'Variant':
        if not dataclasses.is_dataclass(dataclass_type):
            raise RegistryError(f"variant {name!r}: {dataclass_type!r} is not a dataclass")
        return cls(name, "struct", dataclass_type)

    @classmethod
    def tuple(cls, name: str, factory: Callable[..., Any], *types: Any) -> 'Variant':
        return cls(name, "tuple", factory, tuple(types))


# =============================================================================
# REGISTRY
# =============================================================================

_UNION_TYPES = tuple(t for t in (Union, getattr(types, "UnionType", None)) if t is not None)

_PRIMITIVES = {
    bool: FieldKind.BOOL,
    int: FieldKind.INT,
    float: FieldKind.FLOAT,
    str: FieldKind.STRING,
    LinearRgba: FieldKind.COLOR,
    AssetHandle: FieldKind.FILE,
    Vec2: FieldKind.VEC2,
    Vec3: FieldKind.VEC3,
}


class PropertyTypeRegistry:
    """
    Process-wide table of registered Tiled classes and enums.

    Registration happens at import time (decorators) or startup; after
    freeze() the registry is read-only and lookups need no locking.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._classes: Dict[str, ClassInfo] = {}
        self._enums: Dict[str, EnumInfo] = {}
        self._complex_enums: Dict[str, ComplexEnumInfo] = {}
        self._names_by_type: Dict[type, str] = {}
        self._frozen = False

    # -------------------------------------------------------------------------
    # Registration
    # -------------------------------------------------------------------------

    def _check_name(self, name: str):
        if self._frozen:
            raise RegistryError(f"cannot register {name!r}: registry is frozen")
        if not name:
            raise RegistryError("type name must not be empty")
        if name in self._classes or name in self._enums or name in self._complex_enums:
            raise RegistryError(f"type name {name!r} is already registered")

    def field_type_for(self, hint: Any) -> FieldType:
        """Translate a Python annotation into a FieldType."""
        optional = False
        explicit_name = None

        if get_origin(hint) is Annotated:
            args = get_args(hint)
            hint = args[0]
            for extra in args[1:]:
                if isinstance(extra, TiledRef):
                    explicit_name = extra.name

        if get_origin(hint) in _UNION_TYPES:
            args = [a for a in get_args(hint) if a is not type(None)]
            if len(args) != len(get_args(hint)) and len(args) == 1:
                optional = True
                hint = args[0]
                if get_origin(hint) is Annotated:
                    inner = get_args(hint)
                    hint = inner[0]
                    for extra in inner[1:]:
                        if isinstance(extra, TiledRef):
                            explicit_name = extra.name

        if explicit_name is not None:
            if explicit_name in self._classes:
                return FieldType(FieldKind.CLASS, explicit_name, optional)
            if explicit_name in self._enums or explicit_name in self._complex_enums:
                return FieldType(FieldKind.ENUM, explicit_name, optional)
            raise RegistryError(f"unknown Tiled type {explicit_name!r}")

        if hint is UInt:
            return FieldType(FieldKind.UINT, None, optional)
        if hint in _PRIMITIVES:
            return FieldType(_PRIMITIVES[hint], None, optional)

        name = self._names_by_type.get(hint)
        if name is not None:
            kind = FieldKind.CLASS if name in self._classes else FieldKind.ENUM
            return FieldType(kind, name, optional)

        raise RegistryError(f"unsupported field type {hint!r} (register it first)")

    def _dataclass_fields(self, cls: type) -> List[FieldSchema]:
        hints = get_type_hints(cls, include_extras=True)
        schema = []
        for f in dataclasses.fields(cls):
            if not f.init:
                continue
            field_type = self.field_type_for(hints[f.name])
            schema.append(FieldSchema(
                name=f.name,
                type=field_type,
                default=f.default if f.default is not dataclasses.MISSING else MISSING,
                default_factory=(f.default_factory
                                 if f.default_factory is not dataclasses.MISSING else None),
            ))
        return schema

    def register_class(self, name: str, cls: type) -> ClassInfo:
        """Register a dataclass as the Tiled class `name`."""
        if not dataclasses.is_dataclass(cls):
            raise RegistryError(f"{cls!r} must be a dataclass to be registered as {name!r}")
        with self._lock:
            self._check_name(name)
            info = ClassInfo(name, self._dataclass_fields(cls), cls, cls)
            self._classes[name] = info
            self._names_by_type[cls] = name
        logger.debug("Registered class %s (%d fields)", name, len(info.fields))
        return info

    def register_enum(self, name: str, enum_type: type) -> EnumInfo:
        """Register an Enum as the simple Tiled enum `name` (variants by member name)."""
        if not (isinstance(enum_type, type) and issubclass(enum_type, enum.Enum)):
            raise RegistryError(f"{enum_type!r} must be an Enum to be registered as {name!r}")
        with self._lock:
            self._check_name(name)
            members = list(enum_type)
            info = EnumInfo(name, [m.name for m in members], {m.name: m for m in members},
                            enum_type)
            self._enums[name] = info
            self._names_by_type[enum_type] = name
        logger.debug("Registered enum %s (%d variants)", name, len(info.variants))
        return info

    def _variant_info(self, variant: Variant) -> VariantInfo:
        if variant.kind == "unit":
            value = variant.target
            return VariantInfo(variant.name, "unit", [], lambda values: value)
        if variant.kind == "struct":
            cls = variant.target
            return VariantInfo(variant.name, "struct", self._dataclass_fields(cls),
                               lambda values: cls(**values))
        if variant.kind == "tuple":
            factory = variant.target
            fields = [FieldSchema(str(i), self.field_type_for(t)) for i, t in enumerate(variant.types)]
            count = len(fields)
            return VariantInfo(variant.name, "tuple", fields,
                               lambda values: factory(*(values[str(i)] for i in range(count))))
        raise RegistryError(f"unknown variant kind {variant.kind!r}")

    def register_complex_enum(self, name: str, variants: Sequence[Variant],
                              default: Optional[str] = None,
                              python_type: Optional[type] = None) -> ComplexEnumInfo:
        """
        Register an enum with data-carrying variants.

        `default` names the variant shown by the editor for new values
        (first variant if omitted). `python_type`, when given, lets
        dataclass fields annotated with it refer to this enum.
        """
        if not variants:
            raise RegistryError(f"complex enum {name!r} needs at least one variant")
        with self._lock:
            self._check_name(name)
            infos = [self._variant_info(v) for v in variants]
            names = [v.name for v in infos]
            if len(set(names)) != len(names):
                raise RegistryError(f"complex enum {name!r} has duplicate variant names")
            if default is None:
                default = names[0]
            elif default not in names:
                raise RegistryError(f"complex enum {name!r}: default {default!r} is not a variant")
            info = ComplexEnumInfo(name, infos, default, python_type)
            self._complex_enums[name] = info
            if python_type is not None:
                self._names_by_type[python_type] = name
        logger.debug("Registered complex enum %s (%d variants)", name, len(infos))
        return info

    def freeze(self):
        with self._lock:
            self._frozen = True

    @property
    def is_frozen(self) -> bool:
        return self._frozen

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    def get_class(self, name: str) -> Optional[ClassInfo]:
        return self._classes.get(name)

    def get_enum(self, name: str) -> Optional[EnumInfo]:
        return self._enums.get(name)

    def get_complex_enum(self, name: str) -> Optional[ComplexEnumInfo]:
        return self._complex_enums.get(name)

    def name_for_type(self, python_type: type) -> Optional[str]:
        return self._names_by_type.get(python_type)

    def __contains__(self, name: str) -> bool:
        return name in self._classes or name in self._enums or name in self._complex_enums

    @property
    def classes(self) -> List[ClassInfo]:
        return [self._classes[n] for n in sorted(self._classes)]

    @property
    def enums(self) -> List[EnumInfo]:
        return [self._enums[n] for n in sorted(self._enums)]

    @property
    def complex_enums(self) -> List[ComplexEnumInfo]:
        return [self._complex_enums[n] for n in sorted(self._complex_enums)]


_default_registry = PropertyTypeRegistry()


def default_registry() -> PropertyTypeRegistry:
    """The process-wide registry used by the decorators."""
    return _default_registry


def tiled_class(name: str, registry: Optional[PropertyTypeRegistry] = None):
    """Class decorator registering a dataclass as a Tiled class."""
    def decorator(cls):
        (registry or _default_registry).register_class(name, cls)
        return cls
    return decorator


def tiled_enum(name: str, registry: Optional[PropertyTypeRegistry] = None):
    """Class decorator registering an Enum as a simple Tiled enum."""
    def decorator(enum_type):
        (registry or _default_registry).register_enum(name, enum_type)
        return enum_type
    return decorator


def register_complex_enum(name: str, variants: Sequence[Variant], default: Optional[str] = None,
                          python_type: Optional[type] = None,
                          registry: Optional[PropertyTypeRegistry] = None) -> ComplexEnumInfo:
    return (registry or _default_registry).register_complex_enum(
        name, variants, default, python_type)
