"""
Property deserialization

=============================================================================
FROM PROPERTY BAGS TO PYTHON OBJECTS
=============================================================================

A class-valued property in a map:

    <property name="hp" type="class" propertytype="game::Health">
        <properties>
            <property name="max" type="int" value="250"/>
        </properties>
    </property>

with the registered class

    @tiled_class("game::Health")
    @dataclass
    class Health:
        max: int = 100
        regen: Optional[float] = None

becomes Health(max=250, regen=None). Members Tiled did not write (left at
their default in the editor) take the field default; Optional fields
without a default become None; anything else missing is an error.

Complex enums are class values with a ":variant" member naming the
variant; the variant's fields are the other members of the same bag:

    <property name="attack" type="class" propertytype="game::Attack">
        <properties>
            <property name=":variant" value="Projectile"/>
            <property name="speed" type="float" value="3.5"/>
            <property name="damage" type="int" value="7"/>
        </properties>
    </property>

=============================================================================
"""

import logging
from typing import Any, Dict, List, Optional

from tmx_manager import Color, Property

from ..assets.paths import canonicalize, normalize_path
from ..assets.server import AssetHandle
from ..errors import InvalidPath, MissingFieldError, PropertyConversionError, PropertyError
from .registry import (
    ComplexEnumInfo, EnumInfo, FieldKind, FieldSchema, FieldType, LinearRgba,
    PropertyTypeRegistry, Vec2, Vec3,
)

logger = logging.getLogger(__name__)

VARIANT_FIELD = ":variant"


def srgb_to_linear(c: float) -> float:
    """Decode one sRGB channel in [0, 1] to linear light."""
    if c <= 0.04045:
        return c / 12.92
    return ((c + 0.055) / 1.055) ** 2.4


def color_to_linear(color: Color) -> LinearRgba:
    """8-bit sRGB color to LinearRgba (alpha is already linear)."""
    return LinearRgba(
        srgb_to_linear(color.r / 255.0),
        srgb_to_linear(color.g / 255.0),
        srgb_to_linear(color.b / 255.0),
        color.a / 255.0,
    )


def parse_vector(text: str, size: int, field: Optional[str] = None):
    """Parse "x,y" (size 2) or "x,y,z" (size 3)."""
    parts = [p.strip() for p in str(text).split(',')]
    if len(parts) != size:
        raise PropertyConversionError(f"expected {size} comma-separated numbers, got {text!r}", field)
    try:
        values = [float(p) for p in parts]
    except ValueError:
        raise PropertyConversionError(f"malformed vector {text!r}", field)
    return Vec2(*values) if size == 2 else Vec3(*values)


class PropertyDeserializer:
    """
    Converts Tiled property values into registered Python types.

    Parameters:
    -----------
    registry : PropertyTypeRegistry
    loader : AssetServer, optional
        Turns file paths into handles (loader.handle(path)); without one,
        unbound AssetHandles are produced
    context : str
        Root-relative path of the file the properties come from. String
        values in file fields are resolved against it; file-typed values
        were already normalized at load time.
    """

    def __init__(self, registry: PropertyTypeRegistry, loader=None, context: str = ""):
        self.registry = registry
        self.loader = loader
        self.context = context

    def with_context(self, context: str) -> 'PropertyDeserializer':
        return PropertyDeserializer(self.registry, self.loader, context)

    # =========================================================================
    # ENTRY POINTS
    # =========================================================================

    def deserialize_class(self, name: str, properties: Dict[str, Property]) -> Any:
        """Build the registered class `name` from a property bag."""
        info = self.registry.get_class(name)
        if info is None:
            raise PropertyError(f"class {name!r} is not registered")
        values = self._read_fields(info.fields, properties, name)
        return info.build(values)

    def deserialize_property(self, prop: Property) -> Any:
        """Deserialize a property whose propertytype names a registered type."""
        name = prop.property_type
        if self.registry.get_class(name) is not None:
            return self.convert(FieldType(FieldKind.CLASS, name), prop, prop.name)
        if self.registry.get_enum(name) is not None or self.registry.get_complex_enum(name) is not None:
            return self.convert(FieldType(FieldKind.ENUM, name), prop, prop.name)
        raise PropertyError(f"type {name!r} is not registered")

    def attach_components(self, properties: Dict[str, Property],
                          object_class: str = "") -> Dict[str, Any]:
        """
        Deserialize every registered value found in a property bag.

        Returns {type name: value}. When `object_class` (an object's class
        attribute) names a registered class, the whole bag is deserialized
        into it as well. Unregistered types are skipped (debug log),
        malformed values are skipped with a warning.
        """
        components: Dict[str, Any] = {}
        for name, prop in properties.items():
            type_name = prop.property_type
            if not type_name:
                continue
            if type_name not in self.registry:
                logger.debug("Property %r has unregistered type %r, skipped", name, type_name)
                continue
            try:
                components[type_name] = self.deserialize_property(prop)
            except PropertyError as e:
                logger.warning("Skipping property %r (%s): %s", name, type_name, e)

        if object_class and self.registry.get_class(object_class) is not None:
            try:
                components[object_class] = self.deserialize_class(object_class, properties)
            except PropertyError as e:
                logger.warning("Cannot build %s from object properties: %s", object_class, e)
        return components

    # =========================================================================
    # FIELDS
    # =========================================================================

    def _read_fields(self, fields: List[FieldSchema], bag: Dict[str, Property],
                     owner: str) -> Dict[str, Any]:
        values = {}
        for schema in fields:
            prop = bag.get(schema.name)
            if prop is None:
                if schema.has_default:
                    values[schema.name] = schema.default_value()
                elif schema.type.optional:
                    values[schema.name] = None
                else:
                    raise MissingFieldError(schema.name, owner)
                continue
            if schema.type.optional and prop.value == "":
                values[schema.name] = None
                continue
            values[schema.name] = self.convert(schema.type, prop, schema.name)
        return values

    def convert(self, field_type: FieldType, prop: Property, field: Optional[str] = None) -> Any:
        """Convert one property value to the given field type."""
        kind = field_type.kind
        ptype = prop.type
        value = prop.value

        def mismatch():
            return PropertyConversionError(
                f"expected a {kind.value} value, got {ptype} {value!r}", field)

        if kind == FieldKind.BOOL:
            if ptype != 'bool':
                raise mismatch()
            return value

        if kind == FieldKind.INT or kind == FieldKind.UINT:
            if ptype != 'int':
                raise mismatch()
            if kind == FieldKind.UINT and value < 0:
                raise PropertyConversionError(f"negative value {value} for unsigned field", field)
            return value

        if kind == FieldKind.FLOAT:
            if ptype not in ('float', 'int'):
                raise mismatch()
            return float(value)

        if kind == FieldKind.STRING:
            if ptype != 'string':
                raise mismatch()
            return value

        if kind == FieldKind.COLOR:
            if ptype != 'color':
                raise mismatch()
            if value is None:
                if field_type.optional:
                    return None
                raise PropertyConversionError("color is not set", field)
            return color_to_linear(value)

        if kind == FieldKind.FILE:
            if ptype not in ('file', 'string'):
                raise mismatch()
            if not value:
                if field_type.optional:
                    return None
                raise PropertyConversionError("missing asset path", field)
            try:
                if ptype == 'string' and self.context:
                    path = normalize_path(self.context, value)
                else:
                    path = canonicalize(value)
            except InvalidPath as e:
                raise PropertyConversionError(str(e), field) from e
            if self.loader is not None:
                return self.loader.handle(path)
            return AssetHandle(path)

        if kind == FieldKind.VEC2 or kind == FieldKind.VEC3:
            if ptype != 'string':
                raise mismatch()
            return parse_vector(value, 2 if kind == FieldKind.VEC2 else 3, field)

        if kind == FieldKind.CLASS:
            if ptype != 'class' or prop.property_type != field_type.name:
                raise PropertyConversionError(
                    f"expected class {field_type.name!r}, got {ptype} "
                    f"{prop.property_type or 'without property type'}", field)
            return self.deserialize_class(field_type.name, value)

        if kind == FieldKind.ENUM:
            simple = self.registry.get_enum(field_type.name)
            if simple is not None:
                return self._simple_enum(simple, prop, field)
            complex_enum = self.registry.get_complex_enum(field_type.name)
            if complex_enum is not None:
                if ptype != 'class' or prop.property_type != complex_enum.name:
                    raise PropertyConversionError(
                        f"expected class value of {complex_enum.name!r}, got {ptype} "
                        f"{prop.property_type or 'without property type'}", field)
                return self._complex_enum(complex_enum, value)
            raise PropertyError(f"enum {field_type.name!r} is not registered")

        raise PropertyConversionError(f"unsupported field kind {kind}", field)

    # =========================================================================
    # ENUMS
    # =========================================================================

    def _simple_enum(self, info: EnumInfo, prop: Property, field: Optional[str]) -> Any:
        if prop.type != 'string':
            raise PropertyConversionError(
                f"enum {info.name!r} expects a string value, got {prop.type}", field)
        if prop.property_type and prop.property_type != info.name:
            raise PropertyConversionError(
                f"expected enum {info.name!r}, got {prop.property_type!r}", field)
        if prop.value not in info.values:
            raise PropertyConversionError(
                f"{prop.value!r} is not a variant of {info.name} "
                f"(expected one of {', '.join(info.variants)})", field)
        return info.lookup(prop.value)

    def _complex_enum(self, info: ComplexEnumInfo, bag: Dict[str, Property]) -> Any:
        discriminant = bag.get(VARIANT_FIELD)
        if discriminant is None:
            if bag:
                raise PropertyConversionError(
                    f"missing {VARIANT_FIELD} in {info.name} value with members "
                    f"{', '.join(sorted(bag))}", VARIANT_FIELD)
            # Tiled omits a value left entirely at its default
            variant_name = info.default
        elif discriminant.type != 'string':
            raise PropertyConversionError(
                f"{VARIANT_FIELD} of {info.name} must be a string", VARIANT_FIELD)
        else:
            variant_name = discriminant.value

        variant = info.variant(variant_name)
        if variant is None:
            raise PropertyConversionError(
                f"{variant_name!r} is not a variant of {info.name} "
                f"(expected one of {', '.join(info.variant_names)})", VARIANT_FIELD)
        values = self._read_fields(variant.fields, bag, f"{info.name}::{variant.name}")
        return variant.build(values)
