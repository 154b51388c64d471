"""
Physics configuration and per-object physics settings

Global defaults live in PhysicsConfig. Individual objects override them
with an `avian::PhysicsSettings` class property set in Tiled:

    <property name="physics" type="class" propertytype="avian::PhysicsSettings">
        <properties>
            <property name="body_type" propertytype="avian::BodyType" value="Dynamic"/>
            <property name="friction" type="float" value="0.1"/>
            <property name="collision_groups" value="player"/>
        </properties>
    </property>
"""

import dataclasses
import enum
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Tuple

from ..map.objects import NormalizedObject, ObjectShape
from ..properties.registry import PropertyTypeRegistry
from .merger import TileColliderStrategy
from .shapes import Shape, build_object_collider

PHYSICS_SETTINGS_TYPE = "avian::PhysicsSettings"
BODY_TYPE_TYPE = "avian::BodyType"


class BodyType(enum.Enum):
    """Rigid body kinds; member names are the variant names shown in Tiled."""
    Static = "static"
    Dynamic = "dynamic"
    Kinematic = "kinematic"


@dataclass
class PhysicsSettings:
    body_type: BodyType = BodyType.Static
    friction: float = 0.5
    restitution: float = 0.0
    density: float = 1.0
    collision_groups: str = ""
    collision_mask: str = ""
    is_sensor: bool = False
    linear_damping: Optional[float] = None
    angular_damping: Optional[float] = None
    gravity_scale: Optional[float] = None
    lock_rotation: bool = False


@dataclass(frozen=True)
class CollisionLayers:
    """Group names an object belongs to and the groups it collides with."""
    memberships: Tuple[str, ...] = ()
    filters: Tuple[str, ...] = ()


def parse_collision_layers(groups: str, mask: str) -> CollisionLayers:
    """Default parser: comma-separated names, blanks dropped."""
    def names(text: str) -> Tuple[str, ...]:
        return tuple(name.strip() for name in text.split(',') if name.strip())
    return CollisionLayers(names(groups), names(mask))


@dataclass
class PhysicsConfig:
    """
    Defaults for every collider generated from Tiled data.

    collision_layers_fn turns the collision_groups / collision_mask strings
    of PhysicsSettings into whatever the physics engine expects.
    """
    default_friction: float = 0.5
    default_restitution: float = 0.0
    default_density: float = 1.0
    default_body_type: BodyType = BodyType.Static
    default_is_sensor: bool = False
    default_collision_layers: CollisionLayers = field(default_factory=CollisionLayers)
    collision_layers_fn: Callable[[str, str], Any] = parse_collision_layers
    enable_tile_colliders: bool = True
    tile_collider_strategy: TileColliderStrategy = TileColliderStrategy.COMPOUND_MERGED

    def with_friction(self, friction: float) -> 'PhysicsConfig':
        return dataclasses.replace(self, default_friction=friction)

    def with_restitution(self, restitution: float) -> 'PhysicsConfig':
        return dataclasses.replace(self, default_restitution=restitution)

    def with_density(self, density: float) -> 'PhysicsConfig':
        return dataclasses.replace(self, default_density=density)

    def with_body_type(self, body_type: BodyType) -> 'PhysicsConfig':
        return dataclasses.replace(self, default_body_type=body_type)

    def with_sensor(self, is_sensor: bool) -> 'PhysicsConfig':
        return dataclasses.replace(self, default_is_sensor=is_sensor)

    def with_tile_colliders(self, enabled: bool) -> 'PhysicsConfig':
        return dataclasses.replace(self, enable_tile_colliders=enabled)

    def with_tile_collider_strategy(self, strategy: TileColliderStrategy) -> 'PhysicsConfig':
        return dataclasses.replace(self, tile_collider_strategy=strategy)

    def with_collision_layers_fn(self, fn: Callable[[str, str], Any]) -> 'PhysicsConfig':
        return dataclasses.replace(self, collision_layers_fn=fn)


def register_physics_types(registry: PropertyTypeRegistry):
    """Register BodyType and PhysicsSettings (no-op if already there)."""
    if registry.get_enum(BODY_TYPE_TYPE) is None:
        registry.register_enum(BODY_TYPE_TYPE, BodyType)
    if registry.get_class(PHYSICS_SETTINGS_TYPE) is None:
        registry.register_class(PHYSICS_SETTINGS_TYPE, PhysicsSettings)


@dataclass
class ObjectBody:
    """
    Rigid body description for one map object.

    position/rotation are the object's transform; offset places the shape
    inside it (rectangles and ellipses are centered on their box, Tiled
    anchors them at a corner).
    """
    shape: Shape
    body_type: BodyType
    friction: float
    restitution: float
    density: float
    is_sensor: bool
    position: Tuple[float, float]
    rotation: float
    offset: Tuple[float, float] = (0.0, 0.0)
    collision_layers: Any = None
    linear_damping: Optional[float] = None
    angular_damping: Optional[float] = None
    gravity_scale: Optional[float] = None
    lock_rotation: bool = False


def _shape_offset(obj: NormalizedObject) -> Tuple[float, float]:
    if obj.shape in (ObjectShape.RECTANGLE, ObjectShape.ELLIPSE):
        return (obj.width / 2, -obj.height / 2)
    if obj.shape == ObjectShape.TILE:
        # Tile objects are anchored at their bottom-left corner
        return (obj.width / 2, obj.height / 2)
    return (0.0, 0.0)


def build_object_body(obj: NormalizedObject, config: PhysicsConfig,
                      settings: Optional[PhysicsSettings] = None) -> Optional[ObjectBody]:
    """
    Body for an object, None when the object has no collider (text).

    Without `settings`, the config defaults apply.
    """
    shape = build_object_collider(obj)
    if shape is None:
        return None

    if settings is None:
        return ObjectBody(
            shape=shape,
            body_type=config.default_body_type,
            friction=config.default_friction,
            restitution=config.default_restitution,
            density=config.default_density,
            is_sensor=config.default_is_sensor,
            position=(obj.position[0], obj.position[1]),
            rotation=obj.rotation,
            offset=_shape_offset(obj),
            collision_layers=config.default_collision_layers,
        )

    if settings.collision_groups or settings.collision_mask:
        layers = config.collision_layers_fn(settings.collision_groups, settings.collision_mask)
    else:
        layers = config.default_collision_layers

    return ObjectBody(
        shape=shape,
        body_type=settings.body_type,
        friction=settings.friction,
        restitution=settings.restitution,
        density=settings.density,
        is_sensor=settings.is_sensor,
        position=(obj.position[0], obj.position[1]),
        rotation=obj.rotation,
        offset=_shape_offset(obj),
        collision_layers=layers,
        linear_damping=settings.linear_damping,
        angular_damping=settings.angular_damping,
        gravity_scale=settings.gravity_scale,
        lock_rotation=settings.lock_rotation,
    )
