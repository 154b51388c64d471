"""
Object templates (.tx)

A template instance in a map only stores what differs from the template:

    template chest.tx:  <object name="chest" type="Chest" gid="3" width="16" height="16">
                            <properties><property name="gold" type="int" value="10"/></properties>
                        </object>

    map:                <object id="9" template="../templates/chest.tx" x="64" y="80">
                            <properties><property name="gold" type="int" value="50"/></properties>
                        </object>

    merged:             id=9 x=64 y=80 name="chest" type="Chest" gid=3 16x16 gold=50
"""

import dataclasses
from dataclasses import dataclass
from typing import Dict, Optional

from tmx_manager import MapObject, Property

from .tileset import TilesetAsset

# Attributes an instance may override; x, y and id always come from the instance
_OVERRIDABLE = ('name', 'type', 'width', 'height', 'rotation', 'gid', 'visible')


@dataclass
class TemplateAsset:
    """
    A loaded template.

    path:      root-relative .tx path
    object:    the template object (file properties normalized against `path`)
    tileset:   tileset of a tile template, None otherwise
    first_gid: first_gid of `tileset` INSIDE the template file
    """
    path: str
    object: MapObject
    tileset: Optional[TilesetAsset] = None
    first_gid: int = 0

    def resolve_local_id(self, gid: int) -> Optional[int]:
        """Local tile id of a GID expressed in the template's own numbering."""
        if self.tileset is None:
            return None
        local_id = (gid & 0x1FFFFFFF) - self.first_gid
        if 0 <= local_id < self.tileset.tile_count:
            return local_id
        return None


def merge_properties(base: Dict[str, Property], override: Dict[str, Property]) -> Dict[str, Property]:
    """
    Overlay `override` on `base`.

    Class values are merged member by member, so an instance that changes
    one member of a class property keeps the template's other members.
    """
    merged = dict(base)
    for name, prop in override.items():
        inherited = merged.get(name)
        if (inherited is not None and prop.type == 'class' and inherited.type == 'class'
                and isinstance(prop.value, dict) and isinstance(inherited.value, dict)):
            prop = dataclasses.replace(prop, value=merge_properties(inherited.value, prop.value))
        merged[name] = prop
    return merged


def apply_template(instance: MapObject, template: MapObject) -> MapObject:
    """
    Merge a template object with an instance that references it.

    Instance attributes win when they were written in the map file;
    everything else (shape included) comes from the template.
    """
    merged = dataclasses.replace(
        template,
        id=instance.id,
        x=instance.x,
        y=instance.y,
        template=instance.template,
        explicit=set(instance.explicit),
        properties=merge_properties(template.properties, instance.properties),
    )
    for attr in _OVERRIDABLE:
        if attr in instance.explicit:
            setattr(merged, attr, getattr(instance, attr))
    if 'shape' in instance.explicit:
        merged.shape = instance.shape
        merged.points = list(instance.points)
        merged.text = instance.text
    return merged
