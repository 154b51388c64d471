"""
Spawn events

Every spawn emits one event per map, layer and object, in spawn order.
Observers subscribe per event type:

    dispatcher = EventDispatcher()
    dispatcher.subscribe(ObjectSpawned, lambda e: print(e.object_id, e.name))

The `target` field references the spawned node itself (SpawnedMap,
SpawnedLayer or SpawnedObject), so an observer can attach data to it.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Type


@dataclass(frozen=True)
class MapSpawned:
    map_path: str
    properties: Dict[str, Any] = field(default_factory=dict, compare=False)
    target: Any = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class TileLayerSpawned:
    map_path: str
    layer_id: int
    name: str
    properties: Dict[str, Any] = field(default_factory=dict, compare=False)
    target: Any = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class ObjectLayerSpawned:
    map_path: str
    layer_id: int
    name: str
    properties: Dict[str, Any] = field(default_factory=dict, compare=False)
    target: Any = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class ImageLayerSpawned:
    map_path: str
    layer_id: int
    name: str
    image_path: str
    properties: Dict[str, Any] = field(default_factory=dict, compare=False)
    target: Any = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class GroupLayerSpawned:
    map_path: str
    layer_id: int
    name: str
    properties: Dict[str, Any] = field(default_factory=dict, compare=False)
    target: Any = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class ObjectSpawned:
    map_path: str
    layer_id: int
    object_id: int
    name: str
    properties: Dict[str, Any] = field(default_factory=dict, compare=False)
    target: Any = field(default=None, compare=False, repr=False)


class EventDispatcher:
    """Synchronous per-type observer list."""

    def __init__(self):
        self._handlers: Dict[Type, List[Callable[[Any], None]]] = defaultdict(list)

    def subscribe(self, event_type: Type, handler: Callable[[Any], None]):
        self._handlers[event_type].append(handler)

    def unsubscribe(self, event_type: Type, handler: Callable[[Any], None]):
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    def emit(self, event: Any):
        for handler in list(self._handlers.get(type(event), [])):
            handler(event)
