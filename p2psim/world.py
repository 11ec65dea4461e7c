"""
Entity/component store holding all simulated network state.

Nodes and in-flight messages are entities; positions, peer sets, protocol
state and message payloads are components attached to them. Components are
keyed by their exact class, so an entity holds at most one of each type.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Tuple, Type, TypeVar

from .errors import NoSuchEntity


C = TypeVar("C")


@dataclass(frozen=True, order=True)
class Entity:
    """Opaque handle for a simulated node or message."""
    id: int

    def __repr__(self):
        return f"Entity({self.id})"


class World:
    """
    Registry of entities and their components.

    Queries are evaluated eagerly and return entities in ascending order,
    which is allocation order.
    """

    def __init__(self):
        self._components: Dict[Entity, Dict[type, Any]] = {}
        self._next_id: int = 0

    def spawn(self, *components: Any) -> Entity:
        """Create a new entity carrying the given components."""
        entity = Entity(self._next_id)
        self._next_id += 1
        self._components[entity] = {type(c): c for c in components}
        return entity

    def despawn(self, entity: Entity) -> bool:
        """
        Remove an entity and all of its components.

        Returns:
            True if the entity existed
        """
        return self._components.pop(entity, None) is not None

    def contains(self, entity: Entity) -> bool:
        return entity in self._components

    def __contains__(self, entity: Entity) -> bool:
        return self.contains(entity)

    def __len__(self) -> int:
        return len(self._components)

    def entities(self) -> List[Entity]:
        return sorted(self._components)

    def get(self, entity: Entity, component_type: Type[C]) -> Optional[C]:
        """Get a component, or None if the entity or component is missing."""
        components = self._components.get(entity)
        if components is None:
            return None
        return components.get(component_type)

    def components(self, entity: Entity) -> Tuple[Any, ...]:
        """All components of an entity, in attachment order."""
        return tuple(self._components.get(entity, {}).values())

    def has(self, entity: Entity, component_type: type) -> bool:
        return self.get(entity, component_type) is not None

    def insert(self, entity: Entity, *components: Any):
        """
        Attach components to an existing entity, replacing same-typed ones.

        Raises:
            NoSuchEntity: if the entity is not in the world
        """
        if entity not in self._components:
            raise NoSuchEntity(entity)
        for component in components:
            self._components[entity][type(component)] = component

    def remove(self, entity: Entity, component_type: Type[C]) -> Optional[C]:
        """Detach and return a component, or None if it was not attached."""
        components = self._components.get(entity)
        if components is None:
            return None
        return components.pop(component_type, None)

    def query(self, *component_types: type) -> List[Tuple[Entity, Tuple[Any, ...]]]:
        """
        Find all entities carrying every one of the given component types.

        Returns:
            List of (entity, components) with components in the requested order
        """
        result = []
        for entity in sorted(self._components):
            components = self._components[entity]
            if all(t in components for t in component_types):
                result.append((entity, tuple(components[t] for t in component_types)))
        return result

    def iter_components(self, component_type: Type[C]) -> Iterator[Tuple[Entity, C]]:
        """Iterate (entity, component) for a single component type."""
        for entity, (component,) in self.query(component_type):
            yield entity, component
