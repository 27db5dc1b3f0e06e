from typing import Callable, Dict, Generic, List, Optional, TypeVar

T = TypeVar("T")


class StateRepository(Generic[T]):
    """In-memory map of entities keyed by id. Storage and lookup only."""

    def __init__(self, key: Callable[[T], str]):
        self._key = key
        self._entities: Dict[str, T] = {}

    def get(self, entity_id: str) -> Optional[T]:
        return self._entities.get(entity_id)

    def get_all(self) -> List[T]:
        return list(self._entities.values())

    def set(self, entity: T) -> T:
        self._entities[self._key(entity)] = entity
        return entity

    def delete(self, entity_id: str) -> bool:
        return self._entities.pop(entity_id, None) is not None

    def __contains__(self, entity_id: str) -> bool:
        return entity_id in self._entities

    def __len__(self) -> int:
        return len(self._entities)
