from __future__ import annotations

from copy import deepcopy
from typing import Any, NewType

_NOT_PROVIDED = object()

StorageSnapshot = NewType('StorageSnapshot', dict)


class NCContractStorage:
    """In-memory key-value storage owned by a single contract or token.

    Values are stored by reference, so containers read from the storage can
    be mutated in place. `snapshot` takes a deep copy that `restore` puts
    back, which is how the runner rolls back a failed call.
    """

    def __init__(self) -> None:
        self._data: dict[str, Any] = {}

    def has_obj(self, key: str) -> bool:
        return key in self._data

    def get_obj(self, key: str, default: Any = _NOT_PROVIDED) -> Any:
        try:
            return self._data[key]
        except KeyError:
            if default is _NOT_PROVIDED:
                raise
            return default

    def put_obj(self, key: str, value: Any) -> None:
        self._data[key] = value

    def keys(self) -> list[str]:
        return list(self._data)

    def snapshot(self) -> StorageSnapshot:
        return StorageSnapshot(deepcopy(self._data))

    def restore(self, snapshot: StorageSnapshot) -> None:
        self._data = deepcopy(snapshot)
