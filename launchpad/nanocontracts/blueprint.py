from __future__ import annotations

import inspect
from typing import Any

from launchpad.nanocontracts.blueprint_env import BlueprintEnvironment

FIELD_PREFIX = 'field:'


class _Field:
    """Descriptor storing a blueprint attribute in the contract storage."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.key = FIELD_PREFIX + name

    def __get__(self, instance: Blueprint | None, owner: type) -> Any:
        if instance is None:
            return self
        try:
            return instance.syscall.storage.get_obj(self.key)
        except KeyError:
            raise AttributeError(f'field `{self.name}` was never set') from None

    def __set__(self, instance: Blueprint, value: Any) -> None:
        instance.syscall.storage.put_obj(self.key, value)


class Blueprint:
    """Base class of every contract.

    Each annotated class attribute of a subclass becomes a persistent field:
    reads and writes go to the storage of the contract instance, so a
    rollback of the storage also rolls back the fields.
    """

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        for name in inspect.get_annotations(cls):
            if name.startswith('_'):
                continue
            setattr(cls, name, _Field(name))

    def __init__(self, env: BlueprintEnvironment) -> None:
        self.syscall = env
