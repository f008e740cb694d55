"""Access gates shared by every contract hosted by the runner.

Each gate is a small service bound to the storage of one contract. The
runner creates them and hands them to the contract through its syscall
environment; contracts call them explicitly before mutating state.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from launchpad.nanocontracts.exception import EnforcedPause, ExpectedPause, InvalidAddress, ReentrantCall, Unauthorized
from launchpad.nanocontracts.storage import NCContractStorage
from launchpad.nanocontracts.types import ZERO_ADDRESS, Address

OWNER_KEY = 'gate:owner'
PAUSED_KEY = 'gate:paused'


class Ownership:
    """Single-owner role."""

    def __init__(self, storage: NCContractStorage) -> None:
        self._storage = storage

    @property
    def owner(self) -> Address:
        return self._storage.get_obj(OWNER_KEY, ZERO_ADDRESS)

    def initialize(self, owner: Address) -> None:
        if owner == ZERO_ADDRESS:
            raise InvalidAddress('Owner cannot be the zero address')
        self._storage.put_obj(OWNER_KEY, owner)

    def is_owner(self, caller_id: Address) -> bool:
        return caller_id == self.owner

    def only_owner(self, caller_id: Address) -> None:
        if not self.is_owner(caller_id):
            raise Unauthorized(f'Caller {caller_id} is not the owner')

    def transfer_ownership(self, caller_id: Address, new_owner: Address) -> Address:
        """Hand the role to `new_owner` and return the previous owner."""
        self.only_owner(caller_id)
        if new_owner == ZERO_ADDRESS:
            raise InvalidAddress('New owner cannot be the zero address')
        previous = self.owner
        self._storage.put_obj(OWNER_KEY, new_owner)
        return previous


class Pausing:
    """Emergency stop switch."""

    def __init__(self, storage: NCContractStorage) -> None:
        self._storage = storage

    @property
    def paused(self) -> bool:
        return self._storage.get_obj(PAUSED_KEY, False)

    def when_not_paused(self) -> None:
        if self.paused:
            raise EnforcedPause('Contract is paused')

    def pause(self) -> None:
        self.when_not_paused()
        self._storage.put_obj(PAUSED_KEY, True)

    def unpause(self) -> None:
        if not self.paused:
            raise ExpectedPause('Contract is not paused')
        self._storage.put_obj(PAUSED_KEY, False)


class ReentrancyGuard:
    """Execution-in-progress flag.

    Kept outside the storage: a rollback must never leave the flag set.
    """

    def __init__(self) -> None:
        self._entered = False

    @property
    def entered(self) -> bool:
        return self._entered

    @contextmanager
    def guard(self) -> Iterator[None]:
        if self._entered:
            raise ReentrantCall('Reentrant call')
        self._entered = True
        try:
            yield
        finally:
            self._entered = False
