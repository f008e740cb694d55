from __future__ import annotations

from dataclasses import dataclass

from launchpad.nanocontracts.types import Address, Timestamp, to_address


@dataclass(frozen=True, slots=True)
class Context:
    """Information about the call being executed.

    `caller_id` is the account that signed the call, kept in its checksummed
    form, and `timestamp` is the time at which the platform admitted it.
    """
    caller_id: Address
    timestamp: Timestamp

    def __post_init__(self) -> None:
        object.__setattr__(self, 'caller_id', to_address(self.caller_id))
