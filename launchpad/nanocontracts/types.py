from __future__ import annotations

from functools import wraps
from typing import TYPE_CHECKING, Any, Callable, NewType, TypeVar

from eth_utils import is_address, to_checksum_address

if TYPE_CHECKING:
    from launchpad.nanocontracts.blueprint import Blueprint
    from launchpad.nanocontracts.context import Context

# Account and contract identities are EIP-55 checksummed hex addresses.
Address = NewType('Address', str)
ContractId = NewType('ContractId', str)
TokenUid = NewType('TokenUid', str)

# Raw integer amounts, always expressed in the smallest unit of their token.
Amount = NewType('Amount', int)
Timestamp = NewType('Timestamp', int)

ZERO_ADDRESS = Address('0x0000000000000000000000000000000000000000')

PUBLIC_MARKER = '__nc_public__'
VIEW_MARKER = '__nc_view__'

T = TypeVar('T', bound=Callable[..., Any])


def to_address(value: str | bytes) -> Address:
    """Normalize an address given as hex text or 20 raw bytes.

    Raises ValueError when the value is not a valid address.
    """
    if not is_address(value):
        raise ValueError(f'invalid address: {value!r}')
    return Address(to_checksum_address(value))


def public(fn: T) -> T:
    """Mark a blueprint method as a state-mutating entry point.

    The call is rejected while another guarded call of the same contract is
    still running, so an outbound transfer cannot re-enter the contract.
    """
    @wraps(fn)
    def wrapper(self: Blueprint, ctx: Context, *args: Any, **kwargs: Any) -> Any:
        with self.syscall.reentrancy_guard():
            return fn(self, ctx, *args, **kwargs)

    setattr(wrapper, PUBLIC_MARKER, True)
    return wrapper  # type: ignore[return-value]


def view(fn: T) -> T:
    """Mark a blueprint method as read-only."""
    setattr(fn, VIEW_MARKER, True)
    return fn


def is_public(fn: Callable[..., Any]) -> bool:
    return getattr(fn, PUBLIC_MARKER, False)


def is_view(fn: Callable[..., Any]) -> bool:
    return getattr(fn, VIEW_MARKER, False)
