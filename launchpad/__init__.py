from launchpad.nanocontracts.blueprint import Blueprint
from launchpad.nanocontracts.context import Context
from launchpad.nanocontracts.exception import InvalidAddress, NCFail
from launchpad.nanocontracts.types import (
    ZERO_ADDRESS,
    Address,
    Amount,
    ContractId,
    Timestamp,
    TokenUid,
    public,
    to_address,
    view,
)

__all__ = [
    'Address',
    'Amount',
    'Blueprint',
    'Context',
    'ContractId',
    'InvalidAddress',
    'NCFail',
    'Timestamp',
    'TokenUid',
    'ZERO_ADDRESS',
    'public',
    'to_address',
    'view',
]
