from __future__ import annotations

import logging
from typing import Callable, Optional

from launchpad.nanocontracts.exception import InvalidAddress, NCFail
from launchpad.nanocontracts.storage import NCContractStorage
from launchpad.nanocontracts.types import ZERO_ADDRESS, Address, Amount, TokenUid

logger = logging.getLogger(__name__)

TransferHook = Callable[[Address, Address, Amount], None]


class ERC20InsufficientBalance(NCFail):
    pass


class ERC20InsufficientAllowance(NCFail):
    pass


class ERC20Token:
    """Fungible token with the standard balance, allowance and transfer rules.

    Balances and allowances live in the token's own storage so that the
    runner can roll them back together with the contract that moved them.
    An optional transfer hook is invoked after every movement, the way a
    receiver callback would be.
    """

    def __init__(self, token_uid: TokenUid, symbol: str, decimals: int) -> None:
        self.token_uid = token_uid
        self.symbol = symbol
        self._decimals = decimals
        self.storage = NCContractStorage()
        self.storage.put_obj('balances', {})
        self.storage.put_obj('allowances', {})
        self.storage.put_obj('total_supply', Amount(0))
        self._transfer_hook: Optional[TransferHook] = None

    def __repr__(self) -> str:
        return f'ERC20Token({self.symbol}, {self.token_uid})'

    def decimals(self) -> int:
        return self._decimals

    def total_supply(self) -> Amount:
        return self.storage.get_obj('total_supply')

    def balance_of(self, account: Address) -> Amount:
        return self.storage.get_obj('balances').get(account, Amount(0))

    def allowance(self, owner: Address, spender: Address) -> Amount:
        return self.storage.get_obj('allowances').get((owner, spender), Amount(0))

    def set_transfer_hook(self, hook: Optional[TransferHook]) -> None:
        self._transfer_hook = hook

    def mint(self, account: Address, amount: Amount) -> None:
        if account == ZERO_ADDRESS:
            raise InvalidAddress('Cannot mint to the zero address')
        balances = self.storage.get_obj('balances')
        balances[account] = Amount(balances.get(account, 0) + amount)
        self.storage.put_obj('total_supply', Amount(self.total_supply() + amount))

    def approve(self, owner: Address, spender: Address, amount: Amount) -> None:
        self.storage.get_obj('allowances')[(owner, spender)] = amount

    def transfer(self, source: Address, destination: Address, amount: Amount) -> None:
        self._move(source, destination, amount)

    def transfer_from(self, spender: Address, source: Address, destination: Address, amount: Amount) -> None:
        """Move `amount` from `source` using the allowance granted to `spender`."""
        allowed = self.allowance(source, spender)
        if allowed < amount:
            raise ERC20InsufficientAllowance(
                f'{self.symbol}: allowance {allowed} of {spender} is below {amount}'
            )
        self.storage.get_obj('allowances')[(source, spender)] = Amount(allowed - amount)
        self._move(source, destination, amount)

    def _move(self, source: Address, destination: Address, amount: Amount) -> None:
        if destination == ZERO_ADDRESS:
            raise InvalidAddress('Cannot transfer to the zero address')
        balances = self.storage.get_obj('balances')
        available = balances.get(source, Amount(0))
        if available < amount:
            raise ERC20InsufficientBalance(
                f'{self.symbol}: balance {available} of {source} is below {amount}'
            )
        balances[source] = Amount(available - amount)
        balances[destination] = Amount(balances.get(destination, 0) + amount)
        logger.debug('%s transfer %s -> %s: %d', self.symbol, source, destination, amount)
        if self._transfer_hook is not None:
            self._transfer_hook(source, destination, amount)
