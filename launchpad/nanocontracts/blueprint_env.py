from __future__ import annotations

from typing import TYPE_CHECKING, Any, ContextManager

from launchpad.nanocontracts.authorizer import Authorizer, EIP712Domain, authorizer_for
from launchpad.nanocontracts.gates import Ownership, Pausing, ReentrancyGuard
from launchpad.nanocontracts.storage import NCContractStorage
from launchpad.nanocontracts.types import Address, ContractId, Timestamp, TokenUid

if TYPE_CHECKING:
    from launchpad.nanocontracts.runner import Runner
    from launchpad.nanocontracts.tokens import ERC20Token


class BlueprintEnvironment:
    """Services the runner injects into a contract instance.

    Contracts reach storage, gates, tokens, the clock and the event log
    only through this object.
    """

    def __init__(self, runner: Runner, contract_id: ContractId, storage: NCContractStorage) -> None:
        self._runner = runner
        self.contract_id = contract_id
        self.storage = storage
        self.ownership = Ownership(storage)
        self.pausing = Pausing(storage)
        self._reentrancy = ReentrancyGuard()

    def reentrancy_guard(self) -> ContextManager[None]:
        return self._reentrancy.guard()

    def get_token(self, token_uid: TokenUid) -> ERC20Token:
        return self._runner.get_token(token_uid)

    def get_authorizer(self, verifier: Address, domain: EIP712Domain) -> Authorizer:
        return authorizer_for(verifier, domain, self._runner.accounts)

    def get_current_timestamp(self) -> Timestamp:
        return Timestamp(int(self._runner.clock.seconds()))

    def emit_event(self, name: str, **data: Any) -> None:
        self._runner.record_event(self.contract_id, name, data)
