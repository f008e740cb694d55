from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, NamedTuple, Optional

from launchpad.nanocontracts.authorizer import SignatureValidator
from launchpad.nanocontracts.blueprint import Blueprint
from launchpad.nanocontracts.blueprint_env import BlueprintEnvironment
from launchpad.nanocontracts.context import Context
from launchpad.nanocontracts.exception import (
    NanoContractDoesNotExist,
    NCContractAlreadyExists,
    NCInvalidMethodCall,
    NCMethodNotFound,
    TokenDoesNotExist,
)
from launchpad.nanocontracts.storage import NCContractStorage
from launchpad.nanocontracts.tokens import ERC20Token
from launchpad.nanocontracts.types import Address, ContractId, TokenUid, is_public, is_view, to_address

if TYPE_CHECKING:
    from twisted.internet.interfaces import IReactorTime

logger = logging.getLogger(__name__)

INITIALIZE_METHOD = 'initialize'


class NCEvent(NamedTuple):
    contract_id: ContractId
    name: str
    data: dict[str, Any]


class Runner:
    """Hosts contracts and tokens and executes calls on them.

    A public call is all-or-nothing: the storage of every contract and token
    is captured before the call and restored if it raises, and the events
    it emitted are dropped. Calls are executed one at a time.
    """

    def __init__(self, clock: Optional[IReactorTime] = None) -> None:
        if clock is None:
            from twisted.internet import reactor
            clock = reactor  # type: ignore[assignment]
        self.clock = clock
        self.accounts: dict[Address, SignatureValidator] = {}
        self._contracts: dict[ContractId, Blueprint] = {}
        self._storages: dict[ContractId, NCContractStorage] = {}
        self._tokens: dict[TokenUid, ERC20Token] = {}
        self._events: list[NCEvent] = []

    def register_token(self, token: ERC20Token) -> None:
        self._tokens[token.token_uid] = token

    def get_token(self, token_uid: TokenUid) -> ERC20Token:
        try:
            return self._tokens[token_uid]
        except KeyError:
            raise TokenDoesNotExist(f'token {token_uid} is not registered') from None

    def register_account(self, address: Address, validator: SignatureValidator) -> None:
        """Register an account that validates signatures with its own logic."""
        self.accounts[address] = validator

    def has_contract(self, contract_id: ContractId) -> bool:
        return contract_id in self._contracts

    def get_storage(self, contract_id: ContractId) -> NCContractStorage:
        self._get_contract(contract_id)
        return self._storages[contract_id]

    def get_readonly_contract(self, contract_id: ContractId) -> Blueprint:
        return self._get_contract(contract_id)

    def get_events(self, contract_id: Optional[ContractId] = None) -> list[NCEvent]:
        if contract_id is None:
            return list(self._events)
        return [event for event in self._events if event.contract_id == contract_id]

    def record_event(self, contract_id: ContractId, name: str, data: dict[str, Any]) -> None:
        self._events.append(NCEvent(contract_id, name, data))

    def create_contract(
        self,
        contract_id: ContractId,
        blueprint_class: type[Blueprint],
        ctx: Context,
        *args: Any,
        **kwargs: Any,
    ) -> None:
        """Create a contract and run its `initialize` method."""
        contract_id = ContractId(to_address(contract_id))
        if contract_id in self._contracts:
            raise NCContractAlreadyExists(f'contract {contract_id} already exists')

        storage = NCContractStorage()
        contract = blueprint_class(BlueprintEnvironment(self, contract_id, storage))
        self._contracts[contract_id] = contract
        self._storages[contract_id] = storage
        logger.info('creating contract %s (%s)', contract_id, blueprint_class.__name__)

        method = self._get_method(contract, INITIALIZE_METHOD)
        try:
            self._execute(contract_id, INITIALIZE_METHOD, method, ctx, args, kwargs)
        except Exception:
            del self._contracts[contract_id]
            del self._storages[contract_id]
            raise

    def call_public_method(self, contract_id: ContractId, method_name: str, ctx: Context,
                           *args: Any, **kwargs: Any) -> Any:
        contract = self._get_contract(contract_id)
        if method_name == INITIALIZE_METHOD:
            raise NCInvalidMethodCall('`initialize` can only be called on creation')
        method = self._get_method(contract, method_name)
        if not is_public(method):
            raise NCInvalidMethodCall(f'`{method_name}` is not a public method')
        return self._execute(contract_id, method_name, method, ctx, args, kwargs)

    def call_view_method(self, contract_id: ContractId, method_name: str, *args: Any, **kwargs: Any) -> Any:
        contract = self._get_contract(contract_id)
        method = self._get_method(contract, method_name)
        if not is_view(method):
            raise NCInvalidMethodCall(f'`{method_name}` is not a view method')
        return method(*args, **kwargs)

    def _get_contract(self, contract_id: ContractId) -> Blueprint:
        try:
            return self._contracts[contract_id]
        except KeyError:
            raise NanoContractDoesNotExist(f'contract {contract_id} does not exist') from None

    def _get_method(self, contract: Blueprint, method_name: str) -> Callable[..., Any]:
        method = None if method_name.startswith('_') else getattr(contract, method_name, None)
        if method is None or not callable(method):
            raise NCMethodNotFound(f'{type(contract).__name__}.{method_name}')
        return method

    def _execute(self, contract_id: ContractId, method_name: str, method: Callable[..., Any], ctx: Context,
                 args: tuple[Any, ...], kwargs: dict[str, Any]) -> Any:
        snapshots = [(storage, storage.snapshot()) for storage in self._all_storages()]
        event_count = len(self._events)
        logger.debug('call %s.%s by %s at %d', contract_id, method_name, ctx.caller_id, ctx.timestamp)
        try:
            return method(ctx, *args, **kwargs)
        except Exception as e:
            logger.info('call %s.%s failed, rolling back: %r', contract_id, method_name, e)
            for storage, snapshot in snapshots:
                storage.restore(snapshot)
            del self._events[event_count:]
            raise

    def _all_storages(self) -> list[NCContractStorage]:
        storages = list(self._storages.values())
        storages.extend(token.storage for token in self._tokens.values())
        return storages
