"""Whitelist signature checks.

A buyer is whitelisted when the admin verifier signed an EIP-712 typed
message `Whitelist(address user)` under the domain of the sale contract.
The verifier is either a plain key, whose signatures are checked by
recovering the signer, or a delegated account that validates signatures
with its own logic and answers with the ERC-1271 magic value.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Protocol

from eth_account import Account
from eth_account.messages import SignableMessage, encode_typed_data
from eth_keys import keys
from eth_keys.exceptions import BadSignature, ValidationError
from eth_utils import keccak

from launchpad.nanocontracts.exception import NCFail
from launchpad.nanocontracts.types import Address, ContractId

ERC1271_MAGIC_VALUE = bytes.fromhex('1626ba7e')

SIGNATURE_LENGTH = 65

WHITELIST_TYPES = {
    'Whitelist': [
        {'name': 'user', 'type': 'address'},
    ],
}


@dataclass(frozen=True, slots=True)
class EIP712Domain:
    name: str
    version: str
    chain_id: int
    verifying_contract: ContractId

    def as_dict(self) -> dict[str, Any]:
        return {
            'name': self.name,
            'version': self.version,
            'chainId': self.chain_id,
            'verifyingContract': self.verifying_contract,
        }


def build_whitelist_message(domain: EIP712Domain, user: Address) -> SignableMessage:
    """Build the typed message a verifier signs to whitelist `user`."""
    return encode_typed_data(
        domain_data=domain.as_dict(),
        message_types=WHITELIST_TYPES,
        message_data={'user': user},
    )


def whitelist_digest(domain: EIP712Domain, user: Address) -> bytes:
    """Return the 32-byte EIP-712 digest of the whitelist message."""
    message = build_whitelist_message(domain, user)
    return keccak(b'\x19' + message.version + message.header + message.body)


def is_well_formed(signature: bytes) -> bool:
    """Check the shape of a 65-byte `r || s || v` signature."""
    return len(signature) == SIGNATURE_LENGTH and signature[-1] in (0, 1, 27, 28)


def recover_signer(digest: bytes, signature: bytes) -> Address:
    """Recover the address whose key signed the raw 32-byte `digest`."""
    v = signature[-1]
    if v >= 27:
        v -= 27
    public_key = keys.Signature(signature[:-1] + bytes([v])).recover_public_key_from_msg_hash(digest)
    return Address(public_key.to_checksum_address())


class SignatureValidator(Protocol):
    """An account able to judge signatures made on its behalf (ERC-1271)."""

    def is_valid_signature(self, digest: bytes, signature: bytes) -> bytes:
        ...


class Authorizer(Protocol):
    def verify(self, user: Address, signature: bytes) -> bool:
        ...


class SignerAuthorizer:
    """Accepts signatures produced by one private key."""

    def __init__(self, signer: Address, domain: EIP712Domain) -> None:
        self.signer = signer
        self.domain = domain

    def verify(self, user: Address, signature: bytes) -> bool:
        if not is_well_formed(signature):
            return False
        message = build_whitelist_message(self.domain, user)
        try:
            recovered = Account.recover_message(message, signature=signature)
        except (ValueError, ValidationError, BadSignature):
            return False
        return recovered == self.signer


class DelegatedAuthorizer:
    """Asks a delegated account whether it accepts the signature."""

    def __init__(self, account: SignatureValidator, domain: EIP712Domain) -> None:
        self.account = account
        self.domain = domain

    def verify(self, user: Address, signature: bytes) -> bool:
        digest = whitelist_digest(self.domain, user)
        try:
            answer = self.account.is_valid_signature(digest, signature)
        except NCFail:
            return False
        return answer == ERC1271_MAGIC_VALUE


class OwnerKeyValidator:
    """Smart account that accepts raw digest signatures from its owner key."""

    def __init__(self, owner: Address) -> None:
        self.owner = owner

    def is_valid_signature(self, digest: bytes, signature: bytes) -> bytes:
        if not is_well_formed(signature):
            return b'\x00' * 4
        try:
            recovered = recover_signer(digest, signature)
        except (ValueError, ValidationError, BadSignature):
            return b'\x00' * 4
        if recovered != self.owner:
            return b'\x00' * 4
        return ERC1271_MAGIC_VALUE


def authorizer_for(
    verifier: Address,
    domain: EIP712Domain,
    accounts: Mapping[Address, SignatureValidator],
) -> Authorizer:
    """Pick the check matching the capability of `verifier`."""
    account = accounts.get(verifier)
    if account is not None:
        return DelegatedAuthorizer(account, domain)
    return SignerAuthorizer(verifier, domain)
