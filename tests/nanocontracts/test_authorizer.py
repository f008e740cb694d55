import unittest

from eth_account import Account

from launchpad.nanocontracts.authorizer import (
    ERC1271_MAGIC_VALUE,
    DelegatedAuthorizer,
    EIP712Domain,
    OwnerKeyValidator,
    SignerAuthorizer,
    authorizer_for,
    build_whitelist_message,
    is_well_formed,
    recover_signer,
    whitelist_digest,
)
from launchpad.nanocontracts.exception import NCFail
from launchpad.nanocontracts.types import ContractId


class FailingValidator:
    def is_valid_signature(self, digest: bytes, signature: bytes) -> bytes:
        raise NCFail('validator is broken')


class AuthorizerTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.signer = Account.create()
        self.user = Account.create().address
        self.domain = EIP712Domain(
            name='PrivateSale',
            version='1',
            chain_id=84532,
            verifying_contract=ContractId(Account.create().address),
        )

    def _sign(self, domain: EIP712Domain, user: str) -> bytes:
        return bytes(self.signer.sign_message(build_whitelist_message(domain, user)).signature)

    def test_digest_binds_domain_and_user(self) -> None:
        digest = whitelist_digest(self.domain, self.user)
        self.assertEqual(len(digest), 32)
        self.assertEqual(digest, whitelist_digest(self.domain, self.user))
        self.assertNotEqual(digest, whitelist_digest(self.domain, Account.create().address))

        other_chain = EIP712Domain('PrivateSale', '1', 8453, self.domain.verifying_contract)
        self.assertNotEqual(digest, whitelist_digest(other_chain, self.user))
        other_version = EIP712Domain('PrivateSale', '2', 84532, self.domain.verifying_contract)
        self.assertNotEqual(digest, whitelist_digest(other_version, self.user))

    def test_signer_authorizer(self) -> None:
        authorizer = SignerAuthorizer(self.signer.address, self.domain)
        signature = self._sign(self.domain, self.user)
        self.assertTrue(authorizer.verify(self.user, signature))
        self.assertFalse(authorizer.verify(Account.create().address, signature))

        other_domain = EIP712Domain('PrivateSale', '1', 84532, ContractId(Account.create().address))
        self.assertFalse(authorizer.verify(self.user, self._sign(other_domain, self.user)))

        other_signer = SignerAuthorizer(Account.create().address, self.domain)
        self.assertFalse(other_signer.verify(self.user, signature))

    def test_malformed_signatures(self) -> None:
        authorizer = SignerAuthorizer(self.signer.address, self.domain)
        valid = self._sign(self.domain, self.user)
        self.assertTrue(is_well_formed(valid))

        malformed = [b'', valid[:-1], valid + b'\x00', valid[:-1] + b'\x05', b'\x00' * 65]
        for signature in malformed:
            self.assertFalse(authorizer.verify(self.user, signature))

    def test_recover_signer(self) -> None:
        digest = whitelist_digest(self.domain, self.user)
        signature = bytes(Account.unsafe_sign_hash(digest, self.signer.key).signature)
        self.assertIn(signature[-1], (27, 28))
        self.assertEqual(recover_signer(digest, signature), self.signer.address)

        # Recovery ids 0 and 1 name the same key
        compact = signature[:-1] + bytes([signature[-1] - 27])
        self.assertEqual(recover_signer(digest, compact), self.signer.address)
        self.assertNotEqual(recover_signer(bytes(32), signature), self.signer.address)

    def test_delegated_authorizer(self) -> None:
        validator = OwnerKeyValidator(self.signer.address)
        authorizer = DelegatedAuthorizer(validator, self.domain)
        digest = whitelist_digest(self.domain, self.user)

        raw_signature = bytes(Account.unsafe_sign_hash(digest, self.signer.key).signature)
        self.assertEqual(validator.is_valid_signature(digest, raw_signature), ERC1271_MAGIC_VALUE)
        self.assertTrue(authorizer.verify(self.user, raw_signature))
        self.assertFalse(authorizer.verify(Account.create().address, raw_signature))
        self.assertFalse(authorizer.verify(self.user, b'\x01' * 65))

        self.assertFalse(DelegatedAuthorizer(FailingValidator(), self.domain).verify(self.user, raw_signature))

    def test_authorizer_for(self) -> None:
        smart_account = Account.create().address
        accounts = {smart_account: OwnerKeyValidator(self.signer.address)}

        self.assertIsInstance(authorizer_for(smart_account, self.domain, accounts), DelegatedAuthorizer)
        self.assertIsInstance(authorizer_for(self.signer.address, self.domain, accounts), SignerAuthorizer)
