import unittest

from launchpad.nanocontracts.exception import (
    EnforcedPause,
    ExpectedPause,
    InvalidAddress,
    ReentrantCall,
    Unauthorized,
)
from launchpad.nanocontracts.gates import Ownership, Pausing, ReentrancyGuard
from launchpad.nanocontracts.storage import NCContractStorage
from launchpad.nanocontracts.tokens import ERC20InsufficientAllowance, ERC20InsufficientBalance, ERC20Token
from launchpad.nanocontracts.types import ZERO_ADDRESS, Address, Amount, TokenUid, to_address

ALICE = Address('0x1111111111111111111111111111111111111111')
BOB = Address('0x2222222222222222222222222222222222222222')
CAROL = Address('0x3333333333333333333333333333333333333333')


class ERC20TokenTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.token = ERC20Token(TokenUid('0x4444444444444444444444444444444444444444'), 'USDT', 6)
        self.token.mint(ALICE, Amount(1000))

    def test_mint(self) -> None:
        self.assertEqual(self.token.decimals(), 6)
        self.assertEqual(self.token.balance_of(ALICE), 1000)
        self.assertEqual(self.token.balance_of(BOB), 0)
        self.assertEqual(self.token.total_supply(), 1000)
        with self.assertRaises(InvalidAddress):
            self.token.mint(ZERO_ADDRESS, Amount(1))

    def test_transfer(self) -> None:
        self.token.transfer(ALICE, BOB, Amount(400))
        self.assertEqual(self.token.balance_of(ALICE), 600)
        self.assertEqual(self.token.balance_of(BOB), 400)
        self.assertEqual(self.token.total_supply(), 1000)

        with self.assertRaises(ERC20InsufficientBalance):
            self.token.transfer(BOB, ALICE, Amount(401))
        with self.assertRaises(InvalidAddress):
            self.token.transfer(ALICE, ZERO_ADDRESS, Amount(1))

    def test_transfer_from(self) -> None:
        self.token.approve(ALICE, CAROL, Amount(500))
        self.assertEqual(self.token.allowance(ALICE, CAROL), 500)
        self.assertEqual(self.token.allowance(CAROL, ALICE), 0)

        self.token.transfer_from(CAROL, ALICE, BOB, Amount(300))
        self.assertEqual(self.token.balance_of(BOB), 300)
        self.assertEqual(self.token.allowance(ALICE, CAROL), 200)

        with self.assertRaises(ERC20InsufficientAllowance):
            self.token.transfer_from(CAROL, ALICE, BOB, Amount(201))
        with self.assertRaises(ERC20InsufficientAllowance):
            self.token.transfer_from(BOB, ALICE, BOB, Amount(1))

    def test_transfer_hook(self) -> None:
        moves = []
        self.token.set_transfer_hook(lambda source, destination, amount: moves.append((source, destination, amount)))
        self.token.transfer(ALICE, BOB, Amount(10))
        self.token.set_transfer_hook(None)
        self.token.transfer(ALICE, BOB, Amount(10))
        self.assertEqual(moves, [(ALICE, BOB, 10)])


class GatesTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.storage = NCContractStorage()

    def test_ownership(self) -> None:
        ownership = Ownership(self.storage)
        self.assertEqual(ownership.owner, ZERO_ADDRESS)
        with self.assertRaises(InvalidAddress):
            ownership.initialize(ZERO_ADDRESS)

        ownership.initialize(ALICE)
        self.assertTrue(ownership.is_owner(ALICE))
        ownership.only_owner(ALICE)
        with self.assertRaises(Unauthorized):
            ownership.only_owner(BOB)

        with self.assertRaises(Unauthorized):
            ownership.transfer_ownership(BOB, BOB)
        with self.assertRaises(InvalidAddress):
            ownership.transfer_ownership(ALICE, ZERO_ADDRESS)
        self.assertEqual(ownership.transfer_ownership(ALICE, BOB), ALICE)
        self.assertEqual(ownership.owner, BOB)

        # State lives in the storage
        self.assertEqual(Ownership(self.storage).owner, BOB)

    def test_pausing(self) -> None:
        pausing = Pausing(self.storage)
        self.assertFalse(pausing.paused)
        pausing.when_not_paused()

        with self.assertRaises(ExpectedPause):
            pausing.unpause()
        pausing.pause()
        self.assertTrue(pausing.paused)
        with self.assertRaises(EnforcedPause):
            pausing.when_not_paused()
        with self.assertRaises(EnforcedPause):
            pausing.pause()

        pausing.unpause()
        self.assertFalse(pausing.paused)

    def test_reentrancy_guard(self) -> None:
        guard = ReentrancyGuard()
        with guard.guard():
            self.assertTrue(guard.entered)
            with self.assertRaises(ReentrantCall):
                with guard.guard():
                    pass
        self.assertFalse(guard.entered)

        # Released when the guarded block raises
        with self.assertRaises(ValueError):
            with guard.guard():
                raise ValueError
        self.assertFalse(guard.entered)


class AddressTestCase(unittest.TestCase):
    def test_to_address(self) -> None:
        checksummed = '0x52908400098527886E0F7030069857D2E4169EE7'
        self.assertEqual(to_address(checksummed.lower()), checksummed)
        self.assertEqual(to_address(bytes.fromhex(checksummed[2:])), checksummed)
        for value in ('', '0x1234', 'not-an-address', '0x' + 'g' * 40):
            with self.assertRaises(ValueError):
                to_address(value)
