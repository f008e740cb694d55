import logging
from typing import Any, NamedTuple

from launchpad import (
    ZERO_ADDRESS,
    Address,
    Amount,
    Blueprint,
    Context,
    InvalidAddress,
    NCFail,
    Timestamp,
    TokenUid,
    public,
    to_address,
    view,
)
from launchpad.conf import get_global_settings
from launchpad.nanocontracts.authorizer import Authorizer, EIP712Domain, whitelist_digest

logger = logging.getLogger(__name__)

settings = get_global_settings()


class SalePhase:
    """Phases of the sale, derived from the clock and the ended latch"""

    NOT_STARTED = 0  # Not configured yet or before start time
    ACTIVE = 1  # Accepting purchases
    ENDED = 2  # Past end time, or closed early by the hard cap or the owner


class SaleConfig(NamedTuple):
    """Sale parameters."""

    is_configured: bool
    start_time: int
    end_time: int
    price: int
    total_allocation: int
    soft_cap: int
    hard_cap: int
    minimum_purchase: int
    sold_token_decimals: int


class SaleStatus(NamedTuple):
    is_active: bool
    is_ended: bool
    soft_cap_reached: bool
    hard_cap_reached: bool


class UserInfo(NamedTuple):
    """Contribution, allocation and refund state of one buyer."""

    usdt_contribution: int
    usdc_contribution: int
    total_contribution: int
    token_allocation: int
    refund_claimed_amount: int
    purchase_count: int
    can_claim_refund: bool


class ContributionRecord(NamedTuple):
    """One accepted purchase, with the buyer totals before and after it."""

    payment_token: str
    usd_amount: int
    token_amount: int
    contribution_before: int
    contribution_after: int
    allocation_before: int
    allocation_after: int
    timestamp: int


class Page(NamedTuple):
    items: list[Any]
    total: int


class SaleConfigurationError(NCFail):
    """Rejected sale setup."""


class InvalidTimeRange(SaleConfigurationError):
    pass


class InvalidAmount(SaleConfigurationError):
    pass


class SaleAlreadyStarted(SaleConfigurationError):
    pass


class InvalidPaymentToken(NCFail):
    pass


class InvalidPagination(NCFail):
    pass


class SalePhaseError(NCFail):
    """Operation attempted outside of its window."""


class SaleNotActive(SalePhaseError):
    pass


class SaleAlreadyEnded(SalePhaseError):
    pass


class SaleNotEnded(SalePhaseError):
    pass


class SaleAuthorizationError(NCFail):
    pass


class InvalidSignature(SaleAuthorizationError):
    """Buyer is not whitelisted by the admin verifier."""


class SaleLimitError(NCFail):
    """Purchase would break a limit of the sale."""


class BelowMinimumPurchase(SaleLimitError):
    pass


class ExceedsHardCap(SaleLimitError):
    pass


class TotalAllocationExceeded(SaleLimitError):
    pass


class SaleFundsError(NCFail):
    """Funds required by the operation are not available."""


class InsufficientBalance(SaleFundsError):
    pass


class InsufficientAllowance(SaleFundsError):
    pass


class SaleResolutionError(NCFail):
    """Settlement or refund is not legal right now."""


class SoftCapNotReached(SaleResolutionError):
    pass


class SoftCapReached(SaleResolutionError):
    pass


class FundsAlreadyWithdrawn(SaleResolutionError):
    pass


class RefundAlreadyClaimed(SaleResolutionError):
    pass


class NoUserContribution(SaleResolutionError):
    pass


def normalize_amount(amount: int, decimals: int, target_decimals: int) -> int:
    """Rescale a raw amount from `decimals` to `target_decimals`, flooring."""
    if decimals <= target_decimals:
        return amount * 10 ** (target_decimals - decimals)
    return amount // 10 ** (decimals - target_decimals)


def parse_address(value: str) -> Address:
    try:
        address = to_address(value)
    except ValueError:
        raise InvalidAddress(f'Invalid address: {value!r}') from None
    if address == ZERO_ADDRESS:
        raise InvalidAddress('Zero address is not allowed')
    return address


class PrivateSale(Blueprint):
    """Whitelisted private sale paid in two stablecoins.

    Buyers pay USDT or USDC at a fixed USD price per sold token. Each buyer
    must present a signature of the admin verifier whitelisting their
    address. When the sale ends, the raised funds either go to the
    destination address (soft cap reached) or back to the buyers.

    The sold token is never held by this contract: allocations are only
    recorded here and distributed elsewhere.
    """

    # Payment tokens
    usdt: TokenUid
    usdc: TokenUid
    payment_decimals: dict[TokenUid, int]  # Queried once on initialize

    # Roles
    admin_verifier: Address  # Signs whitelist messages
    destination_address: Address  # Receives the raised funds

    # Sale configuration
    is_configured: bool
    start_time: Timestamp
    end_time: Timestamp
    price: Amount  # USD per sold token, PRICE_DECIMALS fixed point
    total_allocation: Amount  # In sold token units
    soft_cap: Amount
    hard_cap: Amount
    minimum_purchase: Amount
    sold_token_decimals: int

    # Sale totals
    collected_by_token: dict[TokenUid, Amount]
    tokens_sold: Amount
    sale_ended: bool  # Latched by the hard cap, the owner, a withdrawal or a refund
    funds_withdrawn: bool

    # Ledger
    contributions: dict[Address, dict[TokenUid, Amount]]
    token_allocations: dict[Address, Amount]
    refund_claimed: dict[Address, Amount]
    purchase_history: dict[Address, list[ContributionRecord]]
    contributors: list[Address]
    contributor_count: int
    refunded_users: list[Address]

    @public
    def initialize(
        self,
        ctx: Context,
        usdt: TokenUid,
        usdc: TokenUid,
        initial_owner: Address,
        admin_verifier: Address,
        destination_address: Address,
        sold_token_decimals: int,
    ) -> None:
        """Bind the payment tokens and roles of the sale."""
        if usdt == usdc:
            raise InvalidPaymentToken('Payment tokens must be different')
        self._validate_sold_token_decimals(sold_token_decimals)

        self.syscall.ownership.initialize(parse_address(initial_owner))
        self.admin_verifier = parse_address(admin_verifier)
        self.destination_address = parse_address(destination_address)

        self.usdt = usdt
        self.usdc = usdc
        self.payment_decimals = {
            usdt: self.syscall.get_token(usdt).decimals(),
            usdc: self.syscall.get_token(usdc).decimals(),
        }

        self.is_configured = False
        self.start_time = Timestamp(0)
        self.end_time = Timestamp(0)
        self.price = Amount(0)
        self.total_allocation = Amount(0)
        self.soft_cap = Amount(0)
        self.hard_cap = Amount(0)
        self.minimum_purchase = Amount(0)
        self.sold_token_decimals = sold_token_decimals

        self.collected_by_token = {usdt: Amount(0), usdc: Amount(0)}
        self.tokens_sold = Amount(0)
        self.sale_ended = False
        self.funds_withdrawn = False

        self.contributions = {}
        self.token_allocations = {}
        self.refund_claimed = {}
        self.purchase_history = {}
        self.contributors = []
        self.contributor_count = 0
        self.refunded_users = []

        self.syscall.emit_event(
            'Initialized',
            usdt=usdt,
            usdc=usdc,
            owner=self.syscall.ownership.owner,
            admin_verifier=self.admin_verifier,
            destination_address=self.destination_address,
        )

    # Configuration

    @public
    def configure_sale(
        self,
        ctx: Context,
        start_time: Timestamp,
        end_time: Timestamp,
        price: Amount,
        total_allocation: Amount,
        soft_cap: Amount,
        hard_cap: Amount,
        minimum_purchase: Amount,
        sold_token_decimals: int,
    ) -> None:
        """Set the sale parameters (owner only).

        May be repeated until the configured start time is reached.
        """
        self.syscall.ownership.only_owner(ctx.caller_id)
        if self.is_configured and ctx.timestamp >= self.start_time:
            raise SaleAlreadyStarted('Sale already started')
        if self.sale_ended:
            raise SaleAlreadyEnded('Sale already ended')

        if start_time >= end_time or start_time < ctx.timestamp:
            raise InvalidTimeRange('Invalid time range')
        amounts = (price, total_allocation, soft_cap, hard_cap, minimum_purchase)
        if any(amount <= 0 for amount in amounts):
            raise InvalidAmount('Amounts must be positive')
        if soft_cap >= hard_cap:
            raise InvalidAmount('Soft cap must be less than hard cap')
        self._validate_sold_token_decimals(sold_token_decimals)

        self.start_time = start_time
        self.end_time = end_time
        self.price = price
        self.total_allocation = total_allocation
        self.soft_cap = soft_cap
        self.hard_cap = hard_cap
        self.minimum_purchase = minimum_purchase
        self.sold_token_decimals = sold_token_decimals
        self.is_configured = True

        logger.info('sale %s configured from %d to %d', self.syscall.contract_id, start_time, end_time)
        self.syscall.emit_event('SaleConfigured', **self.get_sale_config()._asdict())

    @public
    def update_sale_parameters(self, ctx: Context, end_time: Timestamp, minimum_purchase: Amount) -> None:
        """Move the end time and change the minimum purchase (owner only)."""
        self.syscall.ownership.only_owner(ctx.caller_id)
        if not self.is_configured:
            raise SaleNotActive('Sale is not configured')
        if self._get_phase(ctx.timestamp) == SalePhase.ENDED:
            raise SaleAlreadyEnded('Sale already ended')
        if end_time <= self.start_time or end_time <= ctx.timestamp:
            raise InvalidTimeRange('Invalid end time')
        if minimum_purchase <= 0:
            raise InvalidAmount('Minimum purchase must be positive')

        self.end_time = end_time
        self.minimum_purchase = minimum_purchase
        self.syscall.emit_event('SaleParametersUpdated', end_time=end_time, minimum_purchase=minimum_purchase)

    @public
    def set_admin_verifier(self, ctx: Context, admin_verifier: Address) -> None:
        """Rotate the whitelist signer. Signatures of the previous one stop working."""
        self.syscall.ownership.only_owner(ctx.caller_id)
        self.admin_verifier = parse_address(admin_verifier)
        self.syscall.emit_event('AdminVerifierUpdated', admin_verifier=self.admin_verifier)

    @public
    def set_destination_address(self, ctx: Context, destination_address: Address) -> None:
        self.syscall.ownership.only_owner(ctx.caller_id)
        self.destination_address = parse_address(destination_address)
        self.syscall.emit_event('DestinationAddressUpdated', destination_address=self.destination_address)

    @public
    def transfer_ownership(self, ctx: Context, new_owner: Address) -> None:
        new_owner = parse_address(new_owner)
        previous = self.syscall.ownership.transfer_ownership(ctx.caller_id, new_owner)
        self.syscall.emit_event('OwnershipTransferred', previous_owner=previous, new_owner=new_owner)

    @public
    def pause(self, ctx: Context) -> None:
        self.syscall.ownership.only_owner(ctx.caller_id)
        self.syscall.pausing.pause()
        self.syscall.emit_event('Paused', account=ctx.caller_id)

    @public
    def unpause(self, ctx: Context) -> None:
        self.syscall.ownership.only_owner(ctx.caller_id)
        self.syscall.pausing.unpause()
        self.syscall.emit_event('Unpaused', account=ctx.caller_id)

    @public
    def end_sale(self, ctx: Context) -> None:
        """Close the sale before its end time (owner only)."""
        self.syscall.ownership.only_owner(ctx.caller_id)
        if not self.is_configured:
            raise SaleNotActive('Sale is not configured')
        if self.sale_ended:
            raise SaleAlreadyEnded('Sale already ended')
        self._latch_ended('owner')

    # Purchase

    @public
    def buy(self, ctx: Context, payment_token: TokenUid, usd_amount: Amount, signature: bytes) -> None:
        """Buy sold tokens with `usd_amount` of a payment token.

        The buyer must have approved this contract to pull the amount and
        must present the whitelist signature of the admin verifier.
        """
        self.syscall.pausing.when_not_paused()
        self._validate_sale_active(ctx.timestamp)

        if usd_amount < self.minimum_purchase:
            raise BelowMinimumPurchase(f'Amount below minimum purchase of {self.minimum_purchase}')
        self._validate_payment_token(payment_token)
        if self._total_collected() + usd_amount > self.hard_cap:
            raise ExceedsHardCap('Amount exceeds hard cap')

        buyer = ctx.caller_id
        if not self._get_authorizer().verify(buyer, signature):
            raise InvalidSignature('Invalid whitelist signature')

        token = self.syscall.get_token(payment_token)
        contract_id = self.syscall.contract_id
        if token.balance_of(buyer) < usd_amount:
            raise InsufficientBalance('Insufficient payment token balance')
        if token.allowance(buyer, contract_id) < usd_amount:
            raise InsufficientAllowance('Insufficient payment token allowance')

        token_amount = self._calculate_token_amount(payment_token, usd_amount)
        if token_amount == 0:
            raise BelowMinimumPurchase('Amount does not buy any token')
        if self.tokens_sold + token_amount > self.total_allocation:
            raise TotalAllocationExceeded('Total allocation exceeded')

        self._record_purchase(buyer, payment_token, usd_amount, token_amount, ctx.timestamp)
        if self._total_collected() >= self.hard_cap:
            self._latch_ended('hard_cap')

        token.transfer_from(contract_id, buyer, contract_id, usd_amount)

    def _record_purchase(
        self,
        buyer: Address,
        payment_token: TokenUid,
        usd_amount: Amount,
        token_amount: Amount,
        timestamp: Timestamp,
    ) -> None:
        contribution = self.contributions.get(buyer)
        if contribution is None:
            contribution = {self.usdt: Amount(0), self.usdc: Amount(0)}
            self.contributions[buyer] = contribution
            self.purchase_history[buyer] = []

        contribution_before = sum(contribution.values())
        allocation_before = self.token_allocations.get(buyer, Amount(0))
        if contribution_before == 0:
            self.contributors.append(buyer)
            self.contributor_count += 1

        contribution[payment_token] = Amount(contribution[payment_token] + usd_amount)
        self.token_allocations[buyer] = Amount(allocation_before + token_amount)
        self.collected_by_token[payment_token] = Amount(self.collected_by_token[payment_token] + usd_amount)
        self.tokens_sold = Amount(self.tokens_sold + token_amount)

        record = ContributionRecord(
            payment_token=payment_token,
            usd_amount=usd_amount,
            token_amount=token_amount,
            contribution_before=contribution_before,
            contribution_after=contribution_before + usd_amount,
            allocation_before=allocation_before,
            allocation_after=allocation_before + token_amount,
            timestamp=timestamp,
        )
        self.purchase_history[buyer].append(record)

        logger.info('%s bought %d tokens for %d %s', buyer, token_amount, usd_amount, payment_token)
        self.syscall.emit_event('TokensPurchased', buyer=buyer, **record._asdict())

    def _latch_ended(self, reason: str) -> None:
        self.sale_ended = True
        logger.info('sale %s ended (%s)', self.syscall.contract_id, reason)
        self.syscall.emit_event('SaleEnded', reason=reason, total_collected=self._total_collected())

    # Settlement and refunds

    @public
    def withdraw(self, ctx: Context) -> None:
        """Send every raised token to the destination address (owner only)."""
        self.syscall.ownership.only_owner(ctx.caller_id)
        if self._get_phase(ctx.timestamp) != SalePhase.ENDED:
            raise SaleNotEnded('Sale has not ended')
        if self.funds_withdrawn:
            raise FundsAlreadyWithdrawn('Funds already withdrawn')
        if self._total_collected() < self.soft_cap:
            raise SoftCapNotReached('Soft cap not reached')

        if not self.sale_ended:
            self._latch_ended('withdraw')
        self.funds_withdrawn = True

        contract_id = self.syscall.contract_id
        payouts = []
        for token_uid in (self.usdt, self.usdc):
            token = self.syscall.get_token(token_uid)
            payouts.append((token, token.balance_of(contract_id)))

        self.syscall.emit_event(
            'FundsWithdrawn',
            destination_address=self.destination_address,
            amounts={token.token_uid: amount for token, amount in payouts},
        )
        logger.info('sale %s settled to %s', contract_id, self.destination_address)

        for token, amount in payouts:
            if amount > 0:
                token.transfer(contract_id, self.destination_address, amount)

    @public
    def claim_refund(self, ctx: Context) -> None:
        """Get back the caller's contributions after a failed sale."""
        self._claim_refund(ctx, ctx.caller_id)

    @public
    def claim_refund_for(self, ctx: Context, user: Address) -> None:
        """Refund `user` on their behalf (owner only)."""
        self.syscall.ownership.only_owner(ctx.caller_id)
        self._claim_refund(ctx, parse_address(user))

    def _claim_refund(self, ctx: Context, user: Address) -> None:
        self.syscall.pausing.when_not_paused()
        if self._get_phase(ctx.timestamp) != SalePhase.ENDED:
            raise SaleNotEnded('Sale has not ended')
        if self._total_collected() >= self.soft_cap:
            raise SoftCapReached('Soft cap reached, no refunds')
        if self.refund_claimed.get(user, Amount(0)) > 0:
            raise RefundAlreadyClaimed('Refund already claimed')

        contribution = self.contributions.get(user, {})
        refund_total = sum(contribution.values())
        if refund_total == 0:
            raise NoUserContribution('No contribution to refund')

        # Every leg must be payable: a refund is never marked claimed
        # while part of it stays in the contract.
        contract_id = self.syscall.contract_id
        legs = []
        for token_uid, amount in contribution.items():
            if amount == 0:
                continue
            token = self.syscall.get_token(token_uid)
            available = token.balance_of(contract_id)
            if available < amount:
                raise InsufficientBalance(f'Contract holds {available} of {token_uid}, refund needs {amount}')
            legs.append((token, amount))

        if not self.sale_ended:
            self._latch_ended('refund')
        self.refund_claimed[user] = Amount(refund_total)
        self.refunded_users.append(user)
        self.syscall.emit_event(
            'RefundClaimed',
            user=user,
            total=refund_total,
            amounts={token.token_uid: amount for token, amount in legs},
        )
        logger.info('refunded %d to %s', refund_total, user)

        for token, amount in legs:
            token.transfer(contract_id, user, amount)

    # Internal helpers

    def _get_phase(self, timestamp: Timestamp) -> int:
        if self.sale_ended:
            return SalePhase.ENDED
        if not self.is_configured or timestamp < self.start_time:
            return SalePhase.NOT_STARTED
        if timestamp > self.end_time:
            return SalePhase.ENDED
        return SalePhase.ACTIVE

    def _validate_sale_active(self, timestamp: Timestamp) -> None:
        phase = self._get_phase(timestamp)
        if phase == SalePhase.NOT_STARTED:
            raise SaleNotActive('Sale is not active')
        if phase == SalePhase.ENDED:
            raise SaleAlreadyEnded('Sale already ended')

    def _validate_payment_token(self, payment_token: TokenUid) -> None:
        if payment_token not in (self.usdt, self.usdc):
            raise InvalidPaymentToken(f'Invalid payment token: {payment_token}')

    def _validate_sold_token_decimals(self, decimals: int) -> None:
        if not 0 <= decimals <= settings.MAX_SOLD_TOKEN_DECIMALS:
            raise InvalidAmount('Invalid sold token decimals')

    def _total_collected(self) -> Amount:
        return Amount(sum(self.collected_by_token.values()))

    def _calculate_token_amount(self, payment_token: TokenUid, usd_amount: Amount) -> Amount:
        """Convert a payment amount into sold token units, rounding down."""
        usd_value = normalize_amount(usd_amount, self.payment_decimals[payment_token], settings.PRICE_DECIMALS)
        return Amount(usd_value * 10**self.sold_token_decimals // self.price)

    def _get_authorizer(self) -> Authorizer:
        return self.syscall.get_authorizer(self.admin_verifier, self._get_domain())

    def _get_domain(self) -> EIP712Domain:
        return EIP712Domain(
            name=settings.EIP712_DOMAIN_NAME,
            version=settings.EIP712_DOMAIN_VERSION,
            chain_id=settings.CHAIN_ID,
            verifying_contract=self.syscall.contract_id,
        )

    def _paginate(self, items: list[Any], offset: int, limit: int) -> Page:
        if offset < 0 or limit < 0:
            raise InvalidPagination('Offset and limit must not be negative')
        limit = min(limit, settings.MAX_PAGE_SIZE)
        return Page(items=list(items[offset:offset + limit]), total=len(items))

    # Views

    @view
    def get_sale_config(self) -> SaleConfig:
        return SaleConfig(
            is_configured=self.is_configured,
            start_time=self.start_time,
            end_time=self.end_time,
            price=self.price,
            total_allocation=self.total_allocation,
            soft_cap=self.soft_cap,
            hard_cap=self.hard_cap,
            minimum_purchase=self.minimum_purchase,
            sold_token_decimals=self.sold_token_decimals,
        )

    @view
    def get_phase(self) -> int:
        return self._get_phase(self.syscall.get_current_timestamp())

    @view
    def get_sale_status(self) -> SaleStatus:
        phase = self.get_phase()
        collected = self._total_collected()
        return SaleStatus(
            is_active=phase == SalePhase.ACTIVE,
            is_ended=phase == SalePhase.ENDED,
            soft_cap_reached=self.is_configured and collected >= self.soft_cap,
            hard_cap_reached=self.is_configured and collected >= self.hard_cap,
        )

    @view
    def get_contract_info(self) -> dict[str, str]:
        """Roles and payment tokens of the sale."""
        return {
            'owner': self.syscall.ownership.owner,
            'admin_verifier': self.admin_verifier,
            'destination_address': self.destination_address,
            'usdt': self.usdt,
            'usdc': self.usdc,
            'paused': str(self.syscall.pausing.paused).lower(),
            'funds_withdrawn': str(self.funds_withdrawn).lower(),
        }

    @view
    def get_total_collected(self) -> int:
        return self._total_collected()

    @view
    def get_collected_by_token(self) -> dict[str, int]:
        return dict(self.collected_by_token)

    @view
    def get_tokens_sold(self) -> int:
        return self.tokens_sold

    @view
    def get_contributor_count(self) -> int:
        return self.contributor_count

    @view
    def get_user_info(self, user: Address) -> UserInfo:
        user = parse_address(user)
        contribution = self.contributions.get(user, {})
        total = sum(contribution.values())
        claimed = self.refund_claimed.get(user, Amount(0))
        can_claim_refund = (
            self.get_phase() == SalePhase.ENDED
            and self._total_collected() < self.soft_cap
            and claimed == 0
            and total > 0
        )
        return UserInfo(
            usdt_contribution=contribution.get(self.usdt, 0),
            usdc_contribution=contribution.get(self.usdc, 0),
            total_contribution=total,
            token_allocation=self.token_allocations.get(user, Amount(0)),
            refund_claimed_amount=claimed,
            purchase_count=len(self.purchase_history.get(user, [])),
            can_claim_refund=can_claim_refund,
        )

    @view
    def get_contributors(self, offset: int, limit: int) -> Page:
        return self._paginate(self.contributors, offset, limit)

    @view
    def get_purchase_history(self, user: Address, offset: int, limit: int) -> Page:
        return self._paginate(self.purchase_history.get(parse_address(user), []), offset, limit)

    @view
    def get_refunded_users(self, offset: int, limit: int) -> Page:
        return self._paginate(self.refunded_users, offset, limit)

    @view
    def calculate_token_amount(self, payment_token: TokenUid, usd_amount: Amount) -> int:
        """Preview the sold tokens `usd_amount` of `payment_token` would buy."""
        self._validate_payment_token(payment_token)
        if not self.is_configured:
            raise SaleNotActive('Sale is not configured')
        return self._calculate_token_amount(payment_token, usd_amount)

    @view
    def get_whitelist_digest(self, user: Address) -> str:
        """Digest the admin verifier signs to whitelist `user`."""
        return whitelist_digest(self._get_domain(), parse_address(user)).hex()
