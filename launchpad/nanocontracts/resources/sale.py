from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Literal, Optional

from pydantic import Field
from twisted.web.resource import Resource

from launchpad.nanocontracts.exception import NanoContractDoesNotExist, NCFail
from launchpad.nanocontracts.types import ContractId, to_address
from launchpad.utils.api import ErrorResponse, QueryParams, Response, set_cors

if TYPE_CHECKING:
    from twisted.web.http import Request

    from launchpad.nanocontracts.runner import Runner

logger = logging.getLogger(__name__)


class PrivateSaleResource(Resource):
    """ Implements a web server GET API to read the state of a private sale.

    Always returns the sale status, configuration and totals. With `user`
    it adds that buyer's info; with `listing` it adds one page of the
    contributors, the refunded users or the purchase history of `user`.
    """
    isLeaf = True

    def __init__(self, runner: Runner) -> None:
        super().__init__()
        self.runner = runner

    def render_GET(self, request: Request) -> bytes:
        request.setHeader(b'content-type', b'application/json; charset=utf-8')
        set_cors(request, 'GET')

        params = PrivateSaleParams.from_request(request)
        if isinstance(params, ErrorResponse):
            request.setResponseCode(400)
            return params.json_dumpb()

        if params.listing == 'history' and params.user is None:
            request.setResponseCode(400)
            return ErrorResponse(error='`user` is required to list the purchase history').json_dumpb()

        try:
            nc_id = ContractId(to_address(params.id))
        except ValueError:
            request.setResponseCode(400)
            return ErrorResponse(error=f'Invalid id: {params.id}').json_dumpb()

        try:
            response = self._build_response(nc_id, params)
        except NanoContractDoesNotExist:
            request.setResponseCode(404)
            return ErrorResponse(error=f'Private sale {params.id} does not exist').json_dumpb()
        except NCFail as e:
            logger.debug('private sale query failed: %r', e)
            request.setResponseCode(400)
            return ErrorResponse(error=f'{type(e).__name__}: {e}').json_dumpb()
        return response.json_dumpb()

    def _call(self, nc_id: ContractId, method_name: str, *args: Any) -> Any:
        return self.runner.call_view_method(nc_id, method_name, *args)

    def _build_response(self, nc_id: ContractId, params: PrivateSaleParams) -> PrivateSaleResponse:
        config = self._call(nc_id, 'get_sale_config')
        status = self._call(nc_id, 'get_sale_status')

        user: Optional[UserInfoResponse] = None
        if params.user is not None:
            info = self._call(nc_id, 'get_user_info', params.user)
            user = UserInfoResponse(
                address=params.user,
                **{key: _amount_to_json(value) for key, value in info._asdict().items()},
            )

        page: Optional[PageResponse] = None
        if params.listing == 'contributors':
            result = self._call(nc_id, 'get_contributors', params.offset, params.limit)
            page = PageResponse(items=result.items, total=result.total)
        elif params.listing == 'refunded':
            result = self._call(nc_id, 'get_refunded_users', params.offset, params.limit)
            page = PageResponse(items=result.items, total=result.total)
        elif params.listing == 'history':
            result = self._call(nc_id, 'get_purchase_history', params.user, params.offset, params.limit)
            items = [
                {key: _amount_to_json(value) for key, value in record._asdict().items()}
                for record in result.items
            ]
            page = PageResponse(items=items, total=result.total)

        return PrivateSaleResponse(
            success=True,
            nc_id=nc_id,
            phase=self._call(nc_id, 'get_phase'),
            status=SaleStatusResponse(**status._asdict()),
            config={key: _amount_to_json(value) for key, value in config._asdict().items()},
            total_collected=str(self._call(nc_id, 'get_total_collected')),
            collected_by_token={
                token: str(amount) for token, amount in self._call(nc_id, 'get_collected_by_token').items()
            },
            tokens_sold=str(self._call(nc_id, 'get_tokens_sold')),
            contributor_count=self._call(nc_id, 'get_contributor_count'),
            user=user,
            page=page,
        )


def _amount_to_json(value: Any) -> Any:
    """Integers are sent as strings so clients keep full precision."""
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


class PrivateSaleParams(QueryParams):
    id: str
    user: Optional[str] = None
    listing: Optional[Literal['contributors', 'refunded', 'history']] = None
    offset: int = Field(default=0, ge=0)
    limit: int = Field(default=20, ge=0)


class SaleStatusResponse(Response):
    is_active: bool
    is_ended: bool
    soft_cap_reached: bool
    hard_cap_reached: bool


class UserInfoResponse(Response):
    address: str
    usdt_contribution: str
    usdc_contribution: str
    total_contribution: str
    token_allocation: str
    refund_claimed_amount: str
    purchase_count: str
    can_claim_refund: bool


class PageResponse(Response):
    items: list[Any]
    total: int


class PrivateSaleResponse(Response):
    success: bool
    nc_id: str
    phase: int
    status: SaleStatusResponse
    config: dict[str, Any]
    total_collected: str
    collected_by_token: dict[str, str]
    tokens_sold: str
    contributor_count: int
    user: Optional[UserInfoResponse]
    page: Optional[PageResponse]
