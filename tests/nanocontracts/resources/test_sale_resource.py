import json
from typing import Any

from twisted.web.test.requesthelper import DummyRequest

from launchpad.nanocontracts.blueprints.private_sale import SalePhase
from launchpad.nanocontracts.resources.sale import PrivateSaleResource
from tests.nanocontracts.blueprints.sale_utils import PrivateSaleTestBase


class PrivateSaleResourceTestCase(PrivateSaleTestBase):
    def setUp(self) -> None:
        super().setUp()
        self._initialize_sale()
        self.resource = PrivateSaleResource(self.runner)

        self.buyer = self.gen_random_address()
        self._funded_buy(self.buyer, self.usdt, 1000)
        self._funded_buy(self.buyer, self.usdc, 500, timestamp=self.start_time + 7)

    def _get(self, **params: Any) -> tuple[int, dict[str, Any]]:
        request = DummyRequest([b''])
        request.args = {key.encode(): [str(value).encode()] for key, value in params.items()}
        body = self.resource.render_GET(request)
        self.assertEqual(request.responseHeaders.getRawHeaders(b'access-control-allow-methods'), [b'GET'])
        return request.responseCode or 200, json.loads(body)

    def test_sale_state(self) -> None:
        code, data = self._get(id=self.contract_id)
        self.assertEqual(code, 200)
        self.assertTrue(data['success'])
        self.assertEqual(data['nc_id'], self.contract_id)
        self.assertEqual(data['phase'], SalePhase.NOT_STARTED)
        self.assertEqual(data['status'], {
            'is_active': False,
            'is_ended': False,
            'soft_cap_reached': False,
            'hard_cap_reached': False,
        })
        self.assertEqual(data['config']['price'], str(self.price))
        self.assertEqual(data['config']['total_allocation'], str(self.total_allocation))
        self.assertTrue(data['config']['is_configured'])
        self.assertEqual(data['total_collected'], '1500')
        self.assertEqual(data['collected_by_token'], {self.usdt.token_uid: '1000', self.usdc.token_uid: '500'})
        self.assertEqual(data['tokens_sold'], str(self._expected_tokens(1000) + self._expected_tokens(500)))
        self.assertEqual(data['contributor_count'], 1)
        self.assertIsNone(data['user'])
        self.assertIsNone(data['page'])

    def test_phase_follows_clock(self) -> None:
        self.clock.advance(self.start_time - self.now)
        _, data = self._get(id=self.contract_id)
        self.assertEqual(data['phase'], SalePhase.ACTIVE)
        self.assertTrue(data['status']['is_active'])

    def test_user_info(self) -> None:
        code, data = self._get(id=self.contract_id.lower(), user=self.buyer)
        self.assertEqual(code, 200)
        self.assertEqual(data['user'], {
            'address': self.buyer,
            'usdt_contribution': '1000',
            'usdc_contribution': '500',
            'total_contribution': '1500',
            'token_allocation': str(self._expected_tokens(1000) + self._expected_tokens(500)),
            'refund_claimed_amount': '0',
            'purchase_count': '2',
            'can_claim_refund': False,
        })

    def test_listings(self) -> None:
        _, data = self._get(id=self.contract_id, listing='contributors')
        self.assertEqual(data['page'], {'items': [self.buyer], 'total': 1})

        # Limits above the network page size are clamped by the contract
        code, data = self._get(id=self.contract_id, listing='contributors', limit=10_000)
        self.assertEqual(code, 200)
        self.assertEqual(data['page'], {'items': [self.buyer], 'total': 1})

        _, data = self._get(id=self.contract_id, listing='refunded')
        self.assertEqual(data['page'], {'items': [], 'total': 0})

        _, data = self._get(id=self.contract_id, listing='history', user=self.buyer, offset=1, limit=5)
        self.assertEqual(data['page']['total'], 2)
        record = data['page']['items'][0]
        self.assertEqual(record['payment_token'], self.usdc.token_uid)
        self.assertEqual(record['usd_amount'], '500')
        self.assertEqual(record['contribution_before'], '1000')
        self.assertEqual(record['contribution_after'], '1500')
        self.assertEqual(record['timestamp'], str(self.start_time + 7))

    def test_invalid_params(self) -> None:
        code, data = self._get()
        self.assertEqual(code, 400)
        self.assertFalse(data['success'])

        for params in ({'listing': 'everything'}, {'offset': -1}, {'limit': -1}, {'limit': 'ten'}):
            code, data = self._get(id=self.contract_id, **params)
            self.assertEqual(code, 400)
            self.assertFalse(data['success'])

        code, data = self._get(id=self.contract_id, listing='history')
        self.assertEqual(code, 400)
        self.assertIn('user', data['error'])

        code, data = self._get(id='0x1234')
        self.assertEqual(code, 400)

        code, data = self._get(id=self.contract_id, user='someone')
        self.assertEqual(code, 400)
        self.assertTrue(data['error'].startswith('InvalidAddress'))

    def test_unknown_sale(self) -> None:
        code, data = self._get(id=self.gen_random_contract_id())
        self.assertEqual(code, 404)
        self.assertFalse(data['success'])
