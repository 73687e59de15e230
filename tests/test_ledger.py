"""
Tests for the HTTP ledger gateway.
"""

import base64
import json
from unittest.mock import MagicMock, Mock

import pytest
import requests
from tenacity import wait_none

from banker.ledger import PAYMENT_TXN_TYPE, HttpLedgerGateway, balance_of, snapshot
from banker.models import Account, Payee, WalletIdentity
from banker.utils import LedgerUnavailable, PaymentSubmissionError
from banker.wallet import KeyFileStore

from conftest import PASSWORD, FakeLedger, make_address, signing_key


def response(status=200, payload=None, text=""):
    resp = Mock()
    resp.status_code = status
    resp.ok = 200 <= status < 300
    resp.text = text
    if payload is None:
        resp.json.side_effect = ValueError("no json")
    else:
        resp.json.return_value = payload
    return resp


@pytest.fixture(autouse=True)
def no_retry_wait(monkeypatch):
    monkeypatch.setattr(HttpLedgerGateway._fetch.retry, "wait", wait_none())


@pytest.fixture
def session():
    s = MagicMock(spec=requests.Session)
    s.headers = {}
    return s


@pytest.fixture
def handle(tmp_path):
    return KeyFileStore().load_wallet(signing_key(tmp_path / "w.key"))


class TestQueries:

    def test_get_account(self, session):
        session.get.return_value = response(payload={"data": {"balance": 1500, "speculative_nonce": 4}})
        gateway = HttpLedgerGateway("https://ledger.example/", session=session, timeout=5)

        account = gateway.get_account("0xabc")

        assert account == Account("0xabc", 1500, 4)
        session.get.assert_called_once_with("https://ledger.example/v1/accounts/0xabc", timeout=5)

    def test_unknown_account(self, session):
        session.get.return_value = response(status=404)

        assert HttpLedgerGateway("https://ledger.example", session=session).get_account("0xabc") is None

    @pytest.mark.parametrize("failure", [
        requests.ConnectionError("refused"),
        requests.Timeout("slow"),
    ])
    def test_transport_failure(self, session, failure):
        session.get.side_effect = failure

        with pytest.raises(LedgerUnavailable):
            HttpLedgerGateway("https://ledger.example", session=session).get_account("0xabc")
        assert session.get.call_count == 3

    def test_transient_failure_is_retried(self, session):
        session.get.side_effect = [
            requests.ConnectionError("reset"),
            response(payload={"data": {"balance": 9}}),
        ]

        account = HttpLedgerGateway("https://ledger.example", session=session).get_account("0xabc")

        assert account.balance == 9

    def test_server_error_is_not_retried(self, session):
        session.get.return_value = response(status=500)

        with pytest.raises(LedgerUnavailable):
            HttpLedgerGateway("https://ledger.example", session=session).get_account("0xabc")
        assert session.get.call_count == 1

    def test_server_error(self, session):
        session.get.return_value = response(status=503)

        with pytest.raises(LedgerUnavailable):
            HttpLedgerGateway("https://ledger.example", session=session).get_height()

    def test_get_height(self, session):
        session.get.return_value = response(payload={"data": {"height": 1234567}})

        assert HttpLedgerGateway("https://ledger.example", session=session).get_height() == 1234567

    def test_malformed_height(self, session):
        session.get.return_value = response(payload={"data": {}})

        with pytest.raises(LedgerUnavailable):
            HttpLedgerGateway("https://ledger.example", session=session).get_height()


class TestSubmitPayment:

    def test_dry_run_signs_without_posting(self, session, handle):
        session.get.return_value = response(payload={"data": {"balance": 10, "speculative_nonce": 2}})
        gateway = HttpLedgerGateway("https://ledger.example", session=session)

        result = gateway.submit_payment(handle, PASSWORD, [Payee(make_address(1), 3)], commit=False)

        assert result.success
        assert result.committed is False
        assert result.total == 3
        session.post.assert_not_called()

    def test_posts_signed_payment(self, session, handle):
        session.get.return_value = response(payload={"data": {"balance": 10, "speculative_nonce": 2}})
        session.post.return_value = response(payload={"data": {"hash": "abc123"}})
        gateway = HttpLedgerGateway("https://ledger.example", session=session)
        payees = [Payee(make_address(1), 3), Payee(make_address(2), 4)]

        result = gateway.submit_payment(handle, PASSWORD, payees)

        assert result.success
        assert result.tx_hash == "abc123"
        assert result.payee_count == 2
        assert result.total == 7

        url = session.post.call_args[0][0]
        blob = session.post.call_args[1]["json"]["txn"]
        txn = json.loads(base64.b64decode(blob))
        assert url == "https://ledger.example/v1/pending_transactions"
        assert txn["type"] == PAYMENT_TXN_TYPE
        assert txn["payer"] == handle.address()
        assert txn["nonce"] == 3
        assert txn["payments"] == [
            {"payee": make_address(1), "amount": 3},
            {"payee": make_address(2), "amount": 4},
        ]
        assert txn["signature"]

    def test_new_account_starts_at_nonce_one(self, session, handle):
        session.get.return_value = response(status=404)
        gateway = HttpLedgerGateway("https://ledger.example", session=session)

        blob = gateway.build_payment(handle, PASSWORD, [Payee(make_address(1), 1)], nonce=1)

        assert json.loads(base64.b64decode(blob))["nonce"] == 1
        result = gateway.submit_payment(handle, PASSWORD, [Payee(make_address(1), 1)], commit=False)
        assert result.success

    def test_rejected_payment(self, session, handle):
        session.get.return_value = response(payload={"data": {"balance": 10, "speculative_nonce": 0}})
        session.post.return_value = response(status=400, text="insufficient balance")

        with pytest.raises(PaymentSubmissionError):
            HttpLedgerGateway("https://ledger.example", session=session).submit_payment(
                handle, PASSWORD, [Payee(make_address(1), 100)]
            )

    def test_transport_failure_on_submit(self, session, handle):
        session.get.return_value = response(payload={"data": {"balance": 10, "speculative_nonce": 0}})
        session.post.side_effect = requests.ConnectionError("reset")

        with pytest.raises(LedgerUnavailable):
            HttpLedgerGateway("https://ledger.example", session=session).submit_payment(
                handle, PASSWORD, [Payee(make_address(1), 1)]
            )


class TestHelpers:

    def test_balance_of(self):
        ledger = FakeLedger({make_address(0): 42})
        ledger.unavailable.add(make_address(2))

        assert balance_of(ledger, make_address(0)) == 42
        assert balance_of(ledger, make_address(1)) == 0
        assert balance_of(ledger, make_address(2)) == 0

    def test_snapshot_keeps_error(self, tmp_path):
        ledger = FakeLedger({make_address(0): 42})
        ledger.unavailable.add(make_address(0))

        balance = snapshot(ledger, WalletIdentity(tmp_path / "wallet_0001.key", make_address(0)))

        assert balance.key_file == "wallet_0001.key"
        assert balance.balance is None
        assert "unavailable" in balance.error
