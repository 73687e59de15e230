"""
Ledger Gateway
==============
Balance and height queries and payment submission against the ledger's
HTTP API.

Endpoints used:
    GET  {api_url}/v1/accounts/{address}      -> {"data": {"balance": ..., "speculative_nonce": ...}}
    GET  {api_url}/v1/blocks/height            -> {"data": {"height": ...}}
    POST {api_url}/v1/pending_transactions     <- {"txn": <base64 signed payment>}
"""

import base64
import hashlib
import json
from typing import Optional, Protocol, Sequence

import requests
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from .models import Account, Balance, Payee, PaymentResult, WalletIdentity
from .utils import BankerError, LedgerUnavailable, PaymentSubmissionError, get_logger
from .wallet import WalletHandle

logger = get_logger(__name__)

PAYMENT_TXN_TYPE = "payment_v2"


class LedgerGateway(Protocol):
    """What the distribution engine needs from a ledger."""

    def get_account(self, address: str) -> Optional[Account]: ...

    def get_height(self) -> int: ...

    def submit_payment(
        self,
        payer: WalletHandle,
        credential: str,
        payees: Sequence[Payee],
        ack: bool = True,
        commit: bool = True,
    ) -> PaymentResult: ...


class HttpLedgerGateway:
    """
    LedgerGateway backed by the ledger's REST API.

    Every request carries a timeout. Queries retry a dropped connection or a
    timeout up to three times; submissions are never retried. Failures
    surface as LedgerUnavailable (queries, transport) or
    PaymentSubmissionError (rejected submissions).
    """

    def __init__(self, api_url: str, timeout: float = 30.0,
                 session: Optional[requests.Session] = None):
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.setdefault("User-Agent", "banker/1.0")

    def __repr__(self) -> str:
        return f"HttpLedgerGateway({self.api_url})"

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type((requests.ConnectionError, requests.Timeout)),
        reraise=True,
    )
    def _fetch(self, url: str) -> requests.Response:
        return self.session.get(url, timeout=self.timeout)

    def _get(self, path: str) -> Optional[dict]:
        url = f"{self.api_url}{path}"
        try:
            response = self._fetch(url)
        except requests.RequestException as e:
            raise LedgerUnavailable(f"GET {path} failed: {e}")

        if response.status_code == 404:
            return None
        if not response.ok:
            raise LedgerUnavailable(f"GET {path} returned HTTP {response.status_code}")

        try:
            return response.json().get("data")
        except ValueError:
            raise LedgerUnavailable(f"GET {path} returned invalid JSON")

    def get_account(self, address: str) -> Optional[Account]:
        data = self._get(f"/v1/accounts/{address}")
        if data is None:
            return None
        try:
            return Account(
                address=address,
                balance=int(data.get("balance") or 0),
                nonce=int(data.get("speculative_nonce", data.get("nonce")) or 0),
            )
        except (TypeError, ValueError):
            raise LedgerUnavailable(f"Malformed account data for {address}")

    def get_height(self) -> int:
        data = self._get("/v1/blocks/height")
        try:
            return int(data["height"])
        except (TypeError, KeyError, ValueError):
            raise LedgerUnavailable("Malformed height response")

    def build_payment(self, payer: WalletHandle, credential: str,
                      payees: Sequence[Payee], nonce: int) -> str:
        """
        Build and sign a multipay transaction.

        Returns:
            Base64 encoded signed transaction
        """
        txn = {
            "type": PAYMENT_TXN_TYPE,
            "payer": payer.address(),
            "payments": [{"payee": p.address, "amount": p.amount} for p in payees],
            "nonce": nonce,
        }
        unsigned = json.dumps(txn, sort_keys=True, separators=(",", ":"))
        txn["signature"] = payer.sign(credential, unsigned)
        signed = json.dumps(txn, sort_keys=True, separators=(",", ":"))
        return base64.b64encode(signed.encode()).decode()

    def submit_payment(
        self,
        payer: WalletHandle,
        credential: str,
        payees: Sequence[Payee],
        ack: bool = True,
        commit: bool = True,
    ) -> PaymentResult:
        """
        Sign a multipay and, when ``commit`` is set, broadcast it.

        ``ack`` waits for the ledger to return the pending transaction hash.
        Without ``commit`` the signed transaction is built but not sent.
        """
        payer_address = payer.address()
        account = self.get_account(payer_address)
        nonce = (account.nonce if account else 0) + 1

        blob = self.build_payment(payer, credential, payees, nonce)
        local_hash = hashlib.sha256(blob.encode()).hexdigest()
        result = PaymentResult(
            payer=payer_address,
            payee_count=len(payees),
            total=sum(p.amount for p in payees),
            success=True,
            tx_hash=local_hash,
            committed=commit,
        )

        if not commit:
            result.detail = "signed, not committed"
            return result

        url = f"{self.api_url}/v1/pending_transactions"
        try:
            response = self.session.post(url, json={"txn": blob}, timeout=self.timeout)
        except requests.RequestException as e:
            raise LedgerUnavailable(f"POST /v1/pending_transactions failed: {e}")

        if not response.ok:
            raise PaymentSubmissionError(
                f"Payment from {payer_address} rejected: HTTP {response.status_code} {response.text[:200]}"
            )

        if ack:
            try:
                result.tx_hash = response.json()["data"]["hash"]
            except (ValueError, KeyError, TypeError):
                raise PaymentSubmissionError(f"Payment from {payer_address} was not acknowledged")
            result.detail = "pending"
        else:
            result.detail = "submitted"

        return result


def balance_of(gateway: LedgerGateway, address: str) -> int:
    """
    Current balance in bones.

    An unknown account or an unreachable ledger both count as 0.
    """
    try:
        account = gateway.get_account(address)
    except LedgerUnavailable as e:
        logger.warning(f"Balance unavailable for {address}, using 0: {e}")
        return 0
    return account.balance if account else 0


def snapshot(gateway: LedgerGateway, identity: WalletIdentity) -> Balance:
    """Take a Balance snapshot, keeping the error text for display."""
    try:
        account = gateway.get_account(identity.address)
    except BankerError as e:
        logger.warning(f"Balance unavailable for {identity.address}: {e}")
        return Balance(key_file=identity.name, address=identity.address, error=str(e))
    return Balance(
        key_file=identity.name,
        address=identity.address,
        balance=account.balance if account else 0,
    )
