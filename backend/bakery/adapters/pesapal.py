import base64
import hashlib
import hmac
import re
import secrets
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from urllib.parse import quote

import requests
from pydantic import BaseModel

from bakery.errors import GatewayError, NetworkError
from bakery.utils.logs import get_logger
from bakery.utils.payment_log import PaymentLog, payment_log

log = get_logger("payments")

TOKEN_PATH = "/api/Auth/RequestToken"
SUBMIT_ORDER_PATH = "/api/Transactions/SubmitOrderRequest"
TRANSACTION_STATUS_PATH = "/api/Transactions/GetTransactionStatus"
REGISTER_IPN_PATH = "/api/URLSetup/RegisterIPN"
LIST_IPNS_PATH = "/api/URLSetup/GetIpnList"

# refresh a little before the gateway's stated expiry
TOKEN_EXPIRY_MARGIN = timedelta(seconds=30)
DEFAULT_TOKEN_TTL = timedelta(minutes=5)

# PesaPal status_code vocabulary
STATUS_INVALID = 0
STATUS_COMPLETED = 1
STATUS_FAILED = 2
STATUS_REVERSED = 3


class BillingAddress(BaseModel):
    email_address: Optional[str] = None
    phone_number: Optional[str] = None
    country_code: str = "UG"
    first_name: str
    middle_name: Optional[str] = None
    last_name: str
    line_1: Optional[str] = None
    line_2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    zip_code: Optional[str] = None


class PaymentRequest(BaseModel):
    id: str
    currency: str
    amount: float
    description: str
    callback_url: str
    notification_id: str
    billing_address: BillingAddress


@dataclass
class SubmitOrderResult:
    order_tracking_id: str
    merchant_reference: str
    redirect_url: str


@dataclass
class TransactionStatus:
    status: str
    payment_status_description: Optional[str] = None
    confirmation_code: Optional[str] = None
    status_code: Optional[int] = None
    amount: Optional[Any] = None
    payment_method: Optional[str] = None
    merchant_reference: Optional[str] = None
    raw: Dict = field(default_factory=dict)

    @property
    def is_success(self) -> bool:
        return (
            (self.status or "").upper() == "COMPLETED"
            or (self.payment_status_description or "").lower() == "completed"
            or self.status_code == STATUS_COMPLETED
        )

    @property
    def is_failure(self) -> bool:
        return (
            (self.status or "").upper() in ("FAILED", "INVALID", "REVERSED")
            or (self.payment_status_description or "").lower() in ("failed", "invalid", "reversed")
            or self.status_code in (STATUS_FAILED, STATUS_REVERSED)
        )


def _parse_expiry(value: Any, now: datetime) -> datetime:
    """
    PesaPal returns `expiryDate` as an ISO-8601 string (often with 7 fractional
    digits and a trailing Z); older proxies return a lifetime in seconds.
    """
    if isinstance(value, (int, float)):
        return now + timedelta(seconds=value)
    if isinstance(value, str) and value:
        text = value.strip()
        if text.isdigit():
            return now + timedelta(seconds=int(text))
        text = re.sub(r"Z$", "+00:00", text)
        text = re.sub(r"(\.\d{6})\d+", r"\1", text)
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            log.warning(f"unparseable token expiryDate {value!r}; using default ttl")
            return now + DEFAULT_TOKEN_TTL
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    return now + DEFAULT_TOKEN_TTL


class PesapalClient:
    """
    PesaPal v3 API client.

    Token lifecycle: NoToken -> Requesting -> Valid(until) -> Expired -> Requesting.
    A held token is reused until it expires; callers never see it.
    """

    def __init__(
        self,
        base_url: str,
        consumer_key: str,
        consumer_secret: str,
        session: Optional[requests.Session] = None,
        timeout: Optional[float] = None,
        logbook: Optional[PaymentLog] = None,
        clock=None,
    ):
        self.base_url = base_url.rstrip("/")
        self.consumer_key = consumer_key
        self.consumer_secret = consumer_secret
        self.session = session or requests.Session()
        self.timeout = timeout
        self.logbook = logbook or payment_log
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._token: Optional[str] = None
        self._token_expires_at: Optional[datetime] = None

    # --- signing -----------------------------------------------------------

    def sign(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        nonce: Optional[str] = None,
        timestamp: Optional[int] = None,
    ) -> str:
        """
        Build an OAuth 1.0 HMAC-SHA1 Authorization header value. Deterministic
        for fixed nonce/timestamp; both are random/current when omitted.
        """
        nonce = nonce or secrets.token_hex(16)
        timestamp = int(time.time()) if timestamp is None else int(timestamp)
        oauth = {
            "oauth_consumer_key": self.consumer_key,
            "oauth_nonce": nonce,
            "oauth_signature_method": "HMAC-SHA1",
            "oauth_timestamp": str(timestamp),
            "oauth_version": "1.0",
        }
        all_params = dict(oauth)
        all_params.update({k: str(v) for k, v in (params or {}).items()})
        param_string = "&".join(
            f"{quote(k, safe='~')}={quote(v, safe='~')}" for k, v in sorted(all_params.items())
        )
        base_string = "&".join(
            [method.upper(), quote(url, safe="~"), quote(param_string, safe="~")]
        )
        signing_key = f"{quote(self.consumer_secret, safe='~')}&"
        digest = hmac.new(signing_key.encode(), base_string.encode(), hashlib.sha1).digest()
        signature = base64.b64encode(digest).decode()
        oauth["oauth_signature"] = signature
        return "OAuth " + ", ".join(
            f'{k}="{quote(v, safe="~")}"' for k, v in sorted(oauth.items())
        )

    # --- token -------------------------------------------------------------

    @property
    def token_state(self) -> str:
        if not self._token:
            return "no_token"
        if self._token_expires_at and self._clock() >= self._token_expires_at:
            return "expired"
        return "valid"

    def get_access_token(self) -> str:
        if self.token_state == "valid":
            return self._token
        url = self._url(TOKEN_PATH)
        body = {"consumer_key": self.consumer_key, "consumer_secret": self.consumer_secret}
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "Authorization": self.sign("POST", url),
        }
        self.logbook.request({"url": url, "body": body}, reference="auth")
        data = self._send("POST", url, headers=headers, json=body, reference="auth")
        token = data.get("token")
        if not token:
            raise GatewayError("PesaPal did not return an access token", raw=data)
        now = self._clock()
        self._token = token
        self._token_expires_at = _parse_expiry(data.get("expiryDate"), now) - TOKEN_EXPIRY_MARGIN
        return token

    def invalidate_token(self):
        self._token = None
        self._token_expires_at = None

    # --- operations --------------------------------------------------------

    def submit_order(self, request: PaymentRequest) -> SubmitOrderResult:
        """
        Submit an order request. NOT idempotent on the gateway side: callers
        must submit each merchant reference at most once.
        """
        payload = request.model_dump(exclude_none=True)
        self.logbook.request(payload, reference=request.id, amount=request.amount)
        url = self._url(SUBMIT_ORDER_PATH)
        data = self._send("POST", url, headers=self._bearer(), json=payload, reference=request.id)
        tracking_id = data.get("order_tracking_id")
        redirect_url = data.get("redirect_url")
        if not tracking_id or not redirect_url:
            exc = GatewayError("PesaPal response is missing a tracking id or redirect url", raw=data)
            self.logbook.error(exc, reference=request.id)
            raise exc
        return SubmitOrderResult(
            order_tracking_id=tracking_id,
            merchant_reference=data.get("merchant_reference") or request.id,
            redirect_url=redirect_url,
        )

    def get_transaction_status(self, tracking_id: str) -> TransactionStatus:
        self.logbook.request({"orderTrackingId": tracking_id}, reference=tracking_id)
        url = self._url(TRANSACTION_STATUS_PATH)
        data = self._send(
            "GET",
            url,
            headers=self._bearer(),
            params={"orderTrackingId": tracking_id},
            reference=tracking_id,
        )
        description = data.get("payment_status_description")
        status = data.get("status")
        # v3 puts an HTTP-ish "200" in `status`; the payment outcome lives in the description
        if not status or str(status).isdigit():
            status = (description or "PENDING").upper()
        status_code = data.get("status_code")
        if status_code is not None and status_code != "":
            try:
                status_code = int(status_code)
            except (TypeError, ValueError):
                exc = GatewayError(f"PesaPal returned an unknown status_code {status_code!r}",
                                   code="bad_status_code", raw=data)
                self.logbook.error(exc, reference=tracking_id)
                raise exc
        else:
            status_code = None
        return TransactionStatus(
            status=str(status),
            payment_status_description=description,
            confirmation_code=data.get("confirmation_code"),
            status_code=status_code,
            amount=data.get("amount"),
            payment_method=data.get("payment_method"),
            merchant_reference=data.get("merchant_reference"),
            raw=data,
        )

    def register_ipn(self, url: str, ipn_type: str = "GET") -> Dict:
        body = {"url": url, "ipn_notification_type": ipn_type}
        self.logbook.request(body, reference="ipn")
        return self._send(
            "POST", self._url(REGISTER_IPN_PATH), headers=self._bearer(), json=body, reference="ipn"
        )

    def list_ipns(self):
        return self._send("GET", self._url(LIST_IPNS_PATH), headers=self._bearer(), reference="ipn",
                          expect=list)

    # --- transport ---------------------------------------------------------

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def _bearer(self) -> Dict[str, str]:
        return {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.get_access_token()}",
        }

    def _send(self, method: str, url: str, reference: Optional[str] = None, expect: type = dict, **kwargs):
        """Send one request and return its JSON body, which must be an `expect` (dict by default)."""
        try:
            resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            exc = NetworkError(f"Could not reach the payment gateway: {e}")
            self.logbook.error(exc, reference=reference)
            raise exc from e

        try:
            data = resp.json()
        except ValueError:
            data = None

        if resp.status_code == 401:
            # stale token on the gateway side; next call re-authenticates
            self.invalidate_token()

        if data is None:
            self.logbook.response({"status_code": resp.status_code, "text": resp.text[:500]}, reference)
            exc = GatewayError(
                f"Payment gateway returned an unreadable response (HTTP {resp.status_code})",
                code=str(resp.status_code),
            )
            self.logbook.error(exc, reference=reference)
            raise exc

        self.logbook.response(data, reference=reference, status=str(resp.status_code))

        error = data.get("error") if isinstance(data, dict) else None
        if isinstance(error, dict) and (error.get("code") or error.get("message")):
            exc = GatewayError(
                f"PesaPal error: {error.get('message') or error.get('code')}",
                code=error.get("code"),
                raw=data,
            )
            self.logbook.error(exc, reference=reference)
            raise exc
        if resp.status_code >= 400:
            exc = GatewayError(f"Payment gateway rejected the request (HTTP {resp.status_code})",
                               code=str(resp.status_code), raw=data)
            self.logbook.error(exc, reference=reference)
            raise exc
        if not isinstance(data, expect):
            exc = GatewayError(
                f"Payment gateway returned an unexpected {type(data).__name__} body",
                code="unexpected_body",
                raw={"body": data},
            )
            self.logbook.error(exc, reference=reference)
            raise exc
        return data


def build_client(session: Optional[requests.Session] = None) -> PesapalClient:
    from bakery.config import settings

    return PesapalClient(
        base_url=settings.PESAPAL_BASE_URL,
        consumer_key=settings.PESAPAL_CONSUMER_KEY,
        consumer_secret=settings.PESAPAL_CONSUMER_SECRET,
        session=session,
    )
