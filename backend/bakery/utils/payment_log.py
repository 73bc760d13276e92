from collections import deque
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional

from bakery.utils.logs import get_logger

log = get_logger("payments")

SECRET_KEYS = {
    "consumer_secret",
    "consumer_key",
    "token",
    "authorization",
    "oauth_signature",
}


def redact(data: Any) -> Any:
    """Copy `data` with credential-looking values masked."""
    if isinstance(data, dict):
        out = {}
        for k, v in data.items():
            if str(k).lower() in SECRET_KEYS and v:
                out[k] = "***"
            else:
                out[k] = redact(v)
        return out
    if isinstance(data, (list, tuple)):
        return [redact(v) for v in data]
    return data


class PaymentLog:
    """
    Bounded trail of gateway traffic (request / response / error / callback).

    Payment problems can't be reproduced after the fact, so every exchange with
    the gateway is kept here and echoed to the "payments" logger.
    """

    def __init__(self, max_entries: int = 100):
        self._entries: Deque[Dict] = deque(maxlen=max_entries)

    def _log(self, kind: str, data: Any, reference: Optional[str] = None, **extra) -> Dict:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "type": kind,
            "reference": reference,
            "data": redact(data),
        }
        entry.update({k: v for k, v in extra.items() if v is not None})
        self._entries.appendleft(entry)
        log.info(f"{kind} ref={reference} {entry['data']}")
        return entry

    def request(self, data: Any, reference: Optional[str] = None, amount=None):
        return self._log("request", data, reference, amount=str(amount) if amount is not None else None)

    def response(self, data: Any, reference: Optional[str] = None, status: Optional[str] = None):
        return self._log("response", data, reference, status=status)

    def error(self, exc: BaseException, reference: Optional[str] = None):
        data = {"error": type(exc).__name__, "message": str(exc)}
        code = getattr(exc, "code", None)
        if code:
            data["code"] = code
        log.warning(f"error ref={reference} {data}")
        return self._log("error", data, reference)

    def callback(self, data: Any, reference: Optional[str] = None, status: Optional[str] = None):
        return self._log("callback", data, reference, status=status)

    def entries(self) -> List[Dict]:
        return list(self._entries)

    def for_reference(self, reference: str) -> List[Dict]:
        return [e for e in self._entries if e.get("reference") == reference]

    def clear(self):
        self._entries.clear()


payment_log = PaymentLog()
