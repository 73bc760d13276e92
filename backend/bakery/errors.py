from typing import Dict, List, Optional

# next steps a client can offer the shopper
RETRY = "retry"
RETRY_PAYMENT = "retry_payment"
EDIT_BILLING = "edit_billing"
BACK_TO_CART = "back_to_cart"
CONTACT_SUPPORT = "contact_support"
GO_HOME = "go_home"


class CheckoutError(Exception):
    """Base for every failure the checkout/payment pipeline surfaces to a shopper."""

    kind = "checkout_error"
    http_status = 400
    default_actions: List[str] = [GO_HOME]

    def __init__(self, message: str, actions: Optional[List[str]] = None):
        super().__init__(message)
        self.message = message
        self.actions = list(actions or self.default_actions)

    def to_dict(self) -> Dict:
        return {"error": self.kind, "message": self.message, "actions": self.actions}


class ValidationError(CheckoutError):
    kind = "validation_error"
    http_status = 422
    default_actions = [EDIT_BILLING]

    def __init__(self, message: str, fields: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.fields = dict(fields or {})

    def to_dict(self) -> Dict:
        body = super().to_dict()
        body["fields"] = self.fields
        return body


class NetworkError(CheckoutError):
    kind = "network_error"
    http_status = 503
    default_actions = [RETRY]


class GatewayError(CheckoutError):
    kind = "gateway_error"
    http_status = 502
    default_actions = [EDIT_BILLING, CONTACT_SUPPORT]

    def __init__(self, message: str, code: Optional[str] = None, raw: Optional[Dict] = None):
        super().__init__(message)
        self.code = code
        self.raw = raw

    def to_dict(self) -> Dict:
        body = super().to_dict()
        body["code"] = self.code
        return body


class PersistenceError(CheckoutError):
    kind = "persistence_error"
    http_status = 500
    default_actions = [RETRY]

    def __init__(self, message: str = "Failed to save, please try again", detail: Optional[str] = None):
        super().__init__(message)
        self.detail = detail


class StateError(CheckoutError):
    kind = "state_error"
    http_status = 409
    default_actions = [GO_HOME, CONTACT_SUPPORT]
