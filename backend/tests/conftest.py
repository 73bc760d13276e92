import os
import tempfile

# must be set before bakery.config is imported
_tmp = tempfile.mkdtemp(prefix="bakery_tests_")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{os.path.join(_tmp, 'test.db')}")
os.environ.setdefault("LOCKS_DIR", os.path.join(_tmp, "locks"))
os.environ.setdefault("PESAPAL_CONSUMER_KEY", "test-key")
os.environ.setdefault("PESAPAL_CONSUMER_SECRET", "test-secret")
os.environ.setdefault("PESAPAL_IPN_ID", "test-ipn")

import pytest

from bakery.adapters.pesapal import SubmitOrderResult, TransactionStatus

STATUS_CODES = {"Completed": 1, "Failed": 2, "Reversed": 3, "Invalid": 0}


class FakeGateway:
    """Stands in for PesapalClient: records submissions and replays scripted statuses."""

    def __init__(self, statuses=None, submit_error=None):
        self.statuses = list(statuses or ["Completed"])
        self.submit_error = submit_error
        self.submitted = []
        self.status_calls = []

    def submit_order(self, request):
        if self.submit_error is not None:
            raise self.submit_error
        self.submitted.append(request)
        n = len(self.submitted)
        return SubmitOrderResult(
            order_tracking_id=f"track-{n}-{request.id}",
            merchant_reference=request.id,
            redirect_url=f"https://pay.example.test/iframe/{n}",
        )

    def get_transaction_status(self, tracking_id):
        self.status_calls.append(tracking_id)
        description = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        raw = {
            "payment_status_description": description,
            "status_code": STATUS_CODES.get(description),
            "confirmation_code": "CONF-001" if description == "Completed" else "",
            "status": "200",
        }
        return TransactionStatus(
            status=description.upper(),
            payment_status_description=description,
            confirmation_code=raw["confirmation_code"] or None,
            status_code=STATUS_CODES.get(description),
            raw=raw,
        )


@pytest.fixture
def fake_gateway():
    return FakeGateway


def billing(phone="0700123456", **overrides):
    data = {
        "first_name": "Tina",
        "last_name": "Nakato",
        "phone": phone,
        "email": "tina@example.com",
        "address": "Plot 12 Kampala Road",
        "city": "Kampala",
    }
    data.update(overrides)
    return data


@pytest.fixture
def billing_form():
    return billing
