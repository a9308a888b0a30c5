"""
Carrier status normalization
"""
import pytest

from microservices.fulfillment_service.adapters.api import normalize_tracking_status
from microservices.fulfillment_service.models import TrackingStatus

pytestmark = pytest.mark.unit


@pytest.mark.parametrize("raw,expected", [
    ("Delivered", TrackingStatus.DELIVERED),
    ("DELIVERED to front door", TrackingStatus.DELIVERED),
    ("Out for delivery", TrackingStatus.OUT_FOR_DELIVERY),
    ("In Transit", TrackingStatus.IN_TRANSIT),
    ("in_transit", TrackingStatus.IN_TRANSIT),
    ("Shipping", TrackingStatus.IN_TRANSIT),
    ("Delivery failed", TrackingStatus.FAILED),
    ("Returned to sender", TrackingStatus.FAILED),
    ("Label created", TrackingStatus.PENDING),
    ("", TrackingStatus.PENDING),
    (None, TrackingStatus.PENDING),
])
def test_normalize_tracking_status(raw, expected):
    assert normalize_tracking_status(raw) == expected
