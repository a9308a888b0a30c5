"""
Retry backoff policy
"""
import pytest

from microservices.fulfillment_service.fulfillment_service import retry_delay_minutes

pytestmark = pytest.mark.unit


class TestRetryDelay:
    """Exponential backoff in minutes"""

    def test_delays_double(self):
        assert [retry_delay_minutes(n) for n in (1, 2, 3)] == [10, 20, 40]

    def test_zero_retries_uses_base(self):
        assert retry_delay_minutes(0) == 5

    def test_custom_base(self):
        assert retry_delay_minutes(2, base_minutes=1) == 4
