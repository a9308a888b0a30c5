"""
Fraud Gate

Scores a paid order before any fulfillment job is created. The check is
computed once per order and stored; later calls return the stored result.
"""

import logging
from datetime import datetime
from typing import Optional

from core.config import FraudConfig

from .models import FraudCheck, FraudStatus, Order, RiskLevel
from .protocols import FulfillmentRepositoryProtocol

logger = logging.getLogger(__name__)

HIGHEST_RISK_POINTS = 50
ELEVATED_RISK_POINTS = 25
HIGH_VALUE_POINTS = 20


def max_reachable_score() -> int:
    return HIGHEST_RISK_POINTS + HIGH_VALUE_POINTS


def assess_fraud_risk(order: Order, config: Optional[FraudConfig] = None) -> FraudCheck:
    """Compute the fraud check for an order without persisting it"""
    config = config or FraudConfig()
    risk_factors = []
    risk_score = 0

    if order.risk_level == RiskLevel.HIGHEST:
        risk_factors.append("High Stripe risk score")
        risk_score += HIGHEST_RISK_POINTS
    elif order.risk_level == RiskLevel.ELEVATED:
        risk_factors.append("Elevated Stripe risk")
        risk_score += ELEVATED_RISK_POINTS

    if order.total_amount_cents > config.high_value_cents:
        risk_factors.append("High order value")
        risk_score += HIGH_VALUE_POINTS

    if risk_score >= config.block_threshold:
        status = FraudStatus.BLOCKED
    elif risk_score >= config.flag_threshold:
        status = FraudStatus.FLAGGED
    else:
        status = FraudStatus.APPROVED

    return FraudCheck(
        order_id=order.id,
        risk_level=order.risk_level.value if order.risk_level else None,
        risk_score=risk_score,
        risk_factors=risk_factors,
        status=status,
        checks_performed={"stripe_check": True, "value_check": True},
        created_at=datetime.utcnow(),
    )


class FraudGate:
    """Runs and stores fraud checks"""

    def __init__(
        self,
        repository: FulfillmentRepositoryProtocol,
        config: Optional[FraudConfig] = None,
    ):
        self.repository = repository
        self.config = config or FraudConfig()

        if self.config.block_threshold > max_reachable_score():
            logger.warning(
                f"Fraud block threshold {self.config.block_threshold} is above the maximum "
                f"reachable risk score {max_reachable_score()}; orders will be flagged, never blocked"
            )

    async def perform_fraud_check(self, order: Order) -> FraudCheck:
        existing = await self.repository.get_fraud_check(order.id)
        if existing:
            return existing

        check = assess_fraud_risk(order, self.config)

        # Insert-if-absent: a concurrent check for the same order wins
        stored = await self.repository.create_fraud_check(check)

        if stored.status != FraudStatus.APPROVED:
            logger.warning(
                f"Order {order.id} fraud check {stored.status.value} "
                f"(score={stored.risk_score}, factors={stored.risk_factors})"
            )
        return stored
