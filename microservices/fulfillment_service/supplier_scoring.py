"""
Supplier Scoring Engine

Ranks the available dropship offers for a product with a weighted score
over price, shipping speed, supplier rating and return risk.
"""

import logging
import math
from typing import Dict, List, Optional

from .models import ScoreBreakdown, SupplierOffer, SupplierScore
from .protocols import SupplierRepositoryProtocol

logger = logging.getLogger(__name__)

DEFAULT_WEIGHTS: Dict[str, float] = {
    "price": 0.4,
    "shipping": 0.3,
    "rating": 0.2,
    "risk": 0.1,
}


def normalize(value: float, minimum: float, maximum: float) -> float:
    """Scale value into [0, 1] and clamp"""
    if maximum == minimum:
        return 0.0
    scaled = (value - minimum) / (maximum - minimum)
    return max(0.0, min(1.0, scaled))


def calculate_breakdown(
    cost_cents: int,
    avg_shipping_days: float,
    rating: float,
    return_rate: float,
) -> ScoreBreakdown:
    """Individual factor scores, each clamped to [0, 1]"""
    return ScoreBreakdown(
        price_score=normalize(1 / (cost_cents / 1000 + 1), 0, 1),
        # Same-day shipping (0 days) and next-day both saturate at 1.0
        shipping_score=normalize(1 / (avg_shipping_days + 1), 0, 0.5),
        rating_score=normalize(rating, 0, 5),
        risk_score=normalize(1 - return_rate / 100, 0, 1),
    )


class SupplierScoringEngine:
    """Selects the best supplier for a product"""

    def __init__(
        self,
        repository: SupplierRepositoryProtocol,
        weights: Optional[Dict[str, float]] = None,
    ):
        self.repository = repository
        self.weights: Dict[str, float] = dict(DEFAULT_WEIGHTS)
        if weights:
            self.set_weights(weights)

    def set_weights(self, weights: Dict[str, float]) -> None:
        """Merge weights into the current ones and renormalize to sum 1"""
        unknown = set(weights) - set(DEFAULT_WEIGHTS)
        if unknown:
            raise ValueError(f"Unknown scoring weights: {sorted(unknown)}")

        merged = {**self.weights, **weights}
        total = sum(merged.values())
        if total <= 0:
            raise ValueError("Scoring weights must sum to a positive value")

        if not math.isclose(total, 1.0):
            if abs(total - 1.0) > 0.01:
                logger.warning(f"Weights sum to {total}, should sum to 1.0. Normalizing...")
            merged = {name: value / total for name, value in merged.items()}

        self.weights = merged

    def calculate_score(self, breakdown: ScoreBreakdown) -> float:
        """Weighted sum rounded to 4 decimals"""
        score = (
            self.weights["price"] * breakdown.price_score
            + self.weights["shipping"] * breakdown.shipping_score
            + self.weights["rating"] * breakdown.rating_score
            + self.weights["risk"] * breakdown.risk_score
        )
        return round(score, 4)

    def score_offer(self, offer: SupplierOffer) -> SupplierScore:
        supplier = offer.supplier
        breakdown = calculate_breakdown(
            offer.cost_cents,
            supplier.avg_shipping_days,
            supplier.rating,
            supplier.return_rate,
        )
        return SupplierScore(
            supplier_id=supplier.id,
            supplier_name=supplier.name,
            cost_cents=offer.cost_cents,
            score=self.calculate_score(breakdown),
            breakdown=breakdown,
        )

    def rank_offers(self, offers: List[SupplierOffer]) -> List[SupplierScore]:
        """Score eligible offers, best first; ties keep input order"""
        eligible = [o for o in offers if o.is_available and o.supplier.is_active]
        scored = [self.score_offer(o) for o in eligible]
        return sorted(scored, key=lambda s: s.score, reverse=True)

    async def select_best_supplier(self, product_id: str) -> Optional[SupplierScore]:
        try:
            offers = await self.repository.get_supplier_offers(product_id)
        except Exception as e:
            logger.error(f"Error in supplier scoring for product {product_id}: {e}")
            return None

        ranked = self.rank_offers(offers)
        if not ranked:
            logger.warning(f"No suppliers found for product {product_id}")
            return None
        return ranked[0]

    async def get_top_suppliers(self, product_id: str, limit: int = 3) -> List[SupplierScore]:
        try:
            offers = await self.repository.get_supplier_offers(product_id)
        except Exception as e:
            logger.error(f"Error getting top suppliers for product {product_id}: {e}")
            return []

        return self.rank_offers(offers)[:limit]
