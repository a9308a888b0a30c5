#!/usr/bin/env python3
"""Fulfillment service main configuration

Combines the infrastructure and logging sub-configs with the
fulfillment-specific knobs: retry policy, fraud thresholds, supplier
scoring weights and the background sweep intervals.
"""
import os
from dataclasses import dataclass, field
from typing import Dict

from .infra_config import InfraConfig
from .logging_config import LoggingConfig


def _bool(val: str) -> bool:
    return val.lower() == "true"

def _int(val: str, default: int) -> int:
    try:
        return int(val) if val else default
    except ValueError:
        return default

def _float(val: str, default: float) -> float:
    try:
        return float(val) if val else default
    except ValueError:
        return default


# ===========================================
# Fulfillment-Specific Configuration
# ===========================================

@dataclass
class RetryConfig:
    """Bounded retry policy for fulfillment jobs"""
    max_retries: int = 3
    base_delay_minutes: int = 5
    supplier_timeout_seconds: float = 30.0

    @classmethod
    def from_env(cls) -> 'RetryConfig':
        return cls(
            max_retries=_int(os.getenv("FULFILLMENT_MAX_RETRIES", "3"), 3),
            base_delay_minutes=_int(os.getenv("FULFILLMENT_RETRY_BASE_MINUTES", "5"), 5),
            supplier_timeout_seconds=_float(os.getenv("SUPPLIER_TIMEOUT_SECONDS", "30"), 30.0),
        )


@dataclass
class FraudConfig:
    """Fraud gate thresholds (risk points and order value in cents)"""
    flag_threshold: int = 50
    block_threshold: int = 75
    high_value_cents: int = 50000

    @classmethod
    def from_env(cls) -> 'FraudConfig':
        return cls(
            flag_threshold=_int(os.getenv("FRAUD_FLAG_THRESHOLD", "50"), 50),
            block_threshold=_int(os.getenv("FRAUD_BLOCK_THRESHOLD", "75"), 75),
            high_value_cents=_int(os.getenv("FRAUD_HIGH_VALUE_CENTS", "50000"), 50000),
        )


@dataclass
class ScoringConfig:
    """Supplier scoring weights"""
    price: float = 0.4
    shipping: float = 0.3
    rating: float = 0.2
    risk: float = 0.1

    @property
    def weights(self) -> Dict[str, float]:
        return {
            "price": self.price,
            "shipping": self.shipping,
            "rating": self.rating,
            "risk": self.risk,
        }

    @classmethod
    def from_env(cls) -> 'ScoringConfig':
        return cls(
            price=_float(os.getenv("SCORING_WEIGHT_PRICE", "0.4"), 0.4),
            shipping=_float(os.getenv("SCORING_WEIGHT_SHIPPING", "0.3"), 0.3),
            rating=_float(os.getenv("SCORING_WEIGHT_RATING", "0.2"), 0.2),
            risk=_float(os.getenv("SCORING_WEIGHT_RISK", "0.1"), 0.1),
        )


@dataclass
class SchedulerConfig:
    """Background sweeps run inside the service process"""
    enabled: bool = True
    tracking_sync_interval_seconds: int = 6 * 60 * 60
    tracking_sync_concurrency: int = 5
    retry_sweep_interval_seconds: int = 60
    stale_queued_seconds: int = 300
    stale_processing_seconds: int = 900

    @classmethod
    def from_env(cls) -> 'SchedulerConfig':
        return cls(
            enabled=_bool(os.getenv("SCHEDULER_ENABLED", "true")),
            tracking_sync_interval_seconds=_int(os.getenv("TRACKING_SYNC_INTERVAL_SECONDS", "21600"), 21600),
            tracking_sync_concurrency=_int(os.getenv("TRACKING_SYNC_CONCURRENCY", "5"), 5),
            retry_sweep_interval_seconds=_int(os.getenv("RETRY_SWEEP_INTERVAL_SECONDS", "60"), 60),
            stale_queued_seconds=_int(os.getenv("STALE_QUEUED_SECONDS", "300"), 300),
            stale_processing_seconds=_int(os.getenv("STALE_PROCESSING_SECONDS", "900"), 900),
        )


# ===========================================
# Main Fulfillment Configuration
# ===========================================

@dataclass
class FulfillmentConfig:
    """Main fulfillment service configuration with all sub-configs"""

    # Environment
    environment: str = "development"
    debug: bool = False

    # Service settings
    service_name: str = "fulfillment_service"
    host: str = "0.0.0.0"
    port: int = 8260

    # Database schema holding the fulfillment tables
    db_schema: str = "fulfillment"

    # Address fallback used when the buyer left the country empty
    default_shipping_country: str = "GE"

    # Sub-configurations
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    infrastructure: InfraConfig = field(default_factory=InfraConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    fraud: FraudConfig = field(default_factory=FraudConfig)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)

    @classmethod
    def from_env(cls) -> 'FulfillmentConfig':
        """Load complete configuration from environment"""
        env = os.getenv("ENV") or os.getenv("ENVIRONMENT", "development")
        return cls(
            # Environment
            environment=env,
            debug=_bool(os.getenv("DEBUG", "true" if env == "development" else "false")),

            # Service settings
            service_name=os.getenv("SERVICE_NAME", "fulfillment_service"),
            host=os.getenv("HOST", "0.0.0.0"),
            port=_int(os.getenv("PORT", "8260"), 8260),

            db_schema=os.getenv("FULFILLMENT_DB_SCHEMA", "fulfillment"),
            default_shipping_country=os.getenv("DEFAULT_SHIPPING_COUNTRY", "GE"),

            # Load sub-configs
            logging=LoggingConfig.from_env(),
            infrastructure=InfraConfig.from_env(),
            retry=RetryConfig.from_env(),
            fraud=FraudConfig.from_env(),
            scoring=ScoringConfig.from_env(),
            scheduler=SchedulerConfig.from_env(),
        )
