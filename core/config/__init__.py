#!/usr/bin/env python3
"""Modular configuration system for the fulfillment service

Configuration hierarchy:
- infra_config: Infrastructure services (PostgreSQL, NATS)
- logging_config: Logging configuration
- fulfillment_config: Retry policy, fraud thresholds, scoring weights, sweeps
"""
import os
from dotenv import load_dotenv
from .logging_config import LoggingConfig
from .infra_config import InfraConfig
from .fulfillment_config import (
    FulfillmentConfig,
    RetryConfig,
    FraudConfig,
    ScoringConfig,
    SchedulerConfig,
)

# Load environment file based on ENV
env = os.getenv("ENV") or os.getenv("ENVIRONMENT", "development")
env_files = {
    "development": "deployment/environments/dev.env",
    "dev": "deployment/environments/dev.env",
    "testing": "deployment/environments/test.env",
    "test": "deployment/environments/test.env",
    "staging": "deployment/environments/staging.env",
    "production": "deployment/environments/production.env",
}
env_file = env_files.get(env, "deployment/environments/dev.env")
load_dotenv(env_file, override=False)

# Create global settings instance
settings = FulfillmentConfig.from_env()

def get_settings() -> FulfillmentConfig:
    """Get global settings instance"""
    return settings

def reload_settings() -> FulfillmentConfig:
    """Reload settings from environment"""
    global settings
    settings = FulfillmentConfig.from_env()
    return settings

__all__ = [
    # Main config
    'FulfillmentConfig',
    'get_settings',
    'reload_settings',
    'settings',
    # Sub-configs
    'LoggingConfig',
    'InfraConfig',
    'RetryConfig',
    'FraudConfig',
    'ScoringConfig',
    'SchedulerConfig',
]
