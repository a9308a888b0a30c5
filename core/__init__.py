#!/usr/bin/env python3
"""
Core Module for the Fulfillment Service

Shared infrastructure components used by the service.

COMPONENTS:
    - config/: Environment-driven configuration (dataclasses + python-dotenv)
    - logger.py: Service logger setup
    - postgres_client.py: asyncpg connection pool wrapper
    - nats_client.py: NATS JetStream event bus

USAGE:
    from core.config import get_settings
    from core.logger import setup_service_logger

    config = get_settings()
    logger = setup_service_logger("fulfillment_service")
"""

__version__ = "1.0.0"
