"""
Fulfillment Service

Post-payment fulfillment orchestration for the marketplace.

Features:
- Fraud gate before any job is created
- Per-fulfillment-type jobs (digital, manual, warehouse, dropship)
- Weighted supplier scoring for dropship routing
- Bounded retries with exponential backoff
- Periodic tracking reconciliation until delivery

Port: 8260
"""

__version__ = "1.0.0"
__service_name__ = "fulfillment_service"
__service_port__ = 8260
