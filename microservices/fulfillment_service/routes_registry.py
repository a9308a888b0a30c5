"""
Fulfillment Service Routes Registry

Defines service metadata and routes exposed by the fulfillment API.
"""

SERVICE_METADATA = {
    "service_name": "fulfillment_service",
    "version": "1.0.0",
    "tags": ["v1", "fulfillment", "orders", "microservice"],
    "capabilities": [
        "fulfillment_jobs",
        "fraud_screening",
        "supplier_routing",
        "tracking_sync",
        "retry_management",
    ],
}

ROUTES = [
    # Health endpoints
    {"path": "/health", "methods": ["GET"], "description": "Health check"},
    {"path": "/api/v1/fulfillment/health", "methods": ["GET"], "description": "Service health check (API v1)"},

    # Jobs
    {"path": "/api/v1/fulfillment/jobs", "methods": ["POST"], "description": "Create fulfillment jobs for an order"},
    {"path": "/api/v1/fulfillment/jobs", "methods": ["GET"], "description": "List fulfillment jobs"},
    {"path": "/api/v1/fulfillment/jobs/{job_id}", "methods": ["GET"], "description": "Get fulfillment job"},
    {"path": "/api/v1/fulfillment/jobs/{job_id}/process", "methods": ["POST"], "description": "Process a job now"},
    {"path": "/api/v1/fulfillment/jobs/retry-due", "methods": ["POST"], "description": "Dispatch due retries"},

    # Tracking
    {"path": "/api/v1/fulfillment/tracking/sync", "methods": ["POST"], "description": "Run tracking sync"},
    {"path": "/api/v1/fulfillment/orders/{order_id}/tracking", "methods": ["GET"], "description": "Order tracking"},
]


def get_route_summary():
    """Route metadata for service discovery"""
    route_paths = [r["path"] for r in ROUTES]
    return {
        "route_count": str(len(ROUTES)),
        "routes": ",".join(route_paths[:10]),
        "api_version": "v1",
        "base_path": "/api/v1/fulfillment",
    }


__all__ = ["SERVICE_METADATA", "ROUTES", "get_route_summary"]
