"""
Component Tests for Fulfillment Job Creation

create_fulfillment_job against the in-memory repository.
"""

import pytest

from microservices.fulfillment_service.models import (
    FraudStatus,
    FulfillmentType,
    JobStatus,
    RiskLevel,
)

pytestmark = [pytest.mark.component, pytest.mark.asyncio]


class TestCreateFulfillmentJob:
    """Tests for FulfillmentService.create_fulfillment_job"""

    async def test_order_not_found(self, fulfillment_service, repository):
        result = await fulfillment_service.create_fulfillment_job("missing_order")

        assert result.success is False
        assert result.error_code == "ORDER_NOT_FOUND"
        assert repository.jobs == {}

    async def test_one_job_per_fulfillment_type(self, fulfillment_service, repository, job_queue, event_bus):
        repository.add_product("prod_ebook", "digital")
        repository.add_product("prod_mug", "dropship")
        repository.add_product("prod_shirt", "dropship")
        repository.add_order(items=[
            {"product_id": "prod_ebook"},
            {"product_id": "prod_mug", "quantity": 2},
            {"product_id": "prod_shirt"},
        ])

        result = await fulfillment_service.create_fulfillment_job("order_1")

        assert result.success is True
        assert len(result.job_ids) == 2
        assert result.job_id == result.job_ids[0]

        jobs = {job.fulfillment_type: job for job in repository.jobs.values()}
        assert set(jobs) == {FulfillmentType.DIGITAL, FulfillmentType.DROPSHIP}
        assert [i["product_id"] for i in jobs[FulfillmentType.DROPSHIP].items] == ["prod_mug", "prod_shirt"]
        assert all(job.status == JobStatus.QUEUED for job in jobs.values())
        assert all(job.store_id == "store_1" for job in jobs.values())

        assert sorted(job_queue.job_ids) == sorted(result.job_ids)
        assert all(delay == 0 for _, delay in job_queue.enqueued)

        event = event_bus.assert_event_published("fulfillment.job.created")
        assert event["data"]["order_id"] == "order_1"
        assert sorted(event["data"]["job_ids"]) == sorted(result.job_ids)

    async def test_creation_is_idempotent(self, fulfillment_service, repository, job_queue, event_bus):
        repository.add_product("prod_mug", "dropship")
        repository.add_order(items=[{"product_id": "prod_mug"}])

        first = await fulfillment_service.create_fulfillment_job("order_1")
        second = await fulfillment_service.create_fulfillment_job("order_1")

        assert second.success is True
        assert second.job_ids == first.job_ids
        assert len(repository.jobs) == 1
        assert len(job_queue.enqueued) == 1
        assert len(event_bus.get_published("fulfillment.job.created")) == 1

    async def test_missing_products_are_skipped(self, fulfillment_service, repository):
        repository.add_product("prod_mug", "dropship")
        repository.add_order(items=[{"product_id": "prod_gone"}, {"product_id": "prod_mug"}])

        result = await fulfillment_service.create_fulfillment_job("order_1")

        assert result.success is True
        job = repository.jobs[result.job_id]
        assert job.items == [{"product_id": "prod_mug", "quantity": 1}]

    async def test_no_valid_products(self, fulfillment_service, repository, event_bus):
        repository.add_order(items=[{"product_id": "prod_gone"}])

        result = await fulfillment_service.create_fulfillment_job("order_1")

        assert result.success is False
        assert result.error_code == "NO_VALID_PRODUCTS"
        assert repository.jobs == {}
        event_bus.assert_no_events_published("fulfillment.job.created")

    async def test_unknown_fulfillment_type_defaults_to_manual(self, fulfillment_service, repository):
        repository.add_product("prod_odd", "teleport")
        repository.add_product("prod_plain", None)
        repository.add_order(items=[{"product_id": "prod_odd"}, {"product_id": "prod_plain"}])

        result = await fulfillment_service.create_fulfillment_job("order_1")

        assert result.success is True
        assert len(result.job_ids) == 1
        assert repository.jobs[result.job_id].fulfillment_type == FulfillmentType.MANUAL

    async def test_explicit_items_override_order_items(self, fulfillment_service, repository):
        repository.add_product("prod_ebook", "digital")
        repository.add_product("prod_mug", "dropship")
        repository.add_order(items=[{"product_id": "prod_ebook"}, {"product_id": "prod_mug"}])

        result = await fulfillment_service.create_fulfillment_job(
            "order_1", store_id="store_9", items=[{"productId": "prod_mug", "quantity": 3}]
        )

        assert result.success is True
        job = repository.jobs[result.job_id]
        assert job.fulfillment_type == FulfillmentType.DROPSHIP
        assert job.store_id == "store_9"
        assert job.items == [{"product_id": "prod_mug", "quantity": 3}]

    async def test_flagged_order_still_gets_jobs(self, fulfillment_service, repository):
        repository.add_product("prod_mug", "dropship")
        repository.add_order(
            items=[{"product_id": "prod_mug"}],
            risk_level=RiskLevel.HIGHEST,
            total_amount_cents=60000,
        )

        result = await fulfillment_service.create_fulfillment_job("order_1")

        assert result.success is True
        check = repository.fraud_checks["order_1"]
        assert check.risk_score == 70
        assert check.status == FraudStatus.FLAGGED
        assert check.risk_factors == ["High Stripe risk score", "High order value"]

    async def test_blocked_order_gets_no_jobs(self, fulfillment_service, repository, fulfillment_config, job_queue):
        fulfillment_config.fraud.block_threshold = 50
        fulfillment_service.fraud_gate.config = fulfillment_config.fraud
        repository.add_product("prod_mug", "dropship")
        repository.add_order(items=[{"product_id": "prod_mug"}], risk_level=RiskLevel.HIGHEST)

        result = await fulfillment_service.create_fulfillment_job("order_1")

        assert result.success is False
        assert result.error_code == "FRAUD_BLOCKED"
        assert result.error == "Order flagged for fraud review"
        assert repository.jobs == {}
        assert job_queue.enqueued == []
        assert repository.fraud_checks["order_1"].status == FraudStatus.BLOCKED

    async def test_repository_failure_is_create_error(self, fulfillment_service, repository):
        repository.add_product("prod_mug", "dropship")
        repository.add_order(items=[{"product_id": "prod_mug"}])
        repository.fail_on["create_job"] = RuntimeError("connection reset")

        result = await fulfillment_service.create_fulfillment_job("order_1")

        assert result.success is False
        assert result.error_code == "CREATE_ERROR"
        assert "connection reset" in result.error

    async def test_enqueue_failure_does_not_fail_creation(self, fulfillment_service, repository, job_queue):
        async def broken_enqueue(job_id, delay_seconds=0):
            raise RuntimeError("queue down")

        job_queue.enqueue = broken_enqueue
        repository.add_product("prod_mug", "dropship")
        repository.add_order(items=[{"product_id": "prod_mug"}])

        result = await fulfillment_service.create_fulfillment_job("order_1")

        assert result.success is True
        assert repository.jobs[result.job_id].status == JobStatus.QUEUED

    async def test_concurrent_creation_reuses_inserted_job(self, fulfillment_service, repository, monkeypatch):
        repository.add_product("prod_mug", "dropship")
        repository.add_order(items=[{"product_id": "prod_mug"}])
        # Another delivery inserted the job after this one found none
        raced = repository.put_job(order_id="order_1", fulfillment_type=FulfillmentType.DROPSHIP)

        async def no_jobs_yet(order_id):
            return []

        monkeypatch.setattr(repository, "get_jobs_for_order", no_jobs_yet)

        result = await fulfillment_service.create_fulfillment_job("order_1")

        assert result.success is True
        assert result.job_ids == [raced.id]
        assert list(repository.jobs) == [raced.id]


class TestFraudCheckPersistence:
    """The fraud check is computed once per order"""

    async def test_fraud_check_is_stored_once(self, fulfillment_service, repository):
        order = repository.add_order(risk_level=RiskLevel.ELEVATED)

        first = await fulfillment_service.fraud_gate.perform_fraud_check(order)
        repository.orders["order_1"] = order.model_copy(update={"risk_level": RiskLevel.HIGHEST})
        second = await fulfillment_service.fraud_gate.perform_fraud_check(repository.orders["order_1"])

        assert first == second
        assert second.risk_score == 25
        assert second.status == FraudStatus.APPROVED
