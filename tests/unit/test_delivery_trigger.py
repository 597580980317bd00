"""
Tests for the internal delivery trigger endpoint.
"""

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from app.config import Settings, get_settings
from app.features.communications.api.router import get_delivery_processor
from app.features.communications.domain import DeliveryBatchSummary
from app.main import app

DELIVER_URL = "/internal/parish-admin/communications/deliver"


@pytest.fixture
def processor():
    stub = AsyncMock()
    stub.process_pending_jobs.return_value = DeliveryBatchSummary(processed=3, sent=2, failed=1)
    return stub


@pytest.fixture
def client(processor):
    settings = Settings(
        _env_file=None,
        PARISH_COMMUNICATIONS_WORKER_TOKEN="s3cret",
        PARISH_COMMUNICATIONS_DELIVERY_MODE="mock",
    )
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_delivery_processor] = lambda: processor
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_worker_token_header_runs_batch(client, processor):
    response = client.post(DELIVER_URL, headers={"x-parish-worker-token": "s3cret"})

    assert response.status_code == 200
    assert response.json() == {"processed": 3, "sent": 2, "failed": 1, "requeued": 0}
    processor.process_pending_jobs.assert_awaited_once_with(None)


def test_bearer_token_is_accepted(client, processor):
    response = client.post(DELIVER_URL, headers={"Authorization": "Bearer s3cret"})

    assert response.status_code == 200


def test_missing_token_is_rejected(client, processor):
    response = client.post(DELIVER_URL)

    assert response.status_code == 401
    processor.process_pending_jobs.assert_not_awaited()


def test_wrong_token_is_rejected(client, processor):
    response = client.post(DELIVER_URL, headers={"x-parish-worker-token": "guess"})

    assert response.status_code == 401
    processor.process_pending_jobs.assert_not_awaited()


def test_unconfigured_secret_is_server_error(processor):
    app.dependency_overrides[get_settings] = lambda: Settings(_env_file=None)
    app.dependency_overrides[get_delivery_processor] = lambda: processor
    try:
        response = TestClient(app).post(DELIVER_URL, headers={"x-parish-worker-token": "s3cret"})
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 500
    processor.process_pending_jobs.assert_not_awaited()


def test_limit_from_body_is_passed_through(client, processor):
    response = client.post(
        DELIVER_URL, headers={"x-parish-worker-token": "s3cret"}, json={"limit": 5}
    )

    assert response.status_code == 200
    processor.process_pending_jobs.assert_awaited_once_with(5)


@pytest.mark.parametrize(
    "body",
    [b'{"limit": 0}', b'{"limit": 51}', b'{"limit": "ten"}', b"not json", b"[]"],
)
def test_invalid_body_falls_back_to_default_limit(client, processor, body):
    response = client.post(
        DELIVER_URL,
        headers={"x-parish-worker-token": "s3cret", "content-type": "application/json"},
        content=body,
    )

    assert response.status_code == 200
    processor.process_pending_jobs.assert_awaited_once_with(None)
