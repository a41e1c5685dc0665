from __future__ import annotations

import asyncio
import json
import time
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import pytest
from fastapi.testclient import TestClient

from cloud_transfer_engine.api.dependencies import get_dispatcher, get_settings
from cloud_transfer_engine.main import app
from transfer_fakes import MEMORY_PROVIDER, MemoryCapability, memory_factory

HEADERS = {"X-User-Id": "user-1"}


@pytest.fixture
def capability() -> MemoryCapability:
    return MemoryCapability(
        {"report.csv": b"a,b,c\n1,2,3\n", "broken.csv": b"x", "slow.csv": b"zz"},
        download_errors={"broken.csv": RuntimeError("NetworkError")},
        holds={"slow.csv": asyncio.Event()},
    )


@pytest.fixture
def client(
    capability: MemoryCapability,
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> Iterator[TestClient]:
    accounts_file = tmp_path / "accounts.json"
    accounts_file.write_text(
        json.dumps(
            [
                {"id": 1, "userId": "user-1", "providerType": MEMORY_PROVIDER},
                {"id": 2, "userId": "user-1", "providerType": MEMORY_PROVIDER},
                {"id": 3, "userId": "user-2", "providerType": MEMORY_PROVIDER},
            ]
        )
    )
    monkeypatch.setenv("CLOUD_TRANSFER_ACCOUNTS_FILE", str(accounts_file))
    monkeypatch.setenv("CLOUD_TRANSFER_PROGRESS_PERSIST_INTERVAL_SECONDS", "0")
    monkeypatch.setattr(
        "cloud_transfer_engine.bootstrap.build_provider_factory",
        lambda **_: memory_factory(capability),
    )
    get_dispatcher.cache_clear()
    get_settings.cache_clear()

    with TestClient(app) as test_client:
        yield test_client

    get_dispatcher.cache_clear()
    get_settings.cache_clear()


def _payload(source_path: str = "report.csv", **overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "sourceAccountId": 1,
        "destinationAccountId": 2,
        "sourceFilePath": source_path,
        "fileName": source_path,
    }
    payload.update(overrides)
    return payload


def _wait_for_status(client: TestClient, transfer_id: str, status: str) -> dict[str, Any]:
    deadline = time.monotonic() + 2.0
    while True:
        body: dict[str, Any] = client.get(f"/transfers/{transfer_id}", headers=HEADERS).json()
        if body.get("status") == status or time.monotonic() > deadline:
            return body
        time.sleep(0.01)


def test_healthz_reports_queue_occupancy(client: TestClient) -> None:
    response = client.get("/healthz")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "activeTransfers": 0, "queuedTransfers": 0}


def test_requests_without_user_header_return_401(client: TestClient) -> None:
    response = client.post("/transfers", json=_payload())

    assert response.status_code == 401


def test_create_transfer_queues_and_completes(
    client: TestClient,
    capability: MemoryCapability,
) -> None:
    response = client.post(
        "/transfers",
        json=_payload(destinationFilePath="imports/report.csv"),
        headers=HEADERS,
    )

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "queued"
    assert body["message"] == "Transfer created and queued successfully"

    stats = _wait_for_status(client, body["transferId"], "completed")
    assert stats["status"] == "completed"
    assert stats["progress"] == 100
    assert stats["fileName"] == "report.csv"
    assert stats["fileSize"] == len(b"a,b,c\n1,2,3\n")
    assert stats["transferredBytes"] == stats["fileSize"]
    assert capability.uploads["imports/report.csv"] == b"a,b,c\n1,2,3\n"


def test_create_transfer_between_same_account_returns_400(client: TestClient) -> None:
    response = client.post("/transfers", json=_payload(destinationAccountId=1), headers=HEADERS)

    assert response.status_code == 400
    assert "different" in response.json()["detail"]


def test_create_transfer_with_foreign_account_returns_404(client: TestClient) -> None:
    response = client.post("/transfers", json=_payload(destinationAccountId=3), headers=HEADERS)

    assert response.status_code == 404


def test_create_transfer_without_file_name_returns_422(client: TestClient) -> None:
    payload = _payload()
    payload.pop("fileName")

    response = client.post("/transfers", json=payload, headers=HEADERS)

    assert response.status_code == 422


def test_unknown_transfer_returns_404(client: TestClient) -> None:
    response = client.get("/transfers/999", headers=HEADERS)

    assert response.status_code == 404


def test_transfer_of_other_user_returns_404(client: TestClient) -> None:
    created = client.post("/transfers", json=_payload(), headers=HEADERS).json()

    response = client.get(f"/transfers/{created['transferId']}", headers={"X-User-Id": "user-2"})

    assert response.status_code == 404


def test_list_transfers_returns_history_with_statistics(client: TestClient) -> None:
    created = client.post("/transfers", json=_payload(), headers=HEADERS).json()
    _wait_for_status(client, created["transferId"], "completed")

    response = client.get("/transfers", params={"limit": 10}, headers=HEADERS)

    assert response.status_code == 200
    body = response.json()
    assert [item["id"] for item in body["transfers"]] == [created["transferId"]]
    assert body["transfers"][0]["sourceAccountId"] == "1"
    assert body["pagination"] == {"limit": 10, "offset": 0, "hasMore": False}
    assert body["statistics"]["completed"] == 1
    assert body["queue"]["maxConcurrent"] == 3


def test_queue_status_endpoint(client: TestClient) -> None:
    response = client.get("/transfers/queue/status", headers=HEADERS)

    assert response.status_code == 200
    assert response.json() == {"active": 0, "queued": 0, "maxConcurrent": 3, "total": 0}


def test_failed_transfer_can_be_retried_but_not_cancelled(
    client: TestClient,
    capability: MemoryCapability,
) -> None:
    created = client.post("/transfers", json=_payload("broken.csv"), headers=HEADERS).json()
    failed = _wait_for_status(client, created["transferId"], "failed")
    assert failed["error"] == "NetworkError"

    cancel = client.put(f"/transfers/{created['transferId']}/cancel", headers=HEADERS)
    assert cancel.status_code == 400

    retry = client.put(f"/transfers/{created['transferId']}/retry", headers=HEADERS)
    assert retry.status_code == 201
    body = retry.json()
    assert body["originalTransferId"] == created["transferId"]
    assert body["newTransferId"] != created["transferId"]


def test_completed_transfer_cannot_be_retried(client: TestClient) -> None:
    created = client.post("/transfers", json=_payload(), headers=HEADERS).json()
    _wait_for_status(client, created["transferId"], "completed")

    response = client.put(f"/transfers/{created['transferId']}/retry", headers=HEADERS)

    assert response.status_code == 400
    assert response.json()["detail"] == "Only failed transfers can be retried."


def test_cancel_running_transfer(client: TestClient, capability: MemoryCapability) -> None:
    created = client.post("/transfers", json=_payload("slow.csv"), headers=HEADERS).json()
    _wait_for_status(client, created["transferId"], "running")

    response = client.put(f"/transfers/{created['transferId']}/cancel", headers=HEADERS)

    assert response.status_code == 200
    assert response.json() == {
        "transferId": created["transferId"],
        "status": "cancelled",
        "message": "Transfer cancelled",
    }
    stats = client.get(f"/transfers/{created['transferId']}", headers=HEADERS).json()
    assert stats["status"] == "cancelled"
    assert "slow.csv" not in capability.uploads
