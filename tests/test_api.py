"""Tests for API endpoints."""

import asyncio
import uuid
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from app.core.exceptions import NotFoundError, ValidationError
from app.database.client import db_client
from app.dependencies import get_batch_registry, get_sql_store
from app.main import app
from app.services.batch.contracts import BatchOptions
from app.services.detection.contracts import DetectionHistoryEntry, DetectionMethod, DetectionResult, DetectionRule, RuleType
from tests.fakes import FakeAIClient, FakeStore, build_orchestrator, make_source


@pytest.fixture
def mock_registry() -> MagicMock:
    registry = MagicMock()
    app.dependency_overrides[get_batch_registry] = lambda: registry
    return registry


@pytest.fixture
def finished_orchestrator():
    orchestrator = build_orchestrator(FakeAIClient())
    asyncio.run(
        orchestrator.start_batch(
            [make_source("a.pdf"), make_source("b.pdf")],
            BatchOptions(auto_detect_enabled=False, company_id="NOHARA_G"),
        )
    )
    return orchestrator


class TestBatchEndpoints:
    """Test suite for batch API endpoints."""

    def test_start_batch_accepts_files(self, test_client: TestClient, mock_registry, sample_pdf_content) -> None:
        mock_registry.submit.return_value = "run-1"

        response = test_client.post(
            "/api/v1/batches",
            files=[
                ("files", ("a.pdf", sample_pdf_content, "application/pdf")),
                ("files", ("b.pdf", sample_pdf_content, "application/pdf")),
            ],
            data={"concurrency_limit": "2", "auto_detect_enabled": "false", "company_id": "NOHARA_G"},
        )

        assert response.status_code == 202
        assert response.json() == {"run_id": "run-1", "total_files": 2, "message": "Batch processing started"}
        sources, options = mock_registry.submit.call_args.args
        assert [source.name for source in sources] == ["a.pdf", "b.pdf"]
        assert sources[0].data == sample_pdf_content
        assert options == BatchOptions(concurrency_limit=2, auto_detect_enabled=False, company_id="NOHARA_G")

    def test_start_batch_validation_error(self, test_client: TestClient, mock_registry, sample_pdf_content) -> None:
        mock_registry.submit.side_effect = ValidationError("Too many files: 51 (maximum 50 per batch)")

        response = test_client.post(
            "/api/v1/batches",
            files=[("files", ("a.pdf", sample_pdf_content, "application/pdf"))],
        )

        assert response.status_code == 400
        detail = response.json()["detail"]
        assert detail["error"] == "ValidationError"
        assert "maximum 50" in detail["message"]

    def test_unknown_run_returns_404(self, test_client: TestClient, mock_registry) -> None:
        mock_registry.get.side_effect = NotFoundError("Batch run not found: nope")

        response = test_client.get("/api/v1/batches/nope")

        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "BatchNotFound"

    def test_batch_status(self, test_client: TestClient, mock_registry, finished_orchestrator) -> None:
        mock_registry.get.return_value = finished_orchestrator

        response = test_client.get("/api/v1/batches/run-1")

        assert response.status_code == 200
        data = response.json()
        assert data["run_id"] == "run-1"
        assert data["status"] == "completed"
        assert data["is_processing"] is False
        assert data["progress"] == 100
        assert data["total_files"] == 2
        assert [r["status"] for r in data["results"]] == ["success", "success"]
        assert all(r["work_order_id"] for r in data["results"])

    def test_file_status(self, test_client: TestClient, mock_registry, finished_orchestrator) -> None:
        mock_registry.get.return_value = finished_orchestrator

        response = test_client.get("/api/v1/batches/run-1/files/a.pdf/status")
        missing = test_client.get("/api/v1/batches/run-1/files/zzz.pdf/status")

        assert response.status_code == 200
        assert response.json()["status"] == "completed"
        assert response.json()["can_cancel"] is False
        assert missing.status_code == 404

    @pytest.mark.parametrize("action", ["pause", "resume", "cancel"])
    def test_control_actions(self, test_client: TestClient, mock_registry, action) -> None:
        orchestrator = MagicMock()
        getattr(orchestrator, action).return_value = True
        orchestrator.state.is_paused = action == "pause"
        orchestrator.state.is_processing = True
        mock_registry.get.return_value = orchestrator

        response = test_client.post(f"/api/v1/batches/run-1/{action}")

        assert response.status_code == 200
        assert response.json() == {
            "run_id": "run-1",
            "action": action,
            "accepted": True,
            "is_paused": action == "pause",
            "is_processing": True,
        }
        getattr(orchestrator, action).assert_called_once_with()


class TestDetectionEndpoints:
    """Test suite for detection API endpoints."""

    def test_list_rules_from_store(self, test_client: TestClient) -> None:
        store = FakeStore(
            rules=[
                DetectionRule(id="r1", company_id="JUTEC", rule_type=RuleType.KEYWORD, rule_value="ジューテック", priority=100),
                DetectionRule(id="r2", company_id="AIBUILD", rule_type=RuleType.PATTERN, rule_value=r"アイビルド.*", priority=150),
            ]
        )
        app.dependency_overrides[get_sql_store] = lambda: store

        response = test_client.get("/api/v1/detection/rules")

        assert response.status_code == 200
        data = response.json()
        assert data["origin"] == "store"
        assert [rule["id"] for rule in data["rules"]] == ["r2", "r1"]

    def test_list_rules_falls_back_to_defaults(self, test_client: TestClient) -> None:
        store = FakeStore()
        store.fail_rules = True
        app.dependency_overrides[get_sql_store] = lambda: store

        response = test_client.get("/api/v1/detection/rules")

        assert response.json()["origin"] == "default"
        assert response.json()["rules"][0]["rule_value"] == "野原グループ株式会社"

    def test_record_correction(self, test_client: TestClient) -> None:
        store = FakeStore()
        history_id = asyncio.run(
            store.record_detection(
                DetectionHistoryEntry(
                    file_name="a.pdf",
                    result=DetectionResult("NOHARA_G", 0.6, DetectionMethod.RULE_BASED),
                )
            )
        )
        app.dependency_overrides[get_sql_store] = lambda: store

        response = test_client.post(
            f"/api/v1/detection/history/{history_id}/correction",
            json={"corrected_company_id": "NOHARA_G_MISAWA", "reason": "ミサワホーム案件"},
        )

        assert response.status_code == 200
        assert response.json()["corrected_company_id"] == "NOHARA_G_MISAWA"
        assert store.history[history_id]["corrected_company_id"] == "NOHARA_G_MISAWA"

    def test_correction_for_unknown_record(self, test_client: TestClient) -> None:
        app.dependency_overrides[get_sql_store] = lambda: FakeStore()

        response = test_client.post(
            f"/api/v1/detection/history/{uuid.uuid4()}/correction",
            json={"corrected_company_id": "JUTEC"},
        )

        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "DetectionHistoryNotFound"


class TestHealthEndpoints:
    """Test suite for health endpoints."""

    def test_health_reports_degraded_database(self, test_client: TestClient) -> None:
        with patch.object(db_client, "health_check", new=AsyncMock(return_value={"status": "unhealthy", "error": "down"})):
            response = test_client.get("/api/v1/health")
            detailed = test_client.get("/api/v1/health/detailed")

        assert response.status_code == 200
        assert response.json()["status"] == "degraded"
        assert detailed.json()["database"] == {"status": "unhealthy", "error": "down"}

    def test_health_ok(self, test_client: TestClient) -> None:
        with patch.object(db_client, "health_check", new=AsyncMock(return_value={"status": "healthy"})):
            response = test_client.get("/api/v1/health")

        assert response.json()["status"] == "healthy"
        assert response.json()["service"] == "WorkOrder AI"

    def test_root_points_to_versioned_health(self, test_client: TestClient) -> None:
        response = test_client.get("/")

        assert response.status_code == 200
        assert response.json()["health"] == "/api/v1/health"
        assert test_client.get("/health").status_code == 404
