"""Tests for the request logging middleware."""

import logging

from fastapi.testclient import TestClient

from stageflow.api.middleware.request_log import level_for


class TestRequestLog:

    def test_levels(self):
        assert level_for(200) == logging.INFO
        assert level_for(404) == logging.WARNING
        assert level_for(502) == logging.ERROR

    def test_rejected_call_logged_as_warning(self, client: TestClient, caplog):
        with caplog.at_level(logging.INFO, logger="stageflow.api.middleware.request_log"):
            client.post("/api/workflows", json={"name": "x"}, headers={"X-User-Role": "trainer"})

        record = next(r for r in caplog.records if "/api/workflows" in r.getMessage())
        assert record.levelno == logging.WARNING
        assert "role=trainer" in record.getMessage()

    def test_health_checks_not_logged(self, client: TestClient, caplog):
        with caplog.at_level(logging.INFO, logger="stageflow.api.middleware.request_log"):
            response = client.get("/health")

        assert "X-Request-ID" not in response.headers
        assert not [r for r in caplog.records if r.name == "stageflow.api.middleware.request_log"]
