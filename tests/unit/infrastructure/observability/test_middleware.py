"""Unit tests for RequestLoggingMiddleware."""

import logging
from unittest.mock import patch

import pytest
from fastapi import FastAPI, HTTPException
from fastapi.testclient import TestClient

from trackcer.infrastructure.observability.middleware import RequestLoggingMiddleware


class TestRequestLoggingMiddleware:
    """Test suite for RequestLoggingMiddleware."""

    @pytest.fixture
    def app(self) -> FastAPI:
        app = FastAPI()
        app.add_middleware(RequestLoggingMiddleware)

        @app.get("/test")
        async def test_endpoint():
            return {"message": "test"}

        @app.get("/missing")
        async def missing_endpoint():
            raise HTTPException(status_code=404, detail="nope")

        @app.get("/broken")
        async def broken_endpoint():
            raise HTTPException(status_code=503, detail="down")

        return app

    @pytest.fixture
    def client(self, app: FastAPI) -> TestClient:
        return TestClient(app)

    def test_successful_request_logs_start_and_completion(self, client: TestClient):
        with patch("trackcer.infrastructure.observability.middleware.logger") as mock_logger:
            response = client.get("/test", headers={"X-User-Id": "7"})

        assert response.status_code == 200
        assert mock_logger.info.call_args[0][0] == "→ GET /test"
        assert mock_logger.info.call_args[1]["extra"]["user_header"] == "7"
        level, message = mock_logger.log.call_args[0]
        assert level == logging.INFO
        assert message.startswith("✓ GET /test → 200")
        assert mock_logger.log.call_args[1]["extra"]["status_code"] == 200

    def test_client_error_is_marked(self, client: TestClient):
        with patch("trackcer.infrastructure.observability.middleware.logger") as mock_logger:
            response = client.get("/missing")

        assert response.status_code == 404
        level, message = mock_logger.log.call_args[0]
        assert level == logging.INFO
        assert message.startswith("✗ GET /missing → 404")

    def test_server_error_is_a_warning(self, client: TestClient):
        with patch("trackcer.infrastructure.observability.middleware.logger") as mock_logger:
            client.get("/broken")

        assert mock_logger.log.call_args[0][0] == logging.WARNING

    def test_incoming_correlation_id_is_echoed(self, client: TestClient):
        response = client.get("/test", headers={"X-Correlation-ID": "client-abc"})
        assert response.headers["X-Correlation-ID"] == "client-abc"

    def test_correlation_id_is_generated_when_missing(self, client: TestClient):
        response = client.get("/test")
        assert len(response.headers["X-Correlation-ID"]) == 36
