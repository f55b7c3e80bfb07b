"""
Tests for middleware modules
"""

import json
import logging

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from catalog_search.middleware.logging import (
    RequestIdFilter,
    SessionHeaderMiddleware,
    StructuredFormatter,
    StructuredLoggingMiddleware,
    get_request_id,
    request_id_var,
)


def build_app() -> FastAPI:
    app = FastAPI()

    @app.get("/test")
    async def test_route(request: Request):
        request.state.owner_id = "user_001"
        return {"request_id": get_request_id()}

    @app.get("/anonymous")
    async def anonymous_route(request: Request):
        request.state.session_id = "session_abc"
        return {"ok": True}

    @app.get("/anonymous-owner")
    async def anonymous_owner_route(request: Request):
        request.state.owner_id = "anonymous_session_1b4e28ba-2fa1-11d2-883f-0016d3cca427"
        return {"ok": True}

    @app.get("/health")
    async def health():
        return {"status": "healthy"}

    app.add_middleware(SessionHeaderMiddleware)
    app.add_middleware(StructuredLoggingMiddleware)
    return app


class TestStructuredLoggingMiddleware:
    """Test request logging and request ids"""

    def test_request_id_is_generated_and_echoed(self):
        client = TestClient(build_app())

        response = client.get("/test")

        request_id = response.headers["X-Request-ID"]
        assert len(request_id) == 36
        assert response.json()["request_id"] == request_id

    def test_incoming_request_id_is_kept(self):
        client = TestClient(build_app())

        response = client.get("/test", headers={"X-Request-ID": "req-123"})

        assert response.headers["X-Request-ID"] == "req-123"

    def test_access_log_carries_owner(self, caplog):
        client = TestClient(build_app())

        with caplog.at_level(logging.INFO, logger="catalog_search.access"):
            client.get("/test")

        record = next(r for r in caplog.records if r.name == "catalog_search.access")
        assert record.getMessage().startswith("GET /test - 200")
        assert record.owner_id == "user_001"
        assert record.status_code == 200

    def test_anonymous_owner_is_masked(self, caplog):
        client = TestClient(build_app())

        with caplog.at_level(logging.INFO, logger="catalog_search.access"):
            client.get("/anonymous-owner")

        record = next(r for r in caplog.records if r.name == "catalog_search.access")
        assert record.owner_id == "anonymous_session_1b4e28ba..."

    def test_health_is_not_logged(self, caplog):
        client = TestClient(build_app())

        with caplog.at_level(logging.INFO, logger="catalog_search.access"):
            client.get("/health")

        assert not [r for r in caplog.records if r.name == "catalog_search.access"]


class TestSessionHeaderMiddleware:
    def test_session_id_is_echoed(self):
        client = TestClient(build_app())

        assert client.get("/anonymous").headers["X-Session-Id"] == "session_abc"

    def test_no_session_no_header(self):
        client = TestClient(build_app())

        assert "X-Session-Id" not in client.get("/test").headers


class TestStructuredFormatter:
    @pytest.fixture
    def record(self):
        record = logging.LogRecord("catalog_search.test", logging.INFO, __file__, 1, "hello %s", ("world",), None)
        record.owner_id = "anonymous_session_abc"
        record.status_code = 200
        record.unrelated = "dropped"
        return record

    def test_formats_json_with_extras(self, record):
        token = request_id_var.set("req-9")
        try:
            RequestIdFilter().filter(record)
            data = json.loads(StructuredFormatter().format(record))
        finally:
            request_id_var.reset(token)

        assert data["message"] == "hello world"
        assert data["level"] == "INFO"
        assert data["request_id"] == "req-9"
        assert data["owner_id"] == "anonymous_session_abc"
        assert data["status_code"] == 200
        assert "unrelated" not in data
