"""
Tests for the FastAPI application setup.

These tests verify:
- Root and health check endpoints respond
- CORS middleware configured for localhost:5173
- Lifespan acquires the DB connection on startup and closes it on shutdown
- Unknown routes and wrong methods return the error envelope
- Data store failures surface as REPOSITORY_UNAVAILABLE without leaking details
"""

import sqlite3

import pytest


class TestFastAPIInitialization:

    def test_app_has_title_and_version(self, test_client):
        from clipfeed.api.app import app
        from fastapi import FastAPI

        assert isinstance(app, FastAPI)
        assert app.title == "ClipFeed API"
        assert app.version == "1.0.0"

    def test_all_routers_registered(self, test_client):
        from clipfeed.api.app import app

        paths = {route.path for route in app.routes}
        for path in ['/feed/personalized/{user_id}', '/fans/{fan_id}/status/{owner_id}',
                     '/reactions/add', '/comments/create', '/subscriptions/plans',
                     '/chat/fan-groups/{group_id}/join']:
            assert path in paths, f"Route {path} not registered"


class TestHealthCheckEndpoint:

    def test_root_endpoint(self, test_client):
        response = test_client.get("/")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "message": "ClipFeed API"}

    def test_health_endpoint(self, test_client):
        response = test_client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}


class TestCORSConfiguration:

    def test_cors_middleware_present(self, test_client):
        from clipfeed.api.app import app

        middleware_types = [m.cls.__name__ for m in app.user_middleware]
        assert 'CORSMiddleware' in middleware_types

    def test_cors_allows_localhost_5173(self, test_client):
        response = test_client.get("/health", headers={"Origin": "http://localhost:5173"})

        assert response.headers.get("access-control-allow-origin") == "http://localhost:5173"


class TestLifespanHandlers:

    def test_db_connection_in_app_state(self, test_client):
        from clipfeed.api.app import app

        assert isinstance(app.state.db, sqlite3.Connection)
        assert app.state.db.execute("SELECT COUNT(*) FROM fan_badges").fetchone()[0] == 5

    def test_shutdown_closes_db_connection(self, temp_db_path, monkeypatch):
        from fastapi.testclient import TestClient
        from clipfeed.api.app import app
        from clipfeed.backend.db.schema import initialize_schema

        initialize_schema(temp_db_path)
        monkeypatch.setenv('DB_PATH', temp_db_path)

        with TestClient(app) as client:
            assert client.get("/health").status_code == 200

        assert app.state.db is None


class TestErrorHandlers:

    def test_unknown_route_returns_error_envelope(self, test_client):
        response = test_client.get("/nonexistent/endpoint/12345")

        assert response.status_code == 404
        body = response.json()
        assert body["success"] is False
        assert body["error"]["code"] == "NOT_FOUND"

    def test_wrong_method_returns_error_envelope(self, test_client):
        response = test_client.get("/reactions/add")

        assert response.status_code == 405
        assert response.json()["success"] is False

    def test_path_validation_names_field(self, test_client):
        response = test_client.get("/feed/personalized/not-a-number")

        assert response.status_code == 422
        body = response.json()
        assert body["error"]["code"] == "VALIDATION_ERROR"
        assert body["error"]["field"] == "user_id"

    def test_repository_failure_returns_503(self, test_client, monkeypatch):
        """A sqlite error during a request is reported without the database message."""
        from clipfeed import storage

        def broken(*args, **kwargs):
            raise sqlite3.OperationalError("disk I/O error")

        monkeypatch.setattr(storage, 'require_user', broken)

        response = test_client.get("/feed/personalized/1")

        assert response.status_code == 503
        body = response.json()
        assert body["error"]["code"] == "REPOSITORY_UNAVAILABLE"
        assert "disk I/O" not in body["error"]["message"]
