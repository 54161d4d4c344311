from __future__ import annotations

import asyncio
import json

from sqlalchemy.exc import DBAPIError, OperationalError
from starlette.requests import Request

from compliancedb import main, serve


def _request():
    return Request({"type": "http", "method": "GET", "path": "/client-management/clients", "headers": []})


def test_health_endpoints():
    assert main.read_root()["status"] == "ok"
    assert main.health() == {"status": "ok"}


def test_client_management_routes_are_mounted():
    # The OpenAPI document lists every mounted operation however routers are nested.
    paths = set(main.app.openapi()["paths"]) | {getattr(route, "path", None) for route in main.app.routes}

    assert "/client-management/clients" in paths
    assert "/client-management/transport-manager/{manager_id}/client-limit" in paths
    assert "/client-management/remove-request" in paths


def test_storage_outage_maps_to_503_without_internals():
    exc = OperationalError("SELECT 1", {}, Exception("could not connect to server: 10.0.0.5"))

    response = asyncio.run(main._operational_error_handler(_request(), exc))

    assert response.status_code == 503
    assert "10.0.0.5" not in json.loads(response.body)["detail"]


def test_other_database_errors_are_500():
    exc = DBAPIError("INSERT", {}, Exception("boom"), connection_invalidated=False)

    response = asyncio.run(main._dbapi_error_handler(_request(), exc))

    assert response.status_code == 500


def test_server_options(monkeypatch):
    monkeypatch.setenv("PORT", "9100")
    monkeypatch.setenv("RELOAD", "yes")
    monkeypatch.delenv("SSL_CERTFILE", raising=False)

    options = serve.server_options()

    assert options["port"] == 9100
    assert options["reload"] is True
    assert "ssl_certfile" not in options
