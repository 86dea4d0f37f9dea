from __future__ import annotations

from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient


class _FakeExecutor(SimpleNamespace):
    """Minimal executor stub for API lifecycle tests."""


def test_create_app_boot_runtime_false_does_not_attach_executor() -> None:
    from constellation.api.app import create_app

    app = create_app(boot_runtime=False)
    assert getattr(app.state, "executor", None) is None

    with TestClient(app) as client:
        r = client.get("/v1/health")
        assert r.status_code == 200
        assert r.json()["executor_ready"] is False

        r = client.get("/v1/status")
        assert r.status_code == 500
        assert r.json() == {
            "ok": False,
            "error": {"code": "not_ready", "message": "executor not attached to app.state", "details": {}},
        }


def test_create_app_boot_runtime_true_attaches_executor(monkeypatch: pytest.MonkeyPatch) -> None:
    from constellation.api import app as api_app

    def _fake_build_executor():
        return _FakeExecutor(chain_id="constellation-test")

    monkeypatch.setattr(api_app, "build_executor", _fake_build_executor)

    app = api_app.create_app(boot_runtime=True)
    assert getattr(app.state.executor, "chain_id", "") == "constellation-test"

    # The stub has no produce_block, so autostart is skipped.
    monkeypatch.setenv("CONSTELLATION_BLOCK_LOOP_AUTOSTART", "1")
    app = api_app.create_app(boot_runtime=True)
    with TestClient(app) as _client:
        assert app.state.block_loop is None


def test_block_loop_autostart_runs_with_app(monkeypatch: pytest.MonkeyPatch, make_executor) -> None:
    from constellation.api import app as api_app

    ex = make_executor()
    monkeypatch.setattr(api_app, "build_executor", lambda: ex)
    monkeypatch.setenv("CONSTELLATION_BLOCK_LOOP_AUTOSTART", "1")

    app = api_app.create_app(boot_runtime=True)
    with TestClient(app) as client:
        assert app.state.block_loop is not None
        assert ex.block_loop_running is True
        body = client.get("/v1/status").json()
        assert body["block_loop"]["attached"] is True

    assert ex.block_loop_running is False


def test_docs_disabled_in_prod_enabled_in_dev(monkeypatch: pytest.MonkeyPatch) -> None:
    from constellation.api.app import create_app

    monkeypatch.setenv("CONSTELLATION_MODE", "prod")
    assert TestClient(create_app(boot_runtime=False)).get("/openapi.json").status_code == 404

    monkeypatch.setenv("CONSTELLATION_MODE", "dev")
    assert TestClient(create_app(boot_runtime=False)).get("/openapi.json").status_code == 200


def test_wildcard_cors_refused_in_prod(monkeypatch: pytest.MonkeyPatch) -> None:
    from constellation.api.app import create_app

    monkeypatch.setenv("CONSTELLATION_MODE", "prod")
    monkeypatch.setenv("CONSTELLATION_CORS_ORIGINS", "*")
    with pytest.raises(RuntimeError):
        create_app(boot_runtime=False)
