import json
import time

import pytest
from sqlalchemy import inspect

from pyrhouse.app import create_app, install_cors, main
from pyrhouse.database import connect, create_schema


@pytest.fixture
def engine():
    engine = connect("sqlite://")
    create_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def app(engine):
    return create_app(engine, {})


def test_health_reports_ok(app):
    response = app.test_client().get("/health")
    assert response.status_code == 200
    body = json.loads(response.data)
    assert body["status"] == "ok"
    assert body["version"] == "1.0.0"


def test_cors_allows_known_origin(app):
    response = app.test_client().get("/health", headers={"Origin": "http://localhost:3000"})
    assert response.status_code == 200
    assert response.headers["Access-Control-Allow-Origin"] == "http://localhost:3000"
    assert response.headers["Access-Control-Allow-Credentials"] == "true"


def test_cors_refuses_unknown_origin(app):
    response = app.test_client().get("/health", headers={"Origin": "http://evil.example.com"})
    assert response.status_code == 403
    assert "Access-Control-Allow-Origin" not in response.headers


def test_cors_preflight(app):
    response = app.test_client().options(
        "/locations",
        headers={
            "Origin": "http://localhost:5000",
            "Access-Control-Request-Method": "PATCH",
        },
    )
    assert response.status_code == 204
    assert "PATCH" in response.headers["Access-Control-Allow-Methods"]
    assert response.headers["Access-Control-Allow-Origin"] == "http://localhost:5000"


def test_install_cors_on_plain_app():
    from flask import Flask

    plain = Flask(__name__)
    install_cors(plain, ["http://client.example.com"])
    plain.add_url_rule("/ping", "ping", lambda: "pong")
    client = plain.test_client()
    ok = client.get("/ping", headers={"Origin": "http://client.example.com"})
    assert ok.headers["Access-Control-Allow-Origin"] == "http://client.example.com"
    assert client.get("/ping", headers={"Origin": "http://other.example.com"}).status_code == 403


def test_location_changes_need_role(app):
    client = app.test_client()
    assert client.post("/locations", json={"name": "Hall"}).status_code == 403
    app.config["ROLE_GUARD"] = lambda role: role == "moderator"
    response = client.post("/locations", json={"name": "Hall"})
    assert response.status_code == 201
    assert client.get("/locations").get_json()[0]["name"] == "Hall"


def test_service_desk_requires_user(app):
    client = app.test_client()
    assert client.get("/service-desk/request-types").status_code == 401
    app.config["USER_ID_PROVIDER"] = lambda: "1"
    response = client.get("/service-desk/request-types")
    assert response.status_code == 200
    assert [kind["id"] for kind in response.get_json()] == [
        "hardware_issue",
        "replacement",
        "technical_problem",
        "other",
    ]


def test_recovery_answers_500(app):
    def broken():
        raise RuntimeError("boom")

    app.add_url_rule("/broken", "broken", broken)
    response = app.test_client().get("/broken")
    assert response.status_code == 500
    assert response.get_json()["error"] == "Internal Server Error"


def test_request_timeout(engine):
    app = create_app(engine, {"REQUEST_TIMEOUT": "1"})

    def slow():
        time.sleep(1.5)
        return "done"

    app.add_url_rule("/slow", "slow", slow)
    response = app.test_client().get("/slow")
    assert response.status_code == 504
    assert response.get_json()["error"] == "Request Timeout"


def test_invalid_timeout_is_ignored(engine):
    app = create_app(engine, {"REQUEST_TIMEOUT": "soon"})
    app.add_url_rule("/quick", "quick", lambda: "done")
    response = app.test_client().get("/quick")
    assert response.status_code == 200
    assert response.data == b"done"


def test_main_requires_database_url(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("DATABASE_URL", "")
    monkeypatch.delenv("DATABASE_URL")
    with pytest.raises(SystemExit) as info:
        main([])
    assert "DATABASE_URL" in str(info.value)


def test_main_migrate_creates_schema(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    db_path = tmp_path / "warehouse.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{db_path}")
    assert main(["-migrate"]) == 0
    engine = connect(f"sqlite:///{db_path}")
    try:
        tables = set(inspect(engine).get_table_names())
    finally:
        engine.dispose()
    assert {"locations", "users", "service_desk_requests"} <= tables


def test_main_reads_dotenv(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    db_path = tmp_path / "from_env.db"
    (tmp_path / ".env").write_text(f"DATABASE_URL=sqlite:///{db_path}\n", encoding="utf-8")
    monkeypatch.setenv("DATABASE_URL", "")
    monkeypatch.delenv("DATABASE_URL")
    assert main(["--migrate", "--dir=./migrations"]) == 0
    assert db_path.exists()