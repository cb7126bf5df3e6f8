"""HTTP API tests using FastAPI's TestClient."""

from fastapi.testclient import TestClient

from backend.app.main import DEFAULT_MAX_STEPS, MAX_GRID, _cap_settings, app

client = TestClient(app)


def test_run_simple_program():
    r = client.post("/run", json={"code": "def main\nput\nput\nenddef"})
    assert r.status_code == 200
    body = r.json()
    assert body["errors"] is None
    assert body["state"]["grid"][0][0] == 2
    assert body["steps"] == 2
    assert body["rendered"].splitlines()[0].startswith("▲")
    assert "duration_ms" in body


def test_run_runtime_error_payload():
    r = client.post("/run", json={"code": "def main\nput\nmove\nenddef"})
    body = r.json()
    err = body["errors"]
    assert err["code"] == "RUNTIME_ERROR"
    assert err["kind"] == "MoveOutOfBounds"
    assert err["index"] == 2
    assert err["context"]["line_text"] == "move"
    # last known state is still reported
    assert body["state"]["grid"][0][0] == 1


def test_run_missing_main():
    r = client.post("/run", json={"code": "def helper\nput\nenddef"})
    assert r.json()["errors"]["code"] == "STARTUP_ERROR"


def test_run_with_libraries():
    r = client.post(
        "/run",
        json={
            "code": "def main\ncall drop\ncall drop\nenddef",
            "libraries": ["def drop\nput\nenddef"],
        },
    )
    body = r.json()
    assert body["errors"] is None
    assert body["state"]["grid"][0][0] == 2


def test_run_with_walls():
    r = client.post(
        "/run",
        json={"code": "def main\nturn-left\nmove\nenddef", "walls": [[1, 0]]},
    )
    body = r.json()
    assert body["errors"]["kind"] == "MoveIntoWall"
    assert body["state"]["grid"][1][0] == -1


def test_wall_on_karel_is_a_world_error():
    r = client.post("/run", json={"code": "def main\nenddef", "walls": [[0, 0]]})
    body = r.json()
    assert body["errors"]["code"] == "WORLD_ERROR"
    assert body["errors"]["kind"] == "KarelIsHere"
    assert body["steps"] == 0


def test_run_ignore_runtime_errors():
    r = client.post(
        "/run",
        json={"code": "def main\nmove\nput\nenddef", "ignore_runtime_errors": True},
    )
    body = r.json()
    assert body["errors"] is None
    assert len(body["warnings"]) == 1
    assert body["state"]["grid"][0][0] == 1


def test_settings_are_capped():
    r = client.post(
        "/run",
        json={"code": "def main\nenddef", "settings": {"width": 500, "height": 3, "max_items": 1000}},
    )
    state = r.json()["state"]
    assert state["width"] == MAX_GRID
    assert state["height"] == 3
    assert state["max_items"] == 99


def test_cap_settings():
    assert _cap_settings(None)["max_steps"] == DEFAULT_MAX_STEPS
    capped = _cap_settings({"width": 0, "max_steps": 10 ** 9, "timeout_s": 60})
    assert capped["width"] == 1
    assert capped["height"] == 10
    assert capped["max_steps"] == DEFAULT_MAX_STEPS
    assert capped["timeout_s"] == 5.0


def test_step_limit_from_settings():
    r = client.post(
        "/run",
        json={"code": "def main\nwhile north\nendwhile\nenddef", "settings": {"max_steps": 50}},
    )
    assert r.json()["errors"]["code"] == "STEP_LIMIT"


def test_run_in_subprocess():
    r = client.post(
        "/run",
        json={
            "code": "def main\nrepeat 4\nput\nendrepeat\nenddef",
            "use_subprocess": True,
            "settings": {"timeout_s": 5},
        },
    )
    body = r.json()
    assert body["errors"] is None
    assert body["state"]["grid"][0][0] == 4
    assert body["rendered"].startswith("▲")


def test_check_reports_methods_and_structure():
    r = client.post(
        "/check",
        json={"code": "def main\ncall a\nenddef", "libraries": ["def a\nput\nenddef\ndef a\nenddef"]},
    )
    body = r.json()
    assert body["errors"] is None
    assert body["methods"] == ["a", "main"]
    assert body["duplicates"] == ["a"]
    assert body["has_main"] is True
    assert body["lines"] == 8


def test_check_finds_block_errors_without_running():
    r = client.post("/check", json={"code": "def main\nif north\nput\nendrepeat\nenddef"})
    body = r.json()
    assert body["errors"]["kind"] == "WrongBlockEnd"
    assert body["errors"]["index"] == 3
    assert body["has_main"] is True
