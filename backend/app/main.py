"""FastAPI application entrypoints for the Karel interpreter.

This module exposes HTTP endpoints used by the frontend and tests. Handlers
are small: each `/run` request builds a fresh world and
`Interpreter` so no state is shared between requests. Server-side caps are
enforced so clients cannot override grid size or step limits beyond what the
server allows.
"""

import json
import logging
import os
import time
from typing import Any, Dict, List, Optional

from fastapi import FastAPI
from pydantic import BaseModel

from ..karel._subprocess_worker import run_payload
from ..karel.errors import KarelError
from ..karel.interpreter import Interpreter
from ..karel.program import load_program
from ..karel.subprocess_runner import run_program_in_subprocess
from ..karel.world import Config

logger = logging.getLogger("karel.api")

app = FastAPI(title="Karel API", version="0.1")

MAX_GRID = 50
MAX_ITEMS = 99
MAX_TIMEOUT_S = 5.0
# Server step ceiling; clients may only lower it
DEFAULT_MAX_STEPS = int(os.environ.get("KAREL_MAX_STEPS", "100000"))


def _cap_settings(settings: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Enforce server-side caps on client-provided run settings.

    Missing values fall back to the world defaults and the server step
    ceiling; provided values are clamped into the allowed range.
    """
    defaults = Config()
    safe = {
        "width": defaults.width,
        "height": defaults.height,
        "max_items": defaults.max_items,
        "max_steps": DEFAULT_MAX_STEPS,
        "timeout_s": 2.0,
    }
    if not settings:
        return safe
    caps = {}
    caps["width"] = max(1, min(int(settings.get("width", safe["width"])), MAX_GRID))
    caps["height"] = max(1, min(int(settings.get("height", safe["height"])), MAX_GRID))
    caps["max_items"] = max(0, min(int(settings.get("max_items", safe["max_items"])), MAX_ITEMS))
    caps["max_steps"] = max(0, min(int(settings.get("max_steps", safe["max_steps"])), DEFAULT_MAX_STEPS))
    caps["timeout_s"] = max(0.1, min(float(settings.get("timeout_s", safe["timeout_s"])), MAX_TIMEOUT_S))
    return caps


class RunRequest(BaseModel):
    """Pydantic model for the `/run` request body.

    Fields:
        code: Karel source text containing `def main`.
        libraries: optional library sources, loaded before `code`.
        settings: optional world size / limits; capped server-side.
        ignore_runtime_errors: skip failing commands instead of halting.
        walls: optional [row, col] pairs turned into walls before the run.
        use_subprocess: run in an isolated worker process with a timeout.
    """
    code: str
    libraries: Optional[List[str]] = None
    settings: Optional[Dict[str, Any]] = None
    ignore_runtime_errors: bool = False
    walls: Optional[List[List[int]]] = None
    use_subprocess: bool = False


class CheckRequest(BaseModel):
    code: str
    libraries: Optional[List[str]] = None


def _error_result(code: str, message: str) -> Dict[str, Any]:
    return {
        "state": None,
        "rendered": "",
        "warnings": [],
        "steps": 0,
        "errors": {"code": code, "message": message},
    }


def _run_in_subprocess(payload: Dict[str, Any], timeout_s: float) -> Dict[str, Any]:
    rc, out, err = run_program_in_subprocess(
        payload["sources"],
        payload["settings"],
        ignore_runtime_errors=payload["ignore_runtime_errors"],
        walls=payload["walls"],
        timeout_s=timeout_s,
    )
    if rc == -1:
        return _error_result("TIMEOUT", "Time limit exceeded")
    if rc != 0:
        return _error_result("SUBPROCESS_FAILED", err)
    return json.loads(out)


@app.post("/run")
async def run_code(req: RunRequest):
    """Handle a program execution request.

    The response always has the same shape: `state` (final or last-known world
    snapshot), `rendered` (text grid), `warnings`, `steps`, `errors` (None or a
    structured error) and `duration_ms`. Unexpected exceptions become a
    SERVER_ERROR payload instead of an HTTP error.
    """
    start = time.time()
    try:
        capped = _cap_settings(req.settings)
        payload = {
            "sources": list(req.libraries or []) + [req.code],
            "settings": capped,
            "ignore_runtime_errors": req.ignore_runtime_errors,
            "walls": req.walls or [],
        }
        if req.use_subprocess:
            result = _run_in_subprocess(payload, capped["timeout_s"])
        else:
            result = run_payload(payload)
    except Exception as e:
        logger.exception("run request failed")
        result = _error_result("SERVER_ERROR", str(e))
    result["duration_ms"] = int((time.time() - start) * 1000)
    if result.get("errors"):
        logger.info("run finished with %s", result["errors"].get("code"))
    return result


@app.post("/check")
async def check_code(req: CheckRequest):
    """Load and structurally validate a program without running it."""
    program = load_program(list(req.libraries or []) + [req.code])
    it = Interpreter(program)
    errors = None
    try:
        it.validate()
    except KarelError as e:
        errors = e.to_dict()
    return {
        "lines": len(program),
        "methods": sorted(program.methods),
        "duplicates": list(program.duplicates),
        "has_main": "main" in program.methods,
        "warnings": it.warnings,
        "errors": errors,
    }
