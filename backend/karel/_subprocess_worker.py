"""Subprocess worker for running one Karel program in isolation.

This module is executed as a short-lived subprocess
(`python -m backend.karel._subprocess_worker`). It reads a single JSON object
from stdin with shape

    {"sources": ["<library>", ..., "<main>"],
     "settings": {"width": 10, "height": 10, "max_items": 8, "max_steps": 100000},
     "ignore_runtime_errors": false,
     "walls": [[row, col], ...]}

runs the program on a fresh world and writes the run result (the dict
returned by `Interpreter.run`, plus `rendered`) to stdout as JSON.

The calling process enforces the wall-clock timeout and resource caps.
"""

import json
import sys
from typing import Any, Dict

from backend.karel.errors import KarelError
from backend.karel.interpreter import Interpreter
from backend.karel.program import load_program
from backend.karel.world import Config, World


def run_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Run the program described by `payload` and return the result dict."""
    settings = payload.get("settings") or {}
    world = World(Config.from_settings(settings))
    try:
        for row, col in payload.get("walls") or []:
            world.toggle_wall((int(row), int(col)))
    except KarelError as e:
        return {
            "state": world.snapshot(),
            "rendered": world.render(),
            "warnings": [],
            "steps": 0,
            "errors": e.to_dict(),
        }
    program = load_program(payload.get("sources") or [])
    it = Interpreter(program, world, ignore_runtime_errors=bool(payload.get("ignore_runtime_errors")))
    if settings.get("max_steps") is not None:
        it.max_steps = int(settings["max_steps"])
    result = it.run()
    result["rendered"] = world.render()
    return result


def main() -> None:
    raw = sys.stdin.read()
    try:
        payload = json.loads(raw)
    except ValueError as e:
        # Communicate payload decoding errors via JSON to the parent process
        print(json.dumps({"errors": {"code": "BAD_PAYLOAD", "message": str(e)}}))
        sys.exit(1)

    print(json.dumps(run_payload(payload)))


if __name__ == "__main__":
    main()
