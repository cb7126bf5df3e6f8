"""Helpers to run a Karel program in a controlled subprocess worker.

This module provides `run_program_in_subprocess`, a convenience wrapper that
launches `backend.karel._subprocess_worker` (which follows a simple
JSON-over-stdin/stdout protocol). The Karel core has no timeouts of its own, so
this is where a wall-clock limit is enforced; on POSIX systems light OS-level
resource limits (CPU seconds and address space) are applied as well.

Behavior and guarantees:
  - On POSIX, optional RLIMIT_CPU and RLIMIT_AS limits are applied using a
    preexec function. On Windows these limits are no-ops.
  - The worker is launched as a short-lived process with closed file
    descriptors and a minimal environment.
  - The function returns (returncode, stdout, stderr). A returncode of -1
    indicates the process was terminated due to timeout.
"""

import json
import os
import subprocess
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

PROJECT_ROOT = Path(__file__).resolve().parents[2]
WORKER_MODULE = "backend.karel._subprocess_worker"


def _make_posix_preexec(cpu_seconds: Optional[int], mem_limit_mb: Optional[int]):
    """Return a preexec_fn that applies resource limits on POSIX systems."""
    def preexec():
        import resource

        if cpu_seconds is not None:
            resource.setrlimit(resource.RLIMIT_CPU, (int(cpu_seconds), int(cpu_seconds)))
        if mem_limit_mb is not None:
            mem_bytes = int(mem_limit_mb) * 1024 * 1024
            resource.setrlimit(resource.RLIMIT_AS, (mem_bytes, mem_bytes))
        # Start a new session to isolate signals
        os.setsid()

    return preexec


def run_program_in_subprocess(
    sources: List[str],
    settings: Optional[Dict[str, Any]] = None,
    *,
    ignore_runtime_errors: bool = False,
    walls: Optional[List[Tuple[int, int]]] = None,
    timeout_s: float = 2,
    cpu_seconds: Optional[int] = 2,
    mem_limit_mb: Optional[int] = 200,
) -> Tuple[int, str, str]:
    """Run a Karel program in the worker and return its raw outputs.

    Parameters:
      - sources: library sources followed by the main source.
      - settings: world and limit settings forwarded to the worker.
      - timeout_s: wall-clock timeout for the whole operation (seconds).
      - cpu_seconds: optional RLIMIT_CPU (seconds) applied on POSIX.
      - mem_limit_mb: optional RLIMIT_AS (MB) applied on POSIX.

    Returns (returncode, stdout, stderr). On timeout the process is killed
    and (-1, "", "TIMEOUT") is returned.
    """
    # Keep the child's environment minimal; PYTHONPATH lets it import the package.
    env = {"PATH": os.environ.get("PATH", ""), "PYTHONPATH": str(PROJECT_ROOT)}

    popen_kwargs: Dict[str, Any] = dict(
        args=[sys.executable, "-m", WORKER_MODULE],
        stdin=subprocess.PIPE,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        encoding="utf-8",
        env=env,
        cwd=str(PROJECT_ROOT),
        close_fds=True,
    )
    if os.name != "nt":
        popen_kwargs["preexec_fn"] = _make_posix_preexec(cpu_seconds, mem_limit_mb)

    proc = subprocess.Popen(**popen_kwargs)

    payload = json.dumps(
        {
            "sources": list(sources),
            "settings": settings or {},
            "ignore_runtime_errors": ignore_runtime_errors,
            "walls": [list(w) for w in walls or []],
        }
    )
    try:
        out, err = proc.communicate(payload, timeout=timeout_s)
    except subprocess.TimeoutExpired:
        proc.kill()
        proc.communicate()
        return -1, "", "TIMEOUT"

    return proc.returncode, out or "", err or ""
