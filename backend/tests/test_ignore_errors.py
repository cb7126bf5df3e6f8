"""Ignore mode downgrades runtime action and query errors to warnings."""

import logging

from backend.karel.errors import MoveOutOfBounds
from backend.karel.interpreter import ACTION, Interpreter
from backend.karel.program import load_program


def run_ignoring(source):
    it = Interpreter(load_program([source]), ignore_runtime_errors=True)
    return it, it.run()


def test_failing_action_is_skipped():
    it, res = run_ignoring("def main\nmove\nput\nenddef")
    assert res["errors"] is None
    assert res["state"]["grid"][0][0] == 1
    assert res["warnings"] == [
        "line 1 (move): Karel was ordered to run out of the map. Karel will terminate. (ignored)"
    ]
    assert it.world.position == (0, 0)


def test_failing_condition_reads_as_false():
    _, res = run_ignoring("def main\nif wall\nput\nendif\ntake\nenddef")
    assert res["errors"] is None
    assert res["state"]["grid"][0][0] == 0
    assert len(res["warnings"]) == 2
    assert res["warnings"][0].startswith("line 1 (if wall)")
    assert res["warnings"][1].startswith("line 4 (take)")


def test_failing_while_condition_runs_zero_iterations():
    _, res = run_ignoring("def main\nwhile wall\nput\nendwhile\nput\nenddef")
    assert res["errors"] is None
    assert res["state"]["grid"][0][0] == 1


def test_step_reports_ignored_error():
    it = Interpreter(load_program(["def main\nmove\nenddef"]), ignore_runtime_errors=True)
    outcome = it.step()
    assert outcome.kind == ACTION
    assert isinstance(outcome.ignored, MoveOutOfBounds)
    assert outcome.ignored.index == 1
    assert it.error is None


def test_syntax_errors_are_not_downgraded():
    _, res = run_ignoring("def main\nput\njump\nenddef")
    assert res["errors"]["kind"] == "NotDefined"


def test_startup_errors_are_not_downgraded():
    _, res = run_ignoring("def helper\nenddef")
    assert res["errors"]["code"] == "STARTUP_ERROR"


def test_limits_are_not_downgraded():
    it = Interpreter(load_program(["def main\nwhile north\nmove\nendwhile\nenddef"]), ignore_runtime_errors=True)
    it.max_steps = 30
    res = it.run()
    assert res["errors"]["code"] == "STEP_LIMIT"
    assert len(res["warnings"]) > 1


def test_ignored_errors_are_logged(caplog):
    with caplog.at_level(logging.WARNING, logger="karel.interpreter"):
        run_ignoring("def main\ntake\nenddef")
    assert any("(ignored)" in r.getMessage() for r in caplog.records)
