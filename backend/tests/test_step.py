"""Single-stepping and block execution tests."""

import pytest

from backend.karel.errors import MoveOutOfBounds, UnexpectedSyntax
from backend.karel.interpreter import ACTION, CONDITION, FINISHED, Interpreter, Mode
from backend.karel.program import load_program

BLOCKS = "\n".join([
    "def main",     # 0
    "if north",     # 1
    "repeat 2",     # 2
    "put",          # 3
    "endrepeat",    # 4
    "while south",  # 5
    "move",         # 6
    "endwhile",     # 7
    "endif",        # 8
    "put",          # 9
    "enddef",       # 10
])


def make(source):
    return Interpreter(load_program([source]))


def test_step_sequence():
    it = make("def main\nput\nif north\nturn-left\nendif\nmove\nenddef")
    outcomes = [it.step() for _ in range(5)]
    assert [(o.kind, o.index) for o in outcomes] == [
        (ACTION, 1),
        (CONDITION, 2),
        (ACTION, 3),
        (ACTION, 5),
        (FINISHED, 6),
    ]
    assert outcomes[1].value is True
    assert outcomes[0].line == "put"
    assert it.steps == 4
    assert it.finished
    assert it.world.position == (1, 0)


def test_step_after_finish_keeps_returning_finished():
    it = make("def main\nenddef")
    assert it.step().kind == FINISHED
    assert it.step().kind == FINISHED
    assert it.steps == 0


def test_state_between_steps_across_a_call():
    it = make("def m\nput\nenddef\ndef main\ncall m\nturn-left\nenddef")
    it.step()
    assert it.call_stack == [5]
    assert it.pointer == 2
    state = it.state()
    assert state["line"] == "enddef"
    assert [b["kind"] for b in state["blocks"]] == ["def", "def"]
    assert state["blocks"][1]["called"] is True
    outcome = it.step()
    assert (outcome.kind, outcome.index) == (ACTION, 5)
    assert it.call_stack == []
    assert it.step().kind == FINISHED


def test_step_error_halts_interpreter():
    it = make("def main\nmove\nput\nenddef")
    with pytest.raises(MoveOutOfBounds):
        it.step()
    assert it.finished
    assert isinstance(it.error, MoveOutOfBounds)
    assert it.step().kind == FINISHED
    assert it.world.get((0, 0)) == 0


def test_false_condition_reports_value():
    it = make("def main\nif south\nput\nendif\nenddef")
    outcome = it.step()
    assert outcome.kind == CONDITION
    assert outcome.value is False
    assert it.step().kind == FINISHED
    assert it.world.get((0, 0)) == 0


@pytest.mark.parametrize("start, expected", [(0, 11), (1, 9), (2, 5), (5, 8)])
def test_skip_returns_index_after_terminator(start, expected):
    it = make(BLOCKS)
    assert it.execute_block(Mode.SKIP, start) == expected
    assert it.world.get((0, 0)) == 0
    assert it.blocks == []


def test_skip_rejects_non_opener():
    it = make(BLOCKS)
    with pytest.raises(UnexpectedSyntax):
        it.execute_block(Mode.SKIP, 3)


def test_run_repeat_block():
    it = make(BLOCKS)
    assert it.execute_block(Mode.RUN, 2) == 5
    assert it.world.get((0, 0)) == 2


def test_run_if_block():
    it = make(BLOCKS)
    assert it.execute_block(Mode.RUN, 1) == 9
    assert it.world.get((0, 0)) == 2
    assert it.world.position == (0, 0)


def test_run_def_block():
    it = make(BLOCKS)
    assert it.execute_block(Mode.RUN, 0) == 11
    assert it.world.get((0, 0)) == 3
