"""Karel block interpreter.

This module executes a flattened Karel program (see `backend.karel.program`)
against a `World`. There is no syntax tree: the interpreter walks the line
array directly and "entering a block" means recording where the block starts
and locating its matching terminator by scanning forward, passing over nested
blocks of any kind wholesale.

Execution state is fully materialized on the `Interpreter` instance so a
host can drive the program one step at a time:

- `pointer`: index of the next line to interpret
- `blocks`: stack of open block frames (kind, opener, terminator, repeat count)
- `call_stack`: resumption points saved by `call`, popped on `enddef`

`step()` advances exactly one primitive action or one condition evaluation.
`run()` steps until the program finishes or fails and returns a result dict
in the same shape the API serves. Errors are raised as `KarelError`
subclasses; `run()` converts them into structured payloads.

Ignore mode (`ignore_runtime_errors=True`) downgrades runtime action and query
errors: a failing primitive is skipped and a failing condition reads as false.
Each downgraded error is logged and recorded in `warnings`.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from .errors import (
    ActionError,
    CallDepthExceeded,
    KarelError,
    MethodNotDefined,
    NoEntryPoint,
    NotANumber,
    NotDefined,
    NotEnoughArguments,
    QueryError,
    StepLimitExceeded,
    UnexpectedEndOfFile,
    UnexpectedSyntax,
    WrongBlockEnd,
)
from .program import Program, load_program
from .world import Action, Config, Direction, Query, World

logger = logging.getLogger("karel.interpreter")
logger.addHandler(logging.NullHandler())


class Mode(Enum):
    RUN = "run"
    SKIP = "skip"


class Block(Enum):
    IF = "if"
    DEF = "def"
    REPEAT = "repeat"
    WHILE = "while"

    @property
    def terminator(self) -> str:
        return "end" + self.value


OPENERS = {block.value: block for block in Block}
TERMINATORS = {block.terminator: block for block in Block}
ACTIONS = {action.value: action for action in Action}
DIE = "die"

CONDITIONS = {
    "wall": Query.WALL_AHEAD,
    "beeper": Query.ITEM_HERE,
    "north": Direction.NORTH,
    "south": Direction.SOUTH,
    "east": Direction.EAST,
    "west": Direction.WEST,
}

# StepOutcome kinds
ACTION = "action"
CONDITION = "condition"
FINISHED = "finished"


@dataclass
class Frame:
    """An open block: opener index, terminator index and loop bookkeeping."""

    kind: Block
    start: int
    end: int
    remaining: int = 0
    called: bool = False


@dataclass
class StepOutcome:
    kind: str
    index: Optional[int] = None
    line: Optional[str] = None
    value: Optional[bool] = None
    ignored: Optional[KarelError] = None


class Interpreter:
    """Runs one `Program` against one `World`.

    Tunable attributes (defaults are set in __init__):
    - max_steps: cap on interpreted lines, None for no cap
    - max_call_depth: cap on nested `call`s
    """

    def __init__(self, program: Program, world: Optional[World] = None, *, ignore_runtime_errors: bool = False):
        self.program = program
        self.world = world or World()
        self.ignore_runtime_errors = ignore_runtime_errors
        # Safety limits
        self.max_steps: Optional[int] = None
        self.max_call_depth = 1000
        # Execution state
        self.pointer: Optional[int] = None
        self.blocks: List[Frame] = []
        self.call_stack: List[int] = []
        self.started = False
        self.finished = False
        self.error: Optional[KarelError] = None
        # Counters: outcomes returned by step() and lines interpreted
        self.steps = 0
        self.executed = 0
        self.warnings: List[str] = [
            f"method '{name}' redefined; last definition wins" for name in program.duplicates
        ]
        self._ends: Dict[int, int] = {}

    # --- structure ---------------------------------------------------------

    def _line(self, index: int) -> str:
        if not 0 <= index < len(self.program):
            raise UnexpectedEndOfFile()
        return self.program[index]

    def block_kind(self, index: int) -> Block:
        line = self._line(index)
        kind = OPENERS.get(line.split()[0])
        if kind is None:
            raise UnexpectedSyntax(
                "Expected syntax block (if, def, repeat, while).", index=index, line_text=line
            )
        return kind

    def find_block_end(self, start: int) -> int:
        """Return the index of the terminator matching the opener at `start`."""
        if start in self._ends:
            return self._ends[start]
        # (kind, opener index) of every block still open
        open_blocks = [(self.block_kind(start), start)]
        for i in range(start + 1, len(self.program)):
            word = self.program[i].split()[0]
            if word in OPENERS:
                open_blocks.append((OPENERS[word], i))
            elif word in TERMINATORS:
                expected, _ = open_blocks.pop()
                if word != expected.terminator:
                    raise WrongBlockEnd(
                        f"Expected {expected.terminator}, got {word}.",
                        index=i,
                        line_text=self.program[i],
                    )
                if not open_blocks:
                    self._ends[start] = i
                    return i
        innermost, opener = open_blocks[-1]
        raise UnexpectedEndOfFile(
            f"Unexpected end of file: missing {innermost.terminator}.",
            index=opener,
            line_text=self.program[opener],
        )

    def validate(self) -> None:
        """Check the block structure of the whole program without running it."""
        i = 0
        while i < len(self.program):
            line = self.program[i]
            word = line.split()[0]
            if word in OPENERS:
                i = self.find_block_end(i) + 1
            elif word in TERMINATORS:
                raise WrongBlockEnd(f"Unexpected {word} outside any block.", index=i, line_text=line)
            else:
                i += 1

    # --- public execution API ----------------------------------------------

    def start(self) -> None:
        """Resolve the entry point and open the `main` block."""
        if self.started:
            return
        self.started = True
        body = self.program.methods.get("main")
        if body is None:
            raise NoEntryPoint()
        self._open_def(body - 1, called=False)

    def execute_block(self, mode: Mode, start: int) -> int:
        """Execute or skip the block opened at `start`; return the index after it.

        In SKIP mode the block is only scanned, with no side effects. In RUN
        mode the opener is interpreted as if reached by execution (a `def`
        runs its body) and stepping continues until the block closes.
        """
        if mode is Mode.SKIP:
            return self.find_block_end(start) + 1
        kind = self.block_kind(start)
        depth = len(self.blocks)
        self.started = True
        self.finished = False
        if kind is Block.DEF:
            self._guarded(self._open_def, start, False)
        else:
            self._guarded(self._interpret, start, self.blocks[-1] if self.blocks else None)
        while len(self.blocks) > depth and not self.finished:
            self.step()
        return self.pointer

    def step(self) -> StepOutcome:
        """Advance to and through the next primitive action or condition."""
        if self.finished:
            return StepOutcome(FINISHED)
        outcome = self._guarded(self._step)
        if outcome.kind != FINISHED:
            self.steps += 1
        return outcome

    def run(self) -> Dict[str, Any]:
        """Run until the program ends or fails.

        Returns a dict with the final (or last-known) world `state`, the
        `warnings` collected, the number of `steps`, and `errors` (None or a
        structured error payload).
        """
        while not self.finished:
            try:
                self.step()
            except KarelError:
                # step() halted the interpreter and kept the error on self.error
                break
        return {
            "state": self.world.snapshot(),
            "warnings": list(self.warnings),
            "steps": self.steps,
            "errors": self.error.to_dict() if self.error else None,
        }

    def state(self) -> Dict[str, Any]:
        """JSON-ready view of the execution state between steps."""
        return {
            "pointer": self.pointer,
            "line": self.program[self.pointer] if self.pointer is not None and self.pointer < len(self.program) else None,
            "call_stack": list(self.call_stack),
            "blocks": [
                {"kind": f.kind.value, "start": f.start, "end": f.end, "remaining": f.remaining, "called": f.called}
                for f in self.blocks
            ],
            "finished": self.finished,
        }

    # --- stepping ----------------------------------------------------------

    def _guarded(self, fn, *args):
        try:
            return fn(*args)
        except KarelError as exc:
            self.finished = True
            self.error = exc
            logger.debug("halted: %s", exc.kind)
            raise

    def _step(self) -> StepOutcome:
        if not self.started:
            self.start()
        while True:
            if not self.blocks:
                self.finished = True
                return StepOutcome(FINISHED)
            if self.max_steps is not None and self.executed >= self.max_steps:
                raise StepLimitExceeded(f"Step limit of {self.max_steps} exceeded")
            self.executed += 1
            frame = self.blocks[-1]
            if self.pointer == frame.end:
                outcome = self._close(frame)
            else:
                outcome = self._interpret(self.pointer, frame)
            if outcome is not None:
                return outcome

    def _interpret(self, index: int, frame: Optional[Frame]) -> Optional[StepOutcome]:
        line = self._line(index)
        word, *args = line.split()
        try:
            if word in TERMINATORS:
                where = f" inside {frame.kind.value} block" if frame else ""
                raise WrongBlockEnd(f"Unexpected {word}{where}.")
            if word in ACTIONS or word == DIE:
                if args:
                    raise UnexpectedSyntax(f"'{word}' takes no arguments.")
                if word == DIE:
                    if frame is not None:
                        self._exit(frame)
                    return StepOutcome(ACTION, index, line)
                ignored = self._act(ACTIONS[word], index)
                self.pointer = index + 1
                return StepOutcome(ACTION, index, line, ignored=ignored)
            if word in ("if", "while"):
                return self._conditional(index, word, args, frame)
            if word == "repeat":
                self._repeat(index, args)
                return None
            if word == "def":
                if not args:
                    raise NotEnoughArguments("def requires a method name.")
                self.pointer = self.find_block_end(index) + 1
                return None
            if word == "call":
                self._call(index, args)
                return None
            raise NotDefined(f"Unknown command '{word}'.")
        except KarelError as exc:
            raise exc.at(index, line)

    def _close(self, frame: Frame) -> Optional[StepOutcome]:
        words = self.program[frame.end].split()
        if len(words) > 1:
            raise UnexpectedSyntax(
                f"'{words[0]}' takes no arguments.", index=frame.end, line_text=self.program[frame.end]
            )
        if frame.kind is Block.REPEAT:
            frame.remaining -= 1
            if frame.remaining > 0:
                self.pointer = frame.start + 1
                return None
        elif frame.kind is Block.WHILE:
            # the frame stays open while its condition is re-evaluated
            self.pointer = frame.start
            return None
        return self._exit(frame)

    def _exit(self, frame: Frame) -> Optional[StepOutcome]:
        """Leave the innermost block, returning to the caller for called defs."""
        self.blocks.pop()
        if frame.called:
            self.pointer = self.call_stack.pop()
            logger.debug("return to %d", self.pointer)
        else:
            self.pointer = frame.end + 1
        if not self.blocks:
            self.finished = True
            return StepOutcome(FINISHED, frame.end, self.program[frame.end])
        return None

    # --- statements --------------------------------------------------------

    def _act(self, action: Action, index: int) -> Optional[KarelError]:
        try:
            self.world.act(action)
        except (ActionError, QueryError) as exc:
            if not self.ignore_runtime_errors:
                raise
            self._ignore(exc, index)
            return exc
        return None

    def _conditional(self, index: int, word: str, args: List[str], frame: Optional[Frame]) -> StepOutcome:
        if not args:
            raise NotEnoughArguments(f"{word} requires a condition (wall, beeper, north, south, east, west).")
        if len(args) > 1:
            raise UnexpectedSyntax(f"{word} takes a single condition.")
        query = CONDITIONS.get(args[0])
        if query is None:
            raise NotDefined(f"Unknown condition '{args[0]}'.")
        end = self.find_block_end(index)
        ignored = None
        try:
            value = self.world.query(query)
        except QueryError as exc:
            if not self.ignore_runtime_errors:
                raise
            self._ignore(exc, index)
            value, ignored = False, exc
        reentry = word == "while" and frame is not None and frame.kind is Block.WHILE and frame.start == index
        if value:
            if not reentry:
                self.blocks.append(Frame(OPENERS[word], index, end))
                logger.debug("enter %s at %d", word, index)
            self.pointer = index + 1
        else:
            if reentry:
                self.blocks.pop()
            self.pointer = end + 1
        return StepOutcome(CONDITION, index, self.program[index], value=value, ignored=ignored)

    def _repeat(self, index: int, args: List[str]) -> None:
        if not args:
            raise NotEnoughArguments("repeat requires a count.")
        if len(args) > 1:
            raise UnexpectedSyntax("repeat takes a single count.")
        digits = args[0][1:] if args[0].startswith("+") else args[0]
        if not (digits.isascii() and digits.isdigit()):
            raise NotANumber(f"'{args[0]}' is not a non-negative number.")
        count = int(digits)
        end = self.find_block_end(index)
        if count == 0:
            self.pointer = end + 1
            return
        self.blocks.append(Frame(Block.REPEAT, index, end, remaining=count))
        logger.debug("enter repeat x%d at %d", count, index)
        self.pointer = index + 1

    def _call(self, index: int, args: List[str]) -> None:
        if not args:
            raise NotEnoughArguments("call requires a method name.")
        if len(args) > 1:
            raise UnexpectedSyntax("call takes a single method name.")
        name = args[0]
        body = self.program.methods.get(name)
        if body is None:
            raise MethodNotDefined(
                f"Method '{name}' is not defined.",
                hint=f"Define it with 'def {name}' ... 'enddef' or load a library that does.",
            )
        if len(self.call_stack) >= self.max_call_depth:
            raise CallDepthExceeded(f"Call depth limit of {self.max_call_depth} exceeded")
        self.call_stack.append(index + 1)
        self._open_def(body - 1, called=True)
        logger.debug("call %s from %d", name, index)

    def _open_def(self, opener: int, called: bool) -> None:
        end = self.find_block_end(opener)
        self.blocks.append(Frame(Block.DEF, opener, end, called=called))
        self.pointer = opener + 1

    def _ignore(self, exc: KarelError, index: int) -> None:
        exc.at(index, self.program[index])
        message = f"line {index} ({self.program[index]}): {exc.message} (ignored)"
        logger.warning(message)
        self.warnings.append(message)


def run_sources(
    sources: Iterable[str],
    config: Optional[Config] = None,
    *,
    ignore_runtime_errors: bool = False,
    max_steps: Optional[int] = None,
    world: Optional[World] = None,
) -> Dict[str, Any]:
    """Load `sources` (libraries first, main last) and run them on a fresh world."""
    program = load_program(sources)
    it = Interpreter(program, world or World(config), ignore_runtime_errors=ignore_runtime_errors)
    it.max_steps = max_steps
    return it.run()
