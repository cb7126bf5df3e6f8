"""Error taxonomy shared by the Karel world and the block interpreter.

Every failure is an exception deriving from `KarelError`. Each class carries a
`code` (the error category surfaced to API clients, mirroring the structured
error payloads of the interpreter) and a `kind` (the variant name). Callers
that need a JSON-ready description use `KarelError.to_dict()`.

Categories:

- SYNTAX_ERROR: problems with program text, found while scanning or running.
- RUNTIME_ERROR: a robot action or query that the world refused.
- STARTUP_ERROR: the program has no `main` procedure.
- WORLD_ERROR: an invalid world setup request (wall toggling).
- STEP_LIMIT / CALL_DEPTH_LIMIT: interpreter safety caps.
"""

from typing import Any, Dict, Optional


class KarelError(Exception):
    """Base class for every error raised by the Karel core.

    Attributes:
        index: optional index of the offending line in the flattened program
        line_text: optional text of the offending line
        hint: optional short suggestion shown to the user
    """

    code = "KAREL_ERROR"
    default_message = "Karel error"
    default_hint: Optional[str] = None

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        index: Optional[int] = None,
        line_text: Optional[str] = None,
        hint: Optional[str] = None,
    ):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.index = index
        self.line_text = line_text
        self.hint = hint or self.default_hint

    @property
    def kind(self) -> str:
        return type(self).__name__

    def at(self, index: int, line_text: str) -> "KarelError":
        """Attach a program location unless one is already present."""
        if self.index is None:
            self.index = index
            self.line_text = line_text
        return self

    def to_dict(self) -> Dict[str, Any]:
        err: Dict[str, Any] = {"code": self.code, "kind": self.kind, "message": self.message}
        if self.index is not None:
            err["index"] = self.index
        if self.line_text is not None:
            err["context"] = {"line_text": self.line_text}
        if self.hint:
            err["hint"] = self.hint
        return err


# --- Syntax errors -----------------------------------------------------------


class KarelSyntaxError(KarelError):
    code = "SYNTAX_ERROR"
    default_message = "Syntax error"


class UnexpectedEndOfFile(KarelSyntaxError):
    default_message = "Unexpected end of file."
    default_hint = "Make sure you included endif, enddef, endrepeat, or endwhile."


class NotDefined(KarelSyntaxError):
    """Unknown command, predicate or structure (not a user procedure)."""

    default_message = "Command is not defined."
    default_hint = "Check the command name or syntax."


class MethodNotDefined(KarelSyntaxError):
    """A `call` named a procedure that no `def` provides."""

    default_message = "Method is not defined."
    default_hint = "Define the method with def ... enddef or load it with --lib."


class WrongBlockEnd(KarelSyntaxError):
    default_message = "Wrong block end."
    default_hint = "Make sure you didn't mix up endif, enddef, endrepeat, endwhile."


class NotANumber(KarelSyntaxError):
    default_message = "Expected a non-negative number."
    default_hint = "Use: repeat <number>"


class NotEnoughArguments(KarelSyntaxError):
    default_message = "Not enough arguments."


class UnexpectedSyntax(KarelSyntaxError):
    default_message = "Unexpected syntax."


# --- Runtime errors ----------------------------------------------------------


class KarelRuntimeError(KarelError):
    code = "RUNTIME_ERROR"
    default_message = "Runtime error"


class ActionError(KarelRuntimeError):
    """Karel was ordered to do something the world does not allow."""


class MoveIntoWall(ActionError):
    default_message = "Karel was ordered to run into a wall. Karel will terminate."


class MoveOutOfBounds(ActionError):
    default_message = "Karel was ordered to run out of the map. Karel will terminate."


class ItemLimitExceeded(ActionError):
    default_message = "Karel exceeded item limit while placing an item. Karel will terminate."


class NoItemHere(ActionError):
    default_message = (
        "Karel tried to pick up item, but there was none there. Karel will terminate."
    )


class QueryError(KarelRuntimeError):
    """Karel could not answer a question about the world."""


class OutOfBounds(QueryError):
    """A coordinate outside the grid was read, written or looked at."""

    default_message = (
        "Karel tried to look forward if there is a wall, but there was end of map. "
        "Karel will terminate."
    )


# --- Startup, world setup and limits ----------------------------------------


class NoEntryPoint(KarelError):
    code = "STARTUP_ERROR"
    default_message = "No entry point defined: method 'main' was not found."
    default_hint = "Add: def main ... enddef"


class WorldSetupError(KarelError):
    code = "WORLD_ERROR"


class ItemOnGround(WorldSetupError):
    default_message = "Cannot build a wall on a tile with items. Remove them first."


class KarelIsHere(WorldSetupError):
    default_message = "Cannot build a wall where Karel stands. Move Karel first."


class StepLimitExceeded(KarelError):
    code = "STEP_LIMIT"
    default_message = "Step limit exceeded"


class CallDepthExceeded(KarelError):
    code = "CALL_DEPTH_LIMIT"
    default_message = "Call depth limit exceeded"
