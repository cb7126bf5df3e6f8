"""Command-line front end for the Karel interpreter.

Usage:
  karel program.kl [--lib lib.kl ...] [--ignore] [--width W --height H --max-items N]
  karel --interactive [--lib lib.kl ...] [--max-steps N]

`-` reads the program from stdin. On success the final grid is printed. On
error the message is printed to stderr, no grid is rendered, and the exit code
is 1. Interactive mode runs statements typed at the prompt against one
persistent world; methods cannot be defined there and have to be loaded with
--lib.
"""

import argparse
import logging
import os
import sys
from typing import List, Optional, TextIO

from .errors import KarelError, UnexpectedSyntax, WrongBlockEnd
from .interpreter import OPENERS, TERMINATORS, Interpreter
from .program import load_program, preprocess, read_source
from .world import Config, World

logger = logging.getLogger("karel.cli")

QUIT_COMMANDS = (":q", ":quit", "quit", "exit")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="karel", description="Karel programming language interpreter")
    parser.add_argument(
        "file",
        nargs="?",
        help="Source file containing 'main' ('-' for stdin).",
    )
    parser.add_argument(
        "-i",
        "--interactive",
        action="store_true",
        help="Start an interactive session. Methods have to be loaded with --lib.",
    )
    parser.add_argument(
        "--lib",
        action="append",
        default=[],
        metavar="FILE",
        help="Library source file with method definitions only (repeatable).",
    )
    parser.add_argument(
        "--ignore",
        action="store_true",
        help="Ignore runtime errors: skip failing commands instead of halting.",
    )
    parser.add_argument("--width", type=int, default=Config.width, help="Grid width")
    parser.add_argument("--height", type=int, default=Config.height, help="Grid height")
    parser.add_argument("--max-items", type=int, default=Config.max_items, help="Maximum items per tile")
    parser.add_argument("--max-steps", type=int, default=None, help="Stop after this many interpreted lines")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="More logging (-vv for debug)")
    return parser


def _configure_logging(verbosity: int) -> None:
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = os.environ.get("KAREL_LOG_LEVEL", "WARNING").upper()
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def _block_delta(line: str) -> int:
    words = line.split()
    if not words:
        return 0
    if words[0] in OPENERS:
        return 1
    if words[0] in TERMINATORS:
        return -1
    return 0


class InteractiveSession:
    """Runs chunks of statements typed by the user against one world."""

    def __init__(
        self,
        libraries: List[str],
        world: World,
        *,
        ignore_runtime_errors: bool = False,
        max_steps: Optional[int] = None,
    ):
        self.libraries = libraries
        self.world = world
        self.ignore_runtime_errors = ignore_runtime_errors
        self.max_steps = max_steps

    def execute(self, chunk: str) -> Interpreter:
        """Run `chunk` as the body of an anonymous main procedure."""
        depth = 0
        for line in preprocess([chunk]):
            word = line.split()[0]
            if word == "def":
                raise UnexpectedSyntax(
                    "Methods cannot be defined in interactive mode; load them with --lib.",
                    line_text=line,
                )
            depth += _block_delta(line)
            if depth < 0:
                raise WrongBlockEnd(f"Unexpected {word} outside any block.", line_text=line)
        program = load_program(self.libraries + ["def main\n" + chunk + "\nenddef\n"])
        it = Interpreter(program, self.world, ignore_runtime_errors=self.ignore_runtime_errors)
        it.max_steps = self.max_steps
        while not it.finished:
            it.step()
        return it

    def loop(self, stdin: TextIO, stdout: TextIO) -> int:
        print("Karel interactive session. Type :q to quit.", file=stdout)
        stdout.write(self.world.render())
        buffer: List[str] = []
        depth = 0
        while True:
            stdout.write("karel> " if not buffer else "...> ")
            stdout.flush()
            line = stdin.readline()
            if not line:
                print(file=stdout)
                return 0
            stripped = line.split("#", 1)[0].strip()
            if not buffer and stripped in QUIT_COMMANDS:
                return 0
            if not stripped and not buffer:
                continue
            buffer.append(line)
            depth += _block_delta(stripped)
            if depth > 0:
                continue
            chunk = "".join(buffer)
            buffer, depth = [], 0
            try:
                it = self.execute(chunk)
            except KarelError as e:
                print(f"An error occurred: {e.message}", file=stdout)
                continue
            for warning in it.warnings:
                print(f"warning: {warning}", file=stdout)
            stdout.write(self.world.render())


def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_parser()
    args_list = sys.argv[1:] if argv is None else argv
    try:
        args = parser.parse_args(args_list)
    except SystemExit as exc:
        return int(exc.code)
    if args.interactive == bool(args.file):
        parser.print_usage(sys.stderr)
        print("karel: give either a source file or --interactive", file=sys.stderr)
        return 2

    _configure_logging(args.verbose)

    try:
        config = Config(width=args.width, height=args.height, max_items=args.max_items)
    except ValueError as e:
        print(f"karel: {e}", file=sys.stderr)
        return 2

    try:
        libraries = [read_source(path) for path in args.lib]
        source = read_source(args.file) if args.file else None
    except OSError as e:
        print(f"karel: cannot read source: {e}", file=sys.stderr)
        return 2

    world = World(config)
    if args.interactive:
        session = InteractiveSession(
            libraries, world, ignore_runtime_errors=args.ignore, max_steps=args.max_steps
        )
        return session.loop(sys.stdin, sys.stdout)

    program = load_program(libraries + [source])
    it = Interpreter(program, world, ignore_runtime_errors=args.ignore)
    it.max_steps = args.max_steps
    result = it.run()
    for warning in result["warnings"]:
        print(f"warning: {warning}", file=sys.stderr)
    if result["errors"] is not None:
        logger.debug("run failed: %s", result["errors"])
        print(f"An error occurred: {it.error.message}", file=sys.stderr)
        return 1
    sys.stdout.write(world.render())
    return 0
