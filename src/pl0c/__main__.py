"""Command-line driver: compile a PL/0C program and run it."""

import argparse
import logging
import sys
from typing import List, Optional

from .compiler import Compiler
from .errors import MachineFault
from .interpreter import DEFAULT_STACK_SIZE, Interpreter
from .opcodes import disassemble_program


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pl0c",
        description="PL/0C - compile and run a PL/0C program",
    )
    parser.add_argument("source", help="PL/0C source file, or - for standard input")
    parser.add_argument(
        "-v", "--verbose",
        help="Trace compilation and execution",
        action="store_true",
    )
    parser.add_argument(
        "-d", "--disassemble",
        help="Print the compiled code",
        action="store_true",
    )
    parser.add_argument(
        "-n", "--no-run",
        help="Compile only",
        action="store_true",
    )
    parser.add_argument(
        "--stack-size",
        help=f"Stack capacity in words (default {DEFAULT_STACK_SIZE})",
        type=int,
        default=DEFAULT_STACK_SIZE,
    )
    parser.add_argument(
        "--max-cycles",
        help="Stop with an error after this many instructions",
        type=int,
        default=None,
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(name)s: %(message)s",
    )

    if args.source == "-":
        name = "<stdin>"
        text = sys.stdin.read()
    else:
        name = args.source
        try:
            with open(args.source, "r", encoding="utf-8") as f:
                text = f.read()
        except OSError as e:
            print(f"{parser.prog}: error opening source file '{args.source}': {e.strerror}", file=sys.stderr)
            return 1
        except UnicodeDecodeError as e:
            print(f"{parser.prog}: error reading source file '{args.source}': {e.reason}", file=sys.stderr)
            return 1

    compiler = Compiler()
    code, error_count = compiler.compile(text)
    for diagnostic in compiler.diagnostics:
        print(f"{name}: {diagnostic}", file=sys.stderr)

    if args.disassemble:
        print(disassemble_program(code))

    if error_count:
        print(f"{name}: {error_count} error{'s' if error_count != 1 else ''}", file=sys.stderr)
        return 1

    if args.no_run:
        return 0

    try:
        interpreter = Interpreter(stack_size=args.stack_size, max_cycles=args.max_cycles)
    except ValueError as e:
        parser.error(str(e))

    try:
        cycles = interpreter.run(code)
    except MachineFault as e:
        print(f"{name}: {e}", file=sys.stderr)
        return 2

    for variable, address in compiler.globals.items():
        print(f"{variable} = {interpreter.stack[address]}")
    print(f"{cycles} cycles")
    return 0


if __name__ == "__main__":
    sys.exit(main())
