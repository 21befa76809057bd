"""Machine opcodes, instruction format and activation frame layout.

Shared by the compiler and the interpreter.

OpCode     | level | value    | Notes
---------- | ----- | -------- | ------------------------------------------
NOT..COMP  |       |          | Unary: replace the top of stack
ADD..LAND  |       |          | Binary: replace the top two items with one
PUSH_CONST |       | literal  | Push a constant
PUSH_VAR   | yes   | offset   | Push the address base(level) + offset
EVAL       |       |          | Replace an address with its contents
ASSIGN     |       |          | Store TOS-1 at the address in TOS, pop both
CALL       | yes   | address  | Push a frame linked to base(level), jump
ENTER      |       | count    | Reserve locals (sp += count)
RET        |       | nargs    | Unlink the frame, pop nargs arguments
RETF       |       | nargs    | As RET, then push the function result
JUMP       |       | address  | Unconditional jump
JNEQ       |       | address  | Pop; jump if the value is zero
"""

from dataclasses import dataclass
from enum import IntEnum, auto
from typing import Iterable

# Static levels are stored in a byte
MAX_LEVEL = 255

# Machine words are signed 32-bit integers
WORD_BITS = 32
WORD_MIN = -(1 << (WORD_BITS - 1))
WORD_MAX = (1 << (WORD_BITS - 1)) - 1


class Frame(IntEnum):
    """Word offsets into an activation frame, as built by CALL."""

    BASE = 0  # Static link: base of the lexically enclosing frame
    OLD_BASE = 1  # Caller's bp
    RET_ADDR = 2  # pc to resume at
    RET_VAL = 3  # Function result


FRAME_SIZE = len(Frame)


class OpCode(IntEnum):
    """Machine operation codes."""

    # Unary
    NOT = auto()          # Logical not
    NEG = auto()          # Negation
    COMP = auto()         # One's complement

    # Arithmetic
    ADD = auto()
    SUB = auto()
    MUL = auto()
    DIV = auto()
    REM = auto()

    # Bitwise
    BOR = auto()
    BAND = auto()
    BXOR = auto()
    LSHIFT = auto()
    RSHIFT = auto()

    # Comparison
    LT = auto()
    LTE = auto()
    EQU = auto()
    GTE = auto()
    GT = auto()
    NEQ = auto()

    # Logical
    LOR = auto()
    LAND = auto()

    # Data
    PUSH_CONST = auto()   # value = literal
    PUSH_VAR = auto()     # level, value = frame offset
    EVAL = auto()
    ASSIGN = auto()

    # Control flow
    CALL = auto()         # level, value = entry address
    ENTER = auto()        # value = words to reserve
    RET = auto()          # value = argument count
    RETF = auto()         # value = argument count
    JUMP = auto()         # value = target address
    JNEQ = auto()         # value = target address

    @property
    def mnemonic(self) -> str:
        return self.name.lower()


UNARY_OPS = frozenset([OpCode.NOT, OpCode.NEG, OpCode.COMP])

BINARY_OPS = frozenset([
    OpCode.ADD, OpCode.SUB, OpCode.MUL, OpCode.DIV, OpCode.REM,
    OpCode.BOR, OpCode.BAND, OpCode.BXOR, OpCode.LSHIFT, OpCode.RSHIFT,
    OpCode.LT, OpCode.LTE, OpCode.EQU, OpCode.GTE, OpCode.GT, OpCode.NEQ,
    OpCode.LOR, OpCode.LAND,
])

# Opcodes whose level field is meaningful
LEVEL_OPS = frozenset([OpCode.PUSH_VAR, OpCode.CALL])

# Opcodes whose value field is meaningful
VALUE_OPS = frozenset([
    OpCode.PUSH_CONST, OpCode.PUSH_VAR, OpCode.CALL, OpCode.ENTER,
    OpCode.RET, OpCode.RETF, OpCode.JUMP, OpCode.JNEQ,
])


@dataclass(frozen=True)
class Instruction:
    """A single machine instruction: (op, level, value)."""

    op: OpCode
    level: int = 0
    value: int = 0

    def __post_init__(self):
        if not 0 <= self.level <= MAX_LEVEL:
            raise ValueError(f"Instruction level out of range: {self.level}")

    def __repr__(self) -> str:
        return f"Instruction({self.op.name}, {self.level}, {self.value})"


def disassemble(address: int, instr: Instruction) -> str:
    """Format one instruction for human-readable listings."""
    line = f"{address:5d}: {instr.op.mnemonic}"

    if instr.op in LEVEL_OPS:
        line = f"{line:<18}{instr.level}, {instr.value}"
    elif instr.op in VALUE_OPS:
        line = f"{line:<18}{instr.value}"

    return line


def disassemble_program(code: Iterable[Instruction]) -> str:
    """Disassemble a whole code segment, one line per address."""
    return "\n".join(disassemble(address, instr) for address, instr in enumerate(code))
