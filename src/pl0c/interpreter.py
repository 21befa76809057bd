"""Stack machine that executes PL/0C code segments."""

import logging
from typing import Dict, List, Optional, Sequence

from .errors import CodeFault, CycleLimitExceeded, DivisionByZero, StackFault, StackOverflow, StackUnderflow
from .opcodes import (
    BINARY_OPS, FRAME_SIZE, UNARY_OPS, WORD_BITS, WORD_MIN,
    Frame, Instruction, OpCode, disassemble,
)

logger = logging.getLogger(__name__)

DEFAULT_STACK_SIZE = 512

_WORD_MASK = (1 << WORD_BITS) - 1
_SHIFT_MASK = WORD_BITS - 1


def to_word(value: int) -> int:
    """Wrap an integer to a signed machine word (two's complement)."""
    return ((value - WORD_MIN) & _WORD_MASK) + WORD_MIN


def _divide(a: int, b: int) -> int:
    """Integer division truncating toward zero."""
    quotient = abs(a) // abs(b)
    return quotient if (a < 0) == (b < 0) else -quotient


class Interpreter:
    """The PL/0C machine.

    Registers:
        pc: index of the next instruction in ``code``
        bp: stack index of the current activation frame
        sp: stack index of the top of stack, -1 when empty
        ir: the instruction being executed

    ``run()`` starts from a synthetic frame for the main program whose saved
    return address is 0, so returning from main leaves pc at 0 and halts.
    """

    def __init__(self, stack_size: int = DEFAULT_STACK_SIZE, max_cycles: Optional[int] = None):
        """Create a machine.

        Args:
            stack_size: Capacity of the stack, in words
            max_cycles: Maximum number of instructions one run may execute
        """
        if stack_size < FRAME_SIZE:
            raise ValueError(f"stack_size must be at least {FRAME_SIZE}")
        self.stack_size = stack_size
        self.max_cycles = max_cycles

        self.code: List[Instruction] = []
        self.stack: List[int] = [0] * stack_size

        self.pc = 0
        self.bp = 0
        self.sp = FRAME_SIZE - 1
        self.ir: Optional[Instruction] = None
        self.last_write: Optional[int] = None  # Address of the last ASSIGN
        self.cycles = 0
        self.reset()

    def load(self, code: Sequence[Instruction]) -> None:
        """Load a code segment, clear the stack and reset the registers."""
        self.code = list(code)
        self.stack = [0] * self.stack_size
        self.reset()

    def reset(self) -> None:
        """Re-establish the initial frame; the loaded code is kept."""
        self.pc = 0
        self.bp = 0
        self.sp = FRAME_SIZE - 1
        self.stack[0:FRAME_SIZE] = [0] * FRAME_SIZE
        self.ir = None
        self.last_write = None
        self.cycles = 0

    def run(self, code: Optional[Sequence[Instruction]] = None) -> int:
        """Run a program from the start until it returns from main.

        Runs ``code`` if given, otherwise the loaded code segment. Returns
        the number of instructions executed.
        """
        if code is not None:
            self.load(code)
        else:
            self.reset()

        while True:
            self.step()
            if self.pc == 0:
                break

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("halted after %d cycles (bp=%d, sp=%d)", self.cycles, self.bp, self.sp)
        return self.cycles

    def registers(self) -> Dict[str, object]:
        """Snapshot of the machine registers."""
        return {"pc": self.pc, "bp": self.bp, "sp": self.sp, "ir": self.ir}

    def base(self, level: int) -> int:
        """Follow the static chain ``level`` frames out from bp.

        Level 0 is the current frame, 1 the lexically enclosing frame, and
        so on.
        """
        b = self.bp
        for _ in range(level):
            b = self._read(b + Frame.BASE)
        return b

    # ---- Stack access ----

    def _read(self, address: int) -> int:
        if not 0 <= address < self.stack_size:
            raise StackFault(f"Read outside the stack at {address}", address=address, **self.registers())
        return self.stack[address]

    def _write(self, address: int, value: int) -> None:
        if not 0 <= address < self.stack_size:
            raise StackFault(f"Write outside the stack at {address}", address=address, **self.registers())
        self.stack[address] = value

    def _push(self, value: int) -> None:
        if self.sp + 1 >= self.stack_size:
            raise StackOverflow(**self.registers())
        self.sp += 1
        self.stack[self.sp] = value

    def _pop(self) -> int:
        if self.sp < 0:
            raise StackUnderflow(**self.registers())
        value = self.stack[self.sp]
        self.sp -= 1
        return value

    def _set_sp(self, sp: int) -> None:
        """Move the top of stack, checking it stays within [-1, capacity)."""
        if sp >= self.stack_size:
            raise StackOverflow(**self.registers())
        if sp < -1:
            raise StackUnderflow(**self.registers())
        self.sp = sp

    # ---- Execution ----

    def step(self) -> None:
        """Fetch, decode and execute one instruction."""
        if self.max_cycles is not None and self.cycles >= self.max_cycles:
            raise CycleLimitExceeded(f"Cycle limit of {self.max_cycles} exceeded", **self.registers())
        if not 0 <= self.pc < len(self.code):
            raise CodeFault(f"Fetch outside the code segment at {self.pc}", **self.registers())

        if logger.isEnabledFor(logging.DEBUG):
            self._trace()

        instr = self.ir = self.code[self.pc]
        self.pc += 1
        self.cycles += 1
        op = instr.op

        if op in UNARY_OPS:
            self._push(self._unary(op, self._pop()))

        elif op in BINARY_OPS:
            b = self._pop()
            a = self._pop()
            self._push(self._binary(op, a, b))

        elif op == OpCode.PUSH_CONST:
            self._push(instr.value)

        elif op == OpCode.PUSH_VAR:
            self._push(self.base(instr.level) + instr.value)

        elif op == OpCode.EVAL:
            address = self._pop()
            self._push(self._read(address))

        elif op == OpCode.ASSIGN:
            address = self._pop()
            value = self._pop()
            self._write(address, value)
            self.last_write = address
            logger.debug("    %5d: %10d", address, value)

        elif op == OpCode.CALL:
            frame = self.sp + 1
            if self.sp + FRAME_SIZE >= self.stack_size:
                raise StackOverflow(**self.registers())
            self.stack[frame + Frame.BASE] = self.base(instr.level)
            self.stack[frame + Frame.OLD_BASE] = self.bp
            self.stack[frame + Frame.RET_ADDR] = self.pc
            self.stack[frame + Frame.RET_VAL] = 0
            self.bp = frame
            self.sp += FRAME_SIZE
            self.pc = instr.value

        elif op == OpCode.ENTER:
            self._set_sp(self.sp + instr.value)

        elif op in (OpCode.RET, OpCode.RETF):
            self._return(instr, push_result=op == OpCode.RETF)

        elif op == OpCode.JUMP:
            self.pc = instr.value

        elif op == OpCode.JNEQ:
            if self._pop() == 0:
                self.pc = instr.value

        else:
            raise CodeFault(f"Invalid opcode {op!r}", **self.registers())

    def _return(self, instr: Instruction, push_result: bool) -> None:
        """Unlink the current frame and pop the arguments below it."""
        frame = self.bp
        result = self._read(frame + Frame.RET_VAL)
        return_address = self._read(frame + Frame.RET_ADDR)
        old_base = self._read(frame + Frame.OLD_BASE)

        self._set_sp(frame - 1 - instr.value)
        self.pc = return_address
        self.bp = old_base

        if push_result:
            self._push(result)

    def _unary(self, op: OpCode, a: int) -> int:
        if op == OpCode.NOT:
            return int(a == 0)
        if op == OpCode.NEG:
            return to_word(-a)
        # OpCode.COMP
        return ~a

    def _binary(self, op: OpCode, a: int, b: int) -> int:
        # Arithmetic
        if op == OpCode.ADD:
            return to_word(a + b)
        elif op == OpCode.SUB:
            return to_word(a - b)
        elif op == OpCode.MUL:
            return to_word(a * b)
        elif op == OpCode.DIV:
            if b == 0:
                raise DivisionByZero(**self.registers())
            return to_word(_divide(a, b))
        elif op == OpCode.REM:
            if b == 0:
                raise DivisionByZero(**self.registers())
            # Takes the sign of the dividend
            return to_word(a - b * _divide(a, b))

        # Bitwise
        elif op == OpCode.BOR:
            return a | b
        elif op == OpCode.BAND:
            return a & b
        elif op == OpCode.BXOR:
            return a ^ b
        elif op == OpCode.LSHIFT:
            return to_word(a << (b & _SHIFT_MASK))
        elif op == OpCode.RSHIFT:
            return a >> (b & _SHIFT_MASK)

        # Comparison
        elif op == OpCode.LT:
            return int(a < b)
        elif op == OpCode.LTE:
            return int(a <= b)
        elif op == OpCode.EQU:
            return int(a == b)
        elif op == OpCode.GTE:
            return int(a >= b)
        elif op == OpCode.GT:
            return int(a > b)
        elif op == OpCode.NEQ:
            return int(a != b)

        # Logical
        elif op == OpCode.LOR:
            return int(a != 0 or b != 0)
        # OpCode.LAND
        return int(a != 0 and b != 0)

    def _trace(self) -> None:
        """Log the current frame and the instruction about to execute."""
        lines = []
        if 0 <= self.bp <= self.sp < self.stack_size:
            for address in range(self.bp, self.sp + 1):
                label = "bp:" if address == self.bp else "sp:" if address == self.sp else ""
                lines.append(f"{label:<4}{address:5d}: {self.stack[address]:10d}")
        else:
            lines.append(f"bp: {self.bp:5d}")
            lines.append(f"sp: {self.sp:5d}")
        lines.append(f"pc: {disassemble(self.pc, self.code[self.pc])}")
        logger.debug("\n".join(lines))
