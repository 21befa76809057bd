"""PL/0C error types and exceptions."""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Diagnostic:
    """A compile-time error report."""

    message: str
    line: int

    def __str__(self) -> str:
        return f"{self.message} near line {self.line}"


class PL0Error(Exception):
    """Base class for all PL/0C errors."""

    def __init__(self, message: str = "", name: str = "Error"):
        self.message = message
        self.name = name
        super().__init__(f"{name}: {message}" if message else name)


class CompileError(PL0Error):
    """A compilation finished with errors."""

    def __init__(self, diagnostics):
        self.diagnostics = list(diagnostics)
        count = len(self.diagnostics)
        summary = f"{count} error{'s' if count != 1 else ''}"
        if self.diagnostics:
            summary += f"; first: {self.diagnostics[0]}"
        super().__init__(summary, "CompileError")


class MachineFault(PL0Error):
    """Fatal run-time fault raised by the interpreter.

    Carries a snapshot of the machine registers at the point of failure.
    """

    def __init__(
        self,
        message: str = "",
        pc: int = 0,
        bp: int = 0,
        sp: int = -1,
        ir=None,
        name: str = "MachineFault",
    ):
        self.pc = pc
        self.bp = bp
        self.sp = sp
        self.ir = ir
        # Include the register state in the message
        formatted_message = f"{message} (pc={pc}, bp={bp}, sp={sp})"
        super().__init__(formatted_message, name)


class StackFault(MachineFault):
    """Stack access outside [0, capacity)."""

    def __init__(self, message: str = "Stack address out of bounds", address: Optional[int] = None, **registers):
        self.address = address
        super().__init__(message, name=type(self).__name__, **registers)


class StackOverflow(StackFault):
    """The stack grew past its capacity."""

    def __init__(self, message: str = "Stack overflow", **registers):
        super().__init__(message, **registers)


class StackUnderflow(StackFault):
    """A pop or return went below the bottom of the stack."""

    def __init__(self, message: str = "Stack underflow", **registers):
        super().__init__(message, **registers)


class CodeFault(MachineFault):
    """Instruction fetch outside the code segment."""

    def __init__(self, message: str = "Program counter outside code segment", **registers):
        super().__init__(message, name="CodeFault", **registers)


class DivisionByZero(MachineFault):
    """Integer division or remainder by zero."""

    def __init__(self, message: str = "Division by zero", **registers):
        super().__init__(message, name="DivisionByZero", **registers)


class CycleLimitExceeded(MachineFault):
    """Raised when the configured instruction budget is used up."""

    def __init__(self, message: str = "Cycle limit exceeded", **registers):
        super().__init__(message, name="CycleLimitExceeded", **registers)
