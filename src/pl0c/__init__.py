"""
PL/0C - a compiler and stack-machine interpreter for a small Pascal-like language

Programs are compiled in a single recursive-descent pass straight to a linear
code segment, which a stack machine with Pascal-style static chains executes.
"""

import logging

__version__ = "0.1.0"

from .compiler import Compiler, CompileResult, compile_program
from .errors import (
    PL0Error, CompileError, Diagnostic,
    MachineFault, StackFault, StackOverflow, StackUnderflow,
    CodeFault, DivisionByZero, CycleLimitExceeded,
)
from .interpreter import DEFAULT_STACK_SIZE, Interpreter
from .opcodes import FRAME_SIZE, Frame, Instruction, OpCode, disassemble, disassemble_program

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "Compiler",
    "CompileResult",
    "compile_program",
    "Interpreter",
    "DEFAULT_STACK_SIZE",
    "Instruction",
    "OpCode",
    "Frame",
    "FRAME_SIZE",
    "disassemble",
    "disassemble_program",
    "PL0Error",
    "CompileError",
    "Diagnostic",
    "MachineFault",
    "StackFault",
    "StackOverflow",
    "StackUnderflow",
    "CodeFault",
    "DivisionByZero",
    "CycleLimitExceeded",
]
