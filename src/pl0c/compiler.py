"""PL/0C compiler - a recursive descent parser that emits machine code directly.

Grammar (EBNF)::

    program     = block "." ;
    block       = [ "const" ident "=" number { "," ident "=" number } ";" ]
                  [ "var" ident { "," ident } ";" ]
                  { ( "procedure" | "function" ) ident "(" [ ident { "," ident } ] ")" block ";" }
                  statement ;
    statement   = [ ident ":=" expr
                  | ident "(" [ expr { "," expr } ] ")"
                  | "begin" statement { ";" statement } "end"
                  | "if" condition "then" statement [ "else" statement ]
                  | "while" condition "do" statement
                  | "repeat" statement "until" condition ] ;
    condition   = conjunction { "||" conjunction } ;
    conjunction = relation { "&&" relation } ;
    relation    = "odd" expr | expr [ relop expr ] ;
    expr        = [ "+" | "-" ] term { ( "+" | "-" | "|" | "^" ) term } ;
    term        = unary { ( "*" | "/" | "%" | "&" | "<<" | ">>" ) unary } ;
    unary       = ( "!" | "~" ) unary | factor ;
    factor      = ident | ident "(" [ expr { "," expr } ] ")" | number | "(" condition ")" ;
"""

import logging
from dataclasses import replace
from typing import Dict, List, NamedTuple, Optional

from .errors import CompileError, Diagnostic
from .lexer import TokenStream
from .opcodes import FRAME_SIZE, MAX_LEVEL, WORD_MAX, Frame, Instruction, OpCode, disassemble
from .symbols import Symbol, SymbolKind, SymbolTable
from .tokens import Token, TokenType, spelling

logger = logging.getLogger(__name__)


class CompileResult(NamedTuple):
    """The emitted code segment and the number of errors found."""
    code: List[Instruction]
    error_count: int


RELATIONAL_OPS = {
    TokenType.EQ: OpCode.EQU,
    TokenType.NE: OpCode.NEQ,
    TokenType.LT: OpCode.LT,
    TokenType.LE: OpCode.LTE,
    TokenType.GT: OpCode.GT,
    TokenType.GE: OpCode.GTE,
}

ADDING_OPS = {
    TokenType.PLUS: OpCode.ADD,
    TokenType.MINUS: OpCode.SUB,
    TokenType.PIPE: OpCode.BOR,
    TokenType.CARET: OpCode.BXOR,
}

MULTIPLYING_OPS = {
    TokenType.STAR: OpCode.MUL,
    TokenType.SLASH: OpCode.DIV,
    TokenType.PERCENT: OpCode.REM,
    TokenType.AMPERSAND: OpCode.BAND,
    TokenType.LSHIFT: OpCode.LSHIFT,
    TokenType.RSHIFT: OpCode.RSHIFT,
}

PREFIX_OPS = {
    TokenType.NOT: OpCode.NOT,
    TokenType.TILDE: OpCode.COMP,
}

# Tokens that can begin a non-empty statement
STATEMENT_START = frozenset([
    TokenType.IDENTIFIER, TokenType.BEGIN, TokenType.IF,
    TokenType.WHILE, TokenType.REPEAT,
])

# Delimiters left in place by a bad factor, for the enclosing construct
FOLLOW_TOKENS = frozenset([
    TokenType.SEMICOLON, TokenType.END, TokenType.PERIOD, TokenType.THEN,
    TokenType.DO, TokenType.UNTIL, TokenType.ELSE, TokenType.RPAREN,
    TokenType.COMMA, TokenType.EOF,
])


class Compiler:
    """Compiles PL/0C source to machine code.

    One instance is one compilation session: ``compile()`` resets the token
    stream, symbol table, code segment and diagnostics before starting.
    Errors never raise; they are collected in ``diagnostics`` and parsing
    continues so a single pass reports as many as it can.
    """

    def __init__(self):
        self.tokens = TokenStream()
        self.symbols = SymbolTable()
        self.code: List[Instruction] = []
        self.diagnostics: List[Diagnostic] = []
        self._owners: List[Symbol] = []  # Subroutines whose bodies are being compiled
        self.globals: Dict[str, int] = {}  # Main program variables: name -> stack address

    @property
    def error_count(self) -> int:
        return len(self.diagnostics)

    def compile(self, source: str) -> CompileResult:
        """Compile a program.

        Returns the code segment and error count. The code is only safe to
        run when the error count is zero.
        """
        self.tokens.set_input(source)
        self.symbols = SymbolTable()
        self.code = []
        self.diagnostics = []
        self._owners = []
        self.globals = {}

        self._advance()
        main = Symbol("main", SymbolKind.PROCEDURE, 0)
        try:
            self._block(main, 0, 0)
            self._expect(TokenType.PERIOD)
            if not self._check(TokenType.EOF):
                self._error(f"unexpected {self._describe(self._current)} after the end of the program")
        except RecursionError:
            # Each nested expression or statement is a Python call
            self._error("program nested too deeply")

        return CompileResult(self.code, self.error_count)

    # ---- Tokens ----

    @property
    def _current(self) -> Token:
        return self.tokens.current()

    def _error(self, message: str) -> None:
        """Record a diagnostic at the current line."""
        diagnostic = Diagnostic(message, self.tokens.line)
        self.diagnostics.append(diagnostic)
        logger.debug("error: %s", diagnostic)

    def _advance(self) -> Token:
        """Advance to next token and return previous.

        Unknown characters and unterminated comments are reported here and
        never reach the parser.
        """
        previous = self._current
        token = self.tokens.next()
        while token.type in (TokenType.UNKNOWN, TokenType.BAD_COMMENT):
            if token.type == TokenType.BAD_COMMENT:
                self._error(f"unterminated comment starting on line {token.value}")
            else:
                self._error(f"unexpected character {token.value!r}")
            token = self.tokens.next()
        return previous

    def _check(self, *types: TokenType) -> bool:
        """Check if current token is one of the given types."""
        return self._current.type in types

    def _match(self, *types: TokenType) -> bool:
        """If current token matches, advance and return True."""
        if self._check(*types):
            self._advance()
            return True
        return False

    def _expect(self, token_type: TokenType) -> bool:
        """Consume a token of the given type, or report it missing.

        A mismatched token is left in place.
        """
        if self._match(token_type):
            return True
        self._error(f"expected '{spelling(token_type)}' but found {self._describe(self._current)}")
        return False

    @staticmethod
    def _describe(token: Token) -> str:
        if token.type == TokenType.IDENTIFIER:
            return f"identifier '{token.value}'"
        if token.type in (TokenType.INTEGER, TokenType.REAL):
            return f"number {token.value}"
        if token.type == TokenType.EOF:
            return "end of file"
        return f"'{spelling(token.type)}'"

    # ---- Code emission ----

    def _emit(self, op: OpCode, level: int = 0, value: int = 0) -> int:
        """Emit an instruction, return its address."""
        # Deeper levels only occur after a nesting error has been reported
        instr = Instruction(op, min(level, MAX_LEVEL), value)
        self.code.append(instr)
        address = len(self.code) - 1
        logger.debug("emit %s", disassemble(address, instr))
        return address

    def _emit_jump(self, op: OpCode) -> int:
        """Emit a jump with a placeholder target, return its address for patching."""
        return self._emit(op, 0, 0)

    def _patch_jump(self, pos: int, target: Optional[int] = None) -> None:
        """Patch the jump at ``pos`` to jump to target (or the next address)."""
        if target is None:
            target = len(self.code)
        logger.debug("patch %d to %d", pos, target)
        self.code[pos] = replace(self.code[pos], value=target)

    def _literal(self, token: Token) -> int:
        """Return an integer token's value, checking that it fits a word."""
        if token.value > WORD_MAX:
            self._error(f"integer literal {token.value} is out of range")
            return 0
        return token.value

    # ---- Declarations ----

    def _block(self, owner: Symbol, level: int, nargs: int) -> None:
        """Compile a block at ``level``.

        ``owner`` is the procedure or function the block is the body of; its
        entry address is filled in once known. ``nargs`` is the number of
        arguments the block's return instruction pops.
        """
        jump_pos = self._emit_jump(OpCode.JUMP)
        dx = FRAME_SIZE  # Offset of the next local variable

        # Nested blocks are compiled before the entry point is known; they
        # call the owner through the jump, which is patched to the entry.
        owner.value = jump_pos
        self._owners.append(owner)

        if self._match(TokenType.CONST):
            while True:
                self._const_declaration(level)
                if not self._match(TokenType.COMMA):
                    break
            self._expect(TokenType.SEMICOLON)

        if self._match(TokenType.VAR):
            while True:
                dx = self._var_declaration(dx, level)
                if not self._match(TokenType.COMMA):
                    break
            self._expect(TokenType.SEMICOLON)

        while self._check(TokenType.PROCEDURE, TokenType.FUNCTION):
            self._subroutine_declaration(level)

        # Entry point: reserve the frame's locals, then the body
        entry = self._emit(OpCode.ENTER, 0, dx)
        self._patch_jump(jump_pos, entry)
        owner.value = entry

        self._statement(level)
        self._owners.pop()

        if owner.kind == SymbolKind.FUNCTION:
            self._emit(OpCode.RETF, 0, nargs)
        else:
            self._emit(OpCode.RET, 0, nargs)

        for symbol in self.symbols.purge(level):
            logger.debug("purge %s: %s, %d, %d", symbol.name, symbol.kind.name, symbol.level, symbol.value)

    def _declare(self, symbol: Symbol) -> bool:
        """Declare ``symbol`` unless its name is taken at the same level."""
        if self.symbols.is_declared(symbol.name, symbol.level):
            self._error(f"'{symbol.name}' is already defined")
            return False
        self.symbols.declare(symbol)
        logger.debug("declare %s: %s, %d, %d", symbol.name, symbol.kind.name, symbol.level, symbol.value)
        return True

    def _const_declaration(self, level: int) -> None:
        """ident "=" number"""
        name_token = self._current
        if not self._expect(TokenType.IDENTIFIER):
            return
        self._expect(TokenType.EQ)
        value_token = self._current
        if not self._expect(TokenType.INTEGER):
            return
        value = self._literal(value_token)
        self._declare(Symbol(name_token.value, SymbolKind.CONSTANT, level, value))

    def _var_declaration(self, offset: int, level: int) -> int:
        """Declare one variable at ``offset``; return the next free offset."""
        name_token = self._current
        if not self._expect(TokenType.IDENTIFIER):
            return offset
        if not self._declare(Symbol(name_token.value, SymbolKind.VARIABLE, level, offset)):
            return offset
        if level == 0:
            # The main frame sits at the bottom of the stack
            self.globals[name_token.value] = offset
        return offset + 1

    def _subroutine_declaration(self, level: int) -> None:
        """("procedure" | "function") ident "(" [ident {"," ident}] ")" block ";" """
        kind_token = self._advance()
        kind = SymbolKind.PROCEDURE if kind_token.type == TokenType.PROCEDURE else SymbolKind.FUNCTION

        name_token = self._current
        has_name = self._expect(TokenType.IDENTIFIER)
        symbol = Symbol(name_token.value if has_name else "", kind, level)
        if has_name:
            self._declare(symbol)

        if level + 1 > MAX_LEVEL:
            self._error(f"blocks nested deeper than {MAX_LEVEL} levels")

        params: List[str] = []
        self._expect(TokenType.LPAREN)
        if self._check(TokenType.IDENTIFIER):
            while True:
                param_token = self._current
                if self._expect(TokenType.IDENTIFIER):
                    if param_token.value in params:
                        self._error(f"duplicate parameter '{param_token.value}'")
                    else:
                        params.append(param_token.value)
                if not self._match(TokenType.COMMA):
                    break
        self._expect(TokenType.RPAREN)

        # Arguments sit just below the callee's frame: the first at -n, the
        # last at -1. They belong to the body's level.
        for index, param in enumerate(params):
            self._declare(Symbol(param, SymbolKind.VARIABLE, level + 1, index - len(params)))
        symbol.arity = len(params)

        self._block(symbol, level + 1, len(params))
        self._expect(TokenType.SEMICOLON)

    # ---- Statements ----

    def _statement(self, level: int) -> None:
        """Compile a statement; anything else is the empty statement."""
        if self._check(TokenType.IDENTIFIER):
            self._identifier_statement(level)

        elif self._match(TokenType.BEGIN):
            self._compound_statement(level)

        elif self._match(TokenType.IF):
            self._if_statement(level)

        elif self._match(TokenType.WHILE):
            self._while_statement(level)

        elif self._match(TokenType.REPEAT):
            self._repeat_statement(level)

    def _compound_statement(self, level: int) -> None:
        """statement {";" statement} "end", after "begin"."""
        while True:
            self._statement(level)
            if self._match(TokenType.SEMICOLON):
                continue
            if self._check(*STATEMENT_START):
                self._error(f"expected ';' but found {self._describe(self._current)}")
                continue
            break
        self._expect(TokenType.END)

    def _identifier_statement(self, level: int) -> None:
        """ident ":=" expr | ident "(" [expr {"," expr}] ")" """
        name = self._advance().value
        symbol = self.symbols.resolve(name)

        if self._match(TokenType.LPAREN):
            if symbol is None:
                self._error(f"undefined identifier '{name}'")
            elif symbol.kind == SymbolKind.FUNCTION:
                self._error(f"function '{name}' called as a procedure")
            elif symbol.kind != SymbolKind.PROCEDURE:
                self._error(f"'{name}' is not a procedure")
            count = self._arguments(level)
            if symbol is not None and symbol.kind == SymbolKind.PROCEDURE:
                self._emit_call(symbol, count, level)

        elif self._check(TokenType.ASSIGN, TokenType.EQ):
            if self._check(TokenType.EQ):
                self._error("expected ':=' but found '='")
            self._advance()
            self._assignment(name, symbol, level)

        else:
            self._error(f"expected ':=' or '(' after '{name}'")

    def _assignment(self, name: str, symbol: Optional[Symbol], level: int) -> None:
        """Compile the right-hand side and store it into ``symbol``."""
        target = None  # (level distance, offset) of the destination

        if symbol is None:
            self._error(f"undefined identifier '{name}'")
        elif symbol.kind == SymbolKind.VARIABLE:
            target = (level - symbol.level, symbol.value)
        elif symbol.kind == SymbolKind.FUNCTION:
            # The result slot of an enclosing function's frame
            if any(owner is symbol for owner in self._owners):
                target = (level - (symbol.level + 1), Frame.RET_VAL)
            else:
                self._error(f"cannot assign to function '{name}' outside its body")
        elif symbol.kind == SymbolKind.CONSTANT:
            self._error(f"cannot assign to constant '{name}'")
        else:
            self._error(f"cannot assign to procedure '{name}'")

        self._expression(level)

        if target is not None:
            self._emit(OpCode.PUSH_VAR, target[0], int(target[1]))
            self._emit(OpCode.ASSIGN)

    def _if_statement(self, level: int) -> None:
        """condition "then" statement ["else" statement], after "if"."""
        self._condition(level)
        false_jump = self._emit_jump(OpCode.JNEQ)
        self._expect(TokenType.THEN)
        self._statement(level)

        if self._match(TokenType.ELSE):
            end_jump = self._emit_jump(OpCode.JUMP)
            self._patch_jump(false_jump)
            self._statement(level)
            self._patch_jump(end_jump)
        else:
            self._patch_jump(false_jump)

    def _while_statement(self, level: int) -> None:
        """condition "do" statement, after "while"."""
        condition_start = len(self.code)
        self._condition(level)
        exit_jump = self._emit_jump(OpCode.JNEQ)
        self._expect(TokenType.DO)
        self._statement(level)
        self._emit(OpCode.JUMP, 0, condition_start)
        self._patch_jump(exit_jump)

    def _repeat_statement(self, level: int) -> None:
        """statement "until" condition, after "repeat"."""
        body_start = len(self.code)
        self._statement(level)
        self._expect(TokenType.UNTIL)
        self._condition(level)
        self._emit(OpCode.JNEQ, 0, body_start)

    # ---- Calls ----

    def _arguments(self, level: int) -> int:
        """[expr {"," expr}] ")", after "("; return the argument count."""
        count = 0
        if not self._check(TokenType.RPAREN):
            while True:
                self._expression(level)
                count += 1
                if not self._match(TokenType.COMMA):
                    break
        self._expect(TokenType.RPAREN)
        return count

    def _emit_call(self, symbol: Symbol, count: int, level: int) -> None:
        if count != symbol.arity:
            self._error(
                f"'{symbol.name}' expects {symbol.arity} argument{'s' if symbol.arity != 1 else ''}, got {count}"
            )
            return
        self._emit(OpCode.CALL, level - symbol.level, symbol.value)

    # ---- Expressions ----

    def _condition(self, level: int) -> None:
        """conjunction {"||" conjunction}"""
        self._conjunction(level)
        while self._match(TokenType.OR):
            self._conjunction(level)
            self._emit(OpCode.LOR)

    def _conjunction(self, level: int) -> None:
        """relation {"&&" relation}"""
        self._relation(level)
        while self._match(TokenType.AND):
            self._relation(level)
            self._emit(OpCode.LAND)

    def _relation(self, level: int) -> None:
        """Either "odd" expr, or expr [relop expr]."""
        if self._match(TokenType.ODD):
            self._expression(level)
            self._emit(OpCode.PUSH_CONST, 0, 1)
            self._emit(OpCode.BAND)
            return

        self._expression(level)
        if self._check(*RELATIONAL_OPS):
            op = RELATIONAL_OPS[self._advance().type]
            self._expression(level)
            self._emit(op)

    def _expression(self, level: int) -> None:
        """["+"|"-"] term {("+"|"-"|"|"|"^") term}"""
        negate = False
        if self._check(TokenType.PLUS, TokenType.MINUS):
            negate = self._advance().type == TokenType.MINUS

        self._term(level)
        if negate:
            self._emit(OpCode.NEG)

        while self._check(*ADDING_OPS):
            op = ADDING_OPS[self._advance().type]
            self._term(level)
            self._emit(op)

    def _term(self, level: int) -> None:
        """unary {("*"|"/"|"%"|"&"|"<<"|">>") unary}"""
        self._unary(level)
        while self._check(*MULTIPLYING_OPS):
            op = MULTIPLYING_OPS[self._advance().type]
            self._unary(level)
            self._emit(op)

    def _unary(self, level: int) -> None:
        """("!"|"~") unary | factor"""
        if self._check(*PREFIX_OPS):
            op = PREFIX_OPS[self._advance().type]
            self._unary(level)
            self._emit(op)
        else:
            self._factor(level)

    def _factor(self, level: int) -> None:
        """ident | ident "(" args ")" | number | "(" condition ")" """
        token = self._current

        if self._match(TokenType.IDENTIFIER):
            self._identifier_factor(token.value, level)

        elif self._match(TokenType.INTEGER):
            self._emit(OpCode.PUSH_CONST, 0, self._literal(token))

        elif self._match(TokenType.LPAREN):
            self._condition(level)
            self._expect(TokenType.RPAREN)

        elif self._check(TokenType.REAL):
            self._error(f"real number {token.value} is not supported")
            self._advance()

        else:
            self._error(f"expected identifier, number or '(' but found {self._describe(token)}")
            if not self._check(*FOLLOW_TOKENS):
                self._advance()

    def _identifier_factor(self, name: str, level: int) -> None:
        """A name used as a value: constant, variable or function call."""
        symbol = self.symbols.resolve(name)

        if symbol is None:
            self._error(f"undefined identifier '{name}'")
            if self._match(TokenType.LPAREN):
                self._arguments(level)

        elif symbol.kind == SymbolKind.CONSTANT:
            self._emit(OpCode.PUSH_CONST, 0, symbol.value)

        elif symbol.kind == SymbolKind.VARIABLE:
            self._emit(OpCode.PUSH_VAR, level - symbol.level, symbol.value)
            self._emit(OpCode.EVAL)

        elif symbol.kind == SymbolKind.FUNCTION:
            if self._expect(TokenType.LPAREN):
                count = self._arguments(level)
                self._emit_call(symbol, count, level)

        else:
            self._error(f"procedure '{name}' used in an expression")
            if self._match(TokenType.LPAREN):
                self._arguments(level)


def compile_program(source: str) -> List[Instruction]:
    """Compile ``source`` and return its code, raising CompileError on errors."""
    compiler = Compiler()
    code, error_count = compiler.compile(source)
    if error_count:
        raise CompileError(compiler.diagnostics)
    return code
