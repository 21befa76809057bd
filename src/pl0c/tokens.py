"""Token types for the PL/0C lexer."""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Any


class TokenType(Enum):
    """PL/0C token types."""

    # End of input
    EOF = auto()

    # Lexical problems, reported by the compiler
    UNKNOWN = auto()  # value = offending character
    BAD_COMMENT = auto()  # value = line the comment started on

    # Literals
    INTEGER = auto()
    REAL = auto()

    IDENTIFIER = auto()

    # Keywords
    CONST = auto()
    VAR = auto()
    PROCEDURE = auto()
    FUNCTION = auto()
    BEGIN = auto()
    END = auto()
    IF = auto()
    THEN = auto()
    ELSE = auto()
    WHILE = auto()
    DO = auto()
    REPEAT = auto()
    UNTIL = auto()
    ODD = auto()

    # Punctuation
    LPAREN = auto()  # (
    RPAREN = auto()  # )
    COMMA = auto()  # ,
    SEMICOLON = auto()  # ;
    PERIOD = auto()  # .
    ASSIGN = auto()  # :=

    # Arithmetic
    PLUS = auto()  # +
    MINUS = auto()  # -
    STAR = auto()  # *
    SLASH = auto()  # /
    PERCENT = auto()  # %

    # Comparison
    EQ = auto()  # = or ==
    NE = auto()  # != or <>
    LT = auto()  # <
    LE = auto()  # <=
    GT = auto()  # >
    GE = auto()  # >=

    # Logical
    AND = auto()  # &&
    OR = auto()  # ||
    NOT = auto()  # !

    # Bitwise
    AMPERSAND = auto()  # &
    PIPE = auto()  # |
    CARET = auto()  # ^
    TILDE = auto()  # ~
    LSHIFT = auto()  # <<
    RSHIFT = auto()  # >>


# Map keywords to token types
KEYWORDS = {
    "const": TokenType.CONST,
    "var": TokenType.VAR,
    "procedure": TokenType.PROCEDURE,
    "function": TokenType.FUNCTION,
    "begin": TokenType.BEGIN,
    "end": TokenType.END,
    "if": TokenType.IF,
    "then": TokenType.THEN,
    "else": TokenType.ELSE,
    "while": TokenType.WHILE,
    "do": TokenType.DO,
    "repeat": TokenType.REPEAT,
    "until": TokenType.UNTIL,
    "odd": TokenType.ODD,
}

# Source spelling of each fixed token, used in diagnostics
SPELLINGS = {
    TokenType.EOF: "end of file",
    TokenType.INTEGER: "number",
    TokenType.REAL: "real number",
    TokenType.IDENTIFIER: "identifier",
    TokenType.LPAREN: "(",
    TokenType.RPAREN: ")",
    TokenType.COMMA: ",",
    TokenType.SEMICOLON: ";",
    TokenType.PERIOD: ".",
    TokenType.ASSIGN: ":=",
    TokenType.PLUS: "+",
    TokenType.MINUS: "-",
    TokenType.STAR: "*",
    TokenType.SLASH: "/",
    TokenType.PERCENT: "%",
    TokenType.EQ: "=",
    TokenType.NE: "!=",
    TokenType.LT: "<",
    TokenType.LE: "<=",
    TokenType.GT: ">",
    TokenType.GE: ">=",
    TokenType.AND: "&&",
    TokenType.OR: "||",
    TokenType.NOT: "!",
    TokenType.AMPERSAND: "&",
    TokenType.PIPE: "|",
    TokenType.CARET: "^",
    TokenType.TILDE: "~",
    TokenType.LSHIFT: "<<",
    TokenType.RSHIFT: ">>",
}
SPELLINGS.update({token_type: word for word, token_type in KEYWORDS.items()})


def spelling(token_type: TokenType) -> str:
    """Return how a token type is written, for error messages."""
    return SPELLINGS.get(token_type, token_type.name.lower())


@dataclass
class Token:
    """A token from PL/0C source."""

    type: TokenType
    value: Any
    line: int
    column: int

    def __repr__(self) -> str:
        if self.value is not None:
            return f"Token({self.type.name}, {self.value!r}, {self.line}:{self.column})"
        return f"Token({self.type.name}, {self.line}:{self.column})"
