"""PL/0C lexer (tokenizer)."""

from typing import Iterator, Optional
from .tokens import Token, TokenType, KEYWORDS


def _is_digit(ch: str) -> bool:
    """Is ch an ASCII decimal digit? str.isdigit() also accepts "²"."""
    return ch != "" and ch in "0123456789"


class Lexer:
    """Tokenizes PL/0C source code.

    The lexer never raises: characters it cannot make sense of come back as
    UNKNOWN tokens, and an unterminated block comment as a BAD_COMMENT token,
    so the compiler can report them and carry on.
    """

    def __init__(self, source: str):
        self.source = source
        self.pos = 0
        self.line = 1
        self.column = 1
        self.length = len(source)
        self._bad_comment: Optional[int] = None

    def _current(self) -> str:
        """Get current character or empty string if at end."""
        if self.pos >= self.length:
            return ""
        return self.source[self.pos]

    def _peek(self, offset: int = 1) -> str:
        """Peek ahead at character."""
        pos = self.pos + offset
        if pos >= self.length:
            return ""
        return self.source[pos]

    def _advance(self) -> str:
        """Advance and return current character."""
        if self.pos >= self.length:
            return ""
        ch = self.source[self.pos]
        self.pos += 1
        if ch == "\n":
            self.line += 1
            self.column = 1
        else:
            self.column += 1
        return ch

    def _skip_whitespace(self) -> None:
        """Skip whitespace and comments."""
        while self.pos < self.length:
            ch = self._current()

            # Whitespace
            if ch in " \t\r\n\f\v":
                self._advance()
                continue

            # Single-line comment
            if ch == "/" and self._peek() == "/":
                self._advance()  # /
                self._advance()  # /
                while self._current() and self._current() != "\n":
                    self._advance()
                continue

            # Multi-line comment
            if ch == "/" and self._peek() == "*":
                start_line = self.line
                self._advance()  # /
                self._advance()  # *
                while self.pos < self.length:
                    if self._current() == "*" and self._peek() == "/":
                        self._advance()  # *
                        self._advance()  # /
                        break
                    self._advance()
                else:
                    self._bad_comment = start_line
                continue

            break

    def _read_number(self) -> int | float:
        """Read an integer or real literal."""
        start = self.pos

        while self._current() and _is_digit(self._current()):
            self._advance()

        # Fraction; "1." followed by anything but a digit is the integer 1
        # and a period (the program terminator)
        is_real = False
        if self._current() == "." and _is_digit(self._peek()):
            is_real = True
            self._advance()  # .
            while self._current() and _is_digit(self._current()):
                self._advance()

        # Exponent, only when digits follow
        if self._current() in ("e", "E"):
            if _is_digit(self._peek()):
                digits_at = 1
            elif self._peek() in ("+", "-") and _is_digit(self._peek(2)):
                digits_at = 2
            else:
                digits_at = 0
            if digits_at:
                is_real = True
                for _ in range(digits_at):
                    self._advance()
                while self._current() and _is_digit(self._current()):
                    self._advance()

        num_str = self.source[start : self.pos]
        if is_real:
            return float(num_str)
        return int(num_str)

    def _read_identifier(self) -> str:
        """Read an identifier."""
        start = self.pos
        while self._current() and (
            self._current().isalnum() or self._current() == "_"
        ):
            self._advance()
        return self.source[start : self.pos]

    def next_token(self) -> Token:
        """Get the next token."""
        self._skip_whitespace()

        line = self.line
        column = self.column

        if self._bad_comment is not None:
            start_line, self._bad_comment = self._bad_comment, None
            return Token(TokenType.BAD_COMMENT, start_line, line, column)

        if self.pos >= self.length:
            return Token(TokenType.EOF, None, line, column)

        ch = self._current()

        # Number literals
        if _is_digit(ch):
            value = self._read_number()
            if isinstance(value, float):
                return Token(TokenType.REAL, value, line, column)
            return Token(TokenType.INTEGER, value, line, column)

        # Identifiers and keywords
        if ch.isalpha() or ch == "_":
            value = self._read_identifier()
            token_type = KEYWORDS.get(value, TokenType.IDENTIFIER)
            return Token(token_type, value, line, column)

        # Operators and punctuation
        self._advance()

        # Two character operators
        if ch == ":":
            if self._current() == "=":
                self._advance()
                return Token(TokenType.ASSIGN, ":=", line, column)
            return Token(TokenType.UNKNOWN, ch, line, column)

        if ch == "=":
            if self._current() == "=":
                self._advance()
                return Token(TokenType.EQ, "==", line, column)
            return Token(TokenType.EQ, "=", line, column)

        if ch == "!":
            if self._current() == "=":
                self._advance()
                return Token(TokenType.NE, "!=", line, column)
            return Token(TokenType.NOT, "!", line, column)

        if ch == "<":
            if self._current() == "=":
                self._advance()
                return Token(TokenType.LE, "<=", line, column)
            if self._current() == ">":
                self._advance()
                return Token(TokenType.NE, "<>", line, column)
            if self._current() == "<":
                self._advance()
                return Token(TokenType.LSHIFT, "<<", line, column)
            return Token(TokenType.LT, "<", line, column)

        if ch == ">":
            if self._current() == "=":
                self._advance()
                return Token(TokenType.GE, ">=", line, column)
            if self._current() == ">":
                self._advance()
                return Token(TokenType.RSHIFT, ">>", line, column)
            return Token(TokenType.GT, ">", line, column)

        if ch == "&":
            if self._current() == "&":
                self._advance()
                return Token(TokenType.AND, "&&", line, column)
            return Token(TokenType.AMPERSAND, "&", line, column)

        if ch == "|":
            if self._current() == "|":
                self._advance()
                return Token(TokenType.OR, "||", line, column)
            return Token(TokenType.PIPE, "|", line, column)

        # Single character tokens
        single_char_tokens = {
            "(": TokenType.LPAREN,
            ")": TokenType.RPAREN,
            ",": TokenType.COMMA,
            ";": TokenType.SEMICOLON,
            ".": TokenType.PERIOD,
            "+": TokenType.PLUS,
            "-": TokenType.MINUS,
            "*": TokenType.STAR,
            "/": TokenType.SLASH,
            "%": TokenType.PERCENT,
            "^": TokenType.CARET,
            "~": TokenType.TILDE,
        }

        if ch in single_char_tokens:
            return Token(single_char_tokens[ch], ch, line, column)

        return Token(TokenType.UNKNOWN, ch, line, column)

    def tokenize(self) -> Iterator[Token]:
        """Tokenize the entire source."""
        while True:
            token = self.next_token()
            yield token
            if token.type == TokenType.EOF:
                break


class TokenStream:
    """A restartable stream of tokens.

    Holds the most recently read token; ``next()`` replaces it with the
    following one. ``set_input()`` starts over on new source text.
    """

    def __init__(self, source: str = ""):
        self.set_input(source)

    def set_input(self, source: str) -> None:
        """Restart the stream on ``source``; the current token becomes EOF
        until ``next()`` is called."""
        self._lexer = Lexer(source)
        self._current = Token(TokenType.EOF, None, 1, 1)

    def current(self) -> Token:
        """Return the current token without consuming it."""
        return self._current

    def next(self) -> Token:
        """Advance to, and return, the next token."""
        self._current = self._lexer.next_token()
        return self._current

    @property
    def line(self) -> int:
        """Line number of the current token."""
        return self._current.line
