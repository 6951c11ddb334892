"""
Tokenizer for the model language.

Tokens remember the SourceLine they come from so that every parse error
can name the file and line of the offending statement.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from dsgec.io.source import SourceLine


class TokenType(Enum):
    # Symbols
    LPAREN = "("
    RPAREN = ")"
    LBRACE = "{"
    RBRACE = "}"
    COMMA = ","
    SEMICOLON = ";"
    HASH = "#"
    ASSIGN = "="
    PLUS = "+"
    MINUS = "-"
    STAR = "*"
    SLASH = "/"
    CARET = "^"  # also written **
    LT = "<"
    GT = ">"
    LE = "<="
    GE = ">="
    EQ = "=="
    NE = "!="  # also written ~=

    # Literals
    NUMBER = "NUMBER"
    NAME = "NAME"
    STRING = "STRING"

    # Special
    EOF = "EOF"


@dataclass(frozen=True)
class Token:
    type: TokenType
    value: str
    source: SourceLine
    column: int

    def error(self, message: str):
        return self.source.error(message)


_TWO_CHAR = {
    "**": TokenType.CARET,
    "<=": TokenType.LE,
    ">=": TokenType.GE,
    "==": TokenType.EQ,
    "!=": TokenType.NE,
    "~=": TokenType.NE,
}

_ONE_CHAR = {t.value: t for t in TokenType if len(t.value) == 1}


class Lexer:
    """Turns source lines into a flat token list ending with EOF."""

    def __init__(self, lines: tuple[SourceLine, ...]):
        self.lines = lines

    def tokenize(self) -> list[Token]:
        tokens: list[Token] = []
        for line in self.lines:
            tokens.extend(self._tokenize_line(line))
        last = self.lines[-1] if self.lines else SourceLine("")
        tokens.append(Token(TokenType.EOF, "", last, len(last.code)))
        return tokens

    def _tokenize_line(self, line: SourceLine) -> list[Token]:
        tokens: list[Token] = []
        code = line.code
        pos = 0
        n = len(code)
        while pos < n:
            c = code[pos]
            if c.isspace():
                pos += 1
                continue
            if c.isdigit() or (c == "." and pos + 1 < n and code[pos + 1].isdigit()):
                end = self._read_number(code, pos)
                tokens.append(Token(TokenType.NUMBER, code[pos:end], line, pos))
                pos = end
                continue
            if c.isalpha() or c == "_":
                end = pos
                while end < n and (code[end].isalnum() or code[end] == "_"):
                    end += 1
                tokens.append(Token(TokenType.NAME, code[pos:end], line, pos))
                pos = end
                continue
            if c == '"':
                end = code.find('"', pos + 1)
                if end < 0:
                    raise line.error("unterminated string")
                tokens.append(Token(TokenType.STRING, code[pos + 1 : end], line, pos))
                pos = end + 1
                continue
            pair = code[pos : pos + 2]
            if pair in _TWO_CHAR:
                tokens.append(Token(_TWO_CHAR[pair], pair, line, pos))
                pos += 2
                continue
            if c in _ONE_CHAR:
                tokens.append(Token(_ONE_CHAR[c], c, line, pos))
                pos += 1
                continue
            raise line.error(f"unexpected character {c!r}")
        return tokens

    @staticmethod
    def _read_number(code: str, pos: int) -> int:
        n = len(code)
        end = pos
        while end < n and code[end].isdigit():
            end += 1
        if end < n and code[end] == ".":
            end += 1
            while end < n and code[end].isdigit():
                end += 1
        if end < n and code[end] in "eE":
            probe = end + 1
            if probe < n and code[probe] in "+-":
                probe += 1
            if probe < n and code[probe].isdigit():
                end = probe
                while end < n and code[end].isdigit():
                    end += 1
        return end


def tokenize(lines: tuple[SourceLine, ...]) -> list[Token]:
    return Lexer(lines).tokenize()


def split_statements(tokens: list[Token]) -> list[list[Token]]:
    """Group tokens into ``;``-terminated statements (EOF dropped)."""
    statements: list[list[Token]] = []
    current: list[Token] = []
    for token in tokens:
        if token.type == TokenType.EOF:
            break
        if token.type == TokenType.SEMICOLON:
            if current:
                statements.append(current)
            current = []
            continue
        current.append(token)
    if current:
        raise current[-1].error("missing ; at the end of the statement")
    return statements


def split_fields(tokens: list[Token]) -> list[list[Token]]:
    """Split one statement on its top-level commas."""
    fields: list[list[Token]] = [[]]
    depth = 0
    for token in tokens:
        if token.type == TokenType.EOF:
            break
        if token.type in (TokenType.LPAREN, TokenType.LBRACE):
            depth += 1
        elif token.type in (TokenType.RPAREN, TokenType.RBRACE):
            depth -= 1
        if token.type == TokenType.COMMA and depth == 0:
            fields.append([])
        else:
            fields[-1].append(token)
    return fields
