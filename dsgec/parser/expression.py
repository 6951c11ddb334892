"""
Recursive descent parser for model-language expressions.

Grammar, lowest precedence first::

    comparison     := additive [("<"|"<="|">"|">="|"=="|"!=") additive]
    additive       := multiplicative (("+"|"-") multiplicative)*
    multiplicative := unary (("*"|"/") unary)*
    unary          := ("+"|"-") unary | power
    power          := primary ["^" unary]
    primary        := NUMBER | reference | call | "(" comparison ")"
    reference      := NAME ["{" INT "}" | "(" INT ")"]

Names are not resolved here: the result carries VARIABLE leaves with their
time shift and the caller decides what each name is.
"""

from __future__ import annotations

from typing import Optional

from dsgec.io.blocks import BLOCK_KEYWORDS, CONSTANT_CHAIN
from dsgec.io.source import SourceLine
from dsgec.ir import expr as ex
from dsgec.ir.expr import Expr, ExprKind
from dsgec.parser.lexer import Token, TokenType

_COMPARISONS = {
    TokenType.LT: ExprKind.LT,
    TokenType.LE: ExprKind.LE,
    TokenType.GT: ExprKind.GT,
    TokenType.GE: ExprKind.GE,
    TokenType.EQ: ExprKind.EQ,
    TokenType.NE: ExprKind.NE,
}

#: Names that can never be declared as model symbols.
RESERVED_NAMES = frozenset(
    set(ex.FUNCTIONS)
    | set(ex.BINARY_FUNCTIONS)
    | set(BLOCK_KEYWORDS)
    | {"if_then_else", "steady_state", "s0", "s1", "coef", CONSTANT_CHAIN}
)


class ExpressionParser:
    """
    Parse one expression out of a token list.

    ``allow_state_refs`` accepts ``name(chain, state)`` references to a
    parameter in a given regime, used by restrictions.
    """

    def __init__(self, tokens: list[Token], allow_state_refs: bool = False):
        self.tokens = list(tokens)
        if not self.tokens or self.tokens[-1].type != TokenType.EOF:
            self.tokens.append(_eof_after(self.tokens))
        self.pos = 0
        self.allow_state_refs = allow_state_refs

    # -- token helpers ---------------------------------------------------

    def _peek(self, offset: int = 0) -> Token:
        index = min(self.pos + offset, len(self.tokens) - 1)
        return self.tokens[index]

    def _check(self, token_type: TokenType) -> bool:
        return self._peek().type == token_type

    def _advance(self) -> Token:
        token = self.tokens[self.pos]
        if token.type != TokenType.EOF:
            self.pos += 1
        return token

    def _match(self, *token_types: TokenType) -> Optional[Token]:
        if self._peek().type in token_types:
            return self._advance()
        return None

    def _consume(self, token_type: TokenType, message: str) -> Token:
        if self._check(token_type):
            return self._advance()
        raise self._peek().error(f"{message}, found {self._describe(self._peek())}")

    @staticmethod
    def _describe(token: Token) -> str:
        return "end of statement" if token.type == TokenType.EOF else repr(token.value)

    def at_end(self) -> bool:
        return self._check(TokenType.EOF)

    # -- entry points ----------------------------------------------------

    def parse(self) -> Expr:
        """Parse a complete expression; trailing tokens are an error."""
        result = self.parse_expression()
        if not self.at_end():
            raise self._peek().error(f"unexpected {self._describe(self._peek())}")
        return result

    def parse_expression(self) -> Expr:
        return self._parse_comparison()

    # -- grammar ---------------------------------------------------------

    def _parse_comparison(self) -> Expr:
        left = self._parse_additive()
        token = self._match(*_COMPARISONS)
        if token is not None:
            right = self._parse_additive()
            return ex.compare(_COMPARISONS[token.type], left, right)
        return left

    def _parse_additive(self) -> Expr:
        left = self._parse_multiplicative()
        while True:
            token = self._match(TokenType.PLUS, TokenType.MINUS)
            if token is None:
                return left
            right = self._parse_multiplicative()
            left = ex.add(left, right) if token.type == TokenType.PLUS else ex.sub(left, right)

    def _parse_multiplicative(self) -> Expr:
        left = self._parse_unary()
        while True:
            token = self._match(TokenType.STAR, TokenType.SLASH)
            if token is None:
                return left
            right = self._parse_unary()
            left = ex.mul(left, right) if token.type == TokenType.STAR else ex.div(left, right)

    def _parse_unary(self) -> Expr:
        if self._match(TokenType.MINUS):
            return ex.neg(self._parse_unary())
        if self._match(TokenType.PLUS):
            return self._parse_unary()
        return self._parse_power()

    def _parse_power(self) -> Expr:
        base = self._parse_primary()
        if self._match(TokenType.CARET):
            return ex.power(base, self._parse_unary())
        return base

    def _parse_primary(self) -> Expr:
        token = self._peek()
        if token.type == TokenType.NUMBER:
            self._advance()
            return ex.const(float(token.value))
        if token.type == TokenType.LPAREN:
            self._advance()
            inner = self._parse_comparison()
            self._consume(TokenType.RPAREN, "expected )")
            return inner
        if token.type == TokenType.NAME:
            self._advance()
            return self._parse_name(token)
        raise token.error(f"unexpected {self._describe(token)} in expression")

    def _parse_name(self, token: Token) -> Expr:
        name = token.value
        if name in ex.FUNCTIONS:
            (arg,) = self._parse_arguments(token, 1)
            return ex.call(ex.FUNCTIONS[name], arg)
        if name in ex.BINARY_FUNCTIONS:
            a, b = self._parse_arguments(token, 2)
            return ex.minimum(a, b) if name == "min" else ex.maximum(a, b)
        if name == "if_then_else":
            c, a, b = self._parse_arguments(token, 3)
            return ex.if_then_else(c, a, b)
        if name == "steady_state":
            self._consume(TokenType.LPAREN, "expected ( after steady_state")
            target = self._consume(TokenType.NAME, "steady_state expects a variable name")
            self._consume(TokenType.RPAREN, "expected ) after steady_state(name")
            return ex.steady_state(target.value)
        special = self._parse_special(token)
        if special is not None:
            return special
        if self._check(TokenType.LBRACE):
            self._advance()
            shift = self._parse_shift(TokenType.RBRACE)
            return ex.var(name, shift)
        if self._check(TokenType.LPAREN):
            return self._parse_parenthesized_reference(token)
        return ex.var(name)

    def _parse_special(self, token: Token) -> Optional[Expr]:
        """Hook for names with a dedicated syntax in a given context."""
        return None

    def _parse_parenthesized_reference(self, token: Token) -> Expr:
        # X(k) is a time shift, p(chain, state) a parameter in a given regime
        if self._peek(2).type == TokenType.COMMA or self._peek(1).type == TokenType.NAME:
            if not self.allow_state_refs:
                raise token.error(f"unknown function {token.value}")
            self._advance()
            chain = self._consume(TokenType.NAME, "expected a markov chain name")
            self._consume(TokenType.COMMA, "expected ,")
            state = self._consume(TokenType.NUMBER, "expected a state number")
            self._consume(TokenType.RPAREN, "expected )")
            return ex.var(token.value, 0, (chain.value, _as_int(state)))
        self._advance()
        return ex.var(token.value, self._parse_shift(TokenType.RPAREN))

    def _parse_shift(self, closing: TokenType) -> int:
        sign = 1
        if self._match(TokenType.MINUS):
            sign = -1
        else:
            self._match(TokenType.PLUS)
        number = self._consume(TokenType.NUMBER, "expected an integer time shift")
        self._consume(closing, f"expected {closing.value}")
        return sign * _as_int(number)

    def _parse_arguments(self, token: Token, count: int) -> list[Expr]:
        self._consume(TokenType.LPAREN, f"expected ( after {token.value}")
        args = [self._parse_comparison()]
        while self._match(TokenType.COMMA):
            args.append(self._parse_comparison())
        self._consume(TokenType.RPAREN, f"expected ) to close {token.value}(")
        if len(args) != count:
            raise token.error(f"{token.value} takes {count} argument(s), {len(args)} given")
        return args


def _as_int(token: Token) -> int:
    try:
        return int(token.value)
    except ValueError:
        raise token.error(f"expected an integer, found {token.value}") from None


def _eof_after(tokens: list[Token]) -> Token:
    if not tokens:
        return Token(TokenType.EOF, "", SourceLine(""), 0)
    last = tokens[-1]
    return Token(TokenType.EOF, "", last.source, last.column + len(last.value))


def parse_expression(tokens: list[Token], allow_state_refs: bool = False) -> Expr:
    return ExpressionParser(tokens, allow_state_refs).parse()
