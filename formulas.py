"""Spreadsheet-style arithmetic for budget cells.

A formula is text starting with ``=`` followed by an infix expression over
numbers, ``+ - * /`` and parentheses. Expressions are tokenized and evaluated
by a small recursive-descent parser::

    expr   := term (("+" | "-") term)*
    term   := factor (("*" | "/") factor)*
    factor := ("+" | "-") factor | NUMBER | "(" expr ")"
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

ALLOWED_CHARS = re.compile(r"^[0-9+\-*/().\s]*$")
_NUMBER = re.compile(r"\d+(?:\.\d*)?|\.\d+")


class FormulaError(ValueError):
    pass


@dataclass(frozen=True)
class Token:
    kind: str  # "num", "op", "lparen", "rparen"
    text: str
    pos: int


def is_formula(raw: Optional[str]) -> bool:
    return isinstance(raw, str) and raw.strip().startswith("=")


def _strip_marker(text: str) -> str:
    body = text.strip()
    if body.startswith("="):
        body = body[1:]
    return body


def tokenize(body: str) -> list[Token]:
    tokens: list[Token] = []
    pos = 0
    while pos < len(body):
        ch = body[pos]
        if ch.isspace():
            pos += 1
            continue
        if ch in "+-*/":
            tokens.append(Token("op", ch, pos))
            pos += 1
            continue
        if ch == "(":
            tokens.append(Token("lparen", ch, pos))
            pos += 1
            continue
        if ch == ")":
            tokens.append(Token("rparen", ch, pos))
            pos += 1
            continue
        match = _NUMBER.match(body, pos)
        if not match:
            raise FormulaError(f"Unexpected character {ch!r} at position {pos}")
        tokens.append(Token("num", match.group(0), pos))
        pos = match.end()
    return tokens


class _Parser:
    def __init__(self, tokens: list[Token]) -> None:
        self.tokens = tokens
        self.index = 0

    def peek(self) -> Optional[Token]:
        if self.index < len(self.tokens):
            return self.tokens[self.index]
        return None

    def advance(self) -> Token:
        token = self.peek()
        if token is None:
            raise FormulaError("Unexpected end of expression")
        self.index += 1
        return token

    def parse(self) -> float:
        if not self.tokens:
            raise FormulaError("Empty expression")
        value = self.expr()
        leftover = self.peek()
        if leftover is not None:
            raise FormulaError(
                f"Unexpected {leftover.text!r} at position {leftover.pos}"
            )
        return value

    def expr(self) -> float:
        value = self.term()
        while True:
            token = self.peek()
            if token is None or token.kind != "op" or token.text not in "+-":
                return value
            self.advance()
            rhs = self.term()
            value = value + rhs if token.text == "+" else value - rhs

    def term(self) -> float:
        value = self.factor()
        while True:
            token = self.peek()
            if token is None or token.kind != "op" or token.text not in "*/":
                return value
            self.advance()
            rhs = self.factor()
            if token.text == "*":
                value = value * rhs
            else:
                if rhs == 0:
                    raise FormulaError("Division by zero")
                value = value / rhs

    def factor(self) -> float:
        token = self.advance()
        if token.kind == "op" and token.text in "+-":
            value = self.factor()
            return -value if token.text == "-" else value
        if token.kind == "num":
            return float(token.text)
        if token.kind == "lparen":
            value = self.expr()
            closing = self.advance()
            if closing.kind != "rparen":
                raise FormulaError(f"Expected ')' at position {closing.pos}")
            return value
        raise FormulaError(f"Unexpected {token.text!r} at position {token.pos}")


def parse_formula(text: str) -> float:
    """Evaluate ``text`` strictly, raising FormulaError on anything invalid."""
    body = _strip_marker(text)
    if not ALLOWED_CHARS.match(body):
        raise FormulaError("Formula contains characters outside 0-9 + - * / ( ) .")
    return _Parser(tokenize(body)).parse()


def evaluate_formula(text: Optional[str]) -> float:
    """Cell semantics: any invalid formula is worth 0.

    Division by zero counts as invalid, so ``"=1/0"`` is 0 rather than
    infinity.
    """
    if not text:
        return 0.0
    try:
        return parse_formula(text)
    except FormulaError:
        return 0.0


_LEADING_NUMBER = re.compile(r"^\s*[+-]?(?:\d+(?:\.\d*)?|\.\d+)")


def parse_number(raw: Optional[str]) -> float:
    """Leading numeric prefix of ``raw`` (``"12.5 kr"`` -> 12.5), else 0."""
    if raw is None:
        return 0.0
    match = _LEADING_NUMBER.match(str(raw))
    if not match:
        return 0.0
    return float(match.group(0))
