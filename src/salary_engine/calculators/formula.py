"""Restricted arithmetic formulas over salary component codes.

Formulas reference other components in bracket notation, for example
``([BASE_SALARY] / 26 / 8) * [OT_HOURS] * 1.5``. Evaluation substitutes every
reference with its value from the context, checks the result against a
character whitelist, then parses it with a small recursive-descent parser
supporting numbers, unary signs, ``+ - * /`` and parentheses.
"""

from __future__ import annotations

import logging
import re
from decimal import ROUND_HALF_DOWN, ROUND_HALF_UP, Decimal
from typing import Mapping

logger = logging.getLogger(__name__)

_REFERENCE = re.compile(r"\[([^\[\]]*)\]")
_CODE = re.compile(r"[A-Z_0-9]+")
_SAFE = re.compile(r"^[0-9+\-*/().\s]*$")
_TOKEN = re.compile(r"\s*(?:(\d+\.?\d*|\.\d+)|(.))")


class FormulaError(Exception):
    """Raised when a formula cannot be evaluated."""

    def __init__(self, formula: str, reason: str):
        self.formula = formula
        self.reason = reason
        super().__init__(f"Cannot evaluate formula {formula!r}: {reason}")


def extract_references(formula: str) -> list[str]:
    """Return the component codes referenced by a formula, in first-use order."""
    seen: list[str] = []
    for match in _REFERENCE.finditer(formula):
        code = match.group(1)
        if code not in seen:
            seen.append(code)
    return seen


def substitute(formula: str, context: Mapping[str, Decimal]) -> str:
    """Replace ``[CODE]`` references with plain decimal strings.

    Codes missing from the context become ``0``. References that are not
    valid codes are left in place so the whitelist rejects them.
    """

    def replace(match: re.Match[str]) -> str:
        code = match.group(1)
        if code in context:
            return format(Decimal(context[code]), "f")
        if _CODE.fullmatch(code):
            return "0"
        return match.group(0)

    return _REFERENCE.sub(replace, formula)


class _Parser:
    """Recursive-descent parser for the sanitized arithmetic grammar.

    expr    := term (("+" | "-") term)*
    term    := unary (("*" | "/") unary)*
    unary   := ("+" | "-") unary | primary
    primary := NUMBER | "(" expr ")"
    """

    def __init__(self, text: str, formula: str, compute: bool = True):
        self.formula = formula
        self.compute = compute
        self.tokens = self._tokenize(text)
        self.pos = 0

    def _tokenize(self, text: str) -> list[str]:
        tokens: list[str] = []
        for number, symbol in _TOKEN.findall(text.rstrip()):
            if number:
                tokens.append(number)
            elif symbol in "+-*/()":
                tokens.append(symbol)
            else:
                raise FormulaError(self.formula, f"unexpected character {symbol!r}")
        return tokens

    def parse(self) -> Decimal:
        if not self.tokens:
            raise FormulaError(self.formula, "empty expression")
        value = self._expr()
        if self.pos != len(self.tokens):
            raise FormulaError(self.formula, f"unexpected token {self.tokens[self.pos]!r}")
        return value

    def _peek(self) -> str | None:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _next(self) -> str:
        token = self._peek()
        if token is None:
            raise FormulaError(self.formula, "unexpected end of expression")
        self.pos += 1
        return token

    def _expr(self) -> Decimal:
        value = self._term()
        while self._peek() in ("+", "-"):
            op = self._next()
            value = self._apply(op, value, self._term())
        return value

    def _term(self) -> Decimal:
        value = self._unary()
        while self._peek() in ("*", "/"):
            op = self._next()
            value = self._apply(op, value, self._unary())
        return value

    def _apply(self, op: str, left: Decimal, right: Decimal) -> Decimal:
        # Syntax-only parses keep the left operand so no division is attempted
        if not self.compute:
            return left
        if op == "+":
            return left + right
        if op == "-":
            return left - right
        if op == "*":
            return left * right
        return left / right

    def _unary(self) -> Decimal:
        if self._peek() == "-":
            self._next()
            return -self._unary()
        if self._peek() == "+":
            self._next()
            return self._unary()
        return self._primary()

    def _primary(self) -> Decimal:
        token = self._next()
        if token == "(":
            value = self._expr()
            if self._peek() != ")":
                raise FormulaError(self.formula, "missing closing parenthesis")
            self._next()
            return value
        if token in "+-*/)":
            raise FormulaError(self.formula, f"unexpected token {token!r}")
        return Decimal(token)


class FormulaEvaluator:
    """Evaluates component formulas against already-computed values."""

    @staticmethod
    def round_to_unit(value: Decimal) -> Decimal:
        """Round to the nearest whole currency unit.

        Halves round toward positive infinity, so 2.5 becomes 3 and -2.5
        becomes -2.
        """
        rounding = ROUND_HALF_UP if value >= 0 else ROUND_HALF_DOWN
        return value.quantize(Decimal("1"), rounding=rounding)

    def evaluate_strict(self, formula: str, context: Mapping[str, Decimal]) -> Decimal:
        """Evaluate a formula, raising FormulaError on any failure."""
        expression = substitute(formula, context)

        if not _SAFE.match(expression):
            raise FormulaError(formula, "contains characters outside the arithmetic whitelist")

        try:
            value = _Parser(expression, formula).parse()
            if not value.is_finite():
                raise FormulaError(formula, "result is not finite")
            return self.round_to_unit(value)
        except ArithmeticError as e:
            raise FormulaError(formula, f"arithmetic error ({type(e).__name__})") from e
        except RecursionError as e:
            raise FormulaError(formula, "expression nested too deeply") from e

    def check_syntax(self, formula: str) -> None:
        """Parse a formula without computing it, raising FormulaError if malformed.

        Every reference is read as 1, and operators are not applied, so
        a formula that only divides by zero for some inputs still passes.
        """
        placeholders = {
            ref: Decimal("1") for ref in extract_references(formula) if _CODE.fullmatch(ref)
        }
        expression = substitute(formula, placeholders)

        if not _SAFE.match(expression):
            raise FormulaError(formula, "contains characters outside the arithmetic whitelist")

        try:
            _Parser(expression, formula, compute=False).parse()
        except RecursionError as e:
            raise FormulaError(formula, "expression nested too deeply") from e

    def evaluate(self, formula: str, context: Mapping[str, Decimal]) -> Decimal:
        """Evaluate a formula, falling back to zero on any failure."""
        try:
            return self.evaluate_strict(formula, context)
        except FormulaError as e:
            logger.warning("Formula fell back to 0: %s", e)
            return Decimal("0")
