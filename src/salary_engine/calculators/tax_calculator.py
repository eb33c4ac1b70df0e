"""Progressive personal income tax using the fast-subtraction method."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Iterable

from salary_engine.calculators.formula import FormulaEvaluator
from salary_engine.calculators.types import Number, TaxBracket, to_decimal

logger = logging.getLogger(__name__)


class TaxCalculator:
    """Calculates personal income tax (PIT) from a bracket table.

    For taxable income ``x`` falling in a bracket (``min < x <= max``):

        tax = round(x * rate / 100 - subtract_amount)

    which equals the slice-by-slice progressive tax when every bracket's
    subtract amount is consistent with the brackets below it.
    """

    def __init__(self, brackets: Iterable[TaxBracket]):
        self.brackets = sorted(brackets, key=lambda b: b.order)

    def find_bracket(self, taxable_income: Number) -> TaxBracket | None:
        """Return the first bracket (by order) containing the income."""
        income = to_decimal(taxable_income)
        for bracket in self.brackets:
            if bracket.contains(income):
                return bracket
        return None

    def calculate_pit(self, taxable_income: Number) -> Decimal:
        """Calculate payable tax; zero for non-positive income or no bracket."""
        income = to_decimal(taxable_income)
        if income <= 0:
            return Decimal("0")

        bracket = self.find_bracket(income)
        if bracket is None:
            logger.warning("No tax bracket matches taxable income %s; tax set to 0", income)
            return Decimal("0")

        tax = income * bracket.tax_rate / Decimal("100") - bracket.subtract_amount
        return FormulaEvaluator.round_to_unit(tax)

    def marginal_tax(self, taxable_income: Number) -> Decimal:
        """Calculate tax by summing each bracket's slice (unrounded)."""
        income = to_decimal(taxable_income)
        if income <= 0:
            return Decimal("0")

        total_tax = Decimal("0")
        for bracket in sorted(self.brackets, key=lambda b: b.min_income):
            if income <= bracket.min_income:
                break
            upper = income if bracket.max_income is None else min(income, bracket.max_income)
            total_tax += (upper - bracket.min_income) * bracket.tax_rate / Decimal("100")

        return total_tax
