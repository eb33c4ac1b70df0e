"""Rate table linting, run against configuration before any payroll run.

The engine never rejects bad configuration (it degrades to zero), so
problems such as a formula referencing an unknown code are surfaced here.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from salary_engine.calculators.formula import FormulaError, FormulaEvaluator, extract_references
from salary_engine.calculators.rate_tables import RateTables, match_insurance_rate, select_insurance_rates
from salary_engine.calculators.tax_calculator import TaxCalculator
from salary_engine.calculators.types import PIT, CalculationMethod, ComponentType

ERROR = "error"
WARNING = "warning"

# Codes supplied by the HR data layer rather than defined as components
DEFAULT_INPUT_CODES = frozenset({"OT_HOURS", "DEPENDENTS"})


@dataclass(frozen=True)
class ValidationIssue:
    """A single configuration problem."""

    severity: str
    subject: str  # component code, bracket order or insurance type
    message: str

    def __str__(self) -> str:
        return f"[{self.severity}] {self.subject}: {self.message}"


class RateTableValidationError(Exception):
    """Raised when rate tables contain errors."""

    def __init__(self, issues: list[ValidationIssue]):
        self.issues = issues
        errors = [i for i in issues if i.severity == ERROR]
        super().__init__(
            f"Rate tables have {len(errors)} error(s): " + "; ".join(str(i) for i in errors)
        )


class RateTableValidator:
    """Checks components, tax brackets and insurance rates for consistency."""

    def __init__(self, input_codes: Iterable[str] = DEFAULT_INPUT_CODES):
        self.input_codes = frozenset(input_codes)
        self.evaluator = FormulaEvaluator()

    def validate(self, tables: RateTables) -> list[ValidationIssue]:
        issues: list[ValidationIssue] = []
        issues.extend(self._check_components(tables))
        issues.extend(self._check_brackets(tables))
        issues.extend(self._check_insurance_rates(tables))
        return issues

    def raise_for_issues(self, tables: RateTables) -> list[ValidationIssue]:
        """Validate and raise if any error is found; returns the warnings."""
        issues = self.validate(tables)
        if any(i.severity == ERROR for i in issues):
            raise RateTableValidationError(issues)
        return issues

    def _check_components(self, tables: RateTables) -> list[ValidationIssue]:
        issues: list[ValidationIssue] = []

        for code, count in Counter(c.code for c in tables.components).items():
            if count > 1:
                issues.append(ValidationIssue(ERROR, code, f"defined {count} times"))

        active = {c.code: c for c in tables.active_components()}
        inactive = {c.code for c in tables.components if not c.is_active} - set(active)
        rates = select_insurance_rates(tables.insurance_rates, tables.effective_date)

        for comp in active.values():
            if comp.method == CalculationMethod.FORMULA:
                if comp.formula:
                    issues.extend(self._check_formula(comp.code, comp.formula, comp.order,
                                                      active, inactive))
                elif comp.code != PIT:
                    issues.append(ValidationIssue(ERROR, comp.code, "FORMULA component has no formula"))

            elif comp.method == CalculationMethod.PERCENTAGE:
                if comp.type != ComponentType.INSURANCE:
                    issues.append(ValidationIssue(
                        WARNING, comp.code,
                        "PERCENTAGE is only computed for INSURANCE components",
                    ))
                elif match_insurance_rate(comp, rates) is None:
                    issues.append(ValidationIssue(
                        ERROR, comp.code, "no active insurance rate matches this component",
                    ))

        return issues

    def _check_formula(
        self,
        code: str,
        formula: str,
        order: int,
        active: dict,
        inactive: set[str],
    ) -> list[ValidationIssue]:
        issues: list[ValidationIssue] = []
        references = extract_references(formula)

        try:
            self.evaluator.check_syntax(formula)
        except FormulaError as e:
            issues.append(ValidationIssue(ERROR, code, e.reason))

        for ref in references:
            target = active.get(ref)
            if target is not None:
                if target.method != CalculationMethod.FIXED and target.order >= order:
                    issues.append(ValidationIssue(
                        ERROR, code,
                        f"references {ref} which is computed later (order {target.order})",
                    ))
            elif ref in inactive:
                issues.append(ValidationIssue(
                    WARNING, code, f"references inactive component {ref}; it resolves to 0",
                ))
            elif ref not in self.input_codes:
                issues.append(ValidationIssue(
                    WARNING, code, f"references unknown code {ref}; it resolves to 0 unless supplied",
                ))

        return issues

    def _check_brackets(self, tables: RateTables) -> list[ValidationIssue]:
        issues: list[ValidationIssue] = []
        brackets = tables.sorted_brackets()

        if not brackets:
            return [ValidationIssue(ERROR, "tax_brackets", "no tax brackets configured")]

        if brackets[0].min_income != 0:
            issues.append(ValidationIssue(
                ERROR, f"bracket {brackets[0].order}",
                f"first bracket starts at {brackets[0].min_income}, leaving (0, "
                f"{brackets[0].min_income}] untaxed",
            ))

        for prev, nxt in zip(brackets, brackets[1:]):
            if prev.max_income is None:
                issues.append(ValidationIssue(
                    ERROR, f"bracket {prev.order}", "unbounded bracket is not the last one",
                ))
            elif nxt.min_income > prev.max_income:
                issues.append(ValidationIssue(
                    ERROR, f"bracket {nxt.order}",
                    f"gap between {prev.max_income} and {nxt.min_income}",
                ))
            elif nxt.min_income < prev.max_income:
                issues.append(ValidationIssue(
                    ERROR, f"bracket {nxt.order}",
                    f"overlaps previous bracket ending at {prev.max_income}",
                ))

        for bracket in brackets:
            if bracket.max_income is not None and bracket.max_income <= bracket.min_income:
                issues.append(ValidationIssue(
                    ERROR, f"bracket {bracket.order}", "max_income must exceed min_income",
                ))

        if brackets[-1].max_income is not None:
            issues.append(ValidationIssue(
                ERROR, f"bracket {brackets[-1].order}",
                f"top bracket is bounded; income above {brackets[-1].max_income} is untaxed",
            ))

        if not issues:
            issues.extend(self._check_subtract_amounts(brackets))
        return issues

    def _check_subtract_amounts(self, brackets: list) -> list[ValidationIssue]:
        """Each subtract amount must equal flat tax minus marginal tax at the lower bound."""
        issues: list[ValidationIssue] = []
        calculator = TaxCalculator(brackets)

        for bracket in brackets:
            lower = bracket.min_income
            expected = lower * bracket.tax_rate / Decimal("100") - calculator.marginal_tax(lower)
            if FormulaEvaluator.round_to_unit(expected) != FormulaEvaluator.round_to_unit(
                bracket.subtract_amount
            ):
                issues.append(ValidationIssue(
                    ERROR, f"bracket {bracket.order}",
                    f"subtract amount {bracket.subtract_amount} should be {expected}",
                ))

        return issues

    def _check_insurance_rates(self, tables: RateTables) -> list[ValidationIssue]:
        issues: list[ValidationIssue] = []
        keys = Counter(
            (r.type, r.effective_date) for r in tables.insurance_rates if r.is_active
        )
        for (rate_type, effective_date), count in keys.items():
            if count > 1:
                issues.append(ValidationIssue(
                    ERROR, rate_type,
                    f"{count} active rates share effective date {effective_date}",
                ))
        return issues


def validate_rate_tables(
    tables: RateTables,
    input_codes: Iterable[str] = DEFAULT_INPUT_CODES,
) -> list[ValidationIssue]:
    """Return every issue found in the rate tables."""
    return RateTableValidator(input_codes).validate(tables)
