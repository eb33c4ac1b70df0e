"""Tests for rate table validation."""

from dataclasses import replace
from decimal import Decimal

import pytest

from salary_engine.calculators.rate_tables import RateTables
from salary_engine.calculators.types import (
    CalculationMethod,
    ComponentType,
    InsuranceRate,
    SalaryComponent,
    TaxBracket,
)
from salary_engine.calculators.validation import (
    ERROR,
    WARNING,
    RateTableValidationError,
    RateTableValidator,
    validate_rate_tables,
)


def _with_component(tables: RateTables, comp: SalaryComponent) -> RateTables:
    return replace(tables, components=tables.components + (comp,))


def _messages(issues, severity):
    return [f"{i.subject}: {i.message}" for i in issues if i.severity == severity]


class TestComponentChecks:
    """Formula and insurance component problems."""

    def test_default_tables_are_clean(self, rate_tables):
        assert validate_rate_tables(rate_tables) == []

    def test_unsafe_formula(self, rate_tables):
        comp = SalaryComponent("BONUS_PAY", ComponentType.INCOME, CalculationMethod.FORMULA, 5,
                               formula="[BASE_SALARY] + garbage(")
        issues = validate_rate_tables(_with_component(rate_tables, comp))

        errors = _messages(issues, ERROR)
        assert len(errors) == 1
        assert errors[0].startswith("BONUS_PAY:")

    def test_syntax_error(self, rate_tables):
        comp = SalaryComponent("BONUS_PAY", ComponentType.INCOME, CalculationMethod.FORMULA, 5,
                               formula="([BASE_SALARY] * 2")
        issues = validate_rate_tables(_with_component(rate_tables, comp))

        assert any("parenthesis" in m for m in _messages(issues, ERROR))

    def test_division_by_referenced_value_is_not_flagged(self, rate_tables):
        comp = SalaryComponent("DAILY", ComponentType.INCOME, CalculationMethod.FORMULA, 5,
                               formula="[BASE_SALARY] / [OT_HOURS]")
        assert validate_rate_tables(_with_component(rate_tables, comp)) == []

    def test_denominator_of_referenced_difference_is_not_flagged(self, rate_tables):
        """Placeholder values would make this divide by zero; only syntax is checked."""
        comp = SalaryComponent("DAILY", ComponentType.INCOME, CalculationMethod.FORMULA, 5,
                               formula="[BASE_SALARY] / ([WORK_DAYS] - [OT_HOURS])")
        tables = _with_component(rate_tables, comp)

        issues = validate_rate_tables(tables, input_codes={"OT_HOURS", "DEPENDENTS", "WORK_DAYS"})

        assert issues == []

    def test_reference_computed_later(self, rate_tables):
        comp = SalaryComponent("EARLY", ComponentType.INCOME, CalculationMethod.FORMULA, 5,
                               formula="[GROSS_INCOME] * 2")
        issues = validate_rate_tables(_with_component(rate_tables, comp))

        errors = _messages(issues, ERROR)
        assert errors == ["EARLY: references GROSS_INCOME which is computed later (order 10)"]

    def test_later_fixed_component_is_allowed(self, rate_tables):
        """Fixed values are seeded before evaluation starts."""
        comp = SalaryComponent("EARLY", ComponentType.INCOME, CalculationMethod.FORMULA, 1,
                               formula="[TRANSPORT] * 2")
        assert validate_rate_tables(_with_component(rate_tables, comp)) == []

    def test_unknown_reference_is_warning(self, rate_tables):
        comp = SalaryComponent("BONUS_PAY", ComponentType.INCOME, CalculationMethod.FORMULA, 5,
                               formula="[KPI_SCORE] * 100000")
        issues = validate_rate_tables(_with_component(rate_tables, comp))

        assert _messages(issues, ERROR) == []
        assert any("KPI_SCORE" in m for m in _messages(issues, WARNING))

    def test_declared_input_code_is_not_unknown(self, rate_tables):
        comp = SalaryComponent("BONUS_PAY", ComponentType.INCOME, CalculationMethod.FORMULA, 5,
                               formula="[KPI_SCORE] * 100000")
        tables = _with_component(rate_tables, comp)

        issues = validate_rate_tables(tables, input_codes={"OT_HOURS", "DEPENDENTS", "KPI_SCORE"})

        assert issues == []

    def test_inactive_reference_is_warning(self, rate_tables):
        components = tuple(
            replace(c, is_active=False) if c.code == "TRANSPORT" else c
            for c in rate_tables.components
        )
        issues = validate_rate_tables(replace(rate_tables, components=components))

        warnings = _messages(issues, WARNING)
        assert warnings == ["GROSS_INCOME: references inactive component TRANSPORT; it resolves to 0"]

    def test_formula_component_without_formula(self, rate_tables):
        comp = SalaryComponent("BONUS_PAY", ComponentType.INCOME, CalculationMethod.FORMULA, 5)
        issues = validate_rate_tables(_with_component(rate_tables, comp))

        assert _messages(issues, ERROR) == ["BONUS_PAY: FORMULA component has no formula"]

    def test_duplicate_code(self, rate_tables):
        comp = SalaryComponent("LUNCH", ComponentType.INCOME, CalculationMethod.FIXED, 6)
        issues = validate_rate_tables(_with_component(rate_tables, comp))

        assert "LUNCH: defined 2 times" in _messages(issues, ERROR)

    def test_insurance_component_without_rate(self, rate_tables):
        comp = SalaryComponent("PENSION_EMP", ComponentType.INSURANCE,
                               CalculationMethod.PERCENTAGE, 14)
        issues = validate_rate_tables(_with_component(rate_tables, comp))

        assert _messages(issues, ERROR) == [
            "PENSION_EMP: no active insurance rate matches this component"
        ]

    def test_percentage_on_non_insurance(self, rate_tables):
        comp = SalaryComponent("COMMISSION", ComponentType.INCOME,
                               CalculationMethod.PERCENTAGE, 5)
        issues = validate_rate_tables(_with_component(rate_tables, comp))

        assert len(_messages(issues, WARNING)) == 1


class TestBracketChecks:
    """Bracket tables must partition (0, infinity) with consistent subtract amounts."""

    def _brackets(self, *rows):
        return tuple(
            TaxBracket(
                Decimal(lo),
                Decimal(hi) if hi is not None else None,
                Decimal(rate),
                Decimal(sub),
                order,
            )
            for order, (lo, hi, rate, sub) in enumerate(rows, start=1)
        )

    def test_gap(self, rate_tables):
        tables = replace(
            rate_tables,
            tax_brackets=self._brackets((0, 5000000, 5, 0), (6000000, None, 10, 250000)),
        )
        errors = _messages(validate_rate_tables(tables), ERROR)

        assert errors == ["bracket 2: gap between 5000000 and 6000000"]

    def test_overlap(self, rate_tables):
        tables = replace(
            rate_tables,
            tax_brackets=self._brackets((0, 5000000, 5, 0), (4000000, None, 10, 250000)),
        )
        errors = _messages(validate_rate_tables(tables), ERROR)

        assert any("overlaps" in m for m in errors)

    def test_bounded_top_bracket(self, rate_tables):
        tables = replace(rate_tables, tax_brackets=self._brackets((0, 5000000, 5, 0)))
        errors = _messages(validate_rate_tables(tables), ERROR)

        assert any("top bracket is bounded" in m for m in errors)

    def test_first_bracket_not_at_zero(self, rate_tables):
        tables = replace(rate_tables, tax_brackets=self._brackets((1000000, None, 5, 0)))
        errors = _messages(validate_rate_tables(tables), ERROR)

        assert any("untaxed" in m for m in errors)

    def test_inconsistent_subtract_amount(self, rate_tables):
        tables = replace(
            rate_tables,
            tax_brackets=self._brackets((0, 5000000, 5, 0), (5000000, None, 10, 200000)),
        )
        errors = _messages(validate_rate_tables(tables), ERROR)

        assert len(errors) == 1
        assert errors[0].startswith("bracket 2: subtract amount 200000 should be")

    def test_no_brackets(self, rate_tables):
        tables = replace(rate_tables, tax_brackets=())
        errors = _messages(validate_rate_tables(tables), ERROR)

        assert errors == ["tax_brackets: no tax brackets configured"]


class TestInsuranceRateChecks:
    def test_duplicate_active_rates(self, rate_tables):
        duplicate = replace(rate_tables.insurance_rates[0], employee_rate=Decimal("9"))
        tables = replace(rate_tables, insurance_rates=rate_tables.insurance_rates + (duplicate,))

        errors = _messages(validate_rate_tables(tables), ERROR)

        assert errors == ["BHXH: 2 active rates share effective date 2024-01-01"]

    def test_inactive_duplicate_is_fine(self, rate_tables):
        duplicate = replace(rate_tables.insurance_rates[0], is_active=False)
        tables = replace(rate_tables, insurance_rates=rate_tables.insurance_rates + (duplicate,))

        assert validate_rate_tables(tables) == []


class TestRaiseForIssues:
    def test_raises_on_errors(self, rate_tables):
        tables = replace(rate_tables, tax_brackets=())

        with pytest.raises(RateTableValidationError) as exc_info:
            RateTableValidator().raise_for_issues(tables)

        assert len(exc_info.value.issues) == 1
        assert "1 error(s)" in str(exc_info.value)

    def test_returns_warnings(self, rate_tables):
        comp = SalaryComponent("BONUS_PAY", ComponentType.INCOME, CalculationMethod.FORMULA, 5,
                               formula="[KPI_SCORE] * 100000")

        warnings = RateTableValidator().raise_for_issues(_with_component(rate_tables, comp))

        assert [w.severity for w in warnings] == [WARNING]
