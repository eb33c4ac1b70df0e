"""Payroll calculation engine - main orchestrator."""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Mapping
from uuid import UUID

from salary_engine.calculators.formula import FormulaError, FormulaEvaluator
from salary_engine.calculators.rate_tables import (
    RateTables,
    match_insurance_rate,
    select_insurance_rates,
)
from salary_engine.calculators.tax_calculator import TaxCalculator
from salary_engine.calculators.types import (
    BASE_SALARY,
    GROSS_INCOME,
    NET_INCOME,
    PIT,
    TAXABLE_INCOME,
    CalculationMethod,
    ComponentType,
    InsuranceRate,
    PayrollBreakdown,
    PayrollInput,
    PayrollResult,
    SalaryComponent,
    to_decimal,
)
from salary_engine.config import Settings, get_settings

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


@dataclass
class PayrollRunResult:
    """Result of calculating a batch of employees for one pay period."""

    results: dict[str, PayrollResult]  # employee_id -> result
    errors: dict[str, str] = field(default_factory=dict)  # employee_id -> message
    total_gross: Decimal = ZERO
    total_net: Decimal = ZERO
    total_tax: Decimal = ZERO
    warning_count: int = 0
    rules_fingerprint: str = ""

    @property
    def error_count(self) -> int:
        return len(self.errors)


class PayrollEngine:
    """Evaluates the salary component chain for one employee at a time.

    Components are processed in ascending ``order``:

    - FIXED: seeded by the caller, defaults to 0
    - PIT (no formula): progressive tax on TAXABLE_INCOME floored at 0
    - FORMULA: evaluated against the values computed so far
    - PERCENTAGE insurance: employee share of the capped base salary

    A component that cannot be computed degrades to 0 and the calculation
    carries on; ``calculate`` always returns a complete result.
    """

    def __init__(
        self,
        rate_tables: RateTables,
        settings: Settings | None = None,
    ):
        self.rate_tables = rate_tables
        self.settings = settings or get_settings()
        self.evaluator = FormulaEvaluator()
        self.tax_calculator = TaxCalculator(rate_tables.tax_brackets)
        self.insurance_rates = select_insurance_rates(
            rate_tables.insurance_rates, rate_tables.effective_date
        )
        self._components = rate_tables.active_components()
        self._inactive_codes = {
            c.code for c in rate_tables.components if not c.is_active
        } - {c.code for c in self._components}
        self._rules_fingerprint = rate_tables.fingerprint()

    def calculate(
        self,
        inputs: PayrollInput,
        employee_id: str | None = None,
    ) -> PayrollResult:
        """Calculate payroll for a single employee."""
        warnings: list[str] = []
        results = self._seed_context(inputs, warnings)
        inputs_fingerprint = self._compute_inputs_fingerprint(results)

        insurance_breakdown: dict[str, Decimal] = {}
        employer_insurance: dict[str, Decimal] = {}

        for comp in self._components:
            if comp.method == CalculationMethod.FIXED:
                if comp.code not in results:
                    results[comp.code] = ZERO

            elif comp.code == PIT and not comp.formula:
                results[comp.code] = self._calculate_tax(results, warnings)

            elif comp.method == CalculationMethod.FORMULA and comp.formula:
                try:
                    results[comp.code] = self.evaluator.evaluate_strict(comp.formula, results)
                except FormulaError as e:
                    self._warn(warnings, comp.code, e.reason)
                    results[comp.code] = ZERO

            elif (
                comp.method == CalculationMethod.PERCENTAGE
                and comp.type == ComponentType.INSURANCE
            ):
                rate = self.find_insurance_rate(comp)
                if rate is None:
                    self._warn(warnings, comp.code, "no active insurance rate matches")
                    results[comp.code] = ZERO
                    continue

                base = rate.contribution_base(results.get(BASE_SALARY, ZERO))
                amount = FormulaEvaluator.round_to_unit(base * rate.employee_rate / Decimal("100"))
                results[comp.code] = amount
                insurance_breakdown[rate.type] = amount
                employer_insurance[rate.type] = FormulaEvaluator.round_to_unit(
                    base * rate.employer_rate / Decimal("100")
                )

        tax_amount = results.get(PIT, ZERO)
        rules_fingerprint = self._rules_fingerprint

        return PayrollResult(
            components=results,
            gross_income=results.get(GROSS_INCOME, ZERO),
            taxable_income=results.get(TAXABLE_INCOME, ZERO),
            tax_amount=tax_amount,
            net_income=results.get(NET_INCOME, ZERO),
            breakdown=PayrollBreakdown(
                insurance=insurance_breakdown,
                tax={PIT: tax_amount},
            ),
            employer_insurance=employer_insurance,
            employee_id=employee_id,
            warnings=tuple(warnings),
            calculation_id=self._generate_calculation_id(
                employee_id, inputs_fingerprint, rules_fingerprint
            ),
            inputs_fingerprint=inputs_fingerprint,
            rules_fingerprint=rules_fingerprint,
        )

    def calculate_batch(
        self,
        inputs_by_employee: Mapping[str, PayrollInput],
    ) -> PayrollRunResult:
        """Calculate every employee of a pay period; one failure never stops the run."""
        run = PayrollRunResult(results={}, rules_fingerprint=self._rules_fingerprint)

        for employee_id, inputs in inputs_by_employee.items():
            try:
                result = self.calculate(inputs, employee_id=employee_id)
            except Exception as e:
                logger.exception("Unexpected error calculating payroll for %s", employee_id)
                run.errors[employee_id] = f"Unexpected error: {e}"
                continue

            run.results[employee_id] = result
            run.total_gross += result.gross_income
            run.total_net += result.net_income
            run.total_tax += result.tax_amount
            if result.has_warnings:
                run.warning_count += 1

        return run

    def find_insurance_rate(self, comp: SalaryComponent) -> InsuranceRate | None:
        return match_insurance_rate(comp, self.insurance_rates)

    def _seed_context(self, inputs: PayrollInput, warnings: list[str]) -> dict[str, Decimal]:
        """Copy caller inputs into a fresh working context."""
        results: dict[str, Decimal] = {}
        for code, value in inputs.items():
            if code in self._inactive_codes:
                continue
            try:
                amount = to_decimal(value)
            except (InvalidOperation, TypeError, ValueError):
                self._warn(warnings, code, f"input value {value!r} is not a number")
                continue
            if not amount.is_finite():
                self._warn(warnings, code, f"input value {value!r} is not finite")
                continue
            results[code] = amount
        return results

    def _calculate_tax(self, results: dict[str, Decimal], warnings: list[str]) -> Decimal:
        taxable_income = max(ZERO, results.get(TAXABLE_INCOME, ZERO))
        if taxable_income > 0 and self.tax_calculator.find_bracket(taxable_income) is None:
            self._warn(warnings, PIT, f"no tax bracket matches taxable income {taxable_income}")
            return ZERO
        return self.tax_calculator.calculate_pit(taxable_income)

    @staticmethod
    def _warn(warnings: list[str], code: str, reason: str) -> None:
        message = f"{code}: {reason}; value set to 0"
        logger.warning("Payroll component fell back: %s", message)
        warnings.append(message)

    def _compute_inputs_fingerprint(self, inputs: Mapping[str, Decimal]) -> str:
        """Compute fingerprint of the seed values used in calculation."""
        data = {code: str(value) for code, value in inputs.items()}
        json_str = json.dumps(data, sort_keys=True)
        return hashlib.sha256(json_str.encode()).hexdigest()[:32]

    def _generate_calculation_id(
        self,
        employee_id: str | None,
        inputs_fingerprint: str,
        rules_fingerprint: str,
    ) -> UUID:
        """Generate deterministic calculation ID."""
        data = {
            "employee_id": employee_id,
            "engine_version": self.settings.engine_version,
            "inputs_fingerprint": inputs_fingerprint,
            "rules_fingerprint": rules_fingerprint,
        }
        json_str = json.dumps(data, sort_keys=True)
        hash_bytes = hashlib.sha256(json_str.encode()).digest()
        return UUID(bytes=hash_bytes[:16])
