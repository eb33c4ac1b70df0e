"""Pydantic schemas for rate table payloads and payroll result exports."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from salary_engine.calculators.types import (
    CalculationMethod,
    ComponentType,
    InsuranceRate,
    PayrollResult,
    SalaryComponent,
    TaxBracket,
)

if TYPE_CHECKING:
    from salary_engine.calculators.engine import PayrollRunResult


# ============================================================================
# Rate table payloads
# ============================================================================


class SalaryComponentPayload(BaseModel):
    """Salary component definition as stored in configuration payloads."""

    model_config = ConfigDict(from_attributes=True)

    code: str = Field(min_length=1)
    name: str = ""
    type: ComponentType
    method: CalculationMethod
    formula: str | None = None
    order: int
    is_active: bool = True
    is_system: bool = False
    description: str | None = None
    insurance_type: str | None = None

    def to_component(self) -> SalaryComponent:
        return SalaryComponent(
            code=self.code,
            name=self.name,
            type=self.type,
            method=self.method,
            formula=self.formula or None,
            order=self.order,
            is_active=self.is_active,
            is_system=self.is_system,
            description=self.description,
            insurance_type=self.insurance_type,
        )


class TaxBracketPayload(BaseModel):
    """Tax bracket row (rates are percentages)."""

    model_config = ConfigDict(from_attributes=True)

    min_income: Decimal = Field(ge=0)
    max_income: Decimal | None = None
    tax_rate: Decimal = Field(ge=0, le=100)
    subtract_amount: Decimal = Decimal("0")
    order: int

    def to_bracket(self) -> TaxBracket:
        return TaxBracket(
            min_income=self.min_income,
            max_income=self.max_income,
            tax_rate=self.tax_rate,
            subtract_amount=self.subtract_amount,
            order=self.order,
        )


class InsuranceRatePayload(BaseModel):
    """Insurance contribution rate (rates are percentages)."""

    model_config = ConfigDict(from_attributes=True)

    type: str = Field(min_length=1)
    employee_rate: Decimal = Field(ge=0, le=100)
    employer_rate: Decimal = Field(ge=0, le=100)
    cap_base_salary: Decimal | None = None
    is_active: bool = True
    effective_date: date | None = None

    def to_rate(self) -> InsuranceRate:
        return InsuranceRate(
            type=self.type,
            employee_rate=self.employee_rate,
            employer_rate=self.employer_rate,
            cap_base_salary=self.cap_base_salary,
            is_active=self.is_active,
            effective_date=self.effective_date,
        )


class RateTablesPayload(BaseModel):
    """A complete configuration snapshot."""

    effective_date: date | None = None
    components: list[SalaryComponentPayload] = Field(default_factory=list)
    tax_brackets: list[TaxBracketPayload] = Field(default_factory=list)
    insurance_rates: list[InsuranceRatePayload] = Field(default_factory=list)


# ============================================================================
# Payroll result exports
# ============================================================================


class PayrollBreakdownResponse(BaseModel):
    """Insurance and tax amounts by type."""

    insurance: dict[str, Decimal]
    tax: dict[str, Decimal]


class PayrollResultResponse(BaseModel):
    """Payroll result handed to slip persistence, exports and reports."""

    employee_id: str | None = None
    calculation_id: UUID | None = None
    components: dict[str, Decimal]
    gross_income: Decimal
    taxable_income: Decimal
    tax_amount: Decimal
    net_income: Decimal
    total_insurance: Decimal
    employer_cost: Decimal
    breakdown: PayrollBreakdownResponse
    employer_insurance: dict[str, Decimal]
    warnings: list[str]
    inputs_fingerprint: str
    rules_fingerprint: str

    @classmethod
    def from_result(cls, result: PayrollResult) -> PayrollResultResponse:
        return cls(
            employee_id=result.employee_id,
            calculation_id=result.calculation_id,
            components=dict(result.components),
            gross_income=result.gross_income,
            taxable_income=result.taxable_income,
            tax_amount=result.tax_amount,
            net_income=result.net_income,
            total_insurance=result.total_insurance,
            employer_cost=result.employer_cost,
            breakdown=PayrollBreakdownResponse(
                insurance=dict(result.breakdown.insurance),
                tax=dict(result.breakdown.tax),
            ),
            employer_insurance=dict(result.employer_insurance),
            warnings=list(result.warnings),
            inputs_fingerprint=result.inputs_fingerprint,
            rules_fingerprint=result.rules_fingerprint,
        )


class PayrollRunResponse(BaseModel):
    """Summary of a batch payroll run."""

    results: dict[str, PayrollResultResponse]
    errors: dict[str, str]
    total_gross: Decimal
    total_net: Decimal
    total_tax: Decimal
    warning_count: int
    error_count: int
    rules_fingerprint: str

    @classmethod
    def from_run(cls, run: PayrollRunResult) -> PayrollRunResponse:
        return cls(
            results={
                employee_id: PayrollResultResponse.from_result(result)
                for employee_id, result in run.results.items()
            },
            errors=dict(run.errors),
            total_gross=run.total_gross,
            total_net=run.total_net,
            total_tax=run.total_tax,
            warning_count=run.warning_count,
            error_count=run.error_count,
            rules_fingerprint=run.rules_fingerprint,
        )
