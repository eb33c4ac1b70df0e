"""Type definitions for the payroll calculation pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Union
from uuid import UUID

# Seed values supplied per employee per pay period, keyed by component code.
Number = Union[int, float, str, Decimal]
PayrollInput = Mapping[str, Number]


class ComponentType(str, Enum):
    """Salary component classification. Does not drive computation."""

    INCOME = "INCOME"
    DEDUCTION = "DEDUCTION"
    INSURANCE = "INSURANCE"
    TAX = "TAX"
    NET_INCOME = "NET_INCOME"
    EMPLOYER_COST = "EMPLOYER_COST"


class CalculationMethod(str, Enum):
    """How a component's value is derived."""

    FIXED = "FIXED"
    FORMULA = "FORMULA"
    PERCENTAGE = "PERCENTAGE"


# Component codes the engine reads or special-cases.
BASE_SALARY = "BASE_SALARY"
GROSS_INCOME = "GROSS_INCOME"
TAXABLE_INCOME = "TAXABLE_INCOME"
PIT = "PIT"
NET_INCOME = "NET_INCOME"


def to_decimal(value: Number | None) -> Decimal:
    """Convert a seed value to Decimal (None becomes zero)."""
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


@dataclass(frozen=True)
class SalaryComponent:
    """A named payroll line item."""

    code: str
    type: ComponentType
    method: CalculationMethod
    order: int
    name: str = ""
    formula: str | None = None
    is_active: bool = True
    is_system: bool = False
    description: str | None = None
    # Explicit link to an InsuranceRate.type; falls back to code prefix when unset
    insurance_type: str | None = None

    def to_canonical_dict(self) -> dict[str, Any]:
        """Return canonical dict for hashing (deterministic ordering)."""
        return {
            "code": self.code,
            "type": self.type.value,
            "method": self.method.value,
            "order": self.order,
            "formula": self.formula,
            "is_active": self.is_active,
            "insurance_type": self.insurance_type,
        }


@dataclass(frozen=True)
class TaxBracket:
    """One row of the progressive personal income tax table.

    Income falls in the bracket when ``min_income < income <= max_income``.
    The rate applies to the whole taxable income; ``subtract_amount`` turns
    that flat product into the true marginal-sum tax.
    """

    min_income: Decimal
    max_income: Decimal | None  # None = no upper limit
    tax_rate: Decimal  # Percentage, e.g. 10 for 10%
    subtract_amount: Decimal = Decimal("0")
    order: int = 0

    def contains(self, income: Decimal) -> bool:
        if income <= self.min_income:
            return False
        return self.max_income is None or income <= self.max_income

    def to_canonical_dict(self) -> dict[str, Any]:
        return {
            "min_income": str(self.min_income),
            "max_income": str(self.max_income) if self.max_income is not None else None,
            "tax_rate": str(self.tax_rate),
            "subtract_amount": str(self.subtract_amount),
            "order": self.order,
        }


@dataclass(frozen=True)
class InsuranceRate:
    """Contribution rates for one insurance category (BHXH, BHYT, ...)."""

    type: str
    employee_rate: Decimal  # Percentage
    employer_rate: Decimal  # Percentage
    cap_base_salary: Decimal | None = None
    is_active: bool = True
    effective_date: date | None = None

    def contribution_base(self, base_salary: Decimal) -> Decimal:
        """Salary the percentages apply to, capped at the regulatory ceiling."""
        if self.cap_base_salary is not None:
            return min(base_salary, self.cap_base_salary)
        return base_salary

    def to_canonical_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "employee_rate": str(self.employee_rate),
            "employer_rate": str(self.employer_rate),
            "cap_base_salary": (
                str(self.cap_base_salary) if self.cap_base_salary is not None else None
            ),
            "is_active": self.is_active,
            "effective_date": self.effective_date.isoformat() if self.effective_date else None,
        }


@dataclass(frozen=True)
class PayrollBreakdown:
    """Per-type deduction amounts."""

    insurance: Mapping[str, Decimal] = field(default_factory=dict)  # rate type -> amount
    tax: Mapping[str, Decimal] = field(default_factory=dict)  # tax code -> amount

    def __post_init__(self) -> None:
        object.__setattr__(self, "insurance", MappingProxyType(dict(self.insurance)))
        object.__setattr__(self, "tax", MappingProxyType(dict(self.tax)))


@dataclass(frozen=True)
class PayrollResult:
    """Result of calculating pay for one employee."""

    components: Mapping[str, Decimal]
    gross_income: Decimal
    taxable_income: Decimal
    tax_amount: Decimal
    net_income: Decimal
    breakdown: PayrollBreakdown
    employer_insurance: Mapping[str, Decimal] = field(default_factory=dict)
    employee_id: str | None = None
    warnings: tuple[str, ...] = ()

    # Traceability
    calculation_id: UUID | None = None
    inputs_fingerprint: str = ""
    rules_fingerprint: str = ""

    def __post_init__(self) -> None:
        # Read-only views over private copies
        object.__setattr__(self, "components", MappingProxyType(dict(self.components)))
        object.__setattr__(
            self, "employer_insurance", MappingProxyType(dict(self.employer_insurance))
        )

    @property
    def total_insurance(self) -> Decimal:
        return sum(self.breakdown.insurance.values(), Decimal("0"))

    @property
    def employer_cost(self) -> Decimal:
        """Gross income plus employer-side contributions."""
        return self.gross_income + sum(self.employer_insurance.values(), Decimal("0"))

    @property
    def has_warnings(self) -> bool:
        return len(self.warnings) > 0
