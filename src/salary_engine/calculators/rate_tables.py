"""Versioned payroll configuration: components, tax brackets, insurance rates."""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal
from typing import Any, Iterable

from salary_engine.calculators.types import (
    CalculationMethod,
    ComponentType,
    InsuranceRate,
    Number,
    SalaryComponent,
    TaxBracket,
    to_decimal,
)
from salary_engine.config import get_settings


def select_insurance_rates(
    rates: Iterable[InsuranceRate],
    as_of: date | None = None,
) -> list[InsuranceRate]:
    """Pick one active rate per insurance type effective on a date.

    For each type the active rate with the latest ``effective_date`` not
    after ``as_of`` wins. Rates without an effective date are always in
    effect but lose to any dated rate. Types keep their first-seen order.
    """
    selected: dict[str, InsuranceRate] = {}

    for rate in rates:
        if not rate.is_active:
            continue
        if as_of is not None and rate.effective_date is not None and rate.effective_date > as_of:
            continue

        current = selected.get(rate.type)
        if current is None or (rate.effective_date or date.min) > (current.effective_date or date.min):
            selected[rate.type] = rate

    return list(selected.values())


def match_insurance_rate(
    comp: SalaryComponent,
    rates: Iterable[InsuranceRate],
) -> InsuranceRate | None:
    """Match an insurance component to its rate.

    An explicit ``insurance_type`` must match a rate type exactly.
    Otherwise the longest rate type that prefixes the component code wins,
    so ``BHXH2_EMP`` prefers a ``BHXH2`` rate over ``BHXH``.
    """
    if comp.insurance_type:
        return next((r for r in rates if r.type == comp.insurance_type), None)

    candidates = [r for r in rates if comp.code.startswith(r.type)]
    if not candidates:
        return None
    return max(candidates, key=lambda r: len(r.type))


@dataclass(frozen=True)
class RateTables:
    """One configuration snapshot consumed by the payroll engine."""

    components: tuple[SalaryComponent, ...] = ()
    tax_brackets: tuple[TaxBracket, ...] = ()
    insurance_rates: tuple[InsuranceRate, ...] = ()
    effective_date: date | None = None
    _fingerprint: str = field(default="", init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        # Accept any iterable but store tuples so the snapshot is immutable
        object.__setattr__(self, "components", tuple(self.components))
        object.__setattr__(self, "tax_brackets", tuple(self.tax_brackets))
        object.__setattr__(self, "insurance_rates", tuple(self.insurance_rates))

    def active_components(self) -> list[SalaryComponent]:
        """Active components in evaluation order."""
        return sorted((c for c in self.components if c.is_active), key=lambda c: c.order)

    def sorted_brackets(self) -> list[TaxBracket]:
        return sorted(self.tax_brackets, key=lambda b: b.order)

    def for_date(self, as_of: date) -> RateTables:
        """Narrow insurance rates to the single active snapshot for a date."""
        return replace(
            self,
            insurance_rates=tuple(select_insurance_rates(self.insurance_rates, as_of)),
            effective_date=as_of,
        )

    def fingerprint(self) -> str:
        """Deterministic hash of the configuration."""
        if not self._fingerprint:
            data = {
                "components": sorted(
                    (c.to_canonical_dict() for c in self.components),
                    key=lambda d: (d["order"], d["code"]),
                ),
                "tax_brackets": [b.to_canonical_dict() for b in self.sorted_brackets()],
                "insurance_rates": sorted(
                    (r.to_canonical_dict() for r in self.insurance_rates),
                    key=lambda d: (d["type"], d["effective_date"] or ""),
                ),
            }
            json_str = json.dumps(data, sort_keys=True)
            object.__setattr__(
                self, "_fingerprint", hashlib.sha256(json_str.encode()).hexdigest()[:32]
            )
        return self._fingerprint

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> RateTables:
        """Build a snapshot from a JSON-shaped configuration payload."""
        from salary_engine.schemas import RateTablesPayload

        parsed = RateTablesPayload.model_validate(payload)
        return cls(
            components=tuple(c.to_component() for c in parsed.components),
            tax_brackets=tuple(b.to_bracket() for b in parsed.tax_brackets),
            insurance_rates=tuple(r.to_rate() for r in parsed.insurance_rates),
            effective_date=parsed.effective_date,
        )

    def to_payload(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible payload."""
        from salary_engine.schemas import (
            InsuranceRatePayload,
            RateTablesPayload,
            SalaryComponentPayload,
            TaxBracketPayload,
        )

        payload = RateTablesPayload(
            effective_date=self.effective_date,
            components=[SalaryComponentPayload.model_validate(c) for c in self.components],
            tax_brackets=[TaxBracketPayload.model_validate(b) for b in self.tax_brackets],
            insurance_rates=[
                InsuranceRatePayload.model_validate(r) for r in self.insurance_rates
            ],
        )
        return payload.model_dump(mode="json")


# === Default Vietnamese configuration ===

DEFAULT_EFFECTIVE_DATE = date(2024, 1, 1)


def default_components(
    personal_deduction: Number,
    dependent_deduction: Number,
) -> list[SalaryComponent]:
    """Standard component chain: earnings, gross, insurance, taxable, PIT, net."""
    income, insurance = ComponentType.INCOME, ComponentType.INSURANCE
    fixed, formula, percentage = (
        CalculationMethod.FIXED,
        CalculationMethod.FORMULA,
        CalculationMethod.PERCENTAGE,
    )
    return [
        SalaryComponent("BASE_SALARY", income, fixed, 1, name="Base salary", is_system=True,
                        description="Salary agreed in the labour contract"),
        SalaryComponent("LUNCH", income, fixed, 2, name="Lunch allowance"),
        SalaryComponent("TRANSPORT", income, fixed, 3, name="Transport allowance"),
        SalaryComponent(
            "OT_PAY", income, formula, 4,
            name="Overtime pay",
            formula="([BASE_SALARY] / 26 / 8) * [OT_HOURS] * 1.5",
            is_system=True,
        ),
        SalaryComponent(
            "GROSS_INCOME", income, formula, 10,
            name="Gross income",
            formula="[BASE_SALARY] + [LUNCH] + [TRANSPORT] + [OT_PAY]",
            is_system=True,
        ),
        SalaryComponent("BHXH_EMP", insurance, percentage, 11, name="Social insurance (employee)",
                        is_system=True, insurance_type="BHXH"),
        SalaryComponent("BHYT_EMP", insurance, percentage, 12, name="Health insurance (employee)",
                        is_system=True, insurance_type="BHYT"),
        SalaryComponent("BHTN_EMP", insurance, percentage, 13,
                        name="Unemployment insurance (employee)",
                        is_system=True, insurance_type="BHTN"),
        SalaryComponent(
            "TAXABLE_INCOME", ComponentType.TAX, formula, 20,
            name="Taxable income",
            formula=(
                "[GROSS_INCOME] - [LUNCH] - [BHXH_EMP] - [BHYT_EMP] - [BHTN_EMP]"
                f" - {to_decimal(personal_deduction):f}"
                f" - ([DEPENDENTS] * {to_decimal(dependent_deduction):f})"
            ),
            is_system=True,
        ),
        # No formula: the engine computes PIT from TAXABLE_INCOME
        SalaryComponent("PIT", ComponentType.TAX, formula, 21, name="Personal income tax",
                        is_system=True),
        SalaryComponent(
            "NET_INCOME", ComponentType.NET_INCOME, formula, 99,
            name="Net income",
            formula="[GROSS_INCOME] - [BHXH_EMP] - [BHYT_EMP] - [BHTN_EMP] - [PIT]",
            is_system=True,
        ),
    ]


def default_tax_brackets() -> list[TaxBracket]:
    """Seven-step monthly PIT schedule with fast-calculation amounts."""
    rows = [
        (0, 5_000_000, 5, 0),
        (5_000_000, 10_000_000, 10, 250_000),
        (10_000_000, 18_000_000, 15, 750_000),
        (18_000_000, 32_000_000, 20, 1_650_000),
        (32_000_000, 52_000_000, 25, 3_250_000),
        (52_000_000, 80_000_000, 30, 5_850_000),
        (80_000_000, None, 35, 9_850_000),
    ]
    return [
        TaxBracket(
            min_income=Decimal(lo),
            max_income=Decimal(hi) if hi is not None else None,
            tax_rate=Decimal(rate),
            subtract_amount=Decimal(sub),
            order=i,
        )
        for i, (lo, hi, rate, sub) in enumerate(rows, start=1)
    ]


def default_insurance_rates() -> list[InsuranceRate]:
    """2024 statutory insurance contribution rates."""
    return [
        InsuranceRate("BHXH", Decimal("8"), Decimal("17.5"), Decimal("36000000"),
                      effective_date=DEFAULT_EFFECTIVE_DATE),
        InsuranceRate("BHYT", Decimal("1.5"), Decimal("3"), Decimal("36000000"),
                      effective_date=DEFAULT_EFFECTIVE_DATE),
        InsuranceRate("BHTN", Decimal("1"), Decimal("1"), Decimal("93600000"),
                      effective_date=DEFAULT_EFFECTIVE_DATE),
        # Trade union fee is employer-only
        InsuranceRate("UNION", Decimal("0"), Decimal("2"),
                      effective_date=DEFAULT_EFFECTIVE_DATE),
    ]


def default_rate_tables(
    as_of: date | None = None,
    personal_deduction: Number | None = None,
    dependent_deduction: Number | None = None,
) -> RateTables:
    """Default configuration, with deductions taken from settings when omitted."""
    if personal_deduction is None:
        personal_deduction = get_settings().personal_deduction
    if dependent_deduction is None:
        dependent_deduction = get_settings().dependent_deduction

    tables = RateTables(
        components=tuple(default_components(personal_deduction, dependent_deduction)),
        tax_brackets=tuple(default_tax_brackets()),
        insurance_rates=tuple(default_insurance_rates()),
        effective_date=DEFAULT_EFFECTIVE_DATE,
    )
    return tables.for_date(as_of) if as_of is not None else tables
