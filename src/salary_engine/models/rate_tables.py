"""Payroll configuration tables: salary components, tax brackets, insurance rates."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import Boolean, CheckConstraint, Date, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from salary_engine.calculators.types import (
    CalculationMethod,
    ComponentType,
    InsuranceRate,
    SalaryComponent,
    TaxBracket,
)
from salary_engine.models.base import Base, EffectiveDatedMixin, TimestampMixin

MONEY = Numeric(18, 2)
PERCENT = Numeric(7, 4)


class SalaryComponentRecord(Base, TimestampMixin):
    """Configured salary component."""

    __tablename__ = "salary_component"

    salary_component_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    code: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String, nullable=False, default="")
    component_type: Mapped[str] = mapped_column(String(32), nullable=False)
    method: Mapped[str] = mapped_column(String(32), nullable=False)
    formula: Mapped[str | None] = mapped_column(Text, nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_system: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    insurance_type: Mapped[str | None] = mapped_column(String(32), nullable=True)

    def to_component(self) -> SalaryComponent:
        return SalaryComponent(
            code=self.code,
            name=self.name,
            type=ComponentType(self.component_type),
            method=CalculationMethod(self.method),
            formula=self.formula or None,
            order=self.sort_order,
            is_active=self.is_active,
            is_system=self.is_system,
            description=self.description,
            insurance_type=self.insurance_type,
        )

    @classmethod
    def from_component(cls, comp: SalaryComponent) -> SalaryComponentRecord:
        record = cls(code=comp.code)
        record.apply(comp)
        return record

    def apply(self, comp: SalaryComponent) -> None:
        """Copy a component definition onto this record."""
        self.name = comp.name
        self.component_type = comp.type.value
        self.method = comp.method.value
        self.formula = comp.formula
        self.sort_order = comp.order
        self.is_active = comp.is_active
        self.is_system = comp.is_system
        self.description = comp.description
        self.insurance_type = comp.insurance_type


class TaxBracketRecord(Base, TimestampMixin, EffectiveDatedMixin):
    """Progressive tax bracket with effective dating."""

    __tablename__ = "tax_bracket"

    tax_bracket_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    min_income: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    max_income: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    tax_rate: Mapped[Decimal] = mapped_column(PERCENT, nullable=False)
    subtract_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "effective_end IS NULL OR effective_end >= effective_start",
            name="tax_bracket_dates_check",
        ),
    )

    def to_bracket(self) -> TaxBracket:
        return TaxBracket(
            min_income=Decimal(self.min_income),
            max_income=Decimal(self.max_income) if self.max_income is not None else None,
            tax_rate=Decimal(self.tax_rate),
            subtract_amount=Decimal(self.subtract_amount),
            order=self.sort_order,
        )


class InsuranceRateRecord(Base, TimestampMixin):
    """Insurance contribution rate for one category."""

    __tablename__ = "insurance_rate"

    insurance_rate_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    rate_type: Mapped[str] = mapped_column(String(32), nullable=False)
    employee_rate: Mapped[Decimal] = mapped_column(PERCENT, nullable=False)
    employer_rate: Mapped[Decimal] = mapped_column(PERCENT, nullable=False)
    cap_base_salary: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    effective_date: Mapped[date] = mapped_column(Date, nullable=False)

    def to_rate(self) -> InsuranceRate:
        return InsuranceRate(
            type=self.rate_type,
            employee_rate=Decimal(self.employee_rate),
            employer_rate=Decimal(self.employer_rate),
            cap_base_salary=(
                Decimal(self.cap_base_salary) if self.cap_base_salary is not None else None
            ),
            is_active=self.is_active,
            effective_date=self.effective_date,
        )
