"""SQLAlchemy models for payroll configuration."""

from salary_engine.models.base import Base, EffectiveDatedMixin, TimestampMixin
from salary_engine.models.rate_tables import (
    InsuranceRateRecord,
    SalaryComponentRecord,
    TaxBracketRecord,
)

__all__ = [
    "Base",
    "EffectiveDatedMixin",
    "TimestampMixin",
    "InsuranceRateRecord",
    "SalaryComponentRecord",
    "TaxBracketRecord",
]
