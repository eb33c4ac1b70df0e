"""Payroll calculation engine."""

from salary_engine.calculators.engine import PayrollEngine, PayrollRunResult
from salary_engine.calculators.formula import FormulaError, FormulaEvaluator
from salary_engine.calculators.rate_tables import RateTables, default_rate_tables
from salary_engine.calculators.tax_calculator import TaxCalculator
from salary_engine.calculators.validation import (
    RateTableValidationError,
    RateTableValidator,
    validate_rate_tables,
)

__all__ = [
    "PayrollEngine",
    "PayrollRunResult",
    "FormulaError",
    "FormulaEvaluator",
    "RateTables",
    "default_rate_tables",
    "TaxCalculator",
    "RateTableValidationError",
    "RateTableValidator",
    "validate_rate_tables",
]
