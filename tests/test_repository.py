"""Tests for loading rate tables from the database."""

from dataclasses import replace
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from salary_engine.calculators.engine import PayrollEngine
from salary_engine.calculators.rate_tables import RateTables, default_tax_brackets
from salary_engine.calculators.types import InsuranceRate
from salary_engine.calculators.validation import validate_rate_tables
from salary_engine.models import SalaryComponentRecord, TaxBracketRecord
from salary_engine.repository import RateTableRepository, RateTablesNotFoundError


class TestRateTableRepository:
    """Round trips through the configuration tables."""

    @pytest.mark.asyncio
    async def test_load_saved_snapshot(self, session, rate_tables):
        repo = RateTableRepository(session)
        await repo.save(rate_tables, effective_start=date(2024, 1, 1))

        loaded = await repo.load(date(2024, 6, 15))

        assert [c.code for c in loaded.active_components()] == [
            c.code for c in rate_tables.active_components()
        ]
        assert len(loaded.tax_brackets) == 7
        assert {r.type for r in loaded.insurance_rates} == {"BHXH", "BHYT", "BHTN", "UNION"}
        assert loaded.effective_date == date(2024, 6, 15)

    @pytest.mark.asyncio
    async def test_loaded_tables_calculate_like_defaults(self, session, rate_tables, settings):
        repo = RateTableRepository(session)
        await repo.save(rate_tables, effective_start=date(2024, 1, 1))
        loaded = await repo.load(date(2024, 6, 15))

        inputs = {"BASE_SALARY": 20000000, "DEPENDENTS": 1}
        expected = PayrollEngine(rate_tables, settings=settings).calculate(inputs)
        actual = PayrollEngine(loaded, settings=settings).calculate(inputs)

        assert actual.net_income == expected.net_income
        assert actual.tax_amount == expected.tax_amount
        assert actual.breakdown.insurance == expected.breakdown.insurance

    @pytest.mark.asyncio
    async def test_inactive_component_input_is_ignored(self, session, rate_tables, settings):
        """A stale value supplied for a deactivated component resolves to 0."""
        repo = RateTableRepository(session)
        await repo.save(rate_tables, effective_start=date(2024, 1, 1))

        result = await session.execute(
            select(SalaryComponentRecord).where(SalaryComponentRecord.code == "LUNCH")
        )
        result.scalar_one().is_active = False
        await session.flush()

        loaded = await repo.load(date(2024, 6, 15))
        payroll = PayrollEngine(loaded, settings=settings).calculate(
            {"BASE_SALARY": 20000000, "LUNCH": 730000}
        )

        assert "LUNCH" not in [c.code for c in loaded.active_components()]
        assert payroll.gross_income == Decimal("20000000")
        assert "LUNCH" not in payroll.components

    @pytest.mark.asyncio
    async def test_inactive_reference_reported_as_inactive(self, session, rate_tables):
        repo = RateTableRepository(session)
        await repo.save(rate_tables, effective_start=date(2024, 1, 1))

        result = await session.execute(
            select(SalaryComponentRecord).where(SalaryComponentRecord.code == "LUNCH")
        )
        result.scalar_one().is_active = False
        await session.flush()

        issues = validate_rate_tables(await repo.load(date(2024, 6, 15)))

        messages = [i.message for i in issues]
        assert "references inactive component LUNCH; it resolves to 0" in messages
        assert not any("unknown code LUNCH" in m for m in messages)

    @pytest.mark.asyncio
    async def test_new_version_closes_previous_brackets(self, session, rate_tables):
        repo = RateTableRepository(session)
        await repo.save(rate_tables, effective_start=date(2024, 1, 1))

        update = RateTables(
            tax_brackets=tuple(default_tax_brackets()),
            insurance_rates=(
                InsuranceRate("BHXH", Decimal("10.5"), Decimal("21.5"), Decimal("46800000"),
                              effective_date=date(2025, 7, 1)),
            ),
        )
        await repo.save(update, effective_start=date(2025, 7, 1))

        before = await repo.load(date(2025, 6, 30))
        after = await repo.load(date(2025, 7, 1))

        assert len(before.tax_brackets) == 7
        assert len(after.tax_brackets) == 7
        bhxh_before = next(r for r in before.insurance_rates if r.type == "BHXH")
        bhxh_after = next(r for r in after.insurance_rates if r.type == "BHXH")
        assert bhxh_before.employee_rate == Decimal("8")
        assert bhxh_after.employee_rate == Decimal("10.5")
        assert bhxh_after.cap_base_salary == Decimal("46800000")

        result = await session.execute(
            select(TaxBracketRecord).where(TaxBracketRecord.effective_end.is_not(None))
        )
        closed = result.scalars().all()
        assert {r.effective_end for r in closed} == {date(2025, 6, 30)}
        assert all(r.is_active_on(date(2025, 6, 30)) for r in closed)
        assert not any(r.is_active_on(date(2025, 7, 1)) for r in closed)

    @pytest.mark.asyncio
    async def test_save_updates_existing_components(self, session, rate_tables):
        repo = RateTableRepository(session)
        await repo.save(rate_tables, effective_start=date(2024, 1, 1))

        lunch = next(c for c in rate_tables.components if c.code == "LUNCH")
        renamed = RateTables(components=(replace(lunch, name="Meal allowance"),))
        await repo.save(renamed, effective_start=date(2024, 1, 1))

        result = await session.execute(
            select(SalaryComponentRecord).where(SalaryComponentRecord.code == "LUNCH")
        )
        assert result.scalar_one().name == "Meal allowance"

    @pytest.mark.asyncio
    async def test_nothing_configured(self, session):
        repo = RateTableRepository(session)

        with pytest.raises(RateTablesNotFoundError) as exc_info:
            await repo.load(date(2024, 6, 15))

        assert exc_info.value.missing == "salary components"

    @pytest.mark.asyncio
    async def test_no_brackets_before_first_version(self, session, rate_tables):
        repo = RateTableRepository(session)
        await repo.save(rate_tables, effective_start=date(2024, 1, 1))

        with pytest.raises(RateTablesNotFoundError) as exc_info:
            await repo.load(date(2023, 12, 31))

        assert exc_info.value.missing == "tax brackets"
