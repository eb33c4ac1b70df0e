"""Loads the rate table snapshot in effect on a calculation date."""

from __future__ import annotations

import logging
from datetime import date, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from salary_engine.calculators.rate_tables import RateTables, select_insurance_rates
from salary_engine.models import InsuranceRateRecord, SalaryComponentRecord, TaxBracketRecord

logger = logging.getLogger(__name__)


class RateTablesNotFoundError(Exception):
    """Raised when no configuration is in effect on a date."""

    def __init__(self, as_of_date: date, missing: str):
        self.as_of_date = as_of_date
        self.missing = missing
        super().__init__(f"No {missing} configured effective {as_of_date}")


class RateTableRepository:
    """Reads and writes payroll configuration through SQLAlchemy.

    ``load`` returns every component in evaluation order (inactive ones too,
    so the engine can zero their codes), the tax brackets whose effective
    range includes the date, and one active insurance rate per type (latest
    effective date not after the calculation date).
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def load(self, as_of_date: date) -> RateTables:
        """Load the snapshot effective on a date.

        Raises:
            RateTablesNotFoundError: If no components or tax brackets apply
        """
        components = await self._get_components()
        if not any(r.is_active for r in components):
            raise RateTablesNotFoundError(as_of_date, "salary components")

        brackets = await self._get_brackets(as_of_date)
        if not brackets:
            raise RateTablesNotFoundError(as_of_date, "tax brackets")

        rates = await self._get_insurance_rates(as_of_date)

        logger.debug(
            "Loaded rate tables for %s: %d components, %d brackets, %d insurance rates",
            as_of_date, len(components), len(brackets), len(rates),
        )

        return RateTables(
            components=tuple(r.to_component() for r in components),
            tax_brackets=tuple(r.to_bracket() for r in brackets),
            insurance_rates=tuple(select_insurance_rates((r.to_rate() for r in rates), as_of_date)),
            effective_date=as_of_date,
        )

    async def save(self, tables: RateTables, effective_start: date) -> None:
        """Store a snapshot.

        Components are upserted by code. Brackets and insurance rates are
        added as a new version starting at ``effective_start``; brackets of
        the previous open-ended version are closed the day before.
        """
        existing = {r.code: r for r in await self._get_components()}
        for comp in tables.components:
            record = existing.get(comp.code)
            if record is None:
                self.session.add(SalaryComponentRecord.from_component(comp))
            else:
                record.apply(comp)

        if tables.tax_brackets:
            await self._close_open_brackets(effective_start)
            for bracket in tables.tax_brackets:
                self.session.add(
                    TaxBracketRecord(
                        min_income=bracket.min_income,
                        max_income=bracket.max_income,
                        tax_rate=bracket.tax_rate,
                        subtract_amount=bracket.subtract_amount,
                        sort_order=bracket.order,
                        effective_start=effective_start,
                    )
                )

        for rate in tables.insurance_rates:
            self.session.add(
                InsuranceRateRecord(
                    rate_type=rate.type,
                    employee_rate=rate.employee_rate,
                    employer_rate=rate.employer_rate,
                    cap_base_salary=rate.cap_base_salary,
                    is_active=rate.is_active,
                    effective_date=rate.effective_date or effective_start,
                )
            )

        await self.session.flush()

    async def _get_components(self) -> list[SalaryComponentRecord]:
        result = await self.session.execute(
            select(SalaryComponentRecord).order_by(
                SalaryComponentRecord.sort_order, SalaryComponentRecord.code
            )
        )
        return list(result.scalars().all())

    async def _get_brackets(self, as_of_date: date) -> list[TaxBracketRecord]:
        result = await self.session.execute(
            select(TaxBracketRecord)
            .where(
                TaxBracketRecord.effective_start <= as_of_date,
                (
                    TaxBracketRecord.effective_end.is_(None)
                    | (TaxBracketRecord.effective_end >= as_of_date)
                ),
            )
            .order_by(TaxBracketRecord.sort_order)
        )
        return list(result.scalars().all())

    async def _get_insurance_rates(self, as_of_date: date) -> list[InsuranceRateRecord]:
        result = await self.session.execute(
            select(InsuranceRateRecord).where(
                InsuranceRateRecord.is_active.is_(True),
                InsuranceRateRecord.effective_date <= as_of_date,
            )
        )
        return list(result.scalars().all())

    async def _close_open_brackets(self, effective_start: date) -> None:
        result = await self.session.execute(
            select(TaxBracketRecord).where(
                TaxBracketRecord.effective_end.is_(None),
                TaxBracketRecord.effective_start < effective_start,
            )
        )
        for record in result.scalars().all():
            record.effective_end = effective_start - timedelta(days=1)
