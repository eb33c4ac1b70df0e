"""Seed script for the default payroll configuration.

Run with:
    python scripts/seed_rate_tables.py
    python scripts/seed_rate_tables.py --effective-start 2025-01-01

This creates the salary components, PIT brackets and insurance rates
needed for payroll calculation.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from salary_engine.calculators.rate_tables import DEFAULT_EFFECTIVE_DATE, default_rate_tables
from salary_engine.calculators.validation import RateTableValidator
from salary_engine.database import create_tables, get_session
from salary_engine.logging_config import configure_logging
from salary_engine.models import TaxBracketRecord
from salary_engine.repository import RateTableRepository

logger = logging.getLogger("seed_rate_tables")


async def seed(session: AsyncSession, effective_start: date) -> None:
    """Store the default snapshot unless brackets already start on that date."""
    result = await session.execute(
        select(TaxBracketRecord).where(TaxBracketRecord.effective_start == effective_start)
    )
    if result.first():
        logger.info("Rate tables effective %s already exist, skipping...", effective_start)
        return

    tables = default_rate_tables()
    for issue in RateTableValidator().raise_for_issues(tables):
        logger.warning("%s", issue)

    await RateTableRepository(session).save(tables, effective_start=effective_start)
    logger.info(
        "Created %d components, %d tax brackets, %d insurance rates",
        len(tables.components), len(tables.tax_brackets), len(tables.insurance_rates),
    )


async def main(effective_start: date) -> None:
    await create_tables()
    async with get_session() as session:
        await seed(session, effective_start)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed default payroll rate tables")
    parser.add_argument(
        "--effective-start",
        type=date.fromisoformat,
        default=DEFAULT_EFFECTIVE_DATE,
        help="First day the brackets apply (YYYY-MM-DD)",
    )
    args = parser.parse_args()

    configure_logging()
    asyncio.run(main(args.effective_start))
