#!/usr/bin/env python
"""Check the stored payroll configuration for a calculation date.

Usage:
    python scripts/validate_rate_tables.py
    python scripts/validate_rate_tables.py --as-of 2025-06-30 --input-code BONUS

Exits with status 1 when any error-level issue is found.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import date

from salary_engine.calculators.validation import DEFAULT_INPUT_CODES, ERROR, RateTableValidator
from salary_engine.database import get_session
from salary_engine.logging_config import configure_logging
from salary_engine.repository import RateTableRepository, RateTablesNotFoundError


async def run(as_of: date, input_codes: set[str]) -> int:
    async with get_session() as session:
        try:
            tables = await RateTableRepository(session).load(as_of)
        except RateTablesNotFoundError as e:
            print(f"ERROR: {e}")
            return 1

    issues = RateTableValidator(input_codes).validate(tables)
    for issue in issues:
        print(issue)

    errors = [i for i in issues if i.severity == ERROR]
    print(f"{len(issues)} issue(s), {len(errors)} error(s) in rate tables for {as_of}")
    return 1 if errors else 0


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--as-of", type=date.fromisoformat, default=date.today())
    parser.add_argument(
        "--input-code",
        action="append",
        default=[],
        help="Extra code supplied as employee input (repeatable)",
    )
    args = parser.parse_args()

    configure_logging()
    sys.exit(asyncio.run(run(args.as_of, set(DEFAULT_INPUT_CODES) | set(args.input_code))))


if __name__ == "__main__":
    main()
