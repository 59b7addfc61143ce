"""
Loads the RVU reference table from a CSV file.

Expected columns: hcpcs, description, status_code, work_rvu. Existing rows are
replaced. Run from the project root:

    python -m rvu_tracker.scripts.data.load_rvu_codes data/rvu_codes.csv
"""
import argparse
import asyncio
import csv
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Iterable, List, Mapping

import structlog
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker

from rvu_tracker.src.core.config.settings import get_settings
from rvu_tracker.src.core.database.models.rvu_code_db import RVUCodeModel
from rvu_tracker.src.core.logging_config import setup_logging

logger = structlog.get_logger(__name__)


def parse_rvu_rows(rows: Iterable[Mapping[str, str]]) -> List[RVUCodeModel]:
    """Builds RVUCodeModel rows, skipping malformed or duplicate entries."""
    records = []
    seen = set()
    for line_number, row in enumerate(rows, start=2): # header is line 1
        try:
            hcpcs = row['hcpcs'].strip().upper()
            work_rvu = Decimal((row.get('work_rvu') or '0').strip() or '0')
        except KeyError as e:
            logger.error(f"Missing expected column in CSV row: {e}", line=line_number)
            continue
        except InvalidOperation:
            logger.error("Invalid work_rvu value, skipping row", line=line_number, value=row.get('work_rvu'))
            continue

        if not hcpcs or work_rvu < 0:
            logger.error("Invalid RVU row, skipping", line=line_number, hcpcs=hcpcs, work_rvu=str(work_rvu))
            continue
        if hcpcs in seen:
            logger.warning("Duplicate HCPCS code in CSV, keeping first occurrence", line=line_number, hcpcs=hcpcs)
            continue
        seen.add(hcpcs)

        records.append(RVUCodeModel(
            hcpcs=hcpcs,
            description=(row.get('description') or '').strip(),
            status_code=(row.get('status_code') or '').strip(),
            work_rvu=work_rvu,
        ))
    return records


async def load_rvu_codes(csv_file_path: Path) -> int:
    if not csv_file_path.is_file():
        logger.error("RVU codes CSV file not found.", path=str(csv_file_path))
        return 0

    logger.info("Starting RVU code loading process...", csv_file=str(csv_file_path))
    with open(csv_file_path, mode='r', encoding='utf-8', newline='') as csvfile:
        records = parse_rvu_rows(csv.DictReader(csvfile))

    if not records:
        logger.warning("No valid RVU records found in CSV to load.")
        return 0

    engine = create_async_engine(get_settings().DATABASE_URL, echo=False)
    session_factory = async_sessionmaker(engine, expire_on_commit=False)

    try:
        async with session_factory() as session:
            async with session.begin():
                await session.execute(delete(RVUCodeModel))
                session.add_all(records)
        logger.info(f"Successfully loaded {len(records)} RVU codes into the database.")
    finally:
        await engine.dispose()
    return len(records)


def main():
    parser = argparse.ArgumentParser(description="Load RVU reference codes from a CSV file.")
    parser.add_argument("csv_file", type=Path)
    args = parser.parse_args()

    setup_logging()
    asyncio.run(load_rvu_codes(args.csv_file))


if __name__ == "__main__":
    main()
