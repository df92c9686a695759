"""
Seed Script: Statutory Tax Tables
=================================
Loads PAYE brackets, rebates, medical tax credits and UIF/SDL rates from
app/data/tax_tables.json (or the file given as the first argument).

Tax years already in the database are left untouched, so the script can be
run again after a new tax year is added to the file.

Usage:
    python scripts/seed_tax_tables.py [path/to/tax_tables.json]
"""

import asyncio

# Add project root to path
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.database import async_session_maker, init_db
from app.services.tax_table_service import TaxTableService, resolve_tables_path


async def main():
    """Create tables if needed and seed every tax year in the file."""
    path = sys.argv[1] if len(sys.argv) > 1 else None

    print("=" * 60)
    print("Seeding Tax Tables")
    print("=" * 60)
    print(f"Source: {resolve_tables_path(path)}")
    print()

    await init_db()

    async with async_session_maker() as db:
        service = TaxTableService(db)
        tax_years = await service.seed_from_file(path)

    for tax_year in tax_years:
        print(f"  {tax_year}")

    print()
    print("=" * 60)
    print(f"Tax tables ready for {len(tax_years)} tax years")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
