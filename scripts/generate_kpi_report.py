"""
Script to generate a KPI report for one organization and print it as JSON.

Usage:
    python scripts/generate_kpi_report.py <org_id> [--period weekly] [--date 2026-01-15]
                                          [--view full|summary|performance] [--output report.json]
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from worktrack.domain.errors import WorkTrackError
from worktrack.domain.periods import Period
from worktrack.infra.db import init_db
from worktrack.infra.logging_config import setup_logging
from worktrack.services.kpi_service import KPIService


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Generate a KPI report")
    parser.add_argument("org_id", help="Organization id")
    parser.add_argument("--period", default=Period.WEEKLY.value, choices=[p.value for p in Period])
    parser.add_argument("--date", default=None, help="Reference date (ISO format), default today")
    parser.add_argument("--view", default="full", choices=["full", "summary", "performance"])
    parser.add_argument("--output", default=None, help="Write the JSON to this file instead of stdout")
    return parser.parse_args(argv)


async def main(argv=None) -> int:
    args = parse_args(argv)
    setup_logging(console=False)

    db = await init_db()
    service = KPIService(db)
    try:
        if args.view == "summary":
            result = await service.generate_summary(args.org_id, args.period, args.date)
        elif args.view == "performance":
            result = await service.generate_performance(args.org_id, args.period, args.date)
        else:
            result = await service.generate_report(args.org_id, args.period, args.date)
    except WorkTrackError as e:
        print(f"Error generating report: {e}")
        return 1
    finally:
        await db.dispose()

    content = result.model_dump_json(indent=2)
    if args.output:
        output_file = Path(args.output)
        output_file.parent.mkdir(parents=True, exist_ok=True)
        output_file.write_text(content, encoding="utf-8")
        print(f"Report successfully saved to: {output_file.absolute()}")
    else:
        print(content)
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
