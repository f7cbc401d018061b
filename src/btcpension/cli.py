"""Command-line demo: run named scenarios and print their final snapshots."""

import argparse
import logging
import sys
from typing import List, Optional

from .analysis.scenarios import SCENARIO_LIBRARY, ScenarioRunner, format_comparison_table
from .config.loader import load_config
from .reporting.export import export_csv

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="btcpension-workbench",
        description="Project a BTC pension plan (DCA + collateralised yield + referrals)."
    )
    parser.add_argument(
        "scenarios",
        nargs="*",
        default=["conservative", "probable", "optimistic"],
        help=f"Scenario names ({', '.join(sorted(SCENARIO_LIBRARY))})",
    )
    parser.add_argument("--config", help="YAML config (defaults to the packaged defaults.yaml)")
    parser.add_argument("--csv", help="Write the base case snapshot series to this CSV file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
    )

    unknown = [name for name in args.scenarios if name not in SCENARIO_LIBRARY]
    if unknown:
        logger.error("Unknown scenario(s): %s", ", ".join(unknown))
        return 2

    config = load_config(args.config)
    logger.info("Loaded config %s", config.compute_hash())

    runner = ScenarioRunner(config)
    comparison = runner.compare_scenarios(args.scenarios, include_base=True)
    print(format_comparison_table(comparison))

    for name, result in comparison.results.items():
        for warning in result.warnings:
            log = logger.error if warning.severity == "error" else logger.warning
            log("[%s] %s: %s", name, warning.category, warning.message)

    if args.csv:
        export_csv(comparison.results["base"].points, args.csv)
        logger.info("Wrote %s", args.csv)

    return 0


if __name__ == "__main__":
    sys.exit(main())
