#!/usr/bin/env python3
"""
Script for Comparing Two Contract Versions.

Documents are read as JSON in the Document schema (sections with tokens
and annotations), as produced by an upstream annotation pipeline.

Usage:
    python scripts/compare.py old.json new.json
    python scripts/compare.py old.json new.json --hints hints.json --output result.json
"""

import argparse
import json
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from pydantic import TypeAdapter
from rich.console import Console
from rich.table import Table

from app.config import get_settings
from src.ingestion.schemas import AlignmentHint, Document
from src.pipeline.comparator import ContractComparator
from src.pipeline.schemas import ComparisonResult
from src.utils.errors import ComparisonError
from src.utils.logger import get_logger, setup_logging

console = Console()
logger = get_logger(__name__)

RISK_STYLES = {"critical": "bold red", "high": "red", "medium": "yellow", "low": "green"}


def load_document(path: Path) -> Document:
    return Document.model_validate_json(path.read_text(encoding="utf-8"))


def load_hints(path: Path) -> list[AlignmentHint]:
    return TypeAdapter(list[AlignmentHint]).validate_json(path.read_text(encoding="utf-8"))


def _display_results(result: ComparisonResult) -> None:
    """Display detected changes in a table."""
    table = Table(title=f"Changes {result.left_document} -> {result.right_document}")
    table.add_column("Id", style="cyan")
    table.add_column("Risk")
    table.add_column("Type")
    table.add_column("Status")
    table.add_column("Confidence", justify="right")
    table.add_column("Explanation")

    for change in result.changes:
        risk = change.risk.value
        table.add_row(
            change.change_id,
            f"[{RISK_STYLES[risk]}]{risk}[/]",
            change.change_type.value,
            change.status.value,
            f"{change.confidence:.2f}",
            change.explanation,
        )

    console.print(table)

    summary = result.summary
    console.print(
        f"\n[bold]{summary.total}[/] changes: {summary.definite} definite, {summary.indeterminate} indeterminate"
    )
    for warning in result.warnings:
        console.print(f"[yellow]![/] {warning}")


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Compare two versions of a contract")
    parser.add_argument("left", type=Path, help="Older version (Document JSON)")
    parser.add_argument("right", type=Path, help="Newer version (Document JSON)")
    parser.add_argument("--hints", type=Path, help="JSON list of forced or forbidden section pairs")
    parser.add_argument("--output", "-o", type=Path, help="Write the full result as JSON")
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (defaults to LOG_LEVEL from settings)",
    )

    args = parser.parse_args()
    settings = get_settings()

    # Setup logging
    setup_logging(args.log_level or settings.log_level)

    for path in (args.left, args.right, args.hints):
        if path is not None and not path.exists():
            console.print(f"[red]File not found: {path}[/red]")
            sys.exit(1)

    comparator = ContractComparator.from_settings(settings)
    try:
        result = comparator.compare(
            load_document(args.left),
            load_document(args.right),
            hints=load_hints(args.hints) if args.hints else None,
        )
    except ComparisonError as e:
        console.print(f"\n[bold red]✗[/] Comparison failed: {e}")
        logger.exception("Comparison failed")
        sys.exit(1)

    _display_results(result)

    if args.output:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        args.output.write_text(json.dumps(result.to_dict(), indent=2), encoding="utf-8")
        console.print(f"[dim]Saved result to {args.output}[/dim]")


if __name__ == "__main__":
    main()
