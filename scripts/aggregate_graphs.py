#!/usr/bin/env python3
"""Recompute consensus emotion timelines from the command line.

Runs the same aggregation as ``POST /aggregate`` directly against the
configured store, for one movie or for every movie. Storage settings are
read from the environment (``SUPABASE_URL``, ``SUPABASE_SERVICE_ROLE_KEY``)
exactly as the API reads them.

Usage:
    python scripts/aggregate_graphs.py --movie-id 3f0c6a0e-...
    python scripts/aggregate_graphs.py --workers 4 --pretty

Example output:
    {"successCount": 41, "total": 42, "failures": [{"movieId": "...", "error": "..."}]}

Exit codes:
    0: every requested movie aggregated (or had nothing to aggregate)
    1: at least one movie failed, or the store could not be read
"""

import argparse
import json
import sys
from pathlib import Path

# Add project root to path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from tqdm import tqdm

from src.api.config import get_settings
from src.api.deps import aggregation_config_from_settings
from src.api.logging import setup_logging
from storage import StorageError, create_store
from timeline import BatchFailure, aggregate_all, aggregate_movie


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the script.

    Returns:
        Exit code (0 for success, 1 for any failure).
    """
    parser = argparse.ArgumentParser(
        description="Recompute consensus emotion timelines",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    %(prog)s --movie-id 3f0c6a0e-0b7e-4f4e-9a57-6f1f3c1d2b10
    %(prog)s --workers 4
    %(prog)s --pretty --no-progress
        """,
    )
    parser.add_argument(
        "--movie-id",
        type=str,
        default=None,
        help="Aggregate a single movie (default: every movie)",
    )
    parser.add_argument(
        "--workers", "-w",
        type=int,
        default=None,
        help="Movies aggregated concurrently (default: BATCH_MAX_WORKERS)",
    )
    parser.add_argument(
        "--pretty", "-p",
        action="store_true",
        help="Pretty-print JSON output with indentation",
    )
    parser.add_argument(
        "--no-progress",
        action="store_true",
        help="Disable the progress bar in batch mode",
    )

    args = parser.parse_args(argv)

    settings = get_settings()
    setup_logging(settings.log_level)

    workers = args.workers if args.workers is not None else settings.batch_max_workers
    if workers < 1:
        parser.error("--workers must be >= 1")

    try:
        config = aggregation_config_from_settings(settings)
        store = create_store(settings.supabase_url, settings.supabase_service_role_key)

        if args.movie_id:
            result = aggregate_movie(store, args.movie_id, config)
            if result.is_empty:
                output = {"message": "No graphs to aggregate"}
            else:
                output = {
                    "success": True,
                    "pointsAggregated": result.points_aggregated,
                    "graphsUsed": result.graphs_used,
                }
            exit_code = 0
        else:
            with tqdm(desc="Aggregating", unit="movie", disable=args.no_progress) as progress:

                def advance(movie_id: str, outcome: object) -> None:
                    progress.update(1)
                    if isinstance(outcome, BatchFailure):
                        progress.set_postfix(failed=movie_id)

                batch = aggregate_all(
                    store,
                    config,
                    max_workers=workers,
                    on_progress=advance,
                )
            output = batch.to_dict()
            exit_code = 0 if not batch.failures else 1

    except StorageError as e:
        error_output = {
            "error": e.message,
            "code": e.code,
            "type": type(e).__name__,
        }
        if e.details:
            error_output["details"] = e.details
        print(json.dumps(error_output), file=sys.stderr)
        return 1

    if args.pretty:
        print(json.dumps(output, indent=2, ensure_ascii=False))
    else:
        print(json.dumps(output, ensure_ascii=False))

    return exit_code


if __name__ == "__main__":
    sys.exit(main())
