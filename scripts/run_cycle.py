"""Run one auto-match cycle from the command line"""

import argparse
import json
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from loguru import logger
from studymatch.config import settings
from studymatch.errors import CycleAbortedError
from studymatch.logging_setup import configure_logging
from studymatch.pipeline.orchestrator import CycleOrchestrator
from studymatch.storage.memory_store import InMemoryDatabase
from studymatch.storage.supabase_store import build_supabase_stores


def main():
    """Run a cycle against Supabase, or against a members fixture file (dry run)"""
    parser = argparse.ArgumentParser(description="Run one StudyMatch auto-match cycle")
    parser.add_argument("--fixtures", type=Path, help="JSON list of users rows; runs in memory instead of Supabase")
    parser.add_argument("--min-score", type=int, default=None, help="Override MIN_MATCH_SCORE")
    parser.add_argument("--log-level", default=settings.log_level)
    args = parser.parse_args()

    configure_logging(args.log_level)

    if args.min_score is not None:
        settings.min_match_score = args.min_score

    if args.fixtures:
        db = InMemoryDatabase.from_json(args.fixtures)
        stores = db.stores(with_lock=settings.cycle_lock_minutes > 0)
    else:
        stores = build_supabase_stores(with_lock=settings.cycle_lock_minutes > 0)

    orchestrator = CycleOrchestrator.from_settings(stores, settings)

    try:
        summary = orchestrator.run()
    except CycleAbortedError as e:
        logger.error(f"Cycle aborted: {e}")
        print(json.dumps({"success": False, "error": str(e)}, indent=2))
        return 1

    print(json.dumps(summary.model_dump(by_alias=True, exclude_none=True), indent=2))

    if args.fixtures:
        for pairing in db.pairings.values():
            logger.info(f"  {pairing.member_a} <-> {pairing.member_b} (opener sent: {pairing.opening_message_sent})")

    return 0


if __name__ == "__main__":
    sys.exit(main())
