"""
Rebuild the materialized question counters from a full scan of completed sessions.

Runs as an rq job (enqueued from the admin API) or from the command line:

    examsim-rebuild-stats --dsn postgresql+psycopg2://... [--dry_run]
"""
import argparse
import logging
from rq import get_current_job
from sqlalchemy.orm import sessionmaker
from examsim.core.database import SessionLocal, build_engine
from examsim.services.stats import rebuild_question_counters

logger = logging.getLogger(__name__)

def _set_meta(job, **meta) -> None:
    if job is None:
        return
    job.meta.update(meta)
    job.save_meta()

def rebuild_counters_job(dry_run: bool = False) -> dict:
    job = get_current_job()
    _set_meta(job, state="running")
    db = SessionLocal()
    try:
        result = rebuild_question_counters(db, dry_run=dry_run)
    except Exception:
        db.rollback()
        _set_meta(job, state="failed")
        logger.error("Question counter rebuild failed", exc_info=True)
        raise
    finally:
        db.close()
    attempts = sum(s.total_attempts for s in result.values())
    summary = {"updated": 0 if dry_run else len(result), "questions": len(result),
               "attempts": attempts, "dry_run": dry_run}
    _set_meta(job, state="done", **summary)
    return summary

def main():
    ap = argparse.ArgumentParser(description="Rebuild question success-rate counters")
    ap.add_argument("--dsn", default=None, help="database URL (defaults to DATABASE_URL)")
    ap.add_argument("--dry_run", action="store_true")
    args = ap.parse_args()
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    factory = sessionmaker(bind=build_engine(args.dsn), future=True) if args.dsn else SessionLocal
    db = factory()
    try:
        result = rebuild_question_counters(db, dry_run=args.dry_run)
    finally:
        db.close()
    print("questions=", len(result))
    if args.dry_run:
        for s in sorted(result.values(), key=lambda s: s.question_id):
            print(f"{s.question_id}\t{s.total_attempts}\t{s.correct_count}\t{s.success_rate:.3f}")

if __name__ == "__main__":
    main()
