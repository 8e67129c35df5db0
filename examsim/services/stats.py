"""
Question statistics over the corpus of completed sessions.

Two strategies produce the same numbers:

* ``scan`` walks every completed session on each call. It is the reference
  definition and costs O(sessions x questions-per-session) per query.
* ``counters`` reads ``question_counters``, which ``record_attempts`` bumps
  inside the transaction that completes a session, so it never lags the scan.

``rebuild_question_counters`` recomputes the table from a scan (backfills, or
after sessions or the catalog were edited out-of-band). It holds the counter
table lock from before its scan until it commits, so a completion cannot land
between the two and be lost.

Every requested id gets an entry, including ids since removed from the
catalog: their attempts still count, and they can never be answered correctly.
"""
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Sequence
from sqlalchemy.orm import Session
from sqlalchemy import select, update, delete, text
from sqlalchemy.exc import IntegrityError
from examsim.core.config import settings
from examsim.models.orm import ExamSession, ExamAnswer, QuestionCounter, SessionStatus, utcnow
from examsim.models.domain import AnswerData, QuestionStats
from examsim.services import catalog

logger = logging.getLogger(__name__)

# Neutral prior for questions nobody has attempted yet
DEFAULT_SUCCESS_RATE = 0.5


@dataclass
class CompletedSession:
    id: str
    question_ids: List[str]
    selections: Dict[str, str]  # question id -> non-null stored selection


def success_rate(total_attempts: int, correct_count: int) -> float:
    return correct_count / total_attempts if total_attempts > 0 else DEFAULT_SUCCESS_RATE


def _stats(question_id: str, total_attempts: int, correct_count: int) -> QuestionStats:
    return QuestionStats(
        question_id=question_id,
        total_attempts=total_attempts,
        correct_count=correct_count,
        success_rate=success_rate(total_attempts, correct_count),
    )


def completed_sessions(db: Session) -> List[CompletedSession]:
    """Snapshot of every completed session with its answered selections."""
    sessions = db.execute(
        select(ExamSession.id, ExamSession.question_ids)
        .where(ExamSession.status == SessionStatus.COMPLETED)
        .order_by(ExamSession.id)
    ).all()
    selections: Dict[str, Dict[str, str]] = {}
    rows = db.execute(
        select(ExamAnswer.session_id, ExamAnswer.question_id, ExamAnswer.selected)
        .join(ExamSession, ExamSession.id == ExamAnswer.session_id)
        .where(ExamSession.status == SessionStatus.COMPLETED, ExamAnswer.selected.is_not(None))
    ).all()
    for session_id, question_id, selected in rows:
        selections.setdefault(session_id, {})[question_id] = selected
    return [CompletedSession(id=s[0], question_ids=list(s[1] or []), selections=selections.get(s[0], {}))
            for s in sessions]


def _scan_tallies(corpus: Iterable[CompletedSession], wanted: Optional[set],
                  correct_answers: Mapping[str, str]) -> Dict[str, List[int]]:
    tallies: Dict[str, List[int]] = {}
    for session in corpus:
        for qid in session.question_ids:
            if wanted is not None and qid not in wanted:
                continue
            selected = session.selections.get(qid)
            if selected is None:
                # Included but unanswered: not an attempt
                continue
            tally = tallies.setdefault(qid, [0, 0])
            tally[0] += 1
            if selected == correct_answers.get(qid):
                tally[1] += 1
    return tallies


def _requested(question_ids: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(question_ids))


def scan_question_stats(db: Session, question_ids: Sequence[str],
                        corpus: Optional[List[CompletedSession]] = None) -> Dict[str, QuestionStats]:
    ids = _requested(question_ids)
    correct_answers = catalog.get_correct_answers(db, ids)
    if corpus is None:
        corpus = completed_sessions(db)
    tallies = _scan_tallies(corpus, set(ids), correct_answers)
    return {qid: _stats(qid, *tallies.get(qid, (0, 0))) for qid in ids}


def counter_question_stats(db: Session, question_ids: Sequence[str]) -> Dict[str, QuestionStats]:
    ids = _requested(question_ids)
    if not ids:
        return {}
    rows = db.scalars(select(QuestionCounter).where(QuestionCounter.question_id.in_(ids))).all()
    counters = {r.question_id: r for r in rows}
    out = {}
    for qid in ids:
        c = counters.get(qid)
        out[qid] = _stats(qid, c.total_attempts, c.correct_count) if c else _stats(qid, 0, 0)
    return out


def question_stats(db: Session, question_ids: Sequence[str],
                   strategy: Optional[str] = None) -> Dict[str, QuestionStats]:
    """Stats keyed by question id, one entry per requested id."""
    strategy = strategy or settings.STATS_STRATEGY
    if strategy == "scan":
        return scan_question_stats(db, question_ids)
    return counter_question_stats(db, question_ids)


def get_question_stats(db: Session, question_id: str, strategy: Optional[str] = None) -> QuestionStats:
    return question_stats(db, [question_id], strategy)[question_id]


def _clear_counters(db: Session) -> None:
    """Empty the counter table, blocking counter writers until the caller's transaction ends."""
    if db.get_bind().dialect.name == "postgresql":
        # Conflicts with the ROW EXCLUSIVE lock every _bump needs
        db.execute(text(f"LOCK TABLE {QuestionCounter.__tablename__} IN EXCLUSIVE MODE"))
    # On SQLite this write takes the single database write lock
    db.execute(delete(QuestionCounter))


def _bump(db: Session, question_id: str, correct: bool) -> None:
    values = {
        "total_attempts": QuestionCounter.total_attempts + 1,
        "correct_count": QuestionCounter.correct_count + (1 if correct else 0),
        "updated_at": utcnow(),
    }
    stmt = update(QuestionCounter).where(QuestionCounter.question_id == question_id).values(**values)
    if db.execute(stmt.execution_options(synchronize_session=False)).rowcount:
        return
    try:
        with db.begin_nested():
            db.add(QuestionCounter(question_id=question_id, total_attempts=1,
                                   correct_count=1 if correct else 0))
    except IntegrityError:
        # Another completion inserted the row first
        db.execute(stmt.execution_options(synchronize_session=False))


def record_attempts(db: Session, question_ids: Sequence[str], answers: Mapping[str, AnswerData],
                    correct_answers: Mapping[str, str]) -> int:
    """Bump counters for one completed session; the caller owns the transaction."""
    bumped = 0
    for qid in question_ids:
        answer = answers.get(qid)
        if answer is None or answer.selected is None:
            continue
        _bump(db, qid, answer.selected == correct_answers.get(qid))
        bumped += 1
    return bumped


def rebuild_question_counters(db: Session, dry_run: bool = False) -> Dict[str, QuestionStats]:
    """Recompute every counter from a full scan and replace the table."""
    if not dry_run:
        # Before the scan, so no completion commits between the scan and the refill
        _clear_counters(db)
    corpus = completed_sessions(db)
    seen = {qid for s in corpus for qid in s.question_ids}
    correct_answers = catalog.get_correct_answers(db, seen)
    tallies = _scan_tallies(corpus, None, correct_answers)
    result = {qid: _stats(qid, a, c) for qid, (a, c) in tallies.items()}
    if dry_run:
        return result
    for qid, (attempts, correct) in tallies.items():
        db.add(QuestionCounter(question_id=qid, total_attempts=attempts, correct_count=correct))
    db.commit()
    logger.info(f"Rebuilt {len(tallies)} question counters from {len(corpus)} completed sessions")
    return result
