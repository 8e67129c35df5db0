"""
Exam session lifecycle: in_progress -> completed (or abandoned, set externally).

Answers are stored one row per question, so two writers touching different
questions of the same session never overwrite each other. Every mutation first
runs a conditional UPDATE on the session row (``WHERE status = 'in_progress'``).
This serializes writers on that row, and a write that loses a race against
completion fails with InvalidState instead of altering frozen answers.
"""
import logging
import random
from typing import Dict, Optional, Sequence
from sqlalchemy.orm import Session
from sqlalchemy import select, update
from examsim.core.errors import NotFound, InvalidState, ResultsNotReady, ValidationError
from examsim.models.orm import ExamSession, ExamAnswer, SessionStatus, OPTION_LABELS, utcnow
from examsim.models.domain import AnswerData, ExamResults
from examsim.services import catalog, selector, scoring, stats

logger = logging.getLogger(__name__)


def _load(db: Session, session_id: str) -> ExamSession:
    session = db.get(ExamSession, session_id)
    if session is None:
        raise NotFound(f"Exam session {session_id} not found")
    return session


def _require_in_progress(session: ExamSession) -> None:
    if session.status != SessionStatus.IN_PROGRESS:
        logger.warning(f"Rejected mutation of session {session.id} in status {session.status.value}")
        raise InvalidState(f"Exam session {session.id} is {session.status.value} and can no longer be modified")


def _claim(db: Session, session_id: str, **values) -> None:
    """Conditionally update a session that is still in progress, or raise."""
    values.setdefault("updated_at", utcnow())
    stmt = (
        update(ExamSession)
        .where(ExamSession.id == session_id, ExamSession.status == SessionStatus.IN_PROGRESS)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if db.execute(stmt).rowcount == 1:
        return
    db.rollback()
    _require_in_progress(_load(db, session_id))
    raise InvalidState(f"Exam session {session_id} can no longer be modified")


def _check_time(name: str, value: Optional[int]) -> None:
    if value is not None and value < 0:
        raise ValidationError(f"{name} must be a non-negative number of seconds")


def _check_question(session: ExamSession, question_id: str) -> None:
    if question_id not in session.question_ids:
        raise ValidationError(f"Question {question_id} is not part of exam session {session.id}")


def _answer_row(db: Session, session_id: str, question_id: str) -> ExamAnswer:
    row = db.scalar(select(ExamAnswer).where(
        ExamAnswer.session_id == session_id, ExamAnswer.question_id == question_id
    ))
    if row is None:
        row = ExamAnswer(session_id=session_id, question_id=question_id, selected=None,
                         flagged=False, time_spent=0)
        db.add(row)
    return row


def load_answers(db: Session, session_id: str) -> Dict[str, AnswerData]:
    rows = db.scalars(select(ExamAnswer).where(ExamAnswer.session_id == session_id)).all()
    return {r.question_id: AnswerData(selected=r.selected, flagged=r.flagged, time_spent=r.time_spent)
            for r in rows}


def start_exam(db: Session, question_count: int, subtopics: Optional[Sequence[str]] = None,
               difficulties: Optional[Sequence[str]] = None, time_per_question: int = 90,
               rng: Optional[random.Random] = None) -> ExamSession:
    if time_per_question < 1:
        raise ValidationError("time_per_question must be at least 1 second")
    levels = catalog.parse_difficulties(difficulties)
    question_ids = selector.select_questions(db, question_count, subtopics, levels, rng=rng)
    time_limit = question_count * time_per_question
    session = ExamSession(
        question_ids=question_ids,
        total_questions=question_count,
        time_limit=time_limit,
        time_remaining=time_limit,
        status=SessionStatus.IN_PROGRESS,
        subtopic_filter=list(subtopics or []),
        difficulty_filter=[d.value for d in levels],
    )
    db.add(session)
    db.commit()
    db.refresh(session)
    logger.info(f"Started exam session {session.id} with {question_count} questions, time limit {time_limit}s")
    return session


def get_exam_session(db: Session, session_id: str) -> ExamSession:
    return _load(db, session_id)


def submit_answer(db: Session, session_id: str, question_id: str, selected: Optional[str],
                  time_spent: Optional[int] = None) -> ExamSession:
    """Record a selection; last write wins, time_spent is kept unless supplied."""
    if selected is not None and selected not in OPTION_LABELS:
        raise ValidationError(f"Selected option must be one of {', '.join(OPTION_LABELS)}")
    _check_time("time_spent", time_spent)
    session = _load(db, session_id)
    _require_in_progress(session)
    _check_question(session, question_id)
    _claim(db, session_id)
    row = _answer_row(db, session_id, question_id)
    row.selected = selected
    if time_spent is not None:
        row.time_spent = time_spent
    db.commit()
    return _load(db, session_id)


def toggle_flag(db: Session, session_id: str, question_id: str, flagged: bool) -> ExamSession:
    session = _load(db, session_id)
    _require_in_progress(session)
    _check_question(session, question_id)
    _claim(db, session_id)
    row = _answer_row(db, session_id, question_id)
    row.flagged = bool(flagged)
    db.commit()
    return _load(db, session_id)


def update_time_remaining(db: Session, session_id: str, time_remaining: int) -> ExamSession:
    # Client-reported; not checked against time_limit or wall-clock time
    _check_time("time_remaining", time_remaining)
    session = _load(db, session_id)
    _require_in_progress(session)
    _claim(db, session_id, time_remaining=time_remaining)
    db.commit()
    return _load(db, session_id)


def complete_exam(db: Session, session_id: str, time_remaining: Optional[int] = None) -> ExamResults:
    """Score and freeze a session. A second call raises InvalidState."""
    _check_time("time_remaining", time_remaining)
    session = _load(db, session_id)
    _require_in_progress(session)
    remaining = time_remaining if time_remaining is not None else 0
    # Flip status first so concurrent answer writes block or fail before we read answers
    _claim(db, session_id, status=SessionStatus.COMPLETED, completed_at=utcnow(), time_remaining=remaining)
    db.refresh(session)

    answers = load_answers(db, session_id)
    questions = catalog.get_questions(db, session.question_ids)
    results = scoring.score_exam(session.id, session.question_ids, answers, questions,
                                 session.time_limit, session.time_remaining)
    session.score = results.score
    session.percentage = results.percentage
    stats.record_attempts(db, session.question_ids, answers, {q.id: q.correct_answer for q in questions})
    db.commit()
    logger.info(f"Completed exam session {session_id}: {results.score}/{results.total_questions} "
                f"({results.percentage}%)")
    return results


def get_exam_results(db: Session, session_id: str) -> ExamResults:
    """Rebuild the results of a completed session from its frozen answers."""
    session = _load(db, session_id)
    if session.status == SessionStatus.ABANDONED:
        raise ResultsNotReady(f"Exam session {session_id} was abandoned and has no results")
    if session.status != SessionStatus.COMPLETED:
        raise ResultsNotReady(f"Results for exam session {session_id} are not available until it is completed")
    answers = load_answers(db, session_id)
    questions = catalog.get_questions(db, session.question_ids)
    results = scoring.score_exam(session.id, session.question_ids, answers, questions,
                                 session.time_limit, session.time_remaining)
    # Report the values frozen at completion
    results.score = session.score if session.score is not None else results.score
    results.percentage = session.percentage if session.percentage is not None else results.percentage
    return results
