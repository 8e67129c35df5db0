from typing import Dict, Iterable, List, Optional, Sequence
from sqlalchemy.orm import Session
from sqlalchemy import select, func
from examsim.core.errors import ValidationError
from examsim.models.orm import Question, DifficultyLevel
from examsim.models.domain import SubtopicCount

def parse_difficulties(difficulties: Optional[Sequence[str]]) -> List[DifficultyLevel]:
    try:
        return [DifficultyLevel(getattr(d, "value", d)) for d in difficulties or ()]
    except ValueError as e:
        raise ValidationError(f"Unknown difficulty: {e}") from e

def _apply_filters(stmt, subtopics: Optional[Sequence[str]], difficulties: Optional[Sequence[str]]):
    # An empty filter list means "no constraint", same as None
    if subtopics:
        stmt = stmt.where(Question.subtopic.in_(list(subtopics)))
    if difficulties:
        stmt = stmt.where(Question.difficulty.in_(parse_difficulties(difficulties)))
    return stmt

def count_questions(db: Session, subtopics: Optional[Sequence[str]] = None,
                    difficulties: Optional[Sequence[str]] = None) -> int:
    stmt = _apply_filters(select(func.count()).select_from(Question), subtopics, difficulties)
    return int(db.scalar(stmt) or 0)

def find_question_ids(db: Session, subtopics: Optional[Sequence[str]] = None,
                      difficulties: Optional[Sequence[str]] = None) -> List[str]:
    stmt = _apply_filters(select(Question.id), subtopics, difficulties).order_by(Question.id)
    return list(db.scalars(stmt).all())

def get_questions(db: Session, question_ids: Sequence[str]) -> List[Question]:
    """Fetch questions preserving the caller's order; unknown ids are dropped."""
    if not question_ids:
        return []
    rows = db.scalars(select(Question).where(Question.id.in_(list(set(question_ids))))).all()
    by_id = {q.id: q for q in rows}
    return [by_id[qid] for qid in question_ids if qid in by_id]

def get_correct_answers(db: Session, question_ids: Iterable[str]) -> Dict[str, str]:
    ids = list(set(question_ids))
    if not ids:
        return {}
    rows = db.execute(select(Question.id, Question.correct_answer).where(Question.id.in_(ids))).all()
    return {r[0]: r[1] for r in rows}

def list_subtopics(db: Session) -> List[SubtopicCount]:
    rows = db.execute(
        select(Question.subtopic, func.count(Question.id)).group_by(Question.subtopic).order_by(Question.subtopic)
    ).all()
    return [SubtopicCount(name=r[0], question_count=int(r[1])) for r in rows]
