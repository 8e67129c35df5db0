"""
Difficulty-weighted relative scoring and population ranking.

Each question contributes according to its global success rate ``sr``:
a correct answer earns ``1 - sr``, and a wrong or missing answer costs ``sr``.
A session's relative score is the mean contribution, so it does not depend on
how hard the particular exam happened to be. Rank and percentile are taken
against every completed session, which means each request rescores the whole
population.
"""
import logging
from typing import Dict, Mapping, Optional, Sequence
from sqlalchemy.orm import Session
from examsim.core.config import settings
from examsim.models.orm import ExamSession, SessionStatus
from examsim.models.domain import QuestionStats, RankingResult
from examsim.services import catalog, stats as stats_service
from examsim.services.scoring import round_half_up, round_to

logger = logging.getLogger(__name__)


def question_score(selected: Optional[str], correct_answer: Optional[str], success_rate: float) -> float:
    if selected is None:
        return -success_rate
    if selected == correct_answer:
        return 1 - success_rate
    return -success_rate


def relative_score(question_ids: Sequence[str], selections: Mapping[str, Optional[str]],
                   correct_answers: Mapping[str, str],
                   stats: Mapping[str, QuestionStats]) -> Optional[float]:
    """Mean per-question score; questions without a stats entry are skipped."""
    total = 0.0
    scored = 0
    for qid in question_ids:
        entry = stats.get(qid)
        if entry is None:
            continue
        total += question_score(selections.get(qid), correct_answers.get(qid), entry.success_rate)
        scored += 1
    if scored == 0:
        return None
    return total / scored


def all_relative_scores(db: Session, strategy: Optional[str] = None) -> Dict[str, float]:
    """Relative score of every completed session that has one."""
    corpus = stats_service.completed_sessions(db)
    if not corpus:
        return {}
    question_ids = sorted({qid for s in corpus for qid in s.question_ids})
    if (strategy or settings.STATS_STRATEGY) == "scan":
        # Reuse the snapshot instead of reading the corpus a second time
        stats = stats_service.scan_question_stats(db, question_ids, corpus=corpus)
    else:
        stats = stats_service.question_stats(db, question_ids, strategy)
    correct_answers = catalog.get_correct_answers(db, question_ids)
    scores = {}
    for session in corpus:
        value = relative_score(session.question_ids, session.selections, correct_answers, stats)
        if value is not None:
            scores[session.id] = value
    return scores


def calculate_relative_score(db: Session, session_id: str, strategy: Optional[str] = None) -> Optional[float]:
    """Relative score of one completed session, 0.0 when no question contributes."""
    session = db.get(ExamSession, session_id)
    if session is None or session.status != SessionStatus.COMPLETED:
        return None
    question_ids = list(session.question_ids)
    stats = stats_service.question_stats(db, question_ids, strategy)
    correct_answers = catalog.get_correct_answers(db, question_ids)
    selections = {a.question_id: a.selected for a in session.answers}
    value = relative_score(question_ids, selections, correct_answers, stats)
    return 0.0 if value is None else value


def rank_scores(scores: Mapping[str, float], session_id: str) -> Optional[RankingResult]:
    """Competition ranking: tied scores share the rank of the first one in descending order."""
    mine = scores.get(session_id)
    if mine is None:
        return None
    ordered = sorted(scores.values(), reverse=True)
    total = len(ordered)
    # Ties are not counted as beaten
    below = sum(1 for s in ordered if s < mine)
    return RankingResult(
        relative_score=round_to(mine, 3),
        percentile=round_half_up(below / total * 100),
        rank=ordered.index(mine) + 1,
        total_candidates=total,
    )


def get_ranking(db: Session, session_id: str, strategy: Optional[str] = None) -> Optional[RankingResult]:
    """Ranking for a completed session, or None when it is not available."""
    session = db.get(ExamSession, session_id)
    if session is None or session.status != SessionStatus.COMPLETED:
        return None
    scores = all_relative_scores(db, strategy)
    result = rank_scores(scores, session_id)
    if result is None:
        logger.warning(f"Session {session_id} is completed but has no scorable questions")
    return result
