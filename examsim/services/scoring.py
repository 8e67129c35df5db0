"""
Per-session scoring.

``score_exam`` is a pure function of the session snapshot and the question
records. It runs once at completion, to freeze score and percentage, and again
on every results read, since the breakdowns themselves are never stored.
"""
import math
from typing import Dict, List, Mapping, Sequence
from examsim.models.domain import AnswerData, ExamResults, PerformanceRow, QuestionResult

DIFFICULTY_ORDER = {"medium": 0, "hard": 1, "very_hard": 2}


def round_half_up(x: float) -> int:
    """Round .5 away from the floor, not to the even neighbour like round()."""
    return int(math.floor(x + 0.5))


def round_to(x: float, places: int) -> float:
    factor = 10 ** places
    return math.floor(x * factor + 0.5) / factor


def _percent(correct: int, total: int) -> int:
    return round_half_up(correct / total * 100) if total else 0


def _rows(tallies: Dict[str, List[int]]) -> List[PerformanceRow]:
    return [PerformanceRow(key=k, correct=c, total=t, percentage=_percent(c, t))
            for k, (c, t) in tallies.items()]


def score_exam(session_id: str, question_ids: Sequence[str], answers: Mapping[str, AnswerData],
               questions: Sequence, time_limit: int, time_remaining: int) -> ExamResults:
    by_id = {q.id: q for q in questions}
    score = 0
    results: List[QuestionResult] = []
    by_subtopic: Dict[str, List[int]] = {}
    by_difficulty: Dict[str, List[int]] = {}

    for qid in question_ids:
        question = by_id.get(qid)
        if question is None:
            # Removed from the catalog since the exam was built; still counts in the denominator
            continue
        answer = answers.get(qid)
        selected = answer.selected if answer else None
        is_correct = selected is not None and selected == question.correct_answer
        if is_correct:
            score += 1
        difficulty = getattr(question.difficulty, "value", question.difficulty)
        for tallies, key in ((by_subtopic, question.subtopic), (by_difficulty, difficulty)):
            tally = tallies.setdefault(key, [0, 0])
            tally[1] += 1
            if is_correct:
                tally[0] += 1
        results.append(QuestionResult(
            id=question.id,
            correct_answer=question.correct_answer,
            selected_answer=selected,
            is_correct=is_correct,
            flagged=answer.flagged if answer else False,
            subtopic=question.subtopic,
            difficulty=difficulty,
            stem=question.stem,
            options=question.options,
            explanation=question.explanation,
            learning_point=question.learning_point,
            modality=question.modality,
        ))

    total = len(question_ids)
    subtopic_rows = sorted(_rows(by_subtopic), key=lambda r: r.key)
    difficulty_rows = sorted(_rows(by_difficulty),
                             key=lambda r: (DIFFICULTY_ORDER.get(r.key, len(DIFFICULTY_ORDER)), r.key))
    return ExamResults(
        session_id=session_id,
        score=score,
        total_questions=total,
        percentage=_percent(score, total),
        # Client-reported remainder, passed through unclamped
        time_taken=time_limit - time_remaining,
        time_limit=time_limit,
        questions=results,
        subtopic_performance=subtopic_rows,
        difficulty_performance=difficulty_rows,
    )
