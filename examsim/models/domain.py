"""
Typed values passed between the exam services.

These are derived, never persisted directly: ``AnswerData`` is the typed view of
an ``exam_answers`` row, the rest are recomputed on every request.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional

@dataclass
class AnswerData:
    selected: Optional[str] = None
    flagged: bool = False
    time_spent: int = 0

@dataclass
class QuestionResult:
    id: str
    correct_answer: str
    selected_answer: Optional[str]
    is_correct: bool
    flagged: bool
    subtopic: str
    difficulty: str
    stem: str = ""
    options: Dict[str, str] = field(default_factory=dict)
    explanation: str = ""
    learning_point: Optional[str] = None
    modality: Optional[str] = None

@dataclass
class PerformanceRow:
    """Correct/total tally for one subtopic or difficulty level."""
    key: str
    correct: int
    total: int
    percentage: int

@dataclass
class ExamResults:
    session_id: str
    score: int
    total_questions: int
    percentage: int
    time_taken: int
    time_limit: int
    questions: List[QuestionResult]
    subtopic_performance: List[PerformanceRow]
    difficulty_performance: List[PerformanceRow]

@dataclass
class QuestionStats:
    question_id: str
    total_attempts: int
    correct_count: int
    success_rate: float

@dataclass
class RankingResult:
    relative_score: float
    percentile: int
    rank: int
    total_candidates: int

@dataclass
class SubtopicCount:
    name: str
    question_count: int
