from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, List, Literal, Optional
from datetime import datetime
from sqlalchemy.orm import Session
from examsim.api.deps import exam_rate_limit
from examsim.core.config import settings
from examsim.core.database import get_db
from examsim.models.orm import DifficultyLevel, ExamSession, Question
from examsim.models.domain import ExamResults
from examsim.services import catalog, exam

router = APIRouter(dependencies=[Depends(exam_rate_limit)])

OptionLabel = Literal["A", "B", "C", "D", "E"]

class StartExam(BaseModel):
    question_count: int = Field(default=settings.DEFAULT_QUESTION_COUNT,
                                ge=settings.MIN_QUESTION_COUNT, le=settings.MAX_QUESTION_COUNT)
    subtopics: Optional[List[str]] = None
    difficulties: Optional[List[DifficultyLevel]] = None
    time_per_question: int = Field(default=settings.DEFAULT_TIME_PER_QUESTION,
                                   ge=settings.MIN_TIME_PER_QUESTION, le=settings.MAX_TIME_PER_QUESTION)

class AnswerSubmit(BaseModel):
    question_id: str
    selected: Optional[OptionLabel] = None
    time_spent: Optional[int] = None

class FlagSubmit(BaseModel):
    question_id: str
    flagged: bool

class TimeUpdate(BaseModel):
    time_remaining: int

class CompleteExam(BaseModel):
    time_remaining: Optional[int] = None

class AnswerOut(BaseModel):
    selected: Optional[OptionLabel] = None
    flagged: bool = False
    time_spent: int = 0

class SessionOut(BaseModel):
    id: str
    question_ids: List[str]
    total_questions: int
    time_limit: int
    time_remaining: int
    answers: Dict[str, AnswerOut]
    status: Literal["in_progress", "completed", "abandoned"]
    score: Optional[int] = None
    percentage: Optional[int] = None
    subtopic_filter: List[str] = []
    difficulty_filter: List[str] = []
    started_at: datetime
    completed_at: Optional[datetime] = None

class QuestionOut(BaseModel):
    """Question as shown during the exam: no correct answer or explanation."""
    id: str
    stem: str
    options: Dict[str, str]
    subtopic: str
    difficulty: str
    modality: Optional[str] = None

class SessionEnvelope(BaseModel):
    session: SessionOut

class SessionWithQuestions(BaseModel):
    session: SessionOut
    questions: List[QuestionOut]

class QuestionResultOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: str
    stem: str
    options: Dict[str, str]
    correct_answer: str
    selected_answer: Optional[str] = None
    is_correct: bool
    flagged: bool
    explanation: str
    subtopic: str
    difficulty: str
    learning_point: Optional[str] = None
    modality: Optional[str] = None

class SubtopicPerformanceOut(BaseModel):
    subtopic: str
    correct: int
    total: int
    percentage: int

class DifficultyPerformanceOut(BaseModel):
    difficulty: str
    correct: int
    total: int
    percentage: int

class ResultsOut(BaseModel):
    session_id: str
    score: int
    total_questions: int
    percentage: int
    time_taken: int
    time_limit: int
    questions: List[QuestionResultOut]
    subtopic_performance: List[SubtopicPerformanceOut]
    difficulty_performance: List[DifficultyPerformanceOut]

class ResultsEnvelope(BaseModel):
    results: ResultsOut

def session_out(db: Session, session: ExamSession) -> SessionOut:
    answers = exam.load_answers(db, session.id)
    return SessionOut(
        id=session.id,
        question_ids=list(session.question_ids),
        total_questions=session.total_questions,
        time_limit=session.time_limit,
        time_remaining=session.time_remaining,
        answers={qid: AnswerOut(selected=a.selected, flagged=a.flagged, time_spent=a.time_spent)
                 for qid, a in answers.items()},
        status=session.status.value,
        score=session.score,
        percentage=session.percentage,
        subtopic_filter=list(session.subtopic_filter or []),
        difficulty_filter=list(session.difficulty_filter or []),
        started_at=session.started_at,
        completed_at=session.completed_at,
    )

def question_out(q: Question) -> QuestionOut:
    return QuestionOut(id=q.id, stem=q.stem, options=q.options, subtopic=q.subtopic,
                       difficulty=q.difficulty.value, modality=q.modality)

def results_out(results: ExamResults) -> ResultsOut:
    return ResultsOut(
        session_id=results.session_id,
        score=results.score,
        total_questions=results.total_questions,
        percentage=results.percentage,
        time_taken=results.time_taken,
        time_limit=results.time_limit,
        questions=[QuestionResultOut.model_validate(q) for q in results.questions],
        subtopic_performance=[SubtopicPerformanceOut(subtopic=r.key, correct=r.correct, total=r.total,
                                                     percentage=r.percentage)
                              for r in results.subtopic_performance],
        difficulty_performance=[DifficultyPerformanceOut(difficulty=r.key, correct=r.correct, total=r.total,
                                                         percentage=r.percentage)
                                for r in results.difficulty_performance],
    )

def _with_questions(db: Session, session: ExamSession) -> SessionWithQuestions:
    questions = catalog.get_questions(db, session.question_ids)
    return SessionWithQuestions(session=session_out(db, session), questions=[question_out(q) for q in questions])

@router.post("/start", response_model=SessionWithQuestions, status_code=status.HTTP_201_CREATED)
def start_exam(payload: StartExam, db: Session = Depends(get_db)):
    session = exam.start_exam(db, payload.question_count, payload.subtopics, payload.difficulties,
                              payload.time_per_question)
    return _with_questions(db, session)

@router.get("/{session_id}", response_model=SessionWithQuestions)
def get_exam_session(session_id: str, db: Session = Depends(get_db)):
    return _with_questions(db, exam.get_exam_session(db, session_id))

@router.post("/{session_id}/answer", response_model=SessionEnvelope)
def submit_answer(session_id: str, payload: AnswerSubmit, db: Session = Depends(get_db)):
    session = exam.submit_answer(db, session_id, payload.question_id, payload.selected, payload.time_spent)
    return SessionEnvelope(session=session_out(db, session))

@router.post("/{session_id}/flag", response_model=SessionEnvelope)
def toggle_flag(session_id: str, payload: FlagSubmit, db: Session = Depends(get_db)):
    session = exam.toggle_flag(db, session_id, payload.question_id, payload.flagged)
    return SessionEnvelope(session=session_out(db, session))

@router.post("/{session_id}/time")
def update_time(session_id: str, payload: TimeUpdate, db: Session = Depends(get_db)):
    exam.update_time_remaining(db, session_id, payload.time_remaining)
    return {"success": True}

@router.post("/{session_id}/complete", response_model=ResultsEnvelope)
def complete_exam(session_id: str, payload: CompleteExam | None = None, db: Session = Depends(get_db)):
    time_remaining = payload.time_remaining if payload else None
    return ResultsEnvelope(results=results_out(exam.complete_exam(db, session_id, time_remaining)))

@router.get("/{session_id}/results", response_model=ResultsEnvelope)
def get_exam_results(session_id: str, db: Session = Depends(get_db)):
    return ResultsEnvelope(results=results_out(exam.get_exam_results(db, session_id)))
