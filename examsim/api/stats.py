from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session
from examsim.core.database import get_db
from examsim.services import ranking, stats
from examsim.services.scoring import round_to

router = APIRouter()

class QuestionStatsOut(BaseModel):
    question_id: str
    total_attempts: int
    correct_count: int
    success_rate: float
    difficulty_rate: float  # 1 - success_rate: higher means harder

class RankingOut(BaseModel):
    relative_score: float
    percentile: int
    total_candidates: int
    rank: int

@router.get("/question/{question_id}", response_model=QuestionStatsOut)
def question_stats(question_id: str, db: Session = Depends(get_db)):
    s = stats.get_question_stats(db, question_id)
    return QuestionStatsOut(
        question_id=s.question_id,
        total_attempts=s.total_attempts,
        correct_count=s.correct_count,
        success_rate=s.success_rate,
        difficulty_rate=round_to(1 - s.success_rate, 2),
    )

@router.get("/ranking/{session_id}", response_model=RankingOut)
def get_ranking(session_id: str, db: Session = Depends(get_db)):
    result = ranking.get_ranking(db, session_id)
    if result is None:
        raise HTTPException(404, "Ranking not available. Exam may not be completed.")
    return RankingOut(relative_score=result.relative_score, percentile=result.percentile,
                      total_candidates=result.total_candidates, rank=result.rank)
