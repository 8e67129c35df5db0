from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from typing import List, Optional
from sqlalchemy.orm import Session
from examsim.core.database import get_db
from examsim.services import catalog

router = APIRouter()

class SubtopicOut(BaseModel):
    name: str
    question_count: int

class SubtopicList(BaseModel):
    subtopics: List[SubtopicOut]

class QuestionCount(BaseModel):
    count: int

def _csv(value: Optional[str]) -> Optional[List[str]]:
    return [v.strip() for v in value.split(",") if v.strip()] if value else None

@router.get("/subtopics", response_model=SubtopicList)
def list_subtopics(db: Session = Depends(get_db)):
    return SubtopicList(subtopics=[SubtopicOut(name=s.name, question_count=s.question_count)
                                   for s in catalog.list_subtopics(db)])

@router.get("/count", response_model=QuestionCount)
def question_count(subtopics: Optional[str] = Query(None), difficulties: Optional[str] = Query(None),
                   db: Session = Depends(get_db)):
    return QuestionCount(count=catalog.count_questions(db, _csv(subtopics), _csv(difficulties)))
