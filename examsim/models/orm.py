from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy import (
    BigInteger, Integer, String, Text, Boolean, ForeignKey, JSON, DateTime,
    UniqueConstraint, Index, Enum as SQLEnum,
)
from datetime import datetime, timezone
from typing import Optional, List
import enum
import uuid

OPTION_LABELS = ("A", "B", "C", "D", "E")

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

def _new_id() -> str:
    return str(uuid.uuid4())

def _enum_values(e):
    return [m.value for m in e]

# BIGSERIAL on Postgres, INTEGER PRIMARY KEY (rowid) on SQLite
BigId = BigInteger().with_variant(Integer, "sqlite")

class Base(DeclarativeBase): pass

class DifficultyLevel(str, enum.Enum):
    MEDIUM = "medium"
    HARD = "hard"
    VERY_HARD = "very_hard"

class SessionStatus(str, enum.Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    # Terminal, entered only by external/administrative action
    ABANDONED = "abandoned"

# ========== Content Models ==========

class Question(Base):
    __tablename__ = "questions"
    __table_args__ = (
        Index("idx_questions_subtopic", "subtopic"),
        Index("idx_questions_difficulty", "difficulty"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    stem: Mapped[str] = mapped_column(Text, default="")
    option_a: Mapped[str] = mapped_column(Text, default="")
    option_b: Mapped[str] = mapped_column(Text, default="")
    option_c: Mapped[str] = mapped_column(Text, default="")
    option_d: Mapped[str] = mapped_column(Text, default="")
    option_e: Mapped[str] = mapped_column(Text, default="")
    correct_answer: Mapped[str] = mapped_column(String(1), nullable=False)
    explanation: Mapped[str] = mapped_column(Text, default="")
    subtopic: Mapped[str] = mapped_column(String(255), nullable=False)
    difficulty: Mapped[DifficultyLevel] = mapped_column(
        SQLEnum(DifficultyLevel, native_enum=False, length=20, values_callable=_enum_values),
        nullable=False,
    )
    learning_point: Mapped[Optional[str]] = mapped_column(Text)
    modality: Mapped[Optional[str]] = mapped_column(String(100))

    @property
    def options(self) -> dict:
        return {
            "A": self.option_a, "B": self.option_b, "C": self.option_c,
            "D": self.option_d, "E": self.option_e,
        }

# ========== Delivery Models ==========

class ExamSession(Base):
    __tablename__ = "exam_sessions"
    __table_args__ = (
        Index("idx_es_status", "status"),
        Index("idx_es_started", "started_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    question_ids: Mapped[List[str]] = mapped_column(JSON, nullable=False)
    total_questions: Mapped[int] = mapped_column(Integer, nullable=False)
    time_limit: Mapped[int] = mapped_column(Integer, nullable=False)
    time_remaining: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[SessionStatus] = mapped_column(
        SQLEnum(SessionStatus, native_enum=False, length=20, values_callable=_enum_values),
        nullable=False, default=SessionStatus.IN_PROGRESS,
    )
    score: Mapped[Optional[int]] = mapped_column(Integer)
    percentage: Mapped[Optional[int]] = mapped_column(Integer)
    subtopic_filter: Mapped[List[str]] = mapped_column(JSON, default=list)
    difficulty_filter: Mapped[List[str]] = mapped_column(JSON, default=list)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    answers: Mapped[List["ExamAnswer"]] = relationship(
        back_populates="session", cascade="all, delete-orphan"
    )

class ExamAnswer(Base):
    """One row per (session, question); writes to different questions never collide."""
    __tablename__ = "exam_answers"
    __table_args__ = (
        Index("idx_ea_session", "session_id"),
        Index("idx_ea_question", "question_id"),
        UniqueConstraint("session_id", "question_id", name="uq_exam_answer"),
    )

    id: Mapped[int] = mapped_column(BigId, primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("exam_sessions.id", ondelete="CASCADE"), nullable=False
    )
    question_id: Mapped[str] = mapped_column(String(64), nullable=False)
    selected: Mapped[Optional[str]] = mapped_column(String(1))
    flagged: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    time_spent: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    session: Mapped["ExamSession"] = relationship(back_populates="answers")

# ========== Analytics Models ==========

class QuestionCounter(Base):
    """Per-question attempt tallies, bumped in the transaction that completes a session."""
    __tablename__ = "question_counters"

    question_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    total_attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    correct_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )
