from typing import Optional, List, Dict, Any
from sqlmodel import SQLModel, Field
from sqlalchemy import Column, JSON, Index, UniqueConstraint, text
from datetime import datetime, timezone

# assessment.status
DRAFT = "DRAFT"
PUBLISHED = "PUBLISHED"
CLOSED = "CLOSED"
ASSESSMENT_STATUSES = (DRAFT, PUBLISHED, CLOSED)

# attempt.status
IN_PROGRESS = "IN_PROGRESS"
SUBMITTED = "SUBMITTED"


def now_utc():
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands datetimes back naive; they were written as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Assessment(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    coaching_id: int = Field(index=True)
    batch_id: int = Field(index=True)
    created_by_id: int = Field(index=True)
    title: str
    description: Optional[str] = None
    type: str = Field(default="QUIZ")  # QUIZ|TEST
    duration_minutes: Optional[int] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    total_marks: float = Field(default=0)
    passing_marks: Optional[float] = None
    shuffle_questions: bool = Field(default=False)
    shuffle_options: bool = Field(default=False)
    show_result_after: str = Field(default="SUBMIT")  # SUBMIT|END
    max_attempts: int = Field(default=1)
    negative_marking: float = Field(default=0)
    status: str = Field(default=DRAFT, index=True)
    created_at: datetime = Field(default_factory=now_utc)
    updated_at: datetime = Field(default_factory=now_utc)


class Question(SQLModel, table=True):
    __table_args__ = (
        Index("ix_question_assessment_order", "assessment_id", "order_index"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    assessment_id: int = Field(foreign_key="assessment.id", index=True)
    type: str  # MCQ|MSQ|NAT
    prompt: str
    image_url: Optional[str] = None
    options: Optional[List[Dict[str, Any]]] = Field(default=None, sa_column=Column(JSON))
    correct_answer: Dict[str, Any] = Field(sa_column=Column(JSON, nullable=False))
    marks: float = Field(default=1)
    order_index: int = Field(default=0)
    explanation: Optional[str] = None
    created_at: datetime = Field(default_factory=now_utc)


class Attempt(SQLModel, table=True):
    __table_args__ = (
        # one open attempt per student per assessment
        Index(
            "uq_attempt_in_progress",
            "assessment_id",
            "user_id",
            unique=True,
            sqlite_where=text("status = 'IN_PROGRESS'"),
            postgresql_where=text("status = 'IN_PROGRESS'"),
        ),
        Index("ix_attempt_assessment_status", "assessment_id", "status"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    assessment_id: int = Field(foreign_key="assessment.id", index=True)
    user_id: int = Field(index=True)
    status: str = Field(default=IN_PROGRESS)
    started_at: datetime = Field(default_factory=now_utc)
    submitted_at: Optional[datetime] = None
    total_score: Optional[float] = None
    max_score: Optional[float] = None
    percentage: Optional[float] = None
    correct_count: Optional[int] = None
    wrong_count: Optional[int] = None
    skipped_count: Optional[int] = None


class Answer(SQLModel, table=True):
    __table_args__ = (
        UniqueConstraint("attempt_id", "question_id", name="uq_answer_attempt_question"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    attempt_id: int = Field(foreign_key="attempt.id", index=True)
    question_id: int = Field(foreign_key="question.id", index=True)
    raw_answer: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    is_correct: Optional[bool] = None
    marks_awarded: Optional[float] = None
    answered_at: datetime = Field(default_factory=now_utc)


class Notification(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    coaching_id: int = Field(index=True)
    type: str  # NEW_QUIZ|NEW_ASSESSMENT
    title: str
    message: str
    data: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=now_utc)
