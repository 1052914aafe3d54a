from sqlalchemy import (
    Integer, String, Text, Boolean, Float, ForeignKey, JSON, DateTime,
    UniqueConstraint, Index, Enum as SQLEnum, event, inspect
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from datetime import datetime, timezone
from typing import Optional, List, Any
import uuid
import enum


class Base(DeclarativeBase):
    pass


def _uuid() -> str:
    return str(uuid.uuid4())


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _values(e):
    return [m.value for m in e]


class Difficulty(str, enum.Enum):
    EASY = "EASY"
    MEDIUM = "MEDIUM"
    HARD = "HARD"


class SubmissionStatus(str, enum.Enum):
    CREATED = "created"
    IN_PROGRESS = "in_progress"
    FINALIZED = "finalized"


class ContentType(str, enum.Enum):
    LESSON = "lesson"
    TOPIC = "topic"
    SUBTOPIC = "subtopic"


# ========== Content Catalog (read-only to the core) ==========

class Subject(Base):
    __tablename__ = "subjects"
    __table_args__ = (Index("idx_subjects_stream", "stream_id"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    stream_id: Mapped[Optional[str]] = mapped_column(String(36))

    lessons: Mapped[List["Lesson"]] = relationship(back_populates="subject")


class Lesson(Base):
    __tablename__ = "lessons"
    __table_args__ = (Index("idx_lessons_subject", "subject_id"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    subject_id: Mapped[str] = mapped_column(String(36), ForeignKey("subjects.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    subject: Mapped["Subject"] = relationship(back_populates="lessons")


class Topic(Base):
    __tablename__ = "topics"
    __table_args__ = (
        Index("idx_topics_subject", "subject_id"),
        Index("idx_topics_lesson", "lesson_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    subject_id: Mapped[str] = mapped_column(String(36), ForeignKey("subjects.id", ondelete="CASCADE"), nullable=False)
    lesson_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("lessons.id", ondelete="SET NULL"))
    name: Mapped[str] = mapped_column(String(255), nullable=False)


class Subtopic(Base):
    __tablename__ = "subtopics"
    __table_args__ = (Index("idx_subtopics_topic", "topic_id"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    topic_id: Mapped[str] = mapped_column(String(36), ForeignKey("topics.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)


class Question(Base):
    __tablename__ = "questions"
    __table_args__ = (
        Index("idx_questions_subject_difficulty", "subject_id", "difficulty"),
        Index("idx_questions_topic", "topic_id"),
        Index("idx_questions_subtopic", "subtopic_id"),
        Index("idx_questions_lesson", "lesson_id"),
        Index("idx_questions_pyq", "is_previous_year", "year_appeared"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    stem: Mapped[str] = mapped_column(Text, nullable=False)
    explanation: Mapped[Optional[str]] = mapped_column(Text)
    difficulty: Mapped[Difficulty] = mapped_column(
        SQLEnum(Difficulty, values_callable=_values, native_enum=False), nullable=False, default=Difficulty.MEDIUM
    )
    subject_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("subjects.id", ondelete="SET NULL"))
    lesson_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("lessons.id", ondelete="SET NULL"))
    topic_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("topics.id", ondelete="SET NULL"))
    subtopic_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("subtopics.id", ondelete="SET NULL"))
    is_previous_year: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    year_appeared: Mapped[Optional[int]] = mapped_column(Integer)
    status: Mapped[str] = mapped_column(String(20), default="approved", nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)

    options: Mapped[List["QuestionOption"]] = relationship(
        back_populates="question", cascade="all, delete-orphan", order_by="QuestionOption.position"
    )
    alternative_explanations: Mapped[List["QuestionAlternativeExplanation"]] = relationship(
        cascade="all, delete-orphan", order_by="QuestionAlternativeExplanation.created_at"
    )
    subject: Mapped[Optional["Subject"]] = relationship()
    topic: Mapped[Optional["Topic"]] = relationship()
    subtopic: Mapped[Optional["Subtopic"]] = relationship()


class QuestionOption(Base):
    __tablename__ = "question_options"
    __table_args__ = (Index("idx_qo_question", "question_id"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    question_id: Mapped[str] = mapped_column(String(36), ForeignKey("questions.id", ondelete="CASCADE"), nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    is_correct: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    question: Mapped["Question"] = relationship(back_populates="options")


class QuestionAlternativeExplanation(Base):
    __tablename__ = "question_alternative_explanations"
    __table_args__ = (Index("idx_qae_question", "question_id"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    question_id: Mapped[str] = mapped_column(String(36), ForeignKey("questions.id", ondelete="CASCADE"), nullable=False)
    explanation: Mapped[str] = mapped_column(Text, nullable=False)
    source: Mapped[str] = mapped_column(String(50), default="REPORT_APPROVED", nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)


# ========== Exam Delivery ==========

class ExamPaper(Base):
    __tablename__ = "exam_papers"
    __table_args__ = (Index("idx_ep_created_by", "created_by_id"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    subject_ids: Mapped[List[str]] = mapped_column(JSON, default=list, nullable=False)
    topic_ids: Mapped[List[str]] = mapped_column(JSON, default=list, nullable=False)
    subtopic_ids: Mapped[List[str]] = mapped_column(JSON, default=list, nullable=False)
    question_ids: Mapped[List[str]] = mapped_column(JSON, default=list, nullable=False)
    time_limit_min: Mapped[Optional[int]] = mapped_column(Integer)
    created_by_id: Mapped[Optional[str]] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)


@event.listens_for(ExamPaper, "before_update")
def _freeze_snapshot(mapper, connection, target: ExamPaper) -> None:
    if inspect(target).attrs.question_ids.history.has_changes():
        raise ValueError("ExamPaper.question_ids is immutable once created")


class ExamSubmission(Base):
    __tablename__ = "exam_submissions"
    __table_args__ = (
        Index("idx_es_user", "user_id"),
        Index("idx_es_paper", "exam_paper_id"),
        Index("idx_es_user_status", "user_id", "status"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    exam_paper_id: Mapped[str] = mapped_column(String(36), ForeignKey("exam_papers.id"), nullable=False)
    status: Mapped[SubmissionStatus] = mapped_column(
        SQLEnum(SubmissionStatus, values_callable=_values, native_enum=False),
        nullable=False, default=SubmissionStatus.CREATED
    )
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)
    submitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    total_questions: Mapped[int] = mapped_column(Integer, nullable=False)
    correct_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    score_percent: Mapped[Optional[float]] = mapped_column(Float)

    paper: Mapped["ExamPaper"] = relationship()
    answers: Mapped[List["ExamAnswer"]] = relationship(back_populates="submission", cascade="all, delete-orphan")


class ExamAnswer(Base):
    __tablename__ = "exam_answers"
    __table_args__ = (
        Index("idx_ea_question", "question_id"),
        UniqueConstraint("submission_id", "question_id", name="uq_exam_answer"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    submission_id: Mapped[str] = mapped_column(String(36), ForeignKey("exam_submissions.id", ondelete="CASCADE"), nullable=False)
    question_id: Mapped[str] = mapped_column(String(36), ForeignKey("questions.id"), nullable=False)
    selected_option_id: Mapped[Optional[str]] = mapped_column(String(36))
    is_correct: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    answered_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)

    submission: Mapped["ExamSubmission"] = relationship(back_populates="answers")
    question: Mapped["Question"] = relationship()


# ========== Practice ==========

class PracticeProgress(Base):
    __tablename__ = "practice_progress"
    __table_args__ = (
        Index("idx_pp_user_accessed", "user_id", "last_accessed_at"),
        UniqueConstraint("user_id", "content_type", "content_id", name="uq_practice_progress"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    content_type: Mapped[ContentType] = mapped_column(
        SQLEnum(ContentType, values_callable=_values, native_enum=False), nullable=False
    )
    content_id: Mapped[str] = mapped_column(String(36), nullable=False)
    total_questions: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    completed_questions: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    current_question_index: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    visited_questions: Mapped[List[str]] = mapped_column(JSON, default=list, nullable=False)
    is_completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    last_accessed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)

    sessions: Mapped[List["PracticeQuestionSession"]] = relationship(
        back_populates="progress", cascade="all, delete-orphan", passive_deletes=True
    )


class PracticeQuestionSession(Base):
    __tablename__ = "practice_question_sessions"
    __table_args__ = (UniqueConstraint("progress_id", "question_id", name="uq_practice_session"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    progress_id: Mapped[str] = mapped_column(String(36), ForeignKey("practice_progress.id", ondelete="CASCADE"), nullable=False)
    question_id: Mapped[str] = mapped_column(String(36), ForeignKey("questions.id"), nullable=False)
    user_answer: Mapped[Optional[Any]] = mapped_column(JSON)
    is_correct: Mapped[Optional[bool]] = mapped_column(Boolean)
    time_spent: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_checked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now, onupdate=_utc_now)

    progress: Mapped["PracticeProgress"] = relationship(back_populates="sessions")
    question: Mapped["Question"] = relationship()
