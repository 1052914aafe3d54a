"""
Practice progress over the subject -> lesson -> topic -> subtopic hierarchy.

Progress rows are unique per (user, content type, content id); question sessions
are unique per (progress, question). Both are created with INSERT .. ON CONFLICT
so concurrent first calls collapse to a single row.
"""
import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple
from uuid import uuid4

from sqlalchemy import select, func
from sqlalchemy.orm import Session, selectinload

from examprep.core.database import upsert_insert
from examprep.core.errors import (
    OwnershipError, ProgressNotFound, QuestionNotFound, SessionNotFound, UnsupportedContentType
)
from examprep.models.orm import (
    ContentType, Lesson, PracticeProgress, PracticeQuestionSession, Question, Subject, Subtopic, Topic
)
from examprep.services import question_pool as pool
from examprep.services.scoring import accuracy

logger = logging.getLogger(__name__)

CONTENT_COLUMNS = {
    ContentType.LESSON: Question.lesson_id,
    ContentType.TOPIC: Question.topic_id,
    ContentType.SUBTOPIC: Question.subtopic_id,
}
PROGRESS_FIELDS = ("current_question_index", "completed_questions", "visited_questions", "is_completed")
SESSION_FIELDS = ("user_answer", "is_correct", "time_spent", "is_checked")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def content_type_of(value: Any) -> ContentType:
    try:
        return ContentType(value)
    except ValueError:
        raise UnsupportedContentType(str(value))


def session_dict(s: PracticeQuestionSession, with_question: bool = False) -> dict:
    d = {"id": s.id, "progressId": s.progress_id, "questionId": s.question_id, "userAnswer": s.user_answer,
         "isCorrect": s.is_correct, "timeSpent": s.time_spent, "isChecked": s.is_checked,
         "createdAt": s.created_at, "updatedAt": s.updated_at}
    if with_question: d["question"] = pool.question_dict(s.question, reveal=True)
    return d


def progress_dict(p: PracticeProgress, sessions: bool = False, with_questions: bool = False) -> dict:
    d = {"id": p.id, "userId": p.user_id, "contentType": p.content_type.value, "contentId": p.content_id,
         "totalQuestions": p.total_questions, "completedQuestions": p.completed_questions,
         "currentQuestionIndex": p.current_question_index, "visitedQuestions": list(p.visited_questions or []),
         "isCompleted": p.is_completed, "lastAccessedAt": p.last_accessed_at, "createdAt": p.created_at}
    if sessions: d["sessions"] = [session_dict(s, with_questions) for s in p.sessions]
    return d


def _owned_progress(db: Session, user_id: str, progress_id: str) -> PracticeProgress:
    p = db.get(PracticeProgress, progress_id)
    if not p:
        raise ProgressNotFound(progress_id)
    if p.user_id != user_id:
        raise OwnershipError("practice progress", progress_id)
    return p


# ---------- content tree ----------

def _question_counts(db: Session, column) -> Dict[str, int]:
    stmt = (select(column, func.count(Question.id)).where(Question.status == pool.APPROVED, column.is_not(None))
            .group_by(column))
    return {k: n for k, n in db.execute(stmt)}


def _node(kind: ContentType, obj, counts: Dict[str, int], overlay: Dict[Tuple[ContentType, str], PracticeProgress]) -> dict:
    p = overlay.get((kind, obj.id))
    return {"id": obj.id, "name": obj.name, "type": kind.value, "totalQuestions": counts.get(obj.id, 0),
            "completedCount": p.completed_questions if p else 0, "isCompleted": p.is_completed if p else False,
            "progressId": p.id if p else None}


def get_content_tree(db: Session, user_id: str, stream_id: Optional[str] = None) -> list:
    stmt = select(Subject).order_by(Subject.name, Subject.id)
    if stream_id: stmt = stmt.where(Subject.stream_id == stream_id)
    subjects = db.scalars(stmt).all()
    subject_ids = [s.id for s in subjects]
    if not subject_ids: return []

    lessons = db.scalars(select(Lesson).where(Lesson.subject_id.in_(subject_ids)).order_by(Lesson.name, Lesson.id)).all()
    topics = db.scalars(select(Topic).where(Topic.subject_id.in_(subject_ids)).order_by(Topic.name, Topic.id)).all()
    topic_ids = [t.id for t in topics]
    subtopics = db.scalars(select(Subtopic).where(Subtopic.topic_id.in_(topic_ids))
                           .order_by(Subtopic.name, Subtopic.id)).all() if topic_ids else []

    subject_counts = _question_counts(db, Question.subject_id)
    counts = {kind: _question_counts(db, col) for kind, col in CONTENT_COLUMNS.items()}
    overlay = {(p.content_type, p.content_id): p
               for p in db.scalars(select(PracticeProgress).where(PracticeProgress.user_id == user_id))}

    subtopics_by_topic = defaultdict(list)
    for st in subtopics:
        subtopics_by_topic[st.topic_id].append(_node(ContentType.SUBTOPIC, st, counts[ContentType.SUBTOPIC], overlay))
    topics_by_lesson, loose_topics = defaultdict(list), defaultdict(list)
    for t in topics:
        node = _node(ContentType.TOPIC, t, counts[ContentType.TOPIC], overlay)
        node["subtopics"] = subtopics_by_topic[t.id]
        (topics_by_lesson[t.lesson_id] if t.lesson_id else loose_topics[t.subject_id]).append(node)
    lessons_by_subject = defaultdict(list)
    for lesson in lessons:
        node = _node(ContentType.LESSON, lesson, counts[ContentType.LESSON], overlay)
        node["topics"] = topics_by_lesson[lesson.id]
        lessons_by_subject[lesson.subject_id].append(node)

    return [{"id": s.id, "name": s.name, "type": "subject", "streamId": s.stream_id,
             "totalQuestions": subject_counts.get(s.id, 0), "completedCount": 0,
             "lessons": lessons_by_subject[s.id], "topics": loose_topics[s.id]} for s in subjects]


def get_content_questions(db: Session, content_type: str, content_id: str) -> list:
    column = CONTENT_COLUMNS[content_type_of(content_type)]
    ids = list(db.scalars(pool.approved_ids().where(column == content_id)
                          .order_by(pool.DIFFICULTY_RANK, Question.created_at, Question.id)))
    return pool.hydrate(db, ids, reveal=True)


# ---------- progress ----------

def start_practice_progress(db: Session, user_id: str, content_type: str, content_id: str, total_questions: int) -> dict:
    kind = content_type_of(content_type)
    now = _now()
    ins = upsert_insert(db, PracticeProgress).values(
        id=str(uuid4()), user_id=user_id, content_type=kind, content_id=content_id,
        total_questions=total_questions, completed_questions=0, current_question_index=0,
        visited_questions=[], is_completed=False, last_accessed_at=now, created_at=now,
    )
    ins = ins.on_conflict_do_update(index_elements=["user_id", "content_type", "content_id"],
                                    set_={"last_accessed_at": ins.excluded.last_accessed_at})
    db.execute(ins)
    db.commit()
    p = db.scalar(select(PracticeProgress).where(PracticeProgress.user_id == user_id,
                                                PracticeProgress.content_type == kind,
                                                PracticeProgress.content_id == content_id))
    logger.info("Practice progress %s touched by user %s (%s %s)", p.id, user_id, kind.value, content_id)
    return progress_dict(p)


def get_practice_progress(db: Session, user_id: str, content_type: str, content_id: str) -> Optional[dict]:
    kind = content_type_of(content_type)
    p = db.scalar(select(PracticeProgress)
                  .options(selectinload(PracticeProgress.sessions).selectinload(PracticeQuestionSession.question)
                           .selectinload(Question.options))
                  .where(PracticeProgress.user_id == user_id, PracticeProgress.content_type == kind,
                         PracticeProgress.content_id == content_id))
    return progress_dict(p, sessions=True, with_questions=True) if p else None


def update_practice_progress(db: Session, user_id: str, progress_id: str, patch: Dict[str, Any]) -> dict:
    p = _owned_progress(db, user_id, progress_id)
    for field in PROGRESS_FIELDS:
        if field in patch and patch[field] is not None:
            value = patch[field]
            if field == "visited_questions": value = list(dict.fromkeys(value))
            setattr(p, field, value)
    p.last_accessed_at = _now()
    db.commit(); db.refresh(p)
    return progress_dict(p)


def delete_practice_progress(db: Session, user_id: str, progress_id: str) -> None:
    p = _owned_progress(db, user_id, progress_id)
    db.delete(p); db.commit()
    logger.info("Deleted practice progress %s for user %s", progress_id, user_id)


def practice_history(db: Session, user_id: str) -> list:
    rows = db.scalars(select(PracticeProgress).options(selectinload(PracticeProgress.sessions))
                      .where(PracticeProgress.user_id == user_id)
                      .order_by(PracticeProgress.last_accessed_at.desc(), PracticeProgress.id)).all()
    return [progress_dict(p, sessions=True) for p in rows]


def get_content_stats(db: Session, user_id: str, content_type: str, content_id: str) -> dict:
    kind = content_type_of(content_type)
    p = db.scalar(select(PracticeProgress).options(selectinload(PracticeProgress.sessions))
                  .where(PracticeProgress.user_id == user_id, PracticeProgress.content_type == kind,
                         PracticeProgress.content_id == content_id))
    if not p:
        return {"totalQuestions": 0, "completedQuestions": 0, "accuracy": 0, "timeSpent": 0, "lastAccessed": None}
    correct = sum(1 for s in p.sessions if s.is_correct)
    return {"totalQuestions": p.total_questions, "completedQuestions": p.completed_questions,
            "accuracy": accuracy(correct, len(p.sessions)), "timeSpent": sum(s.time_spent or 0 for s in p.sessions),
            "lastAccessed": p.last_accessed_at}


# ---------- question sessions ----------

def _apply_session_patch(s: PracticeQuestionSession, patch: Dict[str, Any]) -> None:
    for field in SESSION_FIELDS:
        if field in patch and patch[field] is not None:
            setattr(s, field, patch[field])


def create_practice_session(db: Session, user_id: str, progress_id: str, question_id: str,
                            user_answer: Any = None, is_correct: Optional[bool] = None,
                            time_spent: Optional[int] = None, is_checked: Optional[bool] = None) -> dict:
    progress = _owned_progress(db, user_id, progress_id)
    if not pool.existing_ids(db, [question_id]):
        raise QuestionNotFound([question_id])
    patch = {"user_answer": user_answer, "is_correct": is_correct, "time_spent": time_spent, "is_checked": is_checked}
    now = _now()
    ins = upsert_insert(db, PracticeQuestionSession).values(
        id=str(uuid4()), progress_id=progress.id, question_id=question_id, user_answer=user_answer,
        is_correct=is_correct, time_spent=time_spent or 0, is_checked=bool(is_checked),
        created_at=now, updated_at=now,
    ).on_conflict_do_nothing(index_elements=["progress_id", "question_id"])
    db.execute(ins)
    # an existing pair takes the update path with the same patch
    s = db.scalar(select(PracticeQuestionSession).where(PracticeQuestionSession.progress_id == progress.id,
                                                        PracticeQuestionSession.question_id == question_id))
    _apply_session_patch(s, patch)
    progress.last_accessed_at = now
    db.commit(); db.refresh(s)
    return session_dict(s)


def update_practice_session(db: Session, user_id: str, session_id: str, patch: Dict[str, Any]) -> dict:
    s = db.get(PracticeQuestionSession, session_id)
    if not s:
        raise SessionNotFound(session_id)
    if s.progress.user_id != user_id:
        raise OwnershipError("practice session", session_id)
    _apply_session_patch(s, patch)
    s.progress.last_accessed_at = _now()
    db.commit(); db.refresh(s)
    return session_dict(s)
