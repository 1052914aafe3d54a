from typing import Optional
from sqlalchemy import select, func, case
from sqlalchemy.orm import Session
from examprep.core import cache
from examprep.core.config import settings
from examprep.core.errors import QuestionNotFound
from examprep.models.orm import ExamAnswer, ExamSubmission, Question, Subject, Topic, Subtopic, Difficulty, SubmissionStatus
from examprep.services import question_pool as pool
from examprep.services.scoring import accuracy


_CORRECT = func.sum(case((ExamAnswer.is_correct == True, 1), else_=0))  # noqa: E712


def _finalized_answers(user_id: str, *cols):
    return (select(*cols).select_from(ExamAnswer)
            .join(ExamSubmission, ExamSubmission.id == ExamAnswer.submission_id)
            .join(Question, Question.id == ExamAnswer.question_id)
            .where(ExamSubmission.user_id == user_id, ExamSubmission.status == SubmissionStatus.FINALIZED))


def _rollup(db: Session, user_id: str, group, question_fk) -> list:
    stmt = (_finalized_answers(user_id, group.id, group.name, func.count(ExamAnswer.id), _CORRECT)
            .join(group, group.id == question_fk)
            .group_by(group.id, group.name))
    rows = [{"id": gid, "name": name, "attempted": int(n), "correct": int(c or 0), "accuracy": accuracy(int(c or 0), int(n))}
            for gid, name, n, c in db.execute(stmt)]
    rows.sort(key=lambda r: (-r["accuracy"], r["name"], r["id"]))
    return rows


def analytics_by_subject(db: Session, user_id: str) -> list:
    return _rollup(db, user_id, Subject, Question.subject_id)


def analytics_by_topic(db: Session, user_id: str) -> list:
    return _rollup(db, user_id, Topic, Question.topic_id)


def analytics_by_subtopic(db: Session, user_id: str) -> list:
    return _rollup(db, user_id, Subtopic, Question.subtopic_id)


def analytics_by_difficulty(db: Session, user_id: str) -> list:
    stmt = (_finalized_answers(user_id, Question.difficulty, func.count(ExamAnswer.id), _CORRECT)
            .group_by(Question.difficulty))
    found = {Difficulty(d): (int(n), int(c or 0)) for d, n, c in db.execute(stmt)}
    return [{"difficulty": d.value, "attempted": found[d][0], "correct": found[d][1],
             "accuracy": accuracy(found[d][1], found[d][0])}
            for d in (Difficulty.EASY, Difficulty.MEDIUM, Difficulty.HARD) if d in found]


def _pyq():
    return (Question.is_previous_year == True, Question.status == pool.APPROVED)  # noqa: E712


def _compute_pyq_stats(db: Session) -> dict:
    total = db.scalar(select(func.count(Question.id)).where(*_pyq())) or 0
    by_year = db.execute(
        select(Question.year_appeared, func.count(Question.id)).where(*_pyq(), Question.year_appeared.is_not(None))
        .group_by(Question.year_appeared).order_by(Question.year_appeared.desc())
    ).all()
    by_subject = db.execute(
        select(Subject.id, Subject.name, func.count(Question.id)).select_from(Question)
        .join(Subject, Subject.id == Question.subject_id)
        .where(*_pyq()).group_by(Subject.id, Subject.name).order_by(Subject.name, Subject.id)
    ).all()
    by_difficulty = {Difficulty(d): n for d, n in db.execute(
        select(Question.difficulty, func.count(Question.id)).where(*_pyq()).group_by(Question.difficulty))}
    return {
        "totalPYQ": total,
        "byYear": [{"year": y, "count": n} for y, n in by_year],
        "bySubject": [{"subjectId": sid, "name": name, "count": n} for sid, name, n in by_subject],
        "byDifficulty": [{"difficulty": d.value, "count": by_difficulty.get(d, 0)}
                         for d in (Difficulty.EASY, Difficulty.MEDIUM, Difficulty.HARD)],
    }


def pyq_stats(db: Session) -> dict:
    return cache.cached_json(cache.pyq_stats_key(), settings.PYQ_STATS_CACHE_TTL, lambda: _compute_pyq_stats(db))


def pyq_years(db: Session) -> list:
    return list(db.scalars(
        select(Question.year_appeared).where(*_pyq(), Question.year_appeared.is_not(None))
        .distinct().order_by(Question.year_appeared.desc())
    ))


def pyq_questions(db: Session, *, stream_id: Optional[str] = None, page: int = 1, limit: int = 20,
                  year: Optional[int] = None, subject_id: Optional[str] = None, lesson_id: Optional[str] = None,
                  topic_id: Optional[str] = None, subtopic_id: Optional[str] = None,
                  difficulty: Optional[Difficulty] = None, search: Optional[str] = None) -> dict:
    stmt = pool.apply_filters(
        select(Question.id).where(Question.status == pool.APPROVED), is_previous_year=True, year=year,
        subject_ids=[subject_id] if subject_id else None, lesson_ids=[lesson_id] if lesson_id else None,
        topic_ids=[topic_id] if topic_id else None, subtopic_ids=[subtopic_id] if subtopic_id else None,
        difficulties=[difficulty] if difficulty else None, search=search,
    )
    if stream_id:
        stmt = stmt.join(Subject, Subject.id == Question.subject_id).where(Subject.stream_id == stream_id)
    total = db.scalar(select(func.count()).select_from(stmt.subquery())) or 0
    ids = list(db.scalars(
        stmt.order_by(Question.year_appeared.desc().nulls_last(), Question.created_at.desc(), Question.id)
        .offset((page - 1) * limit).limit(limit)
    ))
    return {"questions": pool.hydrate(db, ids, reveal=True, taxonomy=True), "pagination": pool.page_meta(page, limit, total)}


def pyq_question(db: Session, question_id: str) -> dict:
    q = db.scalar(select(Question).where(Question.id == question_id, *_pyq()))
    if q is None:
        raise QuestionNotFound([question_id])
    return pool.hydrate(db, [q.id], reveal=True, taxonomy=True)[0]
