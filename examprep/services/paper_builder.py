"""
Exam paper construction: explicit snapshots, filter-resolved snapshots and
difficulty-weighted practice tests.
"""
import logging
import random
from collections import Counter
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import select, func, or_
from sqlalchemy.orm import Session

from examprep.core.config import settings
from examprep.core.errors import InvalidRequest, QuestionNotFound, SubjectNotFound
from examprep.models.orm import ExamPaper, ExamSubmission, Question, Subject, Difficulty
from examprep.services import question_pool as pool

logger = logging.getLogger(__name__)

MIXED = "MIXED"
BAND_ORDER = (Difficulty.EASY, Difficulty.MEDIUM, Difficulty.HARD)


def paper_dict(paper: ExamPaper) -> dict:
    return {
        "id": paper.id, "title": paper.title, "description": paper.description,
        "subjectIds": list(paper.subject_ids), "topicIds": list(paper.topic_ids),
        "subtopicIds": list(paper.subtopic_ids), "questionIds": list(paper.question_ids),
        "timeLimitMin": paper.time_limit_min, "createdById": paper.created_by_id, "createdAt": paper.created_at,
    }


def create_paper(db: Session, *, title: str, description: Optional[str] = None,
                 subject_ids: Optional[Iterable[str]] = None, topic_ids: Optional[Iterable[str]] = None,
                 subtopic_ids: Optional[Iterable[str]] = None, question_ids: Optional[List[str]] = None,
                 time_limit_min: Optional[int] = None, limit: Optional[int] = None,
                 created_by_id: Optional[str] = None) -> ExamPaper:
    subject_ids, topic_ids, subtopic_ids = list(subject_ids or []), list(topic_ids or []), list(subtopic_ids or [])
    if question_ids:
        dupes = sorted(qid for qid, n in Counter(question_ids).items() if n > 1)
        if dupes:
            raise InvalidRequest("Duplicate question ids in snapshot", {"question_ids": dupes})
        missing = set(question_ids) - pool.existing_ids(db, question_ids)
        if missing:
            raise QuestionNotFound(missing)
        snapshot = list(question_ids)
    elif subject_ids or topic_ids or subtopic_ids:
        stmt = pool.apply_filters(pool.approved_ids(), subject_ids=subject_ids, topic_ids=topic_ids,
                                  subtopic_ids=subtopic_ids).order_by(Question.created_at, Question.id)
        if limit: stmt = stmt.limit(limit)
        snapshot = list(db.scalars(stmt))
    else:
        raise InvalidRequest("Provide question_ids or at least one of subject_ids, topic_ids, subtopic_ids")

    paper = ExamPaper(title=title, description=description, subject_ids=subject_ids, topic_ids=topic_ids,
                      subtopic_ids=subtopic_ids, question_ids=snapshot, time_limit_min=time_limit_min,
                      created_by_id=created_by_id)
    db.add(paper); db.commit(); db.refresh(paper)
    logger.info("Created exam paper %s with %d questions", paper.id, len(snapshot))
    return paper


def split_mixed(count: int, split: Optional[List[int]] = None) -> Dict[Difficulty, int]:
    """EASY and HARD take the floor of their share, MEDIUM absorbs the remainder."""
    easy_pct, _, hard_pct = split or settings.MIXED_SPLIT
    easy, hard = count * easy_pct // 100, count * hard_pct // 100
    return {Difficulty.EASY: easy, Difficulty.MEDIUM: count - easy - hard, Difficulty.HARD: hard}


def default_rng() -> random.Random:
    return random.Random(settings.PRACTICE_TEST_SEED)


def _plan(question_count: int, difficulty: str) -> Dict[Difficulty, int]:
    if difficulty == MIXED:
        return split_mixed(question_count)
    try:
        return {Difficulty(difficulty): question_count}
    except ValueError:
        raise InvalidRequest(f"Unknown difficulty '{difficulty}'", {"difficulty": difficulty})


def _sample_bands(db: Session, base, plan: Dict[Difficulty, int], rng: random.Random) -> Tuple[List[str], dict]:
    """Samples each planned band independently and concatenates them EASY, MEDIUM, HARD."""
    selected: List[str] = []
    bands = {}
    for band in BAND_ORDER:
        if band not in plan: continue
        want = plan[band]
        candidates = list(db.scalars(base.where(Question.difficulty == band).order_by(Question.created_at, Question.id)))
        picked = rng.sample(candidates, min(want, len(candidates))) if want else []
        bands[band.value] = {"requested": want, "selected": len(picked)}
        selected.extend(picked)
    return selected, bands


def generate_practice_test(db: Session, *, user_id: str, subject_id: str, question_count: int, difficulty: str,
                           time_limit_min: Optional[int] = None, lesson_id: Optional[str] = None,
                           topic_id: Optional[str] = None, subtopic_id: Optional[str] = None,
                           title: Optional[str] = None, rng: Optional[random.Random] = None) -> dict:
    subject = db.get(Subject, subject_id)
    if not subject:
        raise SubjectNotFound(subject_id)
    if question_count < 1:
        raise InvalidRequest("question_count must be at least 1", {"question_count": question_count})
    plan = _plan(question_count, difficulty)
    base = pool.apply_filters(pool.approved_ids(), subject_ids=[subject_id], lesson_ids=[lesson_id] if lesson_id else None,
                              topic_ids=[topic_id] if topic_id else None, subtopic_ids=[subtopic_id] if subtopic_id else None)
    selected, bands = _sample_bands(db, base, plan, rng or default_rng())

    shortfall = question_count - len(selected)
    if shortfall:
        logger.warning("Practice test for subject %s short by %d questions (requested %d, %s)",
                       subject_id, shortfall, question_count, bands)

    paper = ExamPaper(
        title=title or f"Practice Test - {subject.name}",
        description=f"{difficulty} practice test with {len(selected)} questions",
        subject_ids=[subject_id], topic_ids=[topic_id] if topic_id else [],
        subtopic_ids=[subtopic_id] if subtopic_id else [], question_ids=selected,
        time_limit_min=time_limit_min, created_by_id=user_id,
    )
    db.add(paper); db.commit(); db.refresh(paper)
    logger.info("Generated practice test %s for user %s (%s, %d questions)", paper.id, user_id, difficulty, len(selected))
    return {
        "examPaper": paper_dict(paper),
        "questions": pool.hydrate(db, selected, reveal=False),
        "requested": question_count, "available": len(selected), "shortfall": shortfall,
        "bands": bands,
    }


def question_availability(db: Session, subject_id: Optional[str] = None, topic_id: Optional[str] = None,
                          subtopic_id: Optional[str] = None, difficulty: Optional[Difficulty] = None) -> dict:
    stmt = select(Question.difficulty, func.count(Question.id)).where(Question.status == pool.APPROVED)
    stmt = pool.apply_filters(stmt, subject_ids=[subject_id] if subject_id else None,
                              topic_ids=[topic_id] if topic_id else None,
                              subtopic_ids=[subtopic_id] if subtopic_id else None,
                              difficulties=[difficulty] if difficulty else None).group_by(Question.difficulty)
    counts = {d.value: 0 for d in BAND_ORDER}
    for diff, n in db.execute(stmt):
        counts[Difficulty(diff).value] = n
    return {"totalQuestions": sum(counts.values()), "byDifficulty": counts}


def generate_pyq_practice(db: Session, *, question_count: int = 10, difficulty: str = MIXED,
                          year: Optional[int] = None, subject_id: Optional[str] = None,
                          lesson_id: Optional[str] = None, topic_id: Optional[str] = None,
                          subtopic_id: Optional[str] = None, rng: Optional[random.Random] = None) -> dict:
    """Samples previous-year questions for an ad-hoc drill. Nothing is persisted."""
    if question_count < 1:
        raise InvalidRequest("question_count must be at least 1", {"question_count": question_count})
    plan = _plan(question_count, difficulty)
    base = pool.apply_filters(pool.approved_ids(), is_previous_year=True, year=year,
                              subject_ids=[subject_id] if subject_id else None,
                              lesson_ids=[lesson_id] if lesson_id else None,
                              topic_ids=[topic_id] if topic_id else None,
                              subtopic_ids=[subtopic_id] if subtopic_id else None)
    available = db.scalar(select(func.count()).select_from(
        base.where(Question.difficulty.in_(list(plan))).subquery())) or 0
    selected, bands = _sample_bands(db, base, plan, rng or default_rng())
    shortfall = question_count - len(selected)
    if shortfall:
        logger.warning("PYQ practice short by %d questions (requested %d, year %s, %s)",
                       shortfall, question_count, year, bands)
    return {
        "questions": pool.hydrate(db, selected, reveal=True, taxonomy=True),
        "totalQuestions": len(selected), "availableQuestions": available,
        "requested": question_count, "shortfall": shortfall, "bands": bands,
    }


def list_papers(db: Session, user_id: str, *, page: int = 1, limit: int = 10, search: Optional[str] = None,
                subject_id: Optional[str] = None) -> dict:
    """Paper catalog for students, newest first, flagged with whether the caller has started each one."""
    stmt = select(ExamPaper).order_by(ExamPaper.created_at.desc(), ExamPaper.id)
    if search:
        like = f"%{search.strip().lower()}%"
        stmt = stmt.where(or_(func.lower(ExamPaper.title).like(like),
                              func.lower(func.coalesce(ExamPaper.description, "")).like(like)))
    papers = db.scalars(stmt).all()
    # JSON list column, filtered in Python
    if subject_id:
        papers = [p for p in papers if subject_id in (p.subject_ids or [])]
    total = len(papers)
    page_items = papers[(page - 1) * limit:page * limit]

    attempted = set()
    subject_names = {}
    if page_items:
        attempted = set(db.scalars(select(ExamSubmission.exam_paper_id).distinct().where(
            ExamSubmission.user_id == user_id, ExamSubmission.exam_paper_id.in_([p.id for p in page_items]))))
        wanted = {sid for p in page_items for sid in p.subject_ids or []}
        if wanted:
            subject_names = dict(db.execute(select(Subject.id, Subject.name).where(Subject.id.in_(wanted))).all())

    items = []
    for p in page_items:
        d = paper_dict(p)
        d.update({
            "subjects": [{"id": sid, "name": subject_names[sid]} for sid in p.subject_ids if sid in subject_names],
            "questionCount": len(p.question_ids or []),
            "hasAttempted": p.id in attempted,
        })
        items.append(d)
    return {"papers": items, "pagination": pool.page_meta(page, limit, total)}
