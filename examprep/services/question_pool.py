from typing import Dict, Iterable, List, Optional
from sqlalchemy import select, func, or_, case
from sqlalchemy.orm import Session, selectinload
from examprep.models.orm import Question, Difficulty

APPROVED = "approved"

DIFFICULTY_RANK = case(
    (Question.difficulty == Difficulty.EASY, 0),
    (Question.difficulty == Difficulty.MEDIUM, 1),
    else_=2,
)


def approved_ids():
    return select(Question.id).where(Question.status == APPROVED)


def apply_filters(stmt, *, subject_ids: Optional[Iterable[str]] = None, lesson_ids: Optional[Iterable[str]] = None,
                  topic_ids: Optional[Iterable[str]] = None, subtopic_ids: Optional[Iterable[str]] = None,
                  difficulties: Optional[Iterable[Difficulty]] = None, is_previous_year: Optional[bool] = None,
                  year: Optional[int] = None, search: Optional[str] = None):
    """AND across the given filters, membership within each id set. Empty sets are ignored."""
    if subject_ids: stmt = stmt.where(Question.subject_id.in_(list(subject_ids)))
    if lesson_ids: stmt = stmt.where(Question.lesson_id.in_(list(lesson_ids)))
    if topic_ids: stmt = stmt.where(Question.topic_id.in_(list(topic_ids)))
    if subtopic_ids: stmt = stmt.where(Question.subtopic_id.in_(list(subtopic_ids)))
    if difficulties: stmt = stmt.where(Question.difficulty.in_(list(difficulties)))
    if is_previous_year is not None: stmt = stmt.where(Question.is_previous_year == is_previous_year)
    if year is not None: stmt = stmt.where(Question.year_appeared == year)
    if search:
        like = f"%{search.strip().lower()}%"
        stmt = stmt.where(or_(func.lower(Question.stem).like(like),
                              func.lower(func.coalesce(Question.explanation, "")).like(like)))
    return stmt


def existing_ids(db: Session, ids: Iterable[str]) -> set:
    ids = list(ids)
    if not ids: return set()
    return set(db.scalars(select(Question.id).where(Question.id.in_(ids))))


def load_questions(db: Session, ids: Iterable[str], taxonomy: bool = False, explanations: bool = False) -> Dict[str, Question]:
    ids = list(ids)
    if not ids: return {}
    opts = [selectinload(Question.options)]
    if taxonomy:
        opts += [selectinload(Question.subject), selectinload(Question.topic), selectinload(Question.subtopic)]
    if explanations:
        opts.append(selectinload(Question.alternative_explanations))
    rows = db.scalars(select(Question).options(*opts).where(Question.id.in_(ids))).all()
    return {q.id: q for q in rows}


def option_dict(o, reveal: bool = True) -> dict:
    d = {"id": o.id, "text": o.text, "order": o.position}
    if reveal: d["isCorrect"] = o.is_correct
    return d


def _ref(node) -> Optional[dict]:
    return {"id": node.id, "name": node.name} if node is not None else None


def question_dict(q: Question, reveal: bool = True, taxonomy: bool = False) -> dict:
    d = {
        "id": q.id, "stem": q.stem, "difficulty": q.difficulty.value,
        "subjectId": q.subject_id, "lessonId": q.lesson_id, "topicId": q.topic_id, "subtopicId": q.subtopic_id,
        "isPreviousYear": q.is_previous_year, "yearAppeared": q.year_appeared,
        "options": [option_dict(o, reveal) for o in q.options],
    }
    if reveal: d["explanation"] = q.explanation
    if taxonomy:
        d["subject"], d["topic"], d["subtopic"] = _ref(q.subject), _ref(q.topic), _ref(q.subtopic)
    return d


def hydrate(db: Session, ids: List[str], reveal: bool = True, taxonomy: bool = False) -> List[dict]:
    """Questions with options in the order of `ids`. Ids no longer in the bank are skipped."""
    found = load_questions(db, ids, taxonomy=taxonomy)
    return [question_dict(found[i], reveal, taxonomy) for i in ids if i in found]


def page_meta(page: int, limit: int, total: int) -> dict:
    pages = (total + limit - 1) // limit if limit else 0
    return {"currentPage": page, "totalPages": pages, "totalItems": total, "itemsPerPage": limit,
            "hasNextPage": page < pages, "hasPreviousPage": page > 1}
