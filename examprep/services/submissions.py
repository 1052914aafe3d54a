"""
Submission lifecycle (created -> in_progress -> finalized) and answer recording.

Every accessor takes the calling user's id and enforces ownership of the
submission before doing anything else.
"""
import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from sqlalchemy import select, update, func
from sqlalchemy.orm import Session

from examprep.core.database import upsert_insert
from examprep.core.errors import (
    InvalidRequest, OwnershipError, PaperNotFound, SubmissionFinalized, SubmissionNotFinalized, SubmissionNotFound
)
from examprep.models.orm import ExamAnswer, ExamPaper, ExamSubmission, QuestionOption, SubmissionStatus
from examprep.services import question_pool as pool
from examprep.services import scoring

logger = logging.getLogger(__name__)


def _owned(db: Session, user_id: str, submission_id: str, lock: bool = False) -> ExamSubmission:
    stmt = select(ExamSubmission).where(ExamSubmission.id == submission_id)
    if lock: stmt = stmt.with_for_update()
    sub = db.scalar(stmt)
    if not sub:
        raise SubmissionNotFound(submission_id)
    if sub.user_id != user_id:
        raise OwnershipError("submission", submission_id)
    return sub


def result_dict(sub: ExamSubmission) -> dict:
    return {
        "submissionId": sub.id, "examPaperId": sub.exam_paper_id, "status": sub.status.value,
        "startedAt": sub.started_at, "submittedAt": sub.submitted_at, "totalQuestions": sub.total_questions,
        "correctCount": sub.correct_count, "scorePercent": sub.score_percent,
    }


def answer_dict(a: ExamAnswer) -> dict:
    return {"id": a.id, "submissionId": a.submission_id, "questionId": a.question_id,
            "selectedOptionId": a.selected_option_id, "isCorrect": a.is_correct, "answeredAt": a.answered_at}


def start(db: Session, user_id: str, paper_id: str) -> dict:
    paper = db.get(ExamPaper, paper_id)
    if not paper:
        raise PaperNotFound(paper_id)
    snapshot = list(paper.question_ids)
    sub = ExamSubmission(user_id=user_id, exam_paper_id=paper.id, status=SubmissionStatus.CREATED,
                         total_questions=len(snapshot))
    db.add(sub); db.commit(); db.refresh(sub)
    logger.info("User %s started submission %s on paper %s", user_id, sub.id, paper.id)
    return {"submissionId": sub.id, "examPaperId": paper.id, "questionIds": snapshot,
            "totalQuestions": sub.total_questions, "timeLimitMin": paper.time_limit_min, "status": sub.status.value}


def submit_answer(db: Session, user_id: str, submission_id: str, question_id: str,
                  selected_option_id: Optional[str]) -> dict:
    sub = _owned(db, user_id, submission_id, lock=True)
    if sub.status == SubmissionStatus.FINALIZED:
        raise SubmissionFinalized(submission_id)
    if question_id not in sub.paper.question_ids:
        raise InvalidRequest("Question is not part of this exam paper", {"question_id": question_id})

    is_correct = False
    if selected_option_id is not None:
        opt = db.get(QuestionOption, selected_option_id)
        if not opt or opt.question_id != question_id:
            raise InvalidRequest("Option does not belong to the question",
                                 {"question_id": question_id, "selected_option_id": selected_option_id})
        is_correct = opt.is_correct

    ins = upsert_insert(db, ExamAnswer).values(
        id=str(uuid4()), submission_id=sub.id, question_id=question_id, selected_option_id=selected_option_id,
        is_correct=is_correct, answered_at=datetime.now(timezone.utc),
    )
    ins = ins.on_conflict_do_update(
        index_elements=["submission_id", "question_id"],
        set_={"selected_option_id": ins.excluded.selected_option_id, "is_correct": ins.excluded.is_correct,
              "answered_at": ins.excluded.answered_at},
    )
    db.execute(ins)
    if sub.status == SubmissionStatus.CREATED:
        sub.status = SubmissionStatus.IN_PROGRESS
    db.commit()

    answer = db.scalar(select(ExamAnswer).where(ExamAnswer.submission_id == submission_id,
                                                ExamAnswer.question_id == question_id))
    data = answer_dict(answer)
    data.pop("answeredAt")
    return data


def finalize(db: Session, user_id: str, submission_id: str) -> dict:
    sub = _owned(db, user_id, submission_id, lock=True)
    if sub.status == SubmissionStatus.FINALIZED:
        return result_dict(sub)

    correct = scoring.count_correct(db, sub.id)
    pct = scoring.score_percent(correct, sub.total_questions)
    res = db.execute(
        update(ExamSubmission)
        .where(ExamSubmission.id == sub.id, ExamSubmission.status != SubmissionStatus.FINALIZED)
        .values(status=SubmissionStatus.FINALIZED, submitted_at=datetime.now(timezone.utc),
                correct_count=correct, score_percent=pct)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    if res.rowcount == 0:
        logger.warning("Submission %s was finalized concurrently; returning stored result", sub.id)
    else:
        logger.info("Finalized submission %s: %d/%d correct", sub.id, correct, sub.total_questions)
    db.refresh(sub)
    return result_dict(sub)


def get_submission(db: Session, user_id: str, submission_id: str) -> dict:
    sub = _owned(db, user_id, submission_id)
    paper = sub.paper
    answers = db.scalars(select(ExamAnswer).where(ExamAnswer.submission_id == sub.id)
                         .order_by(ExamAnswer.answered_at, ExamAnswer.id)).all()
    data = result_dict(sub)
    data.update({
        "examPaper": {"id": paper.id, "title": paper.title, "description": paper.description,
                      "timeLimitMin": paper.time_limit_min},
        "questionIds": list(paper.question_ids),
        "answers": [answer_dict(a) for a in answers],
    })
    return data


def get_submission_questions(db: Session, user_id: str, submission_id: str) -> dict:
    sub = _owned(db, user_id, submission_id)
    reveal = sub.status == SubmissionStatus.FINALIZED
    return {"submissionId": sub.id, "status": sub.status.value,
            "questions": pool.hydrate(db, list(sub.paper.question_ids), reveal=reveal, taxonomy=True)}


def get_exam_results(db: Session, user_id: str, submission_id: str) -> dict:
    sub = _owned(db, user_id, submission_id)
    if sub.status != SubmissionStatus.FINALIZED:
        raise SubmissionNotFinalized(submission_id)
    snapshot = list(sub.paper.question_ids)
    answers = {a.question_id: a for a in db.scalars(select(ExamAnswer).where(ExamAnswer.submission_id == sub.id))}
    questions = pool.load_questions(db, snapshot, taxonomy=True, explanations=True)

    items = []
    for qid in snapshot:
        q = questions.get(qid)
        if q is None: continue
        a = answers.get(qid)
        correct_opt = next((o for o in q.options if o.is_correct), None)
        item = pool.question_dict(q, reveal=True, taxonomy=True)
        item.update({
            "selectedOptionId": a.selected_option_id if a else None,
            "correctOptionId": correct_opt.id if correct_opt else None,
            "isCorrect": a.is_correct if a else False,
            "answered": a is not None,
            "alternativeExplanations": [{"id": e.id, "explanation": e.explanation, "source": e.source}
                                        for e in q.alternative_explanations],
        })
        items.append(item)
    return {"result": result_dict(sub), "examPaper": {"id": sub.paper.id, "title": sub.paper.title},
            "questions": items}


def exam_history(db: Session, user_id: str, page: int = 1, limit: int = 10) -> dict:
    finalized = (ExamSubmission.user_id == user_id, ExamSubmission.status == SubmissionStatus.FINALIZED)
    total = db.scalar(select(func.count(ExamSubmission.id)).where(*finalized)) or 0
    rows = db.execute(
        select(ExamSubmission, ExamPaper.title).join(ExamPaper, ExamPaper.id == ExamSubmission.exam_paper_id)
        .where(*finalized).order_by(ExamSubmission.submitted_at.desc(), ExamSubmission.id)
        .offset((page - 1) * limit).limit(limit)
    ).all()
    items = []
    for sub, title in rows:
        d = result_dict(sub); d["paperTitle"] = title
        items.append(d)
    return {"items": items, "pagination": pool.page_meta(page, limit, total)}
