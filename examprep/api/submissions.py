from fastapi import APIRouter, Depends, Query
from typing import Optional
from sqlalchemy.orm import Session
from examprep.api.deps import CamelModel, student
from examprep.core.auth import TokenData
from examprep.core.database import get_db
from examprep.services import submissions

router = APIRouter()

class AnswerSubmit(CamelModel):
    question_id: str
    selected_option_id: Optional[str] = None

@router.get("/history")
def exam_history(page: int = Query(1, ge=1), limit: int = Query(10, ge=1, le=100),
                 user: TokenData = Depends(student), db: Session = Depends(get_db)):
    return submissions.exam_history(db, user.sub, page, limit)

@router.post("/{submission_id}/answers")
def submit_answer(submission_id: str, payload: AnswerSubmit, user: TokenData = Depends(student), db: Session = Depends(get_db)):
    return submissions.submit_answer(db, user.sub, submission_id, payload.question_id, payload.selected_option_id)

@router.post("/{submission_id}/finalize")
def finalize(submission_id: str, user: TokenData = Depends(student), db: Session = Depends(get_db)):
    return submissions.finalize(db, user.sub, submission_id)

@router.get("/{submission_id}")
def get_submission(submission_id: str, user: TokenData = Depends(student), db: Session = Depends(get_db)):
    return submissions.get_submission(db, user.sub, submission_id)

@router.get("/{submission_id}/questions")
def get_submission_questions(submission_id: str, user: TokenData = Depends(student), db: Session = Depends(get_db)):
    return submissions.get_submission_questions(db, user.sub, submission_id)

@router.get("/{submission_id}/results")
def get_exam_results(submission_id: str, user: TokenData = Depends(student), db: Session = Depends(get_db)):
    return submissions.get_exam_results(db, user.sub, submission_id)
