from fastapi import APIRouter, Depends
from pydantic import Field
from typing import Any, List, Optional
from sqlalchemy.orm import Session
from examprep.api.deps import CamelModel, student
from examprep.core.auth import TokenData
from examprep.core.database import get_db
from examprep.services import progress

router = APIRouter()

class ProgressStart(CamelModel):
    content_type: str
    content_id: str
    total_questions: int = Field(ge=0)

class ProgressPatch(CamelModel):
    current_question_index: Optional[int] = Field(default=None, ge=0)
    completed_questions: Optional[int] = Field(default=None, ge=0)
    visited_questions: Optional[List[str]] = None
    is_completed: Optional[bool] = None

class SessionCreate(CamelModel):
    progress_id: str
    question_id: str
    user_answer: Optional[Any] = None
    is_correct: Optional[bool] = None
    time_spent: Optional[int] = Field(default=None, ge=0)
    is_checked: Optional[bool] = None

class SessionPatch(CamelModel):
    user_answer: Optional[Any] = None
    is_correct: Optional[bool] = None
    time_spent: Optional[int] = Field(default=None, ge=0)
    is_checked: Optional[bool] = None

@router.get("/content-tree")
def content_tree(user: TokenData = Depends(student), db: Session = Depends(get_db)):
    return progress.get_content_tree(db, user.sub, user.stream_id)

@router.get("/content/{content_type}/{content_id}/questions", dependencies=[Depends(student)])
def content_questions(content_type: str, content_id: str, db: Session = Depends(get_db)):
    return progress.get_content_questions(db, content_type, content_id)

@router.post("/progress/start")
def start_progress(payload: ProgressStart, user: TokenData = Depends(student), db: Session = Depends(get_db)):
    return progress.start_practice_progress(db, user.sub, payload.content_type, payload.content_id, payload.total_questions)

@router.get("/progress/{content_type}/{content_id}")
def get_progress(content_type: str, content_id: str, user: TokenData = Depends(student), db: Session = Depends(get_db)):
    return progress.get_practice_progress(db, user.sub, content_type, content_id)

@router.put("/progress/{progress_id}")
def update_progress(progress_id: str, payload: ProgressPatch, user: TokenData = Depends(student), db: Session = Depends(get_db)):
    return progress.update_practice_progress(db, user.sub, progress_id, payload.model_dump(exclude_unset=True))

@router.delete("/progress/{progress_id}")
def delete_progress(progress_id: str, user: TokenData = Depends(student), db: Session = Depends(get_db)):
    progress.delete_practice_progress(db, user.sub, progress_id)
    return {"message": "Progress deleted successfully"}

@router.post("/session")
def create_session(payload: SessionCreate, user: TokenData = Depends(student), db: Session = Depends(get_db)):
    return progress.create_practice_session(db, user.sub, **payload.model_dump())

@router.put("/session/{session_id}")
def update_session(session_id: str, payload: SessionPatch, user: TokenData = Depends(student), db: Session = Depends(get_db)):
    return progress.update_practice_session(db, user.sub, session_id, payload.model_dump(exclude_unset=True))

@router.get("/history")
def history(user: TokenData = Depends(student), db: Session = Depends(get_db)):
    return progress.practice_history(db, user.sub)

@router.get("/stats/{content_type}/{content_id}")
def content_stats(content_type: str, content_id: str, user: TokenData = Depends(student), db: Session = Depends(get_db)):
    return progress.get_content_stats(db, user.sub, content_type, content_id)
