from fastapi import APIRouter, Depends, Query
from pydantic import Field, constr
from typing import List, Optional, Literal
from sqlalchemy.orm import Session
from examprep.api.deps import CamelModel, author, student
from examprep.core.auth import TokenData
from examprep.core.config import settings
from examprep.core.database import get_db
from examprep.models.orm import Difficulty
from examprep.services import paper_builder, submissions

router = APIRouter()

class PaperCreate(CamelModel):
    title: constr(min_length=1, max_length=255)
    description: Optional[str] = None
    subject_ids: List[str] = []
    topic_ids: List[str] = []
    subtopic_ids: List[str] = []
    question_ids: Optional[List[str]] = None
    time_limit_min: Optional[int] = Field(default=None, ge=1)
    limit: Optional[int] = Field(default=None, ge=1)

class PracticeTestRequest(CamelModel):
    subject_id: str
    lesson_id: Optional[str] = None
    topic_id: Optional[str] = None
    subtopic_id: Optional[str] = None
    question_count: int = Field(ge=1, le=settings.PRACTICE_TEST_MAX_QUESTIONS)
    difficulty: Literal["EASY", "MEDIUM", "HARD", "MIXED"] = "MIXED"
    time_limit_min: int = Field(default=60, ge=1)
    title: Optional[str] = None

@router.get("")
def list_papers(page: int = Query(1, ge=1), limit: int = Query(10, ge=1, le=100), search: Optional[str] = None,
                subject_id: Optional[str] = Query(None, alias="subjectId"),
                user: TokenData = Depends(student), db: Session = Depends(get_db)):
    return paper_builder.list_papers(db, user.sub, page=page, limit=limit, search=search, subject_id=subject_id)

@router.post("", status_code=201)
def create_paper(payload: PaperCreate, user: TokenData = Depends(author), db: Session = Depends(get_db)):
    paper = paper_builder.create_paper(db, created_by_id=user.sub, **payload.model_dump())
    return paper_builder.paper_dict(paper)

def _generate(payload: PracticeTestRequest, user: TokenData, db: Session) -> dict:
    return paper_builder.generate_practice_test(db, user_id=user.sub, **payload.model_dump())

@router.post("/manual/generate-practice-test", status_code=201)
def generate_manual(payload: PracticeTestRequest, user: TokenData = Depends(student), db: Session = Depends(get_db)):
    return _generate(payload, user, db)

@router.post("/ai/generate-practice-test", status_code=201)
def generate_ai(payload: PracticeTestRequest, user: TokenData = Depends(student), db: Session = Depends(get_db)):
    # difficulty and count arrive already chosen by the assistant; the sampling contract is shared
    return _generate(payload, user, db)

@router.get("/question-availability", dependencies=[Depends(student)])
def question_availability(subject_id: Optional[str] = Query(None, alias="subjectId"),
                          topic_id: Optional[str] = Query(None, alias="topicId"),
                          subtopic_id: Optional[str] = Query(None, alias="subtopicId"),
                          difficulty: Optional[Difficulty] = None, db: Session = Depends(get_db)):
    return paper_builder.question_availability(db, subject_id, topic_id, subtopic_id, difficulty)

@router.post("/{paper_id}/start", status_code=201)
def start_submission(paper_id: str, user: TokenData = Depends(student), db: Session = Depends(get_db)):
    return submissions.start(db, user.sub, paper_id)
