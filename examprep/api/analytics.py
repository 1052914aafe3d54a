from fastapi import APIRouter, Depends, Query
from typing import Literal, Optional
from sqlalchemy.orm import Session
from examprep.api.deps import student
from examprep.core.auth import TokenData
from examprep.core.config import settings
from examprep.core.database import get_db
from examprep.models.orm import Difficulty
from examprep.services import analytics, paper_builder

router = APIRouter()

@router.get("/subjects")
def by_subject(user: TokenData = Depends(student), db: Session = Depends(get_db)):
    return analytics.analytics_by_subject(db, user.sub)

@router.get("/topics")
def by_topic(user: TokenData = Depends(student), db: Session = Depends(get_db)):
    return analytics.analytics_by_topic(db, user.sub)

@router.get("/subtopics")
def by_subtopic(user: TokenData = Depends(student), db: Session = Depends(get_db)):
    return analytics.analytics_by_subtopic(db, user.sub)

@router.get("/difficulty")
def by_difficulty(user: TokenData = Depends(student), db: Session = Depends(get_db)):
    return analytics.analytics_by_difficulty(db, user.sub)

@router.get("/pyq/stats", dependencies=[Depends(student)])
def pyq_stats(db: Session = Depends(get_db)):
    return analytics.pyq_stats(db)

@router.get("/pyq/years", dependencies=[Depends(student)])
def pyq_years(db: Session = Depends(get_db)):
    return {"years": analytics.pyq_years(db)}

@router.get("/pyq/questions")
def pyq_questions(page: int = Query(1, ge=1), limit: int = Query(20, ge=1, le=100),
                  year: Optional[int] = None,
                  subject_id: Optional[str] = Query(None, alias="subjectId"),
                  lesson_id: Optional[str] = Query(None, alias="lessonId"),
                  topic_id: Optional[str] = Query(None, alias="topicId"),
                  subtopic_id: Optional[str] = Query(None, alias="subtopicId"),
                  difficulty: Optional[Difficulty] = None, search: Optional[str] = None,
                  user: TokenData = Depends(student), db: Session = Depends(get_db)):
    return analytics.pyq_questions(db, stream_id=user.stream_id, page=page, limit=limit, year=year,
                                   subject_id=subject_id, lesson_id=lesson_id, topic_id=topic_id,
                                   subtopic_id=subtopic_id, difficulty=difficulty, search=search)

@router.get("/pyq/questions/{question_id}", dependencies=[Depends(student)])
def pyq_question(question_id: str, db: Session = Depends(get_db)):
    return analytics.pyq_question(db, question_id)

@router.get("/pyq/practice/generate", dependencies=[Depends(student)])
def pyq_practice(question_count: int = Query(10, alias="questionCount", ge=1, le=settings.PRACTICE_TEST_MAX_QUESTIONS),
                 difficulty: Literal["EASY", "MEDIUM", "HARD", "MIXED"] = "MIXED", year: Optional[int] = None,
                 subject_id: Optional[str] = Query(None, alias="subjectId"),
                 lesson_id: Optional[str] = Query(None, alias="lessonId"),
                 topic_id: Optional[str] = Query(None, alias="topicId"),
                 subtopic_id: Optional[str] = Query(None, alias="subtopicId"),
                 db: Session = Depends(get_db)):
    return paper_builder.generate_pyq_practice(db, question_count=question_count, difficulty=difficulty, year=year,
                                               subject_id=subject_id, lesson_id=lesson_id, topic_id=topic_id,
                                               subtopic_id=subtopic_id)
