import pytest
from examprep.core.errors import OwnershipError, ProgressNotFound, QuestionNotFound, SessionNotFound, UnsupportedContentType
from examprep.models.orm import Difficulty, PracticeProgress, PracticeQuestionSession
from examprep.services import progress


def test_start_is_idempotent_per_key(db, catalog):
    first = progress.start_practice_progress(db, "u1", "lesson", catalog.mechanics.id, 12)
    progress.update_practice_progress(db, "u1", first["id"], {"completed_questions": 5})
    again = progress.start_practice_progress(db, "u1", "lesson", catalog.mechanics.id, 99)
    assert again["id"] == first["id"]
    assert again["totalQuestions"] == 12 and again["completedQuestions"] == 5
    assert again["lastAccessedAt"] >= first["lastAccessedAt"]
    assert db.query(PracticeProgress).count() == 1
    assert first["visitedQuestions"] == []


def test_same_content_for_other_user_is_separate(db, catalog):
    a = progress.start_practice_progress(db, "u1", "topic", catalog.kinematics.id, 3)
    b = progress.start_practice_progress(db, "u2", "topic", catalog.kinematics.id, 3)
    assert a["id"] != b["id"]


def test_unsupported_content_type(db, catalog):
    with pytest.raises(UnsupportedContentType):
        progress.start_practice_progress(db, "u1", "chapter", catalog.mechanics.id, 3)
    with pytest.raises(UnsupportedContentType):
        progress.get_content_questions(db, "subject", catalog.physics.id)


def test_partial_update_and_visited_dedupe(db, catalog):
    p = progress.start_practice_progress(db, "u1", "topic", catalog.kinematics.id, 4)
    out = progress.update_practice_progress(db, "u1", p["id"], {"current_question_index": 2,
                                                                "visited_questions": ["q1", "q2", "q1"]})
    assert out["currentQuestionIndex"] == 2 and out["visitedQuestions"] == ["q1", "q2"]
    assert out["completedQuestions"] == 0 and out["isCompleted"] is False
    done = progress.update_practice_progress(db, "u1", p["id"], {"is_completed": True})
    assert done["isCompleted"] is True and done["currentQuestionIndex"] == 2


def test_progress_ownership_and_missing(db, catalog):
    p = progress.start_practice_progress(db, "u1", "lesson", catalog.mechanics.id, 4)
    with pytest.raises(OwnershipError):
        progress.update_practice_progress(db, "u2", p["id"], {"is_completed": True})
    with pytest.raises(OwnershipError):
        progress.delete_practice_progress(db, "u2", p["id"])
    with pytest.raises(ProgressNotFound):
        progress.update_practice_progress(db, "u1", "missing", {})


def test_session_create_twice_updates_in_place(db, catalog, make_question):
    q = make_question(subject=catalog.physics, topic=catalog.kinematics)
    p = progress.start_practice_progress(db, "u1", "topic", catalog.kinematics.id, 1)
    first = progress.create_practice_session(db, "u1", p["id"], q.id, user_answer={"optionId": "a"},
                                             is_correct=False, time_spent=10)
    second = progress.create_practice_session(db, "u1", p["id"], q.id, user_answer={"optionId": "b"},
                                              is_correct=True, is_checked=True)
    assert second["id"] == first["id"]
    assert second["userAnswer"] == {"optionId": "b"} and second["isCorrect"] is True
    assert second["timeSpent"] == 10 and second["isChecked"] is True
    assert db.query(PracticeQuestionSession).count() == 1


def test_session_update_checks_parent_owner(db, catalog, make_question):
    q = make_question(subject=catalog.physics)
    p = progress.start_practice_progress(db, "u1", "lesson", catalog.mechanics.id, 1)
    s = progress.create_practice_session(db, "u1", p["id"], q.id)
    with pytest.raises(OwnershipError):
        progress.update_practice_session(db, "u2", s["id"], {"is_correct": True})
    with pytest.raises(OwnershipError):
        progress.create_practice_session(db, "u2", p["id"], q.id)
    with pytest.raises(SessionNotFound):
        progress.update_practice_session(db, "u1", "missing", {})
    out = progress.update_practice_session(db, "u1", s["id"], {"time_spent": 42})
    assert out["timeSpent"] == 42


def test_session_for_unknown_question_is_not_found(db, catalog):
    p = progress.start_practice_progress(db, "u1", "topic", catalog.kinematics.id, 1)
    with pytest.raises(QuestionNotFound):
        progress.create_practice_session(db, "u1", p["id"], "no-such-question", is_correct=True)
    assert db.query(PracticeQuestionSession).count() == 0


def test_delete_cascades_sessions(db, catalog, make_question):
    q = make_question(subject=catalog.physics)
    p = progress.start_practice_progress(db, "u1", "lesson", catalog.mechanics.id, 1)
    progress.create_practice_session(db, "u1", p["id"], q.id, is_correct=True)
    progress.delete_practice_progress(db, "u1", p["id"])
    assert db.query(PracticeProgress).count() == 0
    assert db.query(PracticeQuestionSession).count() == 0
    assert progress.get_practice_progress(db, "u1", "lesson", catalog.mechanics.id) is None


def test_content_stats(db, catalog, make_question):
    empty = progress.get_content_stats(db, "u1", "topic", catalog.kinematics.id)
    assert empty == {"totalQuestions": 0, "completedQuestions": 0, "accuracy": 0, "timeSpent": 0, "lastAccessed": None}
    qs = [make_question(subject=catalog.physics, topic=catalog.kinematics) for _ in range(3)]
    p = progress.start_practice_progress(db, "u1", "topic", catalog.kinematics.id, 3)
    assert progress.get_content_stats(db, "u1", "topic", catalog.kinematics.id)["accuracy"] == 0
    for q, right, secs in zip(qs, (True, False, True), (5, 7, 9)):
        progress.create_practice_session(db, "u1", p["id"], q.id, is_correct=right, time_spent=secs)
    stats = progress.get_content_stats(db, "u1", "topic", catalog.kinematics.id)
    assert stats["accuracy"] == 66.67 and stats["timeSpent"] == 21 and stats["totalQuestions"] == 3


def test_content_questions_ordered_by_difficulty(db, catalog, make_question):
    hard = make_question(subject=catalog.physics, topic=catalog.kinematics, difficulty=Difficulty.HARD)
    easy = make_question(subject=catalog.physics, topic=catalog.kinematics, difficulty=Difficulty.EASY)
    medium = make_question(subject=catalog.physics, topic=catalog.kinematics, difficulty=Difficulty.MEDIUM)
    make_question(subject=catalog.physics, topic=catalog.kinematics, status="draft")
    out = progress.get_content_questions(db, "topic", catalog.kinematics.id)
    assert [q["id"] for q in out] == [easy.id, medium.id, hard.id]
    assert all("isCorrect" in o for o in out[0]["options"])


def test_content_tree_overlay(db, catalog, make_question):
    make_question(subject=catalog.physics, lesson=catalog.mechanics, topic=catalog.kinematics, subtopic=catalog.projectiles)
    make_question(subject=catalog.physics, lesson=catalog.mechanics, topic=catalog.kinematics)
    make_question(subject=catalog.biology, topic=catalog.cells)
    p = progress.start_practice_progress(db, "u1", "topic", catalog.kinematics.id, 2)
    progress.update_practice_progress(db, "u1", p["id"], {"completed_questions": 1})
    progress.start_practice_progress(db, "u2", "lesson", catalog.mechanics.id, 2)

    tree = progress.get_content_tree(db, "u1", stream_id="stream-1")
    assert [s["name"] for s in tree] == ["Biology", "Physics"]
    biology, physics = tree
    assert physics["totalQuestions"] == 2 and physics["completedCount"] == 0
    lesson = physics["lessons"][0]
    assert lesson["totalQuestions"] == 2 and lesson["completedCount"] == 0 and lesson["progressId"] is None
    topic = lesson["topics"][0]
    assert topic["completedCount"] == 1 and topic["progressId"] == p["id"]
    assert topic["subtopics"][0]["name"] == "Projectiles" and topic["subtopics"][0]["totalQuestions"] == 1
    assert biology["lessons"] == [] and biology["topics"][0]["name"] == "Cells"


def test_content_tree_without_stream_includes_everything(db, catalog):
    assert [s["name"] for s in progress.get_content_tree(db, "u1")] == ["Biology", "History", "Physics"]
    assert progress.get_content_tree(db, "u1", stream_id="unknown") == []


def test_history_is_most_recent_first(db, catalog, make_question):
    a = progress.start_practice_progress(db, "u1", "lesson", catalog.mechanics.id, 1)
    b = progress.start_practice_progress(db, "u1", "topic", catalog.kinematics.id, 1)
    progress.update_practice_progress(db, "u1", a["id"], {"current_question_index": 1})
    history = progress.practice_history(db, "u1")
    assert [h["id"] for h in history] == [a["id"], b["id"]]
    assert history[0]["sessions"] == []


def test_get_progress_includes_sessions_with_questions(db, catalog, make_question):
    q = make_question(subject=catalog.physics, topic=catalog.kinematics, stem="Range of a projectile?")
    p = progress.start_practice_progress(db, "u1", "topic", catalog.kinematics.id, 1)
    progress.create_practice_session(db, "u1", p["id"], q.id, user_answer="B", is_checked=True)
    out = progress.get_practice_progress(db, "u1", "topic", catalog.kinematics.id)
    assert out["id"] == p["id"]
    assert out["sessions"][0]["question"]["stem"] == "Range of a projectile?"
