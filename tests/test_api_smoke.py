from examprep.models.orm import Difficulty


def test_health(client):
    r = client.get("/health"); assert r.status_code == 200 and r.json()["status"] == "ok"


def test_mock_login_issues_usable_token(client):
    r = client.post("/v1/auth/mock-login", json={"user_id": "tester", "roles": ["student"], "stream_id": "stream-1"})
    assert r.status_code == 200; token = r.json()["access_token"]
    r = client.get("/v1/practice/history", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 200 and r.json() == []


def test_bad_token_is_rejected(client):
    r = client.get("/v1/practice/history", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401 and r.json()["error"]["type"] == "http_error"


def test_student_cannot_create_paper(client, headers):
    r = client.post("/v1/papers", headers=headers(), json={"title": "Nope", "questionIds": ["x"]})
    assert r.status_code == 403


def test_exam_flow(client, headers, catalog, make_question, options):
    qs = [make_question(subject=catalog.physics, topic=catalog.kinematics) for _ in range(4)]
    author = headers("author-1", roles=("author",))
    r = client.post("/v1/papers", headers=author, json={"title": "Physics Mock", "questionIds": [q.id for q in qs],
                                                        "timeLimitMin": 20})
    assert r.status_code == 201; paper = r.json()
    assert paper["questionIds"] == [q.id for q in qs] and paper["createdById"] == "author-1"

    student = headers("student-1")
    r = client.post(f"/v1/papers/{paper['id']}/start", headers=student); assert r.status_code == 201
    sid = r.json()["submissionId"]; assert r.json()["totalQuestions"] == 4 and r.json()["status"] == "created"

    for q, right in zip(qs, (True, True, True, False)):
        opt = options.correct(q) if right else options.wrong(q)
        r = client.post(f"/v1/submissions/{sid}/answers", headers=student,
                        json={"questionId": q.id, "selectedOptionId": opt.id})
        assert r.status_code == 200 and r.json()["isCorrect"] is right

    r = client.get(f"/v1/submissions/{sid}/results", headers=student)
    assert r.status_code == 409 and r.json()["error"]["code"] == "SUBMISSION_NOT_FINALIZED"

    r = client.post(f"/v1/submissions/{sid}/finalize", headers=student)
    assert r.status_code == 200 and r.json()["scorePercent"] == 75.0 and r.json()["correctCount"] == 3

    r = client.post(f"/v1/submissions/{sid}/answers", headers=student, json={"questionId": qs[3].id, "selectedOptionId": None})
    assert r.status_code == 409 and r.json()["error"]["code"] == "SUBMISSION_FINALIZED"

    r = client.get(f"/v1/submissions/{sid}/results", headers=student)
    assert r.status_code == 200 and len(r.json()["questions"]) == 4

    r = client.get("/v1/analytics/subjects", headers=student)
    assert r.json() == [{"id": catalog.physics.id, "name": "Physics", "attempted": 4, "correct": 3, "accuracy": 75.0}]

    r = client.get("/v1/submissions/history", headers=student)
    assert r.json()["pagination"]["totalItems"] == 1

    r = client.get(f"/v1/submissions/{sid}", headers=headers("intruder"))
    assert r.status_code == 403 and r.json()["error"]["code"] == "FORBIDDEN"


def test_errors_render_with_code(client, headers):
    r = client.post("/v1/papers/missing/start", headers=headers())
    assert r.status_code == 404
    err = r.json()["error"]
    assert err["code"] == "PAPER_NOT_FOUND" and err["paper_id"] == "missing" and err["status_code"] == 404


def test_validation_error_shape(client, headers, catalog):
    r = client.post("/v1/papers/manual/generate-practice-test", headers=headers(),
                    json={"subjectId": catalog.physics.id, "questionCount": 0, "difficulty": "MIXED"})
    assert r.status_code == 422 and r.json()["error"]["type"] == "validation_error"


def test_generate_practice_test_endpoints(client, headers, catalog, make_question):
    for diff in ("EASY", "MEDIUM", "MEDIUM", "HARD"):
        make_question(subject=catalog.physics, difficulty=Difficulty(diff))
    for mode in ("manual", "ai"):
        r = client.post(f"/v1/papers/{mode}/generate-practice-test", headers=headers(),
                        json={"subjectId": catalog.physics.id, "questionCount": 10, "difficulty": "MIXED", "timeLimitMin": 15})
        assert r.status_code == 201
        body = r.json()
        assert body["available"] == 4 and body["shortfall"] == 6 and len(body["questions"]) == 4
    r = client.post("/v1/papers/manual/generate-practice-test", headers=headers(),
                    json={"subjectId": "unknown", "questionCount": 5, "difficulty": "EASY"})
    assert r.status_code == 404 and r.json()["error"]["code"] == "SUBJECT_NOT_FOUND"
    r = client.get("/v1/papers/question-availability", headers=headers(), params={"subjectId": catalog.physics.id})
    assert r.json()["byDifficulty"] == {"EASY": 1, "MEDIUM": 2, "HARD": 1}


def test_practice_flow(client, headers, catalog, make_question):
    q = make_question(subject=catalog.physics, lesson=catalog.mechanics, topic=catalog.kinematics)
    student = headers("student-1", stream_id="stream-1")
    r = client.get("/v1/practice/content-tree", headers=student)
    assert [s["name"] for s in r.json()] == ["Biology", "Physics"]

    r = client.get(f"/v1/practice/content/topic/{catalog.kinematics.id}/questions", headers=student)
    assert [x["id"] for x in r.json()] == [q.id]
    r = client.get(f"/v1/practice/content/chapter/{catalog.kinematics.id}/questions", headers=student)
    assert r.status_code == 404 and r.json()["error"]["code"] == "UNSUPPORTED_CONTENT_TYPE"

    r = client.post("/v1/practice/progress/start", headers=student,
                    json={"contentType": "topic", "contentId": catalog.kinematics.id, "totalQuestions": 1})
    pid = r.json()["id"]
    r = client.post("/v1/practice/session", headers=student,
                    json={"progressId": pid, "questionId": q.id, "userAnswer": {"optionId": "x"}, "isCorrect": True, "timeSpent": 12})
    assert r.status_code == 200; session_id = r.json()["id"]
    r = client.put(f"/v1/practice/session/{session_id}", headers=student, json={"isChecked": True})
    assert r.json()["isChecked"] is True and r.json()["timeSpent"] == 12
    r = client.put(f"/v1/practice/progress/{pid}", headers=student, json={"completedQuestions": 1, "isCompleted": True})
    assert r.json()["isCompleted"] is True

    r = client.get(f"/v1/practice/stats/topic/{catalog.kinematics.id}", headers=student)
    assert r.json()["accuracy"] == 100.0 and r.json()["timeSpent"] == 12
    r = client.get(f"/v1/practice/progress/topic/{catalog.kinematics.id}", headers=student)
    assert r.json()["sessions"][0]["questionId"] == q.id

    r = client.delete(f"/v1/practice/progress/{pid}", headers=headers("someone-else"))
    assert r.status_code == 403
    r = client.delete(f"/v1/practice/progress/{pid}", headers=student); assert r.status_code == 200
    assert client.get("/v1/practice/history", headers=student).json() == []


def test_paper_catalog_shows_attempts(client, headers, catalog, make_question):
    q = make_question(subject=catalog.physics)
    author = headers("author-1", roles=("author",))
    paper = client.post("/v1/papers", headers=author, json={"title": "Weekly Mock", "questionIds": [q.id],
                                                            "subjectIds": [catalog.physics.id]}).json()
    student = headers("student-1")
    r = client.get("/v1/papers", headers=student, params={"search": "weekly"})
    listed = r.json()["papers"]
    assert r.status_code == 200 and [p["id"] for p in listed] == [paper["id"]] and listed[0]["hasAttempted"] is False
    client.post(f"/v1/papers/{paper['id']}/start", headers=student)
    r = client.get("/v1/papers", headers=student, params={"subjectId": catalog.physics.id})
    assert r.json()["papers"][0]["hasAttempted"] is True and r.json()["papers"][0]["questionCount"] == 1


def test_pyq_endpoints(client, headers, catalog, make_question):
    q = make_question(subject=catalog.physics, pyq=True, year=2024, difficulty=Difficulty.HARD)
    r = client.get(f"/v1/analytics/pyq/questions/{q.id}", headers=headers())
    assert r.status_code == 200 and r.json()["yearAppeared"] == 2024
    r = client.get("/v1/analytics/pyq/questions/missing", headers=headers())
    assert r.status_code == 404 and r.json()["error"]["code"] == "QUESTION_NOT_FOUND"
    r = client.get("/v1/analytics/pyq/practice/generate", headers=headers(),
                   params={"year": 2024, "questionCount": 3, "difficulty": "HARD"})
    assert r.status_code == 200
    assert r.json()["totalQuestions"] == 1 and r.json()["availableQuestions"] == 1 and r.json()["shortfall"] == 2


def test_practice_session_for_unknown_question_is_404(client, headers, catalog):
    student = headers("student-1")
    pid = client.post("/v1/practice/progress/start", headers=student,
                      json={"contentType": "topic", "contentId": catalog.kinematics.id, "totalQuestions": 1}).json()["id"]
    r = client.post("/v1/practice/session", headers=student, json={"progressId": pid, "questionId": "ghost"})
    assert r.status_code == 404 and r.json()["error"]["code"] == "QUESTION_NOT_FOUND"
