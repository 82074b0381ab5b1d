from logic import gamification
from models.profile import Profile
from models.submission import ExerciseSubmission
from schemas import ActionState

ALICE = {"X-User-Id": "alice"}
BOB = {"X-User-Id": "bob"}


def make_lesson(client, level="beginner", title="Greetings"):
    res = client.post("/lessons", json={"level": level, "title": title, "content": {"vocab": []}})
    assert res.status_code == 201
    return res.json()


def make_exercise(client, lesson_id, answer="ನಮಸ್ಕಾರ", type_="quiz"):
    res = client.post("/exercises", json={
        "lesson_id": lesson_id,
        "type": type_,
        "content": {"prompt": "Say hello", "correctAnswer": answer},
    })
    assert res.status_code == 201
    return res.json()


def test_root(client):
    assert client.get("/").json() == {"message": "Learn Kannada API running"}


# --------- Progress ---------
def test_record_activity_requires_user(client):
    res = client.post("/progress/activity", json={})
    assert res.status_code == 401


def test_record_activity_accumulates(client):
    first = client.post("/progress/activity", json={}, headers=ALICE).json()
    assert (first["xp"], first["streak"], first["badges"]) == (10, 1, [])

    for _ in range(4):
        last = client.post("/progress/activity", json={}, headers=ALICE).json()
    assert last["xp"] == 50
    assert last["streak"] == 5
    assert last["badges"] == ["Learner"]
    assert last["id"] == first["id"]

    records = client.get("/progress", headers=ALICE).json()
    assert len(records) == 1
    assert client.get("/progress", headers=BOB).json() == []


def test_progress_crud(client):
    lesson = make_lesson(client)
    created = client.post("/progress", json={}, headers=ALICE)
    assert created.status_code == 201
    assert (created.json()["xp"], created.json()["streak"], created.json()["badges"]) == (0, 0, [])
    progress_id = created.json()["id"]

    assert client.post("/progress", json={}, headers=ALICE).status_code == 409

    updated = client.patch(f"/progress/{progress_id}", json={"lesson_id": lesson["id"]}, headers=ALICE)
    assert updated.status_code == 200
    assert updated.json()["lesson_id"] == lesson["id"]
    assert updated.json()["xp"] == 0

    forbidden = client.patch(f"/progress/{progress_id}", json={"lesson_id": None}, headers=BOB)
    assert forbidden.status_code == 404


def test_progress_rejects_client_set_xp_and_badges(client):
    assert client.post("/progress", json={"xp": 5000, "badges": ["Master"]}, headers=ALICE).status_code == 422

    for _ in range(5):
        earned = client.post("/progress/activity", json={}, headers=ALICE).json()
    assert earned["badges"] == ["Learner"]

    res = client.patch(f"/progress/{earned['id']}", json={"xp": 0, "badges": []}, headers=ALICE)
    assert res.status_code == 422

    res = client.patch(f"/progress/{earned['id']}", json={"streak": 99}, headers=ALICE)
    assert res.status_code == 422

    kept = client.get("/progress", headers=ALICE).json()[0]
    assert (kept["xp"], kept["streak"], kept["badges"]) == (50, 5, ["Learner"])


def test_record_activity_maps_failures(client, monkeypatch):
    monkeypatch.setattr(gamification, "record_activity", lambda repo, user_id, lesson_id=None: ActionState.fail("Progress record not found"))
    res = client.post("/progress/activity", json={}, headers=ALICE)
    assert res.status_code == 404
    assert res.json()["detail"] == "Progress record not found"

    monkeypatch.setattr(gamification, "record_activity", lambda repo, user_id, lesson_id=None: ActionState.fail("Failed to update progress with gamification"))
    assert client.post("/progress/activity", json={}, headers=ALICE).status_code == 500


# --------- Lessons ---------
def test_lesson_crud(client):
    lesson = make_lesson(client)
    assert client.get(f"/lessons/{lesson['id']}").json()["title"] == "Greetings"

    res = client.patch(f"/lessons/{lesson['id']}", json={"title": "Hello & goodbye"})
    assert res.json()["title"] == "Hello & goodbye"

    assert client.delete(f"/lessons/{lesson['id']}").status_code == 200
    assert client.get(f"/lessons/{lesson['id']}").status_code == 404


def test_list_lessons_by_level(client):
    make_lesson(client, "beginner", "A")
    make_lesson(client, "advanced", "B")

    assert len(client.get("/lessons").json()) == 2
    titles = [l["title"] for l in client.get("/lessons", params={"level": "advanced"}).json()]
    assert titles == ["B"]


def test_paid_lessons_need_pro(client, db_session):
    lesson = make_lesson(client, "intermediate", "Verbs")

    assert client.get(f"/lessons/{lesson['id']}").status_code == 402
    assert client.get(f"/lessons/{lesson['id']}", headers=ALICE).status_code == 402

    db_session.add(Profile(user_id="alice", membership="pro"))
    db_session.commit()
    assert client.get(f"/lessons/{lesson['id']}", headers=ALICE).status_code == 200


def test_lesson_list_hides_paid_content_from_free_members(client, db_session):
    make_lesson(client, "beginner", "Greetings")
    client.post("/lessons", json={"level": "advanced", "title": "Idioms", "content": {"vocab": [{"kn": "ಗಾದೆ"}]}})

    listed = {l["title"]: l for l in client.get("/lessons", headers=ALICE).json()}
    assert listed["Idioms"]["content"] == {}
    assert listed["Idioms"]["locked"] is True
    assert listed["Greetings"]["content"] == {"vocab": []}
    assert listed["Greetings"]["locked"] is False
    anonymous = {l["title"]: l for l in client.get("/lessons").json()}
    assert anonymous["Idioms"]["content"] == {}

    db_session.add(Profile(user_id="alice", membership="pro"))
    db_session.commit()
    listed = {l["title"]: l for l in client.get("/lessons", headers=ALICE).json()}
    assert listed["Idioms"]["content"] == {"vocab": [{"kn": "ಗಾದೆ"}]}
    assert listed["Idioms"]["locked"] is False


def test_paid_lesson_exercises_need_pro(client, db_session):
    lesson = make_lesson(client, "intermediate", "Verbs")
    exercise = make_exercise(client, lesson["id"])

    assert client.get(f"/lessons/{lesson['id']}/exercises").status_code == 402
    res = client.get(f"/lessons/{lesson['id']}/exercises", headers=ALICE)
    assert res.status_code == 402
    assert res.json()["detail"] == "Upgrade to Pro to unlock this lesson"
    assert client.post(f"/exercises/{exercise['id']}/submit", json={"response": "ನಮಸ್ಕಾರ"}, headers=ALICE).status_code == 402

    db_session.add(Profile(user_id="alice", membership="pro"))
    db_session.commit()
    exercises = client.get(f"/lessons/{lesson['id']}/exercises", headers=ALICE).json()
    assert [e["id"] for e in exercises] == [exercise["id"]]


def test_exercises_of_missing_lesson(client):
    assert client.get("/lessons/missing/exercises").status_code == 404


# --------- Exercises ---------
def test_create_exercise_validates_fields(client):
    res = client.post("/exercises", json={"type": "quiz"})
    assert res.status_code == 400
    assert res.json()["detail"] == "Missing required fields: lessonId, type, or content"


def test_list_exercises_for_lesson(client):
    lesson = make_lesson(client)
    make_exercise(client, lesson["id"])
    make_exercise(client, lesson["id"], type_="writing")

    exercises = client.get(f"/lessons/{lesson['id']}/exercises").json()
    assert sorted(e["type"] for e in exercises) == ["quiz", "writing"]


def test_correct_submission_awards_progress(client):
    lesson = make_lesson(client)
    exercise = make_exercise(client, lesson["id"])

    res = client.post(f"/exercises/{exercise['id']}/submit", json={"response": "  ನಮಸ್ಕಾರ "}, headers=ALICE)
    body = res.json()
    assert res.status_code == 200
    assert body["score"] == 1
    assert body["feedback"] == "Correct! Well done."
    assert body["progress"]["xp"] == 10
    assert body["progress"]["lesson_id"] == lesson["id"]


def test_wrong_submission_awards_nothing(client):
    lesson = make_lesson(client)
    exercise = make_exercise(client, lesson["id"])

    body = client.post(f"/exercises/{exercise['id']}/submit", json={"response": "ಧನ್ಯವಾದ"}, headers=ALICE).json()
    assert body["score"] == 0
    assert body["feedback"] == "Incorrect. Try again!"
    assert body["progress"] is None
    assert client.get("/progress", headers=ALICE).json() == []


def test_submission_errors(client):
    lesson = make_lesson(client)
    exercise = make_exercise(client, lesson["id"])

    assert client.post(f"/exercises/{exercise['id']}/submit", json={"response": "x"}).status_code == 401
    assert client.post(f"/exercises/{exercise['id']}/submit", json={"response": " "}, headers=ALICE).status_code == 400
    assert client.post("/exercises/missing/submit", json={"response": "x"}, headers=ALICE).status_code == 404

    no_answer = client.post("/exercises", json={
        "lesson_id": lesson["id"], "type": "speaking", "content": {"prompt": "Talk"},
    }).json()
    res = client.post(f"/exercises/{no_answer['id']}/submit", json={"response": "x"}, headers=ALICE)
    assert res.status_code == 422
    assert res.json()["detail"] == "Exercise content lacks a correct answer for scoring"


def test_submission_is_logged_when_progress_update_fails(client, db_session, monkeypatch):
    lesson = make_lesson(client)
    exercise = make_exercise(client, lesson["id"])
    monkeypatch.setattr(gamification, "record_activity", lambda repo, user_id, lesson_id=None: ActionState.fail("Failed to update progress with gamification"))

    res = client.post(f"/exercises/{exercise['id']}/submit", json={"response": "ನಮಸ್ಕಾರ"}, headers=ALICE)
    assert res.status_code == 500

    rows = db_session.query(ExerciseSubmission).all()
    assert [(r.user_id, r.was_correct, r.xp_awarded) for r in rows] == [("alice", True, 0)]


def test_admin_sees_submissions_and_csv(client):
    lesson = make_lesson(client)
    exercise = make_exercise(client, lesson["id"])
    client.post(f"/exercises/{exercise['id']}/submit", json={"response": "ನಮಸ್ಕಾರ"}, headers=ALICE)
    client.post(f"/exercises/{exercise['id']}/submit", json={"response": "nope"}, headers=BOB)

    rows = client.get("/admin/submissions").json()
    assert [(r["user_id"], r["was_correct"], r["xp_awarded"]) for r in rows] == [
        ("alice", True, 10),
        ("bob", False, 0),
    ]

    res = client.get("/admin/export/csv")
    assert res.headers["content-type"].startswith("text/csv")
    lines = res.text.strip().splitlines()
    assert lines[0] == "user_id,exercise_id,response,score,was_correct,xp_awarded,timestamp"
    assert len(lines) == 3


# --------- Chat ---------
def test_chat_send_and_list(client):
    assert client.post("/chat/messages", json={"content": "   "}, headers=ALICE).status_code == 400

    sent = client.post("/chat/messages", json={"content": " ನಮಸ್ಕಾರ! "}, headers=ALICE)
    assert sent.status_code == 201
    assert sent.json()["content"] == "ನಮಸ್ಕಾರ!"
    client.post("/chat/messages", json={"content": "hi"}, headers=BOB)

    assert len(client.get("/chat/messages", headers=ALICE).json()) == 2
    mine = client.get("/chat/messages", params={"user_id": "alice"}, headers=ALICE).json()
    assert [m["user_id"] for m in mine] == ["alice"]


def test_chat_filter_must_match_caller(client):
    res = client.get("/chat/messages", params={"user_id": "bob"}, headers=ALICE)
    assert res.status_code == 403
    assert res.json()["detail"] == "Forbidden: You can only view your own messages"


# --------- Profile ---------
def test_profile_defaults_to_free(client):
    profile = client.get("/profile", headers=ALICE).json()
    assert profile == {"user_id": "alice", "membership": "free", "customer_id": None, "subscription_id": None}
