#backend/main.py
import os
import csv
import io
import json
import logging
from typing import List, Optional
from fastapi import FastAPI, Depends, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from db import SessionLocal
from logic import gamification, membership, offline, scoring
from logic.progress_repo import ProgressRepository
from models.chat_message import ChatMessage
from models.exercise import Exercise
from models.lesson import Lesson
from models.profile import Profile
from models.submission import ExerciseSubmission
import llm_generate
from schemas import (
    ActivityInput, ChatMessageInput, ChatMessageOut, ExerciseCreate, ExerciseOut,
    GrammarInput, LessonCreate, LessonOut, LessonUpdate, ProfileOut, ProgressCreate,
    ProgressOut, ProgressUpdate, SubmissionInput, SubmissionResult,
)

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


# --------- App Setup ---------
app = FastAPI(title="Learn Kannada API")

# Allow the web frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "http://localhost:3000").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --------- DB Dependency ---------
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# --------- Auth Dependency ---------
# The auth provider sits in front of this service and forwards the signed-in user's id.
def current_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Unauthorized: Please sign in")
    return x_user_id.strip()


def optional_user_id(x_user_id: Optional[str] = Header(None)) -> Optional[str]:
    return x_user_id.strip() if x_user_id and x_user_id.strip() else None


@app.get("/")
def root():
    return {"message": "Learn Kannada API running"}


# --------- Paywall ---------
def caller_is_pro(db, user_id):
    profile = db.get(Profile, user_id) if user_id else None
    return profile is not None and profile.is_pro


def unlocked_lesson(db, lesson_id, user_id):
    lesson = db.get(Lesson, lesson_id)
    if lesson is None:
        raise HTTPException(status_code=404, detail="Lesson not found")
    if membership.requires_pro(lesson.level) and not caller_is_pro(db, user_id):
        raise HTTPException(status_code=402, detail="Upgrade to Pro to unlock this lesson")
    return lesson


# --------- Progress ---------
FAILURE_STATUS = {
    "User ID is required": 400,
    "Progress record not found": 404,
    "Progress record not found or unauthorized": 404,
    "Progress already exists": 409,
    "XP cannot decrease": 400,
    "Badges cannot be revoked": 400,
}


def raise_for_failure(result):
    if not result.is_success:
        raise HTTPException(status_code=FAILURE_STATUS.get(result.message, 500), detail=result.message)


@app.post("/progress/activity", response_model=ProgressOut)
def record_activity(data: ActivityInput, user_id: str = Depends(current_user_id), db: Session = Depends(get_db)):
    result = gamification.record_activity(ProgressRepository(db), user_id, data.lesson_id)
    raise_for_failure(result)
    return result.data


@app.get("/progress", response_model=List[ProgressOut])
def get_progress(user_id: str = Depends(current_user_id), db: Session = Depends(get_db)):
    result = gamification.get_progress_by_user(ProgressRepository(db), user_id)
    raise_for_failure(result)
    return result.data


@app.post("/progress", response_model=ProgressOut, status_code=201)
def create_progress(data: ProgressCreate, user_id: str = Depends(current_user_id), db: Session = Depends(get_db)):
    result = gamification.create_progress(ProgressRepository(db), user_id, data.lesson_id)
    raise_for_failure(result)
    return result.data


@app.patch("/progress/{progress_id}", response_model=ProgressOut)
def update_progress(progress_id: str, data: ProgressUpdate, user_id: str = Depends(current_user_id), db: Session = Depends(get_db)):
    values = data.model_dump(exclude_unset=True)
    result = gamification.update_progress(ProgressRepository(db), progress_id, values, user_id=user_id)
    raise_for_failure(result)
    return result.data


@app.get("/progress/recommended-level")
def recommended_level(user_id: str = Depends(current_user_id), db: Session = Depends(get_db)):
    progress = gamification.get_progress_by_user(ProgressRepository(db), user_id)
    if not progress.is_success:
        raise HTTPException(status_code=500, detail="Failed to fetch user progress: " + progress.message)

    result = llm_generate.recommend_level(progress.data)
    if not result.is_success:
        raise HTTPException(status_code=502, detail=result.message)
    return {"level": result.data}


# --------- Lessons ---------
@app.post("/lessons", response_model=LessonOut, status_code=201)
def create_lesson(data: LessonCreate, db: Session = Depends(get_db)):
    lesson = Lesson(level=data.level, title=data.title, content=data.content)
    db.add(lesson)
    db.commit()
    db.refresh(lesson)
    return lesson


@app.get("/lessons", response_model=List[LessonOut])
def list_lessons(level: Optional[str] = None, user_id: Optional[str] = Depends(optional_user_id), db: Session = Depends(get_db)):
    query = db.query(Lesson)
    if level:
        query = query.filter(Lesson.level == level)

    pro = caller_is_pro(db, user_id)
    lessons = []
    for lesson in query.order_by(Lesson.created_at).all():
        out = LessonOut.model_validate(lesson)
        # Paid lessons stay listed for free members, but without their material
        if membership.requires_pro(lesson.level) and not pro:
            out = out.model_copy(update={"content": {}, "locked": True})
        lessons.append(out)
    return lessons


@app.get("/lessons/{lesson_id}", response_model=LessonOut)
def get_lesson(lesson_id: str, user_id: Optional[str] = Depends(optional_user_id), db: Session = Depends(get_db)):
    return unlocked_lesson(db, lesson_id, user_id)


@app.patch("/lessons/{lesson_id}", response_model=LessonOut)
def update_lesson(lesson_id: str, data: LessonUpdate, db: Session = Depends(get_db)):
    lesson = db.get(Lesson, lesson_id)
    if lesson is None:
        raise HTTPException(status_code=404, detail="Lesson not found")
    for key, value in data.model_dump(exclude_unset=True).items():
        setattr(lesson, key, value)
    db.commit()
    db.refresh(lesson)
    return lesson


@app.delete("/lessons/{lesson_id}")
def delete_lesson(lesson_id: str, db: Session = Depends(get_db)):
    lesson = db.get(Lesson, lesson_id)
    if lesson is None:
        raise HTTPException(status_code=404, detail="Lesson not found")
    db.delete(lesson)
    db.commit()
    return {"message": "Lesson deleted successfully"}


@app.get("/lessons/{lesson_id}/download")
def download_lesson(lesson_id: str, user_id: str = Depends(current_user_id)):
    result = offline.create_download_url(user_id, lesson_id)
    if not result.is_success:
        status = 400 if result.message == "Invalid lesson ID" else 502
        raise HTTPException(status_code=status, detail=result.message)
    return result.data


# --------- Exercises ---------
@app.post("/exercises", response_model=ExerciseOut, status_code=201)
def create_exercise(data: ExerciseCreate, db: Session = Depends(get_db)):
    if not data.lesson_id or not data.type or not data.content:
        raise HTTPException(status_code=400, detail="Missing required fields: lessonId, type, or content")
    if db.get(Lesson, data.lesson_id) is None:
        raise HTTPException(status_code=404, detail="Lesson not found")

    exercise = Exercise(lesson_id=data.lesson_id, type=data.type, content=data.content)
    db.add(exercise)
    db.commit()
    db.refresh(exercise)
    return exercise


@app.get("/lessons/{lesson_id}/exercises", response_model=List[ExerciseOut])
def list_exercises(lesson_id: str, user_id: Optional[str] = Depends(optional_user_id), db: Session = Depends(get_db)):
    unlocked_lesson(db, lesson_id, user_id)
    return db.query(Exercise).filter_by(lesson_id=lesson_id).order_by(Exercise.created_at).all()


@app.post("/exercises/{exercise_id}/submit", response_model=SubmissionResult)
def submit_exercise(exercise_id: str, data: SubmissionInput, user_id: str = Depends(current_user_id), db: Session = Depends(get_db)):
    if not data.response or not data.response.strip():
        raise HTTPException(status_code=400, detail="Exercise ID and user response are required")

    exercise = db.get(Exercise, exercise_id)
    if exercise is None:
        raise HTTPException(status_code=404, detail="Exercise not found")
    unlocked_lesson(db, exercise.lesson_id, user_id)

    try:
        result = scoring.score_response(exercise.content, data.response)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    # Save submission to DB before any XP is awarded
    submission = ExerciseSubmission(
        user_id=user_id,
        exercise_id=exercise.id,
        response=data.response,
        score=result["score"],
        was_correct=bool(result["score"]),
        xp_awarded=0,
    )
    db.add(submission)
    db.commit()

    # Only correct answers earn progress
    progress = None
    if result["score"]:
        state = gamification.record_activity(ProgressRepository(db), user_id, exercise.lesson_id)
        if not state.is_success:
            logger.error("Submission %s earned no XP: %s", submission.id, state.message)
            raise HTTPException(status_code=500, detail=state.message)
        progress = state.data
        submission.xp_awarded = gamification.XP_PER_ACTIVITY
        db.commit()

    return {
        "score": result["score"],
        "feedback": result["feedback"],
        "progress": ProgressOut.model_validate(progress) if progress is not None else None,
    }


# --------- Chat ---------
@app.post("/chat/messages", response_model=ChatMessageOut, status_code=201)
def send_message(data: ChatMessageInput, user_id: str = Depends(current_user_id), db: Session = Depends(get_db)):
    content = data.content.strip()
    if not content:
        raise HTTPException(status_code=400, detail="Message content cannot be empty")

    message = ChatMessage(user_id=user_id, content=content)
    db.add(message)
    db.commit()
    db.refresh(message)
    return message


@app.get("/chat/messages", response_model=List[ChatMessageOut])
def get_messages(user_id: Optional[str] = None, caller: str = Depends(current_user_id), db: Session = Depends(get_db)):
    if user_id and user_id != caller:
        raise HTTPException(status_code=403, detail="Forbidden: You can only view your own messages")

    query = db.query(ChatMessage)
    if user_id:
        query = query.filter_by(user_id=user_id)
    return query.order_by(ChatMessage.created_at).all()


# --------- Profiles & Payments ---------
@app.get("/profile", response_model=ProfileOut)
def get_profile(user_id: str = Depends(current_user_id), db: Session = Depends(get_db)):
    return membership.get_or_create_profile(db, user_id)


def start_checkout(user_id, kind):
    result = membership.create_checkout_session(user_id, kind)
    if not result.is_success:
        raise HTTPException(status_code=502, detail=result.message)
    return result.data


@app.post("/payments/checkout")
def subscription_checkout(user_id: str = Depends(current_user_id)):
    return start_checkout(user_id, "subscription")


@app.post("/tutors/checkout")
def tutor_checkout(user_id: str = Depends(current_user_id)):
    return start_checkout(user_id, "tutor")


@app.post("/payments/webhooks")
async def payments_webhook(request: Request, db: Session = Depends(get_db)):
    body = await request.body()
    try:
        membership.verify_signature(
            body,
            request.headers.get("payments-signature"),
            os.getenv("PAYMENTS_WEBHOOK_SECRET"),
        )
    except membership.SignatureError as e:
        logger.warning("Webhook rejected: %s", e)
        raise HTTPException(status_code=400, detail=str(e))

    try:
        event = json.loads(body)
        result = membership.handle_event(db, event)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if not result.is_success:
        raise HTTPException(status_code=500, detail=result.message)
    return {"received": True}


# --------- AI ---------
@app.post("/ai/grammar")
def grammar_explanation(data: GrammarInput, user_id: str = Depends(current_user_id)):
    result = llm_generate.explain_grammar(data.text)
    if not result.is_success:
        status = 400 if result.message == "Input sentence cannot be empty" else 502
        raise HTTPException(status_code=status, detail=result.message)
    return {"explanation": result.data}


# --------- Admin: Submissions ---------
@app.get("/admin/submissions")
def get_all_submissions(db: Session = Depends(get_db)):
    submissions = db.query(ExerciseSubmission).order_by(ExerciseSubmission.timestamp).all()

    return [
        {
            "user_id": s.user_id,
            "exercise_id": s.exercise_id,
            "response": s.response,
            "score": s.score,
            "was_correct": s.was_correct,
            "xp_awarded": s.xp_awarded,
            "timestamp": s.timestamp.isoformat(),
        }
        for s in submissions
    ]


@app.get("/admin/export/csv")
def export_submissions_csv(db: Session = Depends(get_db)):
    submissions = db.query(ExerciseSubmission).order_by(ExerciseSubmission.timestamp).all()

    # Create in-memory CSV file
    output = io.StringIO()
    writer = csv.writer(output)

    writer.writerow([
        "user_id", "exercise_id", "response",
        "score", "was_correct", "xp_awarded", "timestamp"
    ])

    for s in submissions:
        writer.writerow([
            s.user_id,
            s.exercise_id,
            s.response,
            s.score,
            s.was_correct,
            s.xp_awarded,
            s.timestamp.isoformat()
        ])

    output.seek(0)
    return StreamingResponse(
        output,
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=submissions.csv"}
    )


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error("Database error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": "Database error"})


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
