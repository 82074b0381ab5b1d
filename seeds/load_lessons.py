# seeds/load_lessons.py

import json
import os

from db import SessionLocal
from models.lesson import Lesson, LEVELS
from models.exercise import Exercise, EXERCISE_TYPES

# Path to the lesson bundle
LESSONS_PATH = os.path.join(os.path.dirname(__file__), "kannada_lessons.json")


def parse_lessons(path, max_entries=500):
    with open(path, "r", encoding="utf-8") as f:
        raw = json.load(f)

    data = []
    for entry in raw:
        level = entry.get("level")
        title = (entry.get("title") or "").strip()
        if level not in LEVELS or not title:
            continue

        exercises = [
            ex for ex in entry.get("exercises", [])
            if ex.get("type") in EXERCISE_TYPES and ex.get("content")
        ]
        data.append({
            "level": level,
            "title": title,
            "content": entry.get("content", {}),
            "exercises": exercises,
        })

        if len(data) >= max_entries:
            break

    return data


def load_lessons(db, lessons):
    created = 0
    for item in lessons:
        if db.query(Lesson).filter_by(title=item["title"], level=item["level"]).first():
            continue
        lesson = Lesson(level=item["level"], title=item["title"], content=item["content"])
        db.add(lesson)
        db.flush()
        for ex in item["exercises"]:
            db.add(Exercise(lesson_id=lesson.id, type=ex["type"], content=ex["content"]))
        created += 1
    db.commit()
    return created


if __name__ == "__main__":
    print(f"🔄 Loading lessons from: {LESSONS_PATH}")
    parsed = parse_lessons(LESSONS_PATH)

    db = SessionLocal()
    try:
        count = load_lessons(db, parsed)
    finally:
        db.close()

    print(f"✅ Saved {count} new lessons ({len(parsed)} in file)")
