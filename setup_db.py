# setup_db.py
from db import Base, engine
from models.lesson import Lesson
from models.exercise import Exercise
from models.progress import Progress
from models.submission import ExerciseSubmission
from models.chat_message import ChatMessage
from models.profile import Profile

if __name__ == "__main__":
    print("🗑️ Dropping tables...")
    Base.metadata.drop_all(bind=engine)
    print("📦 Creating tables...")
    Base.metadata.create_all(bind=engine)
    print("✅ Done.")
