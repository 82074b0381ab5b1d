import os
import re
import logging
import requests

from schemas import ActionState

logger = logging.getLogger(__name__)

STORAGE_URL = os.getenv("STORAGE_URL", "http://localhost:54321")
LESSONS_BUCKET = os.getenv("STORAGE_LESSONS_BUCKET", "lessons")
URL_TTL = 3600  # seconds

UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)


def create_download_url(user_id, lesson_id):
    """Signed, time-limited URL for a lesson's JSON bundle at ``{user_id}/{lesson_id}.json``."""
    if not user_id:
        return ActionState.fail("User not authenticated")
    if not lesson_id or not UUID_RE.match(lesson_id):
        return ActionState.fail("Invalid lesson ID")

    path = f"{user_id}/{lesson_id}.json"
    service_key = os.getenv("STORAGE_SERVICE_KEY")

    try:
        response = requests.post(
            f"{STORAGE_URL}/storage/v1/object/sign/{LESSONS_BUCKET}/{path}",
            headers={"Authorization": f"Bearer {service_key}", "Content-Type": "application/json"},
            json={"expiresIn": URL_TTL},
            timeout=10,
        )
        response.raise_for_status()
        signed = response.json().get("signedURL") or response.json().get("signedUrl")
        if not signed:
            raise ValueError("Signed URL not generated")
    except (requests.exceptions.RequestException, ValueError) as e:
        logger.error("Error generating lesson download URL for %s: %s", path, e)
        return ActionState.fail("Failed to generate lesson download URL. Please try again.")

    if signed.startswith("/"):
        signed = f"{STORAGE_URL}/storage/v1{signed}"
    return ActionState.ok("Lesson download URL generated successfully", {"url": signed})
