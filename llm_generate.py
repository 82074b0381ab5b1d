import os
import json
import logging
import requests

from schemas import ActionState

logger = logging.getLogger(__name__)

LLM_API_URL = os.getenv("LLM_API_URL", "https://api.openai.com/v1/chat/completions")
LLM_MODEL = os.getenv("LLM_MODEL", "gpt-4")

LEVELS = ("beginner", "intermediate", "advanced")


def chat_completion(system_prompt, user_prompt, max_tokens=100, temperature=0.7):
    api_key = os.getenv("LLM_API_KEY")

    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json"
    }

    payload = {
        "model": LLM_MODEL,
        "messages": [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt}
        ],
        "max_tokens": max_tokens,
        "temperature": temperature,
    }

    response = requests.post(LLM_API_URL, headers=headers, json=payload, timeout=30)

    try:
        response.raise_for_status()
    except requests.exceptions.HTTPError as e:
        logger.error("LLM request failed: %s; body: %s", e, response.text)
        raise

    choices = response.json().get("choices") or []
    if not choices:
        return ""
    return (choices[0].get("message", {}).get("content") or "").strip()


def explain_grammar(text):
    if not text or not text.strip():
        return ActionState.fail("Input sentence cannot be empty")

    prompt = (
        f'Provide a concise explanation of the grammar rules for this Kannada sentence or phrase: "{text}". '
        "Focus on common errors like subject-verb agreement, word order, or case usage. "
        "Keep it simple and educational, under 100 words."
    )

    try:
        explanation = chat_completion(
            "You are a Kannada language expert providing clear, concise grammar explanations.",
            prompt,
            max_tokens=100,
            temperature=0.7,
        )
    except requests.exceptions.RequestException as e:
        logger.error("Error generating grammar explanation: %s", e)
        return ActionState.fail(f"Failed to generate explanation: {e}")

    if not explanation:
        return ActionState.fail("No explanation generated by AI")
    return ActionState.ok("Grammar explanation generated successfully", explanation)


def recommend_level(progress_records):
    """Ask the model which lesson level fits a learner's progress so far."""
    summary = [
        {"lessonId": p.lesson_id, "xp": p.xp, "streak": p.streak}
        for p in progress_records
    ]
    total_xp = sum(p.xp for p in progress_records)
    max_streak = max([p.streak for p in progress_records] + [0])

    prompt = (
        "Based on the following user progress in learning Kannada:\n"
        f"- Total XP: {total_xp}\n"
        f"- Maximum streak: {max_streak}\n"
        f"- Progress details: {json.dumps(summary)}\n"
        "Recommend a lesson difficulty level from: beginner, intermediate, advanced.\n"
        'Return only the level name in lowercase (e.g., "beginner") with no additional text.'
    )

    try:
        answer = chat_completion(
            "You are an AI tutor assessing user progress to recommend Kannada lesson difficulty.",
            prompt,
            max_tokens=10,
            temperature=0.5,
        )
    except requests.exceptions.RequestException as e:
        logger.error("Error adjusting lesson difficulty: %s", e)
        return ActionState.fail(f"Failed to adjust lesson difficulty: {e}")

    level = answer.strip().strip('."').lower()
    if level not in LEVELS:
        return ActionState.fail("Invalid or no level recommended by AI")
    return ActionState.ok("Lesson difficulty adjusted successfully", level)
