from typing import Dict, Optional


CORRECT_FEEDBACK = "Correct! Well done."
INCORRECT_FEEDBACK = "Incorrect. Try again!"


def normalize_answer(text: str) -> str:
    # Kannada has no letter case; casefold only affects Latin transliterations
    return text.strip().casefold()


def correct_answer_of(content: Optional[dict]) -> Optional[str]:
    if not isinstance(content, dict):
        return None
    answer = content.get("correctAnswer")
    if not isinstance(answer, str) or not answer.strip():
        return None
    return answer


# Quiz answers, written answers and speech transcripts are all compared as text
def score_response(content: dict, user_response) -> Dict:
    answer = correct_answer_of(content)
    if answer is None:
        raise ValueError("Exercise content lacks a correct answer for scoring")

    is_correct = (
        isinstance(user_response, str)
        and normalize_answer(user_response) == normalize_answer(answer)
    )

    return {
        "score": 1 if is_correct else 0,
        "feedback": CORRECT_FEEDBACK if is_correct else INCORRECT_FEEDBACK,
    }
