import logging

from fastapi import APIRouter, Depends, Request

from app.models.grading import GradingRequest, GradingResult
from app.services import question_bank
from app.services.grader import Grader

logger = logging.getLogger(__name__)

router = APIRouter(tags=["grading"])


def get_grader(request: Request) -> Grader:
    return request.app.state.grader


@router.post("/grade", response_model=GradingResult)
async def grade_answer(body: GradingRequest, grader: Grader = Depends(get_grader)):
    """Grade one answer. A missing answer key is looked up in the question bank."""
    correct_answer = body.correct_answer
    if correct_answer is None and body.question_id and body.question_type in ("reading", "listening"):
        question = question_bank.get_question(body.question_id)
        if question is not None:
            correct_answer = question.correct_answer

    result = grader.grade(body.question_type, body.user_answer, correct_answer, body.audio_url)
    logger.debug("Graded %s (%s): %d/%d", body.question_id, body.question_type, result.score, result.max_score)
    return result
