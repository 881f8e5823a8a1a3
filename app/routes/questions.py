from fastapi import APIRouter

from app.models.question import QuestionPage
from app.services import question_bank

router = APIRouter(prefix="/questions", tags=["questions"])


@router.get("/stats")
async def question_stats():
    return {"stats": question_bank.stats()}


@router.get("/random/{section}")
async def random_questions(section: str, count: int = 5):
    """Random practice set for a section, without repeats."""
    questions = question_bank.random_questions(section, count)
    return {"questions": questions, "total": len(questions)}


@router.get("/{section}", response_model=QuestionPage)
async def list_questions(section: str, difficulty: str | None = None, limit: int = 10, offset: int = 0):
    questions, total = question_bank.list_questions(section, difficulty, limit, offset)
    return QuestionPage(questions=questions, total=total, offset=offset, limit=limit)
