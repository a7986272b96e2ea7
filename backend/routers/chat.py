import logging
from fastapi import APIRouter
from fastapi.responses import JSONResponse

from models.schemas import PromptRequest, PromptResponse, ErrorResponse
from services import prompt_chain

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["chat"])

SERVER_ERROR_TEXT = "Server error. Please try again later."


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump())


@router.post(
    "/chat",
    response_model=PromptResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def chat_completion(request: PromptRequest):
    """Run the thinking pass and the plan pass for one user message."""
    if request.message is None or not request.message.strip():
        return _error(400, "Message must not be empty.")

    try:
        result = await prompt_chain.run_prompt_chain(request.message)
    except prompt_chain.LLMServiceError as e:
        logger.error("Prompt chain failed (upstream status %s): %s", e.status_code, e.message)
        return _error(500, SERVER_ERROR_TEXT)
    except Exception:
        logger.exception("Unexpected error in prompt chain")
        return _error(500, SERVER_ERROR_TEXT)

    return PromptResponse(thinking=result.thinking, plan=result.plan)
