import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from app.core.deps import get_assistant
from app.core.errors import RequestMalformedError
from app.schemas.chat import ChatRequest, ChatResponse, ErrorResponse
from app.services.assistant import AssistantPipeline

router = APIRouter(prefix="/chat", tags=["chat"])
logger = logging.getLogger(__name__)


@router.post(
    "",
    response_model=ChatResponse,
    response_model_exclude_none=True,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
def chat(req: ChatRequest, assistant: AssistantPipeline = Depends(get_assistant)):
    """
    Answer the last message of the conversation from the state map,
    knowledge base and drive files.
    """
    try:
        return assistant.answer(req)
    except RequestMalformedError as e:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": e.message})
    except Exception as e:
        logger.exception("chat.unhandled chat_id=%s", req.chatId)
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"error": str(e)})
