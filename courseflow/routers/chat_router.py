"""fastApi router for chat submissions and transcripts"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse

from courseflow.dependencies import get_chat_service, get_current_user
from courseflow.exceptions import CourseNotFoundError, LessonNotFoundError
from courseflow.logger import logger
from courseflow.models import (CamelModel, ChatMessage, ChatType, SubmitMessageInput,
                               User)
from courseflow.services.chat_service import ChatService

router = APIRouter()

# --- Pydantic Models ---


# pylint: disable=too-few-public-methods
class ChatRequest(CamelModel):
    """Request body of a chat submission."""

    message: str
    chat_type: ChatType
    course_id: str
    lesson_id: Optional[str] = None
    thread_id: Optional[str] = None
    assistant_id: Optional[str] = None
    user_id: Optional[str] = None  # Must match the caller when supplied


# pylint: disable=too-few-public-methods
class ChatResponse(CamelModel):
    """Successful chat submission."""

    success: bool = True
    response: str
    thread_id: str
    run_id: str
    chat_type: ChatType
    unlock_code: Optional[str] = None
    next_lesson_id: Optional[str] = None


# pylint: disable=too-few-public-methods
class ChatErrorResponse(CamelModel):
    """Failed chat submission."""

    error: str
    thread_id: Optional[str] = None


# pylint: disable=too-few-public-methods
class ChatHistoryResponse(CamelModel):
    """Transcript of one conversation."""

    thread_id: Optional[str] = None
    messages: List[ChatMessage]


# --- API Routes ---


@router.post(
    "/chat",
    response_model=ChatResponse,
    responses={403: {"model": ChatErrorResponse}, 404: {"model": ChatErrorResponse}},
)
async def submit_chat_message(
    request: ChatRequest,
    current_user: User = Depends(get_current_user),
    chat_service: ChatService = Depends(get_chat_service),
):
    """
    Sends a learner message to the assistant for the chat type and returns the reply.

    Failures are returned as ``{error, threadId?}``: 403 if ``userId`` names
    someone other than the caller, 404 for an unknown course or lesson. Chat
    errors (empty message, missing assistant, run failure or timeout, upstream
    outage) are rendered the same way by the application's ChatError handler.
    """
    if request.user_id and request.user_id != current_user.user_id:
        logger.warning(
            f"User {current_user.user_id} tried to submit a message as {request.user_id}"
        )
        return JSONResponse(
            status_code=status.HTTP_403_FORBIDDEN,
            content={"error": "Cannot submit messages for another user."},
        )

    submission = SubmitMessageInput(
        message=request.message,
        chat_type=request.chat_type,
        course_id=request.course_id,
        user_id=current_user.user_id,
        lesson_id=request.lesson_id,
        existing_thread_id=request.thread_id,
        assistant_id=request.assistant_id,
    )
    try:
        result = await chat_service.submit_message(submission)
    except (CourseNotFoundError, LessonNotFoundError) as e:
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"error": str(e)})

    return ChatResponse(
        response=result.response,
        thread_id=result.thread_id,
        run_id=result.run_id,
        chat_type=result.chat_type,
        unlock_code=result.unlock_code,
        next_lesson_id=result.next_lesson_id,
    )


@router.get("/chat/history", response_model=ChatHistoryResponse)
async def get_chat_history(
    course_id: str = Query(..., alias="courseId"),
    chat_type: ChatType = Query(..., alias="chatType"),
    lesson_id: Optional[str] = Query(None, alias="lessonId"),
    current_user: User = Depends(get_current_user),
    chat_service: ChatService = Depends(get_chat_service),
) -> ChatHistoryResponse:
    """
    Returns the caller's transcript for a conversation, oldest message first.

    Raises:
        HTTPException (404): If the course or lesson does not exist.
    """
    try:
        thread, messages = chat_service.get_history(
            current_user.user_id, course_id, chat_type, lesson_id
        )
    except (CourseNotFoundError, LessonNotFoundError) as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    return ChatHistoryResponse(
        thread_id=thread.assistant_thread_id if thread else None,
        messages=messages,
    )
