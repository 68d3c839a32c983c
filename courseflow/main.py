"""
Main application module for the CourseFlow API.
"""

# pylint: disable=logging-fstring-interpolation

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from courseflow.dependencies import store
from courseflow.exceptions import ChatError
from courseflow.logger import logger
from courseflow.routers import (chat_router, course_router, profile_router,
                                progress_router, settings_router)

app = FastAPI(title="CourseFlow API")
"""
FastAPI application instance for the CourseFlow API.
"""


@app.on_event("shutdown")
async def shutdown_event():
    """
    Gracefully closes the store's database connection on application shutdown.
    """
    store.close()
    logger.info("Database connection closed.")


@app.exception_handler(ChatError)
async def chat_error_handler(_request: Request, exc: ChatError) -> JSONResponse:
    """
    Renders a failed chat submission as ``{error, threadId}``.

    The thread id is included when the thread was resolved before the failure,
    so the client can retry on the same conversation.
    """
    logger.warning(
        f"Chat submission failed ({type(exc).__name__}, thread {exc.thread_id}): {exc.message}"
    )
    content = {"error": exc.message}
    if exc.thread_id:
        content["threadId"] = exc.thread_id
    return JSONResponse(status_code=exc.status_code, content=content)


# Add CORS middleware to allow frontend requests
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
    max_age=3600,  # Cache preflight requests for 1 hour
)

# Include routers for each component
app.include_router(chat_router.router, prefix="/api", tags=["Chat"])
app.include_router(course_router.router, prefix="/courses", tags=["Courses"])
app.include_router(progress_router.router, prefix="/progress", tags=["User Progress"])
app.include_router(profile_router.router, prefix="/profile", tags=["Profile"])
app.include_router(settings_router.router, prefix="/settings", tags=["Settings"])

if __name__ == "__main__":
    import uvicorn

    uvicorn.run("courseflow.main:app", host="0.0.0.0", port=8000, reload=True)
