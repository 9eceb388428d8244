"""Main entry point for the Bloom chat API."""
import logging
from typing import List, Optional
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from supabase import create_client

from config import Settings
from logger import setup_logging
from models.api import ChatRequest, ConversationSummary, ErrorResponse, MessageOut
from services.auth import SupabaseAuthVerifier
from services.chat_orchestrator import ChatOrchestrator
from services.completion_gateway import CompletionGateway
from services.errors import ChatServiceError, UnauthorizedError
from services.transcript_store import TranscriptStore

settings = Settings.from_env()
setup_logging(settings.log_level, settings.log_format)

logger = logging.getLogger(__name__)
bearer_scheme = HTTPBearer(auto_error=False)

# Initialize FastAPI app
app = FastAPI(
    title="Bloom Chat API",
    description="Streaming AI therapist chat for the Mind Bloom wellness app",
    version="1.0.0"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Built on startup from settings
chat_orchestrator: ChatOrchestrator = None


def build_orchestrator(settings: Settings) -> ChatOrchestrator:
    """Wire the chat pipeline from one settings object and one Supabase client."""
    if not settings.supabase_url or not settings.supabase_key:
        raise ValueError(
            "SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set in environment variables"
        )

    supabase_client = create_client(settings.supabase_url, settings.supabase_key)
    return ChatOrchestrator(
        settings=settings,
        auth=SupabaseAuthVerifier(supabase_client),
        store=TranscriptStore(supabase_client),
        gateway=CompletionGateway(settings),
    )


@app.on_event("startup")
async def startup_event():
    """Initialize services on startup."""
    global chat_orchestrator

    logger.info("Initializing Bloom chat services...")

    try:
        chat_orchestrator = build_orchestrator(settings)
        logger.info(f"All services initialized successfully (model={settings.chat_model})")
    except Exception as e:
        logger.error(f"Failed to initialize services: {e}", exc_info=True)
        raise


@app.exception_handler(ChatServiceError)
async def chat_service_error_handler(request: Request, exc: ChatServiceError) -> JSONResponse:
    """Render pipeline errors as ``{"error": message}`` with their status code."""
    if exc.status_code >= 500:
        logger.error(
            f"{exc.error.code} on {request.url.path}: {exc.error.message}",
            extra={"error_code": exc.error.code, "error_details": exc.error.details},
        )
    return JSONResponse(status_code=exc.status_code, content={"error": exc.error.message})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed requests get the same error shape; a missing token still wins."""
    scheme, _, token = request.headers.get("authorization", "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return JSONResponse(status_code=401, content={"error": "Unauthorized"})

    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(
            part for part in first.get("loc", ()) if isinstance(part, str) and part != "body"
        )
        message = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
    else:
        message = "Invalid request"
    logger.warning(f"Invalid request on {request.url.path}: {message}")
    return JSONResponse(status_code=400, content={"error": message})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unexpected error on {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(status_code=500, content={"error": str(exc) or "Server error"})


def bearer_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[str]:
    """Token from ``Authorization: Bearer <token>``, or None."""
    if credentials is None:
        return None
    return credentials.credentials


@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "ok", "message": "Bloom Chat API"}


@app.get("/health")
async def health():
    """Detailed health check."""
    return {
        "status": "healthy",
        "service": "bloom-chat",
        "version": "1.0.0",
        "model": settings.chat_model,
    }


@app.post(
    "/api/chat",
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
async def chat_endpoint(request: ChatRequest, token: Optional[str] = Depends(bearer_token)):
    """
    Stream the therapist's reply to a user message.

    The body is plain text: a JSON metadata frame
    ``{"metadata": {"conversationId": ..., "userMessageId": ...}}`` and a
    blank line, followed by the reply text as it is generated. Failures
    before streaming starts return ``{"error": ...}`` with a 4xx/5xx
    status; a failure mid-stream simply ends the body early.
    """
    if token is None:
        raise UnauthorizedError(details={"reason": "missing bearer token"})

    stream = await chat_orchestrator.handle(
        auth_token=token,
        message=request.message,
        conversation_id=request.conversation_id,
        tone=request.therapy_tone,
    )

    return StreamingResponse(
        stream,
        media_type="text/plain; charset=utf-8",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no"  # Disable buffering in nginx
        }
    )


@app.get("/conversations", response_model=List[ConversationSummary])
async def list_conversations(token: Optional[str] = Depends(bearer_token)):
    """Active conversations of the caller, most recently updated first."""
    conversations = await chat_orchestrator.list_conversations(token)
    return [
        ConversationSummary(
            id=conversation.conversation_id,
            title=conversation.title,
            status=conversation.status,
            created_at=conversation.created_at,
            updated_at=conversation.updated_at,
        )
        for conversation in conversations
    ]


@app.get("/conversations/{conversation_id}/messages", response_model=List[MessageOut])
async def list_messages(conversation_id: str, token: Optional[str] = Depends(bearer_token)):
    """All turns of one of the caller's conversations, oldest first."""
    turns = await chat_orchestrator.list_turns(token, conversation_id)
    return [
        MessageOut(id=turn.turn_id, role=turn.role, content=turn.content, created_at=turn.created_at)
        for turn in turns
    ]


if __name__ == "__main__":
    import uvicorn
    logger.info(f"Starting Bloom Chat API on port {settings.port}")
    uvicorn.run(app, host="0.0.0.0", port=settings.port)
