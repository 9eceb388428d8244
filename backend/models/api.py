"""Request and response schemas for the HTTP API."""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class ChatRequest(BaseModel):
    """Body of POST /api/chat."""
    model_config = ConfigDict(populate_by_name=True)

    message: str = Field(..., description="The latest message from the user")
    conversation_id: Optional[str] = Field(
        default=None,
        alias="conversationId",
        description="Existing conversation to continue; omitted on the first message",
    )
    therapy_tone: Optional[str] = Field(
        default=None,
        alias="therapyTone",
        description="Preferred communication style, e.g. 'Reflective Listener'",
    )


class ErrorResponse(BaseModel):
    error: str


class ConversationSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str
    status: str
    created_at: datetime = Field(alias="createdAt")
    updated_at: Optional[datetime] = Field(default=None, alias="updatedAt")


class MessageOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    role: str
    content: str
    created_at: datetime = Field(alias="createdAt")
