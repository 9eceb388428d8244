"""Prompt assembly for the Bloom therapist chat."""
from typing import List, Optional, Sequence

from models.chat import PromptMessage
from models.conversation import Turn, ROLE_SYSTEM, ROLE_USER

THERAPIST_PERSONA = """You are Bloom, a warm and empathetic AI therapist. Have natural, flowing conversations like a real human therapist would.

Key Guidelines:
- Keep responses conversational and concise (1-3 sentences usually)
- Speak naturally like you're having a real conversation
- Validate feelings first, then explore deeper
- Ask one thoughtful question at a time
- Be warm, genuine, and present
- Avoid formal language or long explanations
- Sound like a caring friend who happens to be a therapist
- Refer back to things the user has shared earlier in the conversation

Examples of your style:
- "That sounds really tough. How are you feeling about it right now?"
- "I hear you. What's been weighing on you the most?"
- "That makes complete sense given what you're going through."

Remember: You're having a natural conversation, not giving a lecture. Be human, be present, be brief."""

TONE_INSTRUCTION = "\n\nYour communication style should match the user's preferred therapy tone: {tone}."


def build_system_prompt(persona: str, tone: Optional[str] = None) -> str:
    """Persona text with the user's preferred tone appended verbatim."""
    if tone is None:
        return persona
    return persona + TONE_INSTRUCTION.format(tone=tone)


def assemble(
    persona: str,
    history: Sequence[Turn],
    new_message: str,
    tone: Optional[str] = None,
) -> List[PromptMessage]:
    """
    Build the message list for a completion request.

    Args:
        persona: Fixed system instruction text
        history: Prior turns, oldest first
        new_message: The user's latest message
        tone: Optional preferred therapy tone, used as given

    Returns:
        System message, one message per history turn, then the new user message
    """
    messages = [PromptMessage(role=ROLE_SYSTEM, content=build_system_prompt(persona, tone))]
    messages.extend(PromptMessage(role=turn.role, content=turn.content) for turn in history)
    messages.append(PromptMessage(role=ROLE_USER, content=new_message))
    return messages
