"""AI tutor chat.

Every user message and every reply is stored per chat session. Replies
come from the configured provider (Anthropic or OpenAI); when no key is
configured or the provider call fails, a canned reply is used instead so
the chat never errors because of the upstream service.
"""

import logging
import uuid
from typing import Callable, List, Optional

import httpx
from sqlmodel import Session

from . import models, repositories
from .config import Settings
from .schemas import ChatIn

logger = logging.getLogger("learnrail.tutor")

ANTHROPIC_URL = "https://api.anthropic.com/v1/messages"
OPENAI_URL = "https://api.openai.com/v1/chat/completions"
OPENAI_MODEL = "gpt-4o-mini"
MAX_TOKENS = 1024
HISTORY_TURNS = 10


def new_session_id() -> str:
    return f"session_{uuid.uuid4().hex}"


def system_prompt(context: dict) -> str:
    prompt = (
        "You are an AI tutor for Learnrail, an online learning platform. "
        "You help students understand course material, answer questions, and provide guidance. "
        "Be helpful, encouraging, and explain concepts clearly. "
    )
    if context.get("course_title"):
        prompt += f"The student is studying: {context['course_title']}. "
    if context.get("lesson_title"):
        prompt += f"Current lesson: {context['lesson_title']}. "
    return prompt + "\nKeep responses concise but thorough. Use markdown formatting for code and lists."


def fallback_reply(message: str, context: dict) -> str:
    text = message.lower()
    if "hello" in text or "hi" in text:
        return "Hello! I'm your AI learning assistant. How can I help you today with your studies?"
    if "help" in text:
        return ("I'm here to help you learn! You can ask me questions about your courses, request "
                "explanations of concepts, or get study tips. What would you like to know?")
    if context.get("course_title"):
        return (f"That's a great question about {context['course_title']}! Let me help you understand "
                "this better. Could you tell me more specifically what aspect you'd like me to explain?")
    return ("Thank you for your question! I'd be happy to help you learn. Could you provide a bit more "
            "detail about what you'd like to understand better?")


class TutorClient:
    """Thin provider client; returns None whenever no usable reply came back."""

    def __init__(self, settings: Settings, transport: Optional[httpx.BaseTransport] = None):
        self.settings = settings
        self.transport = transport

    def _post(self, url: str, headers: dict, payload: dict) -> Optional[dict]:
        try:
            with httpx.Client(timeout=self.settings.AI_TIMEOUT_SECONDS, transport=self.transport) as client:
                response = client.post(url, json=payload, headers=headers)
        except httpx.HTTPError as exc:
            logger.warning("tutor_provider_unreachable url=%s error=%s", url, exc)
            return None
        if response.status_code != 200:
            logger.warning("tutor_provider_error url=%s status=%s", url, response.status_code)
            return None
        try:
            return response.json()
        except ValueError:
            return None

    def claude(self, history: List[dict], context: dict) -> Optional[str]:
        data = self._post(
            ANTHROPIC_URL,
            {"x-api-key": self.settings.ANTHROPIC_API_KEY, "anthropic-version": "2023-06-01"},
            {
                "model": self.settings.AI_MODEL,
                "max_tokens": MAX_TOKENS,
                "system": system_prompt(context),
                "messages": history,
            },
        )
        try:
            return data["content"][0]["text"] if data else None
        except (KeyError, IndexError, TypeError):
            return None

    def openai(self, history: List[dict], context: dict) -> Optional[str]:
        data = self._post(
            OPENAI_URL,
            {"Authorization": f"Bearer {self.settings.OPENAI_API_KEY}"},
            {
                "model": OPENAI_MODEL,
                "messages": [{"role": "system", "content": system_prompt(context)}, *history],
                "max_tokens": MAX_TOKENS,
                "temperature": 0.7,
            },
        )
        try:
            return data["choices"][0]["message"]["content"] if data else None
        except (KeyError, IndexError, TypeError):
            return None

    def reply(self, history: List[dict], context: dict) -> Optional[str]:
        provider = self.settings.AI_PROVIDER
        if provider == "claude" and self.settings.ANTHROPIC_API_KEY:
            return self.claude(history, context)
        if provider == "openai" and self.settings.OPENAI_API_KEY:
            return self.openai(history, context)
        return None


class AiTutorService:
    def __init__(self, session: Session, settings: Settings, client: Optional[TutorClient] = None,
                 session_ids: Callable[[], str] = new_session_id):
        self.session = session
        self.settings = settings
        self.client = client or TutorClient(settings)
        self.session_ids = session_ids
        self.repo = repositories.AiChatRepository(session)

    def _course_context(self, course_id: int, lesson_id: Optional[int]) -> dict:
        context = {}
        course = repositories.CourseRepository(self.session).get(course_id)
        if course:
            context.update({"course_id": course.id, "course_title": course.title})
            lesson = repositories.LessonRepository(self.session).get(lesson_id) if lesson_id else None
            if lesson:
                context.update({"lesson_id": lesson.id, "lesson_title": lesson.title})
        return context

    def chat(self, user_id: int, data: ChatIn) -> dict:
        session_id = data.session_id or self.session_ids()
        context = dict(data.context)
        if data.course_id:
            context.update(self._course_context(data.course_id, data.lesson_id))

        self.repo.add(models.AiChatMessage(
            user_id=user_id, session_id=session_id, role="user", content=data.message, context=context,
        ))
        history = [{"role": m.role, "content": m.content}
                   for m in self.repo.recent(user_id, session_id, HISTORY_TURNS)]
        reply = self.client.reply(history, context) or fallback_reply(data.message, context)
        self.repo.add(models.AiChatMessage(
            user_id=user_id, session_id=session_id, role="assistant", content=reply, context=context,
        ))
        self.session.commit()
        return {"session_id": session_id, "message": reply, "context": context}

    def session_history(self, user_id: int, session_id: str) -> dict:
        messages = self.repo.session_messages(user_id, session_id)
        return {
            "session_id": session_id,
            "messages": [m.model_dump(include={"id", "role", "content", "context", "created_at"}) for m in messages],
        }

    def sessions(self, user_id: int, offset: int, limit: int):
        return self.repo.sessions(user_id, offset, limit)
