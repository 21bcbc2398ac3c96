"""
In-memory registry of editor sessions, one per uploaded document.

Sessions live for the process lifetime; nothing is written to disk.
"""

import logging
import uuid
from typing import Dict, Optional

from pdf_architect.core.config import settings
from pdf_architect.llm.gemini_client import GeminiClient
from pdf_architect.services.editor_session import EditorSession
from pdf_architect.services.instruction_synthesizer import InstructionSynthesizer

logger = logging.getLogger(__name__)


def build_session(client: Optional[GeminiClient] = None) -> EditorSession:
    """Wire a session to the Gemini capabilities when an API key is configured."""
    if client is None and settings.GEMINI_API_KEY:
        client = GeminiClient()
    if client is None:
        logger.warning("GEMINI_API_KEY not set: OCR, commands and image generation are disabled")
        return EditorSession()
    return EditorSession(
        ocr=client.perform_visual_ocr,
        synthesizer=InstructionSynthesizer(client, context_char_limit=settings.CONTEXT_CHAR_LIMIT),
        image_generator=client.generate_image,
    )


class SessionStore:
    def __init__(self, factory=build_session):
        self._factory = factory
        self._sessions: Dict[str, EditorSession] = {}

    def create(self) -> tuple:
        session_id = uuid.uuid4().hex
        session = self._factory()
        self._sessions[session_id] = session
        return session_id, session

    def get(self, session_id: str) -> Optional[EditorSession]:
        return self._sessions.get(session_id)

    def discard(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    def __len__(self) -> int:
        return len(self._sessions)


session_store = SessionStore()


def get_session_store() -> SessionStore:
    return session_store
