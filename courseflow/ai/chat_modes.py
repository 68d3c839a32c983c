"""
Per-chat-type behaviour of the chat flow.

Each ``ChatType`` maps to one ``ChatMode`` that knows which persona answers,
where the assistant id and instruction template come from, and whether the
reply is scanned for an unlock code.
"""

from typing import Dict, Optional

from courseflow.ai.prompt_loader import load_prompt_text
from courseflow.models import AiSettings, ChatType, Course, Lesson


class ChatMode:
    """Base class for the behaviour of one chat type."""

    chat_type: ChatType
    persona: str  # key of per-lesson instruction overrides
    settings_key: str  # key under aiSettings/systemInstructions
    default_prompt: str  # bundled prompt file name
    detects_unlock: bool = False
    requires_lesson: bool = False

    def resolve_assistant_id(self, course: Course, lesson: Optional[Lesson]) -> Optional[str]:
        """The assistant configured for this chat type, or None."""
        raise NotImplementedError

    def resolve_template(self, ai_settings: AiSettings, lesson: Optional[Lesson]) -> str:
        """
        Picks the instruction template.

        A per-lesson override wins, then the administrator's global template for
        the persona, then the bundled default.
        """
        if lesson is not None and lesson.instructions.get(self.persona):
            return lesson.instructions[self.persona]
        persona_settings = ai_settings.system_instructions.get(self.settings_key)
        if persona_settings is not None and persona_settings.instructions:
            return persona_settings.instructions
        return load_prompt_text(self.default_prompt)


class RecitationMode(ChatMode):
    """Coach persona. The learner recites the lesson to earn an unlock code."""

    chat_type = ChatType.RECITATION
    persona = "coach"
    settings_key = "coachAssistant"
    default_prompt = "coach"
    detects_unlock = True
    requires_lesson = True

    def resolve_assistant_id(self, course: Course, lesson: Optional[Lesson]) -> Optional[str]:
        # Recitation only exists at lesson level
        return lesson.recitation_assistant_id if lesson is not None else None


class QnaMode(ChatMode):
    """Concierge persona answering questions about the course content."""

    chat_type = ChatType.QNA
    persona = "concierge"
    settings_key = "qnaAssistant"
    default_prompt = "concierge"

    def resolve_assistant_id(self, course: Course, lesson: Optional[Lesson]) -> Optional[str]:
        if lesson is not None and lesson.qna_assistant_id:
            return lesson.qna_assistant_id
        return course.qna_assistant_id


class GeneralMode(ChatMode):
    """Concierge persona for open conversation about the course."""

    chat_type = ChatType.GENERAL
    persona = "concierge"
    settings_key = "qnaAssistant"
    default_prompt = "general"

    def resolve_assistant_id(self, course: Course, lesson: Optional[Lesson]) -> Optional[str]:
        return course.general_assistant_id or course.qna_assistant_id


CHAT_MODES: Dict[ChatType, ChatMode] = {
    ChatType.RECITATION: RecitationMode(),
    ChatType.QNA: QnaMode(),
    ChatType.GENERAL: GeneralMode(),
}


def get_chat_mode(chat_type: ChatType) -> ChatMode:
    """Returns the mode for a chat type."""
    return CHAT_MODES[ChatType(chat_type)]
