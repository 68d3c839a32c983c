"""Models for the CourseFlow backend.

Stored records use camelCase keys (the shape of the keyed tree and of the
JSON API); Python code uses snake_case attributes. ``CamelModel`` bridges the two.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


# pylint: disable=too-few-public-methods
class CamelModel(BaseModel):
    """Base model that reads and writes camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )

    def to_store(self) -> Dict[str, Any]:
        """Dumps the model in the shape it is persisted in the tree store."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


# pylint: disable=too-few-public-methods
class User(BaseModel):
    """
    Model for the authenticated caller.
    """

    user_id: str
    email: Optional[str] = None
    name: Optional[str] = None


class ChatType(str, Enum):
    """Kind of conversation a message belongs to."""

    RECITATION = "recitation"
    QNA = "qna"
    GENERAL = "general"


class Sender(str, Enum):
    """Author of a persisted chat message."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


# --- Profile Models ---


# pylint: disable=too-few-public-methods
class UserProfile(CamelModel):
    """A learner's identity and personalization fields."""

    user_id: Optional[str] = Field(default=None, exclude=True)
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    role: str = "student"  # student | instructor | admin
    status: str = "active"  # active | frozen | pending
    current_role: Optional[str] = None
    experience_level: Optional[str] = None
    industry: Optional[str] = None
    primary_goals: List[str] = Field(default_factory=list)
    total_sessions: int = 0
    last_session_date: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


# pylint: disable=too-few-public-methods
class OnboardingForm(CamelModel):
    """Fields collected by the onboarding form. Only the supplied ones are written."""

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    current_role: Optional[str] = None
    experience_level: Optional[str] = None
    industry: Optional[str] = None
    primary_goals: Optional[List[str]] = None


# pylint: disable=too-few-public-methods
class PersonalizationContext(BaseModel):
    """Values substituted into assistant instruction templates."""

    first_name: str
    last_name: str
    current_role: str
    experience_level: str
    industry: str
    primary_goals: List[str]
    course_id: str
    lesson_id: str
    course_title: str = ""
    lesson_title: str = ""

    def as_template_values(self) -> Dict[str, str]:
        """Returns the placeholder names used by instruction templates."""
        return {
            "firstName": self.first_name,
            "lastName": self.last_name,
            "currentRole": self.current_role,
            "experienceLevel": self.experience_level,
            "industry": self.industry,
            "primaryGoals": ", ".join(self.primary_goals) or "your goals",
            "courseId": self.course_id,
            "lessonId": self.lesson_id,
            "courseTitle": self.course_title,
            "lessonTitle": self.lesson_title,
        }


# --- Course Tree Models ---


# pylint: disable=too-few-public-methods
class Lesson(CamelModel):
    """Atomic content unit of a course."""

    id: str = Field(default="", exclude=True)
    title: str = ""
    order: int = 0
    video_url: Optional[str] = None
    content: Optional[str] = None
    recitation_assistant_id: Optional[str] = None
    qna_assistant_id: Optional[str] = None
    # Per-lesson instruction overrides keyed by persona ("coach", "concierge")
    instructions: Dict[str, str] = Field(default_factory=dict)


# pylint: disable=too-few-public-methods
class Module(CamelModel):
    """Ordered group of lessons within a course."""

    id: str = Field(default="", exclude=True)
    title: str = ""
    order: int = 0
    lessons: Dict[str, Lesson] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _fill_lesson_ids(self) -> "Module":
        for lesson_id, lesson in self.lessons.items():
            if not lesson.id:
                lesson.id = lesson_id
        return self


# pylint: disable=too-few-public-methods
class Course(CamelModel):
    """A curriculum unit. Read-only to learners."""

    id: str = Field(default="", exclude=True)
    title: str = ""
    description: str = ""
    qna_assistant_id: Optional[str] = None
    general_assistant_id: Optional[str] = None
    modules: Dict[str, Module] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _fill_module_ids(self) -> "Course":
        for module_id, module in self.modules.items():
            if not module.id:
                module.id = module_id
        return self


# pylint: disable=too-few-public-methods
class OrderedLesson(BaseModel):
    """A lesson together with its position in the course's total order."""

    module_id: str
    lesson_id: str
    lesson: Lesson


# pylint: disable=too-few-public-methods
class LessonNavigation(BaseModel):
    """Previous/next lesson ids around a lesson."""

    previous_lesson_id: Optional[str] = None
    next_lesson_id: Optional[str] = None
    current_index: int = -1
    total_lessons: int = 0


# --- Progress Models ---


# pylint: disable=too-few-public-methods
class CompletedLesson(CamelModel):
    """Completion entry for a lesson."""

    completed_at: Optional[str] = None
    unlock_code: Optional[str] = None


# pylint: disable=too-few-public-methods
class ProgressRecord(CamelModel):
    """One user's unlock/completion state for one course."""

    unlocked_lessons: Dict[str, bool] = Field(default_factory=dict)
    completed_lessons: Dict[str, CompletedLesson] = Field(default_factory=dict)
    last_unlocked_at: Optional[str] = None

    @field_validator("completed_lessons", mode="before")
    @classmethod
    def _accept_boolean_flags(cls, value: Any) -> Any:
        # Older records stored plain `true` flags
        if isinstance(value, dict):
            return {k: ({} if v is True else v) for k, v in value.items() if v}
        return value

    def is_unlocked(self, lesson_id: str) -> bool:
        """True if the lesson id is in the unlocked set."""
        return bool(self.unlocked_lessons.get(lesson_id))

    def is_completed(self, lesson_id: str) -> bool:
        """True if the lesson id is in the completed set."""
        return lesson_id in self.completed_lessons


# pylint: disable=too-few-public-methods
class CourseProgressSummary(CamelModel):
    """Progress statistics for a course."""

    total_lessons: int = 0
    completed_lessons: int = 0
    unlocked_lessons: int = 0
    progress_percentage: int = Field(default=0, ge=0, le=100)  # unlocked / total
    completion_percentage: int = Field(default=0, ge=0, le=100)  # completed / total


# --- Chat Models ---


# pylint: disable=too-few-public-methods
class ChatMessage(CamelModel):
    """Model for a single persisted message in a conversation transcript."""

    sender: Sender
    text: str
    timestamp: Optional[str] = None


# pylint: disable=too-few-public-methods
class ConversationThread(CamelModel):
    """Handle to an external chat session, persisted at a deterministic path."""

    assistant_thread_id: Optional[str] = None
    course_id: Optional[str] = None
    lesson_id: Optional[str] = None
    chat_type: Optional[ChatType] = None
    created_at: Optional[str] = None


# pylint: disable=too-few-public-methods
class SubmitMessageInput(BaseModel):
    """Input of one chat submission."""

    message: str
    chat_type: ChatType
    course_id: str
    user_id: str
    lesson_id: Optional[str] = None
    existing_thread_id: Optional[str] = None
    assistant_id: Optional[str] = None  # Explicit override of the configured assistant


# pylint: disable=too-few-public-methods
class ChatResult(BaseModel):
    """Outcome of a successful chat submission."""

    response: str
    thread_id: str
    run_id: str
    chat_type: ChatType
    unlock_code: Optional[str] = None
    next_lesson_id: Optional[str] = None


# --- AI Settings Models ---


# pylint: disable=too-few-public-methods
class PersonaInstructions(CamelModel):
    """Instruction template for one assistant persona."""

    instructions: Optional[str] = None


# pylint: disable=too-few-public-methods
class GlobalSettings(CamelModel):
    """Run options applied to every assistant run."""

    model: Optional[str] = None
    temperature: Optional[float] = Field(default=None, ge=0, le=2)
    max_tokens: Optional[int] = Field(default=None, gt=0)


# pylint: disable=too-few-public-methods
class AiSettings(CamelModel):
    """Administrator-managed assistant configuration."""

    # Keyed by "coachAssistant" / "qnaAssistant"
    system_instructions: Dict[str, PersonaInstructions] = Field(default_factory=dict)
    global_settings: GlobalSettings = Field(default_factory=GlobalSettings)
    last_updated: Optional[str] = None
    updated_by: Optional[str] = None
