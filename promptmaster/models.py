"""Data types exchanged between the interview, the editor and the UI."""

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple


def new_id() -> str:
    """Short random identifier."""
    return uuid.uuid4().hex[:9]


class Speaker(str, Enum):
    """Who produced an interview turn."""
    USER = "user"
    AI = "ai"
    SYSTEM = "system"


class Pillar(str, Enum):
    """Structural categories of prompt content."""
    PERSONA = "Persona"
    TASK = "Task"
    CONTEXT = "Context"
    FORMAT = "Format"
    OTHER = "Other"
    PENDING = "pending"


# Order matters: the first name found in a classifier reply wins
CLASSIFIABLE_PILLARS = (Pillar.PERSONA, Pillar.TASK, Pillar.CONTEXT, Pillar.FORMAT)


class SuggestionType(str, Enum):
    """Category of a critique suggestion."""
    CLARITY = "clarity"
    TONE = "tone"
    STRUCTURE = "structure"
    GRAMMAR = "grammar"


@dataclass(frozen=True)
class InterviewTurn:
    """One entry of the interview transcript."""
    speaker: Speaker
    text: str
    options: Tuple[str, ...] = ()
    timestamp: float = field(default_factory=time.time)
    id: str = field(default_factory=new_id)


@dataclass(frozen=True)
class InterviewResponse:
    """Parsed reply of the interview model."""
    question: str
    options: Tuple[str, ...] = ()
    is_final_draft: bool = False
    generated_prompt: Optional[str] = None

    def to_dict(self) -> dict:
        result = {
            "question": self.question,
            "options": list(self.options),
            "isFinalDraft": self.is_final_draft,
        }
        if self.generated_prompt is not None:
            result["generatedPrompt"] = self.generated_prompt
        return result


@dataclass(frozen=True)
class Suggestion:
    """A proposed replacement for an exact span of the prompt."""
    original_text: str
    suggested_text: str
    reason: str = ""
    type: SuggestionType = SuggestionType.CLARITY
    id: str = field(default_factory=new_id)


@dataclass(frozen=True)
class LockedSegment:
    """User-protected text that rewrites must keep verbatim."""
    text: str
    pillar: Pillar = Pillar.PENDING
    id: str = field(default_factory=new_id)

    @property
    def is_pending(self) -> bool:
        return self.pillar == Pillar.PENDING
