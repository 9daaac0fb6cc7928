"""
Requirements interview: one chat session that gathers the four pillars.

The session is either a provider-side chat (Gemini, with a response schema)
or a locally held message history (OpenAI-compatible, JSON mode). Exactly
one of them exists at a time; changing language replaces it entirely.
"""

import logging
from enum import Enum
from typing import Any, List, Optional, Tuple

from . import prompts
from .config import FeatureType, Language, ProviderKind
from .errors import ParseError
from .llm import FEATURE_TEMPERATURES
from .models import InterviewResponse, InterviewTurn, Speaker
from .parsing import parse_json
from .providers.base import ChatSession, SessionConfig
from .retry import with_retry
from .router import FeatureRouter, ResolvedModel

logger = logging.getLogger(__name__)

MAX_OPTIONS = 3


class InterviewState(str, Enum):
    NOT_STARTED = "not_started"
    ACTIVE = "active"


def parse_interview_response(raw: str, language: Language) -> InterviewResponse:
    """
    Parse the interview model's reply.

    Unparsable replies become a localized error question instead of raising,
    so the conversation can continue.
    """
    try:
        data: Any = parse_json(raw)
    except ParseError:
        logger.error("JSON Parse Error: %r", raw)
        return InterviewResponse(question=prompts.message("parse_error", language))

    if not isinstance(data, dict):
        logger.error("Interview reply is not a JSON object: %r", raw)
        return InterviewResponse(question=prompts.message("parse_error", language))

    options = data.get("options")
    if isinstance(options, list):
        options = tuple(str(o) for o in options[:MAX_OPTIONS])
    else:
        options = ()

    generated = data.get("generatedPrompt")
    return InterviewResponse(
        question=data.get("question") or data.get("Question") or "...",
        options=options,
        is_final_draft=bool(data.get("isFinalDraft")),
        generated_prompt=generated if isinstance(generated, str) else None,
    )


class InterviewSession:
    """Multi-turn interview that ends in a first prompt draft."""

    def __init__(self, router: FeatureRouter):
        self.router = router
        self._session: Optional[ChatSession] = None
        self._language: Optional[Language] = None
        self._kind: Optional[ProviderKind] = None
        self._resolved: Optional[ResolvedModel] = None
        self._transcript: List[InterviewTurn] = []

    @property
    def state(self) -> InterviewState:
        return InterviewState.ACTIVE if self._session is not None else InterviewState.NOT_STARTED

    @property
    def language(self) -> Optional[Language]:
        return self._language

    @property
    def provider_kind(self) -> Optional[ProviderKind]:
        return self._kind

    @property
    def session(self) -> Optional[ChatSession]:
        return self._session

    @property
    def transcript(self) -> Tuple[InterviewTurn, ...]:
        return tuple(self._transcript)

    def start(self, language: Language) -> None:
        """
        Open a fresh session for ``language``, replacing any existing one.

        Raises:
            ConfigurationError: If the interview model or its API key is missing
        """
        language = Language(language)
        resolved = self.router.resolve(FeatureType.INTERVIEW)
        provider = self.router.provider_for(resolved)
        model = resolved.model
        temperature = FEATURE_TEMPERATURES[FeatureType.INTERVIEW]

        config = SessionConfig(
            model=model.model_name,
            system_instruction=prompts.interview_system_instruction(language),
            temperature=model.temperature if model.temperature is not None else temperature,
            max_tokens=model.max_tokens,
            json_output=True,
            response_schema=prompts.INTERVIEW_RESPONSE_SCHEMA if resolved.kind == ProviderKind.GEMINI else None,
        )
        session = provider.open_session(config)

        self._session = session
        self._language = language
        self._kind = resolved.kind
        self._resolved = resolved
        self._transcript = []
        logger.info("Interview started (%s, %s)", resolved.kind.value, language.value)

    def reset(self) -> None:
        """Tear the session down."""
        self._session = None
        self._language = None
        self._kind = None
        self._resolved = None
        self._transcript = []

    async def send_turn(self, text: str, language: Optional[Language] = None) -> InterviewResponse:
        """
        Send the user's answer and return the next question or the draft.

        Starts a session when none exists, and restarts it when ``language``
        differs from the active one or the interview model now resolves to a
        different model, API key or base URL.

        Raises:
            ConfigurationError: If the interview model or its API key is missing
            ProviderError: If the backend keeps failing after retries
        """
        language = self._ensure_session(language)
        return await self._exchange(text, language, Speaker.USER)

    def _ensure_session(self, language: Optional[Language]) -> Language:
        if language is None:
            language = self._language or self.router.settings.language
        language = Language(language)

        if self._session is None:
            self.start(language)
        elif language != self._language:
            logger.info("Interview language changed to %s; restarting session", language.value)
            self.start(language)
        elif self.router.resolve(FeatureType.INTERVIEW) != self._resolved:
            logger.info("Interview model or credentials changed; restarting session")
            self.start(language)
        return language

    async def _exchange(self, text: str, language: Language, speaker: Speaker) -> InterviewResponse:
        session = self._session
        raw = await with_retry(lambda: session.send(text))
        response = parse_interview_response(raw, language)

        self._transcript.append(InterviewTurn(speaker=speaker, text=text))
        self._transcript.append(InterviewTurn(speaker=Speaker.AI, text=response.question, options=response.options))
        return response

    async def begin(self, language: Language) -> InterviewResponse:
        """Open a fresh session and ask for the first question."""
        language = Language(language)
        self.start(language)
        return await self._exchange(prompts.message("start_interview", language), language, Speaker.SYSTEM)

    async def reroll(self, language: Optional[Language] = None) -> InterviewResponse:
        """Ask for three different options to the current question."""
        language = self._ensure_session(language)
        return await self._exchange(prompts.message("reroll_options", language), language, Speaker.USER)

    def context_summary(self) -> str:
        """Transcript rendered as editor context, questions included."""
        lines = []
        for turn in self._transcript:
            if turn.speaker == Speaker.SYSTEM:
                continue
            label = "AI Consultant" if turn.speaker == Speaker.AI else "User"
            lines.append(f"[{label}]: {turn.text}")
        return "\n\n".join(lines)

    async def finalize(self, language: Optional[Language] = None) -> str:
        """Ask for the consolidated prompt and return it."""
        language = self._ensure_session(language)
        response = await self._exchange(prompts.message("finalize", language), language, Speaker.SYSTEM)
        return response.generated_prompt or response.question
