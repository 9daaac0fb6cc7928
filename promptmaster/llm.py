"""AI operations used by the editor, each routed to its feature's model."""

import logging
from typing import Any, List, Optional, Sequence

from . import prompts
from .config import FeatureType, Language
from .errors import ConfigurationError, ParseError, ProviderError
from .models import CLASSIFIABLE_PILLARS, Pillar, Suggestion, SuggestionType
from .parsing import parse_json
from .providers.base import LLMRequest, Message, MessageRole
from .retry import is_rate_limit_error, with_retry
from .router import FeatureRouter, ResolvedModel

logger = logging.getLogger(__name__)

# Default sampling temperature per feature
FEATURE_TEMPERATURES = {
    FeatureType.INTERVIEW: 0.6,
    FeatureType.MENTOR: 0.5,
    FeatureType.FEEDBACK: 0.2,
    FeatureType.CRITIQUE: 0.1,
    FeatureType.CLASSIFY: 0.1,
    FeatureType.REWRITE: 0.7,
    FeatureType.REVERSE_ENGINEER: 0.3,
}

PARTIAL_REWRITE_TEMPERATURE = 0.3


def parse_suggestions(raw: str) -> List[Suggestion]:
    """
    Parse a critique reply into suggestions.

    Accepts a bare JSON array, an object wrapping it under ``suggestions``,
    or a single suggestion object.
    Entries without string ``originalText``/``suggestedText`` are skipped.

    Raises:
        ParseError: If the reply is not JSON
    """
    data: Any = parse_json(raw)
    if isinstance(data, dict):
        data = [data] if "originalText" in data else data.get("suggestions", [])
    if not isinstance(data, list):
        return []

    suggestions = []
    for item in data:
        if not isinstance(item, dict):
            continue
        original = item.get("originalText")
        suggested = item.get("suggestedText")
        if not isinstance(original, str) or not original or not isinstance(suggested, str):
            continue
        try:
            category = SuggestionType(str(item.get("type", "clarity")).lower())
        except ValueError:
            category = SuggestionType.CLARITY
        suggestions.append(Suggestion(
            original_text=original,
            suggested_text=suggested,
            reason=str(item.get("reason", "")),
            type=category,
        ))
    return suggestions


def match_pillar(text: str) -> Pillar:
    """Map a classifier reply onto a pillar by case-insensitive substring."""
    normalized = (text or "").strip().lower()
    for pillar in CLASSIFIABLE_PILLARS:
        if pillar.value.lower() in normalized:
            return pillar
    return Pillar.OTHER


class PromptService:
    """
    Feature operations over a ``FeatureRouter``.

    Every backend call goes through the retry policy exactly once.
    ``ConfigurationError`` always propagates; provider and parse failures are
    turned into each operation's fallback value.
    """

    def __init__(self, router: FeatureRouter):
        self.router = router

    async def _call(
        self,
        resolved: ResolvedModel,
        contents: str,
        temperature: float,
        json_output: bool = False,
    ) -> str:
        provider = self.router.provider_for(resolved)
        model = resolved.model
        request = LLMRequest(
            messages=[Message(role=MessageRole.USER, content=contents)],
            model=model.model_name,
            temperature=model.temperature if model.temperature is not None else temperature,
            max_tokens=model.max_tokens,
            json_output=json_output,
        )
        text = await with_retry(lambda: provider.complete(request))
        return (text or "").strip()

    async def _invoke(
        self,
        feature: FeatureType,
        contents: str,
        temperature: Optional[float] = None,
        json_output: bool = False,
    ) -> str:
        resolved = self.router.resolve(feature)
        if temperature is None:
            temperature = FEATURE_TEMPERATURES[feature]
        return await self._call(resolved, contents, temperature, json_output)

    async def reverse_engineer_context(self, prompt: str, language: Language) -> str:
        """Infer the four pillars of an existing prompt as editor context."""
        contents = prompts.reverse_engineer_prompt(prompt, language)
        try:
            text = await self._invoke(FeatureType.REVERSE_ENGINEER, contents)
        except ProviderError as e:
            logger.error("Context extraction failed: %s", e)
            return prompts.CONTEXT_FALLBACK
        return text or prompts.CONTEXT_FALLBACK

    async def get_mentor_feedback(
        self,
        prompt: str,
        context: str,
        language: Language,
        ignored_feedback: Sequence[str] = (),
    ) -> Optional[str]:
        """One short tip on the weakest pillar, or None."""
        contents = prompts.mentor_prompt(prompt, context, language, list(ignored_feedback))
        try:
            text = await self._invoke(FeatureType.MENTOR, contents)
        except ProviderError as e:
            logger.warning("Mentor feedback failed: %s", e)
            return None
        return text or None

    async def apply_specific_feedback(
        self,
        prompt: str,
        context: str,
        feedback: str,
        locked_segments: Sequence[str],
        language: Language,
    ) -> str:
        """Minimal edit of ``prompt`` satisfying ``feedback``; unchanged on failure."""
        contents = prompts.apply_feedback_prompt(prompt, context, feedback, locked_segments, language)
        try:
            text = await self._invoke(FeatureType.FEEDBACK, contents)
        except ProviderError as e:
            logger.error("Apply feedback failed: %s", e)
            return prompt
        return text or prompt

    async def get_detailed_critique(self, prompt: str, context: str, language: Language) -> List[Suggestion]:
        """Span-level suggestions; empty on failure."""
        contents = prompts.critique_prompt(prompt, context, language)
        try:
            raw = await self._invoke(FeatureType.CRITIQUE, contents, json_output=True)
            return parse_suggestions(raw)
        except (ProviderError, ParseError) as e:
            logger.warning("Critique failed: %s", e)
            return []

    async def classify_prompt_segment(self, segment: str, full_prompt: str) -> Pillar:
        """Pillar of ``segment``; Other when unmatched or on failure."""
        contents = prompts.classify_prompt(segment, full_prompt)
        try:
            text = await self._invoke(FeatureType.CLASSIFY, contents)
        except ProviderError as e:
            logger.warning("Classification failed: %s", e)
            return Pillar.OTHER
        return match_pillar(text)

    async def reconstruct_prompt(
        self,
        prompt: str,
        context: str,
        locked_segments: Sequence[str],
        language: Language,
    ) -> str:
        """
        Rewrite the whole prompt guided by ``context``, keeping locked text.

        When the rewrite model stays rate-limited after retries, the fast
        model is tried once. Any other failure returns ``prompt`` unchanged.
        """
        contents = prompts.full_rewrite_prompt(prompt, context, locked_segments, language)
        temperature = FEATURE_TEMPERATURES[FeatureType.REWRITE]
        primary = self.router.resolve(FeatureType.REWRITE)

        try:
            text = await self._call(primary, contents, temperature)
            return text or prompt
        except ProviderError as e:
            if not is_rate_limit_error(e):
                logger.error("Reconstruction failed: %s", e)
                return prompt
            logger.warning("Rewrite model quota exhausted, attempting fallback to fast model: %s", e)

        fallback = self.router.fast_model()
        if fallback.model.id == primary.model.id:
            return prompt
        try:
            text = await self._call(fallback, contents, temperature)
        except (ProviderError, ConfigurationError) as e:
            logger.error("Reconstruction completely failed: %s", e)
            return prompt
        return text or prompt

    async def rewrite_segment(
        self,
        prompt: str,
        context: str,
        segment: str,
        language: Language,
        locked_segments: Sequence[str] = (),
    ) -> str:
        """
        Rewrite only ``segment`` of ``prompt``; returns the replacement text.

        The reply is used as-is (trimmed); the instruction asks the model to
        omit filler but nothing strips it here.
        """
        contents = prompts.partial_rewrite_prompt(prompt, context, segment, language, locked_segments)
        try:
            text = await self._invoke(FeatureType.REWRITE, contents, temperature=PARTIAL_REWRITE_TEMPERATURE)
        except ProviderError as e:
            logger.error("Partial rewrite failed: %s", e)
            return segment
        return text or segment
