"""
OpenAI-compatible narrative backend (langchain-openai).

Any server speaking the OpenAI chat API works through OPENAI_BASE_URL.
"""
import json
import logging
from typing import Any, Dict, Optional

from langchain_openai import ChatOpenAI

from habitcoach.config import Settings, get_settings
from habitcoach.exceptions import NarrativeGenerationError
from habitcoach.models import NarrativeKind
from habitcoach.narrative.base import GuardedNarrativeGenerator, NarrativeGenerator
from habitcoach.narrative.prompts import build_prompt

logger = logging.getLogger(__name__)


class OpenAINarrativeGenerator(NarrativeGenerator):
    """
    Asks a chat model for a JSON object and parses it.

    The model is built once; ``llm`` can be injected (tests pass a mock).
    Does not validate or time out on its own, wrap it in
    GuardedNarrativeGenerator for that.
    """

    def __init__(self, settings: Optional[Settings] = None, llm: Any = None):
        settings = settings or get_settings()
        if llm is None:
            kwargs = {}
            if settings.openai_api_key:
                kwargs['api_key'] = settings.openai_api_key
            if settings.openai_base_url:
                kwargs['base_url'] = settings.openai_base_url
            llm = ChatOpenAI(
                model=settings.model,
                temperature=settings.temperature,
                model_kwargs={"response_format": {"type": "json_object"}},
                **kwargs,
            )
        self.llm = llm
        self.model = settings.model

    def generate(self, kind: NarrativeKind, context: Dict[str, Any]) -> Dict[str, Any]:
        prompt = build_prompt(kind, context)
        content = self.llm.invoke(prompt).content
        try:
            payload = json.loads(content)
        except (TypeError, json.JSONDecodeError) as e:
            raise NarrativeGenerationError(kind.value, f"model returned invalid JSON: {e}") from e

        logger.debug(f"Model {self.model} answered {kind.value} ({len(content)} chars)")
        return payload


def build_default_generator(settings: Optional[Settings] = None) -> Optional[GuardedNarrativeGenerator]:
    """
    Guarded OpenAI generator when an API key is configured, else None.

    None makes every service use the template narratives.
    """
    settings = settings or get_settings()
    if not settings.narrative_enabled:
        logger.info("No OPENAI_API_KEY configured, narratives use templates")
        return None
    return GuardedNarrativeGenerator(
        OpenAINarrativeGenerator(settings),
        timeout_seconds=settings.narrative_timeout_seconds,
        max_workers=settings.max_parallel_narratives,
    )
