"""
Narrative layer.

Services compute numbers first and then call ``narrate`` to turn a
context dict into coaching copy. Without a generator the template
narratives are used; any other backend is wrapped in the timeout and
validation guard.

The OpenAI backend lives in habitcoach.narrative.openai_generator and is
imported only by callers that want it.
"""
from typing import Any, Dict, Optional

from habitcoach.models import NarrativeKind
from habitcoach.narrative.base import GuardedNarrativeGenerator, NarrativeGenerator
from habitcoach.narrative.fallback import TemplateNarrativeGenerator

_TEMPLATES = TemplateNarrativeGenerator()


def narrate(
    generator: Optional[NarrativeGenerator],
    kind: NarrativeKind,
    context: Dict[str, Any],
) -> Dict[str, Any]:
    if generator is None:
        return _TEMPLATES.generate(kind, context)
    if isinstance(generator, (GuardedNarrativeGenerator, TemplateNarrativeGenerator)):
        return generator.generate(kind, context)
    with GuardedNarrativeGenerator(generator, fallback=_TEMPLATES) as guarded:
        return guarded.generate(kind, context)


__all__ = [
    'NarrativeGenerator',
    'GuardedNarrativeGenerator',
    'TemplateNarrativeGenerator',
    'narrate',
]
