"""@mention extraction and resolution against the active persona roster."""

import re

from src.models import Persona

# An "@" glued to a preceding word character is an e-mail address, not a tag.
_TAG_RE = re.compile(r"(?<![\w@])@([A-Za-z0-9][\w\-]*)")


def extract_tags(text: str | None) -> list[str]:
    """Return @mention tokens in first-mention order, lowercased and de-duplicated."""
    if not text:
        return []
    seen: dict[str, None] = {}
    for match in _TAG_RE.finditer(text):
        seen.setdefault(match.group(1).lower(), None)
    return list(seen)


def _matches(token: str, persona: Persona) -> bool:
    return token in persona.id.lower() or token in persona.name.lower()


def resolve_tagged(personas: list[Persona], text: str | None) -> list[Persona]:
    """Resolve @mentions in ``text`` to personas.

    Ordered by first mention, de-duplicated. A token that matches several
    personas contributes them in roster order; unmatched tokens are ignored.
    An empty result means "no tag override", never "exclude everyone".
    """
    resolved: list[Persona] = []
    seen_ids: set[str] = set()
    for token in extract_tags(text):
        for persona in personas:
            if persona.id in seen_ids or not _matches(token, persona):
                continue
            resolved.append(persona)
            seen_ids.add(persona.id)
    return resolved
