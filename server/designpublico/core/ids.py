"""Public identifiers: obfuscated record ids and URL slugs."""

from __future__ import annotations

import hashlib
import re
import unicodedata


class IdObfuscator:
    """Stable mapping between internal record ids and short public ids.

    The public id is the first 12 hex chars of sha256(internal_id + salt), so it
    is the same across restarts. Reverse lookups only work for ids that were
    obfuscated by this instance.
    """

    def __init__(self, salt: str) -> None:
        self._salt = salt
        self._to_public: dict[str, str] = {}
        self._to_internal: dict[str, str] = {}

    def obfuscate(self, internal_id: str) -> str:
        public_id = self._to_public.get(internal_id)
        if public_id is None:
            digest = hashlib.sha256((internal_id + self._salt).encode("utf-8")).hexdigest()
            public_id = digest[:12]
            self._to_public[internal_id] = public_id
            self._to_internal[public_id] = internal_id
        return public_id

    def deobfuscate(self, public_id: str) -> str | None:
        return self._to_internal.get(public_id)

    def clear(self) -> None:
        self._to_public.clear()
        self._to_internal.clear()


_NON_WORD = re.compile(r"[^\w\s-]")
_SEPARATORS = re.compile(r"[\s_]+")
_HYPHEN_RUNS = re.compile(r"-{2,}")


def create_slug(text: str) -> str:
    """'Carteira Digital de Trânsito' -> 'carteira-digital-de-transito'."""
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFD", text)
    ascii_text = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    slug = _NON_WORD.sub("", ascii_text.lower().strip())
    slug = _SEPARATORS.sub("-", slug)
    slug = _HYPHEN_RUNS.sub("-", slug)
    return slug.strip("-")
