"""
Per-compilation settings and naming state.
"""

from __future__ import annotations

import keyword
import re
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable

from shared.config import config


@dataclass(frozen=True)
class CompilerContext:
    # Toolkits that run without a user connection (platform-provided tools).
    no_auth_toolkits: FrozenSet[str] = field(default_factory=frozenset)

    @classmethod
    def from_config(cls) -> "CompilerContext":
        return cls(no_auth_toolkits=frozenset(config.no_auth_toolkit_slugs))

    def requires_connection(self, toolkit_slug: str) -> bool:
        return toolkit_slug not in self.no_auth_toolkits


_WORD_RE = re.compile(r"[A-Za-z0-9]+")


class IdentifierAllocator:
    """
    Hands out unique, deterministic Python identifiers for compiled steps.

    One allocator lives for exactly one compilation; identical inputs therefore
    always produce identical names.
    """

    def __init__(self, reserved: Iterable[str] = ()) -> None:
        self._taken: Dict[str, int] = {name: 1 for name in reserved}

    def allocate(self, label: str, *, fallback: str = "step") -> str:
        base = to_identifier(label, fallback=fallback)
        count = self._taken.get(base, 0)
        self._taken[base] = count + 1
        if count == 0:
            return base
        candidate = f"{base}_{count + 1}"
        while candidate in self._taken:
            count += 1
            candidate = f"{base}_{count + 1}"
        self._taken[candidate] = 1
        return candidate


def to_identifier(label: str, *, fallback: str = "step") -> str:
    words = [word.lower() for word in _WORD_RE.findall(label or "")]
    name = "_".join(words) or fallback
    if name[0].isdigit():
        name = f"{fallback}_{name}"
    if keyword.iskeyword(name):
        name = f"{name}_"
    return name
