"""Source fragments collected by the content compressors."""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional, Pattern, Tuple, Union


@dataclass(frozen=True)
class Fix:
    """A find/replace applied to a fragment before hashing and parsing.

    A plain string ``find`` replaces its first occurrence, a compiled pattern
    replaces every match.
    """
    find: Union[str, Pattern]
    replacement: str

    def apply(self, text: str) -> str:
        if isinstance(self.find, str):
            return text.replace(self.find, self.replacement, 1)
        return self.find.sub(self.replacement, text)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Fix':
        return cls(find=data['find'], replacement=data['replacement'])


def coerce_fixes(fixes: Optional[Iterable[Union[Fix, Dict[str, Any]]]]) -> Tuple[Fix, ...]:
    if not fixes:
        return ()
    return tuple(f if isinstance(f, Fix) else Fix.from_dict(f) for f in fixes)


def apply_fixes(text: str, fixes: Iterable[Fix]) -> str:
    for fix in fixes:
        text = fix.apply(text)
    return text


@dataclass(frozen=True)
class SourceFragment:
    """One input of a compressor: a file path or inline content, never both."""
    basename: str
    path: Optional[str] = None
    content: Optional[str] = None
    fixes: Tuple[Fix, ...] = field(default_factory=tuple)

    def __post_init__(self):
        if (self.path is None) == (self.content is None):
            raise ValueError("A source fragment needs exactly one of path or content")
        if not self.basename:
            raise ValueError("A source fragment needs a basename")

    @property
    def key(self) -> str:
        """Case-insensitive identity used for duplicate detection and source lookups."""
        return self.basename.lower()

    @property
    def is_inline(self) -> bool:
        return self.content is not None

    def read(self) -> str:
        """Return the fragment text with fixes applied (blocking for file fragments)."""
        if self.content is not None:
            text = self.content
        else:
            with open(self.path, 'r', encoding='utf-8') as handle:
                text = handle.read()
        return apply_fixes(text, self.fixes)
