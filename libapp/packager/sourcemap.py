"""Minimal source map (revision 3) writer used by both compressors."""

from typing import Any, Dict, List

_BASE64 = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789+/"
_VLQ_SHIFT = 5
_VLQ_CONTINUATION = 1 << _VLQ_SHIFT
_VLQ_MASK = _VLQ_CONTINUATION - 1


def encode_vlq(value: int) -> str:
    """Base64 VLQ encoding of one signed integer."""
    vlq = (-value << 1) | 1 if value < 0 else value << 1
    encoded = ""
    while True:
        digit = vlq & _VLQ_MASK
        vlq >>= _VLQ_SHIFT
        if vlq:
            digit |= _VLQ_CONTINUATION
        encoded += _BASE64[digit]
        if not vlq:
            return encoded


class SourceMapBuilder:
    """Accumulates one mapping segment per generated line.

    Each generated line starts at column 0 and points at ``(source, line, column)``
    in the original fragment, all zero based.
    """

    def __init__(self, file_name: str):
        self.file_name = file_name
        self.sources: List[str] = []
        self._source_index: Dict[str, int] = {}
        self._lines: List[str] = []
        self._previous = [0, 0, 0]

    def add_line(self, source: str, line: int, column: int = 0) -> None:
        index = self._source_index.get(source)
        if index is None:
            index = self._source_index[source] = len(self.sources)
            self.sources.append(source)
        current = [index, line, column]
        deltas = [c - p for c, p in zip(current, self._previous)]
        self._previous = current
        self._lines.append("".join(encode_vlq(v) for v in [0] + deltas))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": 3,
            "file": self.file_name,
            "sources": list(self.sources),
            "names": [],
            "mappings": ";".join(self._lines),
        }
