"""CSS compressor: tinycss2 stylesheet model, rcssmin per rule.

The combined stylesheet keeps one top-level rule per output line, which gives
each rule its own source map segment pointing back at the fragment it came from.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Tuple

import rcssmin
import tinycss2

from ..errors import CompressionError
from .compressor import ContentCompressor
from .fragments import SourceFragment
from .sourcemap import SourceMapBuilder

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompiledRule:
    source: str
    line: int
    column: int
    css: str


class CSSCompressor(ContentCompressor):
    file_extension = "css"
    content_type = "text/css"
    # Served with the JS content type for compatibility with existing clients.
    source_map_content_type = "application/javascript"

    def _parse_fragment(self, fragment: SourceFragment, text: str) -> List[CompiledRule]:
        rules = tinycss2.parse_stylesheet(text, skip_comments=True, skip_whitespace=True)
        compiled = []
        for rule in rules:
            if rule.type == "error":
                raise CompressionError(
                    f"Unable to parse [{fragment.basename}] for [{self.output_file_name}] "
                    f"at {rule.source_line}:{rule.source_column}: {rule.message}"
                )
            css = rule.serialize().strip()
            if not self.debug:
                css = rcssmin.cssmin(css)
            if css:
                compiled.append(CompiledRule(
                    source=fragment.basename,
                    line=rule.source_line - 1,
                    column=rule.source_column - 1,
                    css=css,
                ))
        return compiled

    def _generate(self, parsed: List[List[CompiledRule]], options: Any) -> Tuple[str, Dict[str, Any]]:
        builder = SourceMapBuilder(self.output_file_name)
        lines: List[str] = []
        for rules in parsed:
            for rule in rules:
                # Debug output may span lines; only the first line of a rule is mapped exactly.
                rule_lines = rule.css.split("\n")
                for offset, _ in enumerate(rule_lines):
                    builder.add_line(rule.source, rule.line + offset, rule.column if offset == 0 else 0)
                lines.extend(rule_lines)
        return "\n".join(lines), builder.to_dict()
