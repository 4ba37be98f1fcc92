"""JavaScript compressor: fragments are parsed with calmjs.parse and printed as one program.

Every fragment is parsed into an ES5 syntax tree tagged with its basename, so a
syntax error aborts compression and names the offending fragment. The trees
are printed back in declaration order through the calmjs minify printer and
the source map is built from the printer's output chunks. Debug builds go
through the same printer without name obfuscation.
"""

import logging
from dataclasses import dataclass
from io import StringIO
from itertools import chain
from typing import Any, Dict, List, Optional, Tuple

from calmjs.parse import es5
from calmjs.parse.asttypes import Node
from calmjs.parse.exceptions import ECMARegexSyntaxError, ECMASyntaxError
from calmjs.parse.sourcemap import encode_sourcemap, write
from calmjs.parse.unparsers.es5 import minify_printer

from ..errors import CompressionError
from .compressor import ContentCompressor
from .fragments import SourceFragment

logger = logging.getLogger(__name__)


@dataclass
class JSCompressOptions:
    # None follows the build mode: obfuscate local names unless debugging.
    obfuscate: Optional[bool] = None
    obfuscate_globals: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'JSCompressOptions':
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)


class JSCompressor(ContentCompressor):
    file_extension = "js"
    content_type = "application/javascript"
    source_map_content_type = "application/octet-stream"

    def _parse_fragment(self, fragment: SourceFragment, text: str) -> Node:
        try:
            tree = es5(text)
        except (ECMASyntaxError, ECMARegexSyntaxError) as e:
            raise CompressionError(
                f"Unable to parse [{fragment.basename}] for [{self.output_file_name}]: {e}"
            ) from e
        tree.sourcepath = fragment.basename
        return tree

    def _options(self, options: Any) -> JSCompressOptions:
        if options is None:
            return JSCompressOptions()
        if isinstance(options, dict):
            return JSCompressOptions.from_dict(options)
        return options

    def _generate(self, parsed: List[Node], options: Any) -> Tuple[str, Dict[str, Any]]:
        opts = self._options(options)
        obfuscate = (not self.debug) if opts.obfuscate is None else opts.obfuscate
        printer = minify_printer(
            obfuscate=obfuscate,
            obfuscate_globals=obfuscate and opts.obfuscate_globals,
        )

        stream = StringIO()
        mappings, sources, names = write(chain.from_iterable(printer(tree) for tree in parsed), stream)
        return stream.getvalue(), encode_sourcemap(self.output_file_name, mappings, sources, names)
