"""Packs template sources into one client loadable AMD module.

Each registered file is precompiled through the renderer. The packed module
defines ``templates/lookup`` (once per page) and then registers every template
under its reference, compiled with the client side nunjucks runtime.
"""

import asyncio
import inspect
import json
import logging
import os
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from ..directory_loader import DirectoryLoader
from ..errors import TemplateCompileError
from ..utilities import safe_add_with_slash

logger = logging.getLogger(__name__)

TEMPLATE_FILE_PATTERN = re.compile(r"\.(html|j2|jinja2?)$", re.IGNORECASE)


class AddFileOptions:
    REGISTER_AS_PARTIAL = "register_as_partial"
    PARTIAL_NAME = "partial_name"
    REFERENCE = "reference"


class SkipTemplate(Exception):
    """Raised by a file processor to leave a file out of the pack."""


@dataclass(frozen=True)
class TemplateFile:
    path: str
    reference: str
    partial_name: str
    register_partial: bool = False


@dataclass(frozen=True)
class CompiledTemplate:
    reference: str
    template: str
    partial_name: Optional[str]
    register_partial: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reference": self.reference,
            "template": self.template,
            "partialName": self.partial_name,
            "registerPartial": self.register_partial,
        }


FileProcessorResult = Dict[str, Any]
FileProcessor = Callable[[str, str, str, str], Union[FileProcessorResult, Awaitable[FileProcessorResult]]]

_LOOKUP_PROVIDER = """(function() {
    if (require.defined('templates/lookup')) {
        return;
    }
    define('templates/lookup', ['nunjucks'], function(nunjucks) {
        function TemplateLookupProvider() {
            this._templates = {};
            this._partials = {};
            this.environment = new nunjucks.Environment(this);
        }
        TemplateLookupProvider.prototype.getSource = function(name) {
            if (this._partials.hasOwnProperty(name)) {
                return {src: this._partials[name], path: name, noCache: false};
            }
            return null;
        };
        TemplateLookupProvider.prototype.registerTemplate = function(reference, template) {
            if (reference && template) {
                this._templates[reference.toLowerCase()] = template;
            }
        };
        TemplateLookupProvider.prototype.registerPartial = function(name, source) {
            if (name && source) {
                this._partials[name] = source;
            }
        };
        TemplateLookupProvider.prototype.getTemplate = function(reference) {
            if (reference && (reference = reference.toLowerCase()) && this._templates.hasOwnProperty(reference)) {
                return this._templates[reference];
            }
            return null;
        };
        TemplateLookupProvider.prototype.getMatchingTemplates = function(regex) {
            var matches = [];
            for (var k in this._templates) {
                if (this._templates.hasOwnProperty(k) && k.match(regex)) {
                    matches.push({reference: k, template: this._templates[k]});
                }
            }
            return matches.length ? matches : null;
        };
        return new TemplateLookupProvider();
    });
})();
"""

_LOAD_TEMPLATES = """function LoadCompiledTemplates(TemplateLookup, nunjucks, compiledTemplates) {
        for (var i = 0; i < compiledTemplates.length; i++) {
            var cf = compiledTemplates[i];
            if (cf.registerPartial && cf.partialName) {
                TemplateLookup.registerPartial(cf.partialName, cf.template);
            }
        }
        for (var j = 0; j < compiledTemplates.length; j++) {
            var ct = compiledTemplates[j];
            try {
                TemplateLookup.registerTemplate(ct.reference, new nunjucks.Template(ct.template, TemplateLookup.environment, ct.reference));
            } catch (e) {
                console.error("Unable to create template for reference [" + ct.reference + "] due to: " + e.toString());
            }
        }
    }"""


class TemplatePacker:
    """Collects template files and packs them for the client.

    With ``fail_fast`` (the default) the first template that fails to compile
    aborts the pack; otherwise the failing file is logged and skipped.
    """

    def __init__(self, reference_prefix: str = "", fail_fast: bool = True):
        self.reference_prefix = reference_prefix or ""
        self.fail_fast = fail_fast
        self._files: List[TemplateFile] = []

    @property
    def files(self) -> List[TemplateFile]:
        return list(self._files)

    def default_partial_name_from_reference(self, reference: str) -> str:
        return re.sub(r"[\s\-/]", "_", self.reference_prefix + reference)

    def add_file(self, path: str, reference: str, options: Optional[Dict[str, Any]] = None) -> TemplateFile:
        if not reference:
            raise ValueError("A reference must be provided when adding a template file")
        options = options or {}
        partial_name = options.get(AddFileOptions.PARTIAL_NAME) or self.default_partial_name_from_reference(reference)
        template_file = TemplateFile(
            path=path,
            reference=safe_add_with_slash(self.reference_prefix, reference),
            partial_name=partial_name,
            register_partial=bool(options.get(AddFileOptions.REGISTER_AS_PARTIAL)),
        )
        self._files.append(template_file)
        return template_file

    async def add_directory(self, directory: str, recursive: bool = False,
                            reference_prefix: Optional[str] = None,
                            file_processor: Optional[FileProcessor] = None,
                            add_as_partial: Union[bool, Callable[..., Optional[str]]] = False) -> int:
        """Add every template below ``directory``.

        The default processor references a file by its path relative to
        ``directory`` without extension, under ``reference_prefix``.
        ``add_as_partial`` may be a callable returning the partial name (or None).
        """
        added = 0

        def default_processor(item_path: str, name: str, base_path: str, prefix: str) -> FileProcessorResult:
            relative_dir = os.path.relpath(os.path.dirname(item_path), directory).replace("\\", "/")
            if relative_dir == ".":
                relative_dir = ""
            folder = safe_add_with_slash(prefix, relative_dir) if relative_dir else prefix
            reference = safe_add_with_slash(folder, TEMPLATE_FILE_PATTERN.sub("", name))
            result: FileProcessorResult = {AddFileOptions.REFERENCE: reference}
            if callable(add_as_partial):
                partial_name = add_as_partial(reference, name, relative_dir, prefix)
                result[AddFileOptions.PARTIAL_NAME] = partial_name
                result[AddFileOptions.REGISTER_AS_PARTIAL] = bool(partial_name)
            elif add_as_partial:
                result[AddFileOptions.PARTIAL_NAME] = self.default_partial_name_from_reference(reference)
                result[AddFileOptions.REGISTER_AS_PARTIAL] = True
            return result

        processor = file_processor or default_processor

        async def process(item_path: str, name: str, base_path: str, depth: int) -> None:
            nonlocal added
            try:
                result = processor(item_path, name, base_path, reference_prefix or "")
                if inspect.isawaitable(result):
                    result = await result
            except SkipTemplate:
                return
            if not result or not result.get(AddFileOptions.REFERENCE):
                raise ValueError(f"Template file processor returned no reference for {item_path}")
            self.add_file(item_path, result[AddFileOptions.REFERENCE], result)
            added += 1

        await DirectoryLoader(directory, recursive=recursive, name_filter=TEMPLATE_FILE_PATTERN).load(process)
        return added

    async def pack(self, template_id: str, renderer, register_on_renderer: bool = True,
                   logger: Optional[logging.Logger] = None) -> Optional[str]:
        """Precompile all files and return the client module, or None when nothing compiled."""
        log = logger or logging.getLogger(__name__)
        compiled: List[CompiledTemplate] = []

        for template_file in self._files:
            source = await asyncio.to_thread(_read_text, template_file.path)
            try:
                template = renderer.resolve_and_precompile(source, template_file.reference)
            except TemplateCompileError as e:
                log.error(
                    f"Unable to resolve and compile template at path: [{template_file.path}] "
                    f"with reference: [{template_file.reference}] due to: {e}"
                )
                if self.fail_fast:
                    raise TemplateCompileError(
                        str(e), path=template_file.path, reference=template_file.reference
                    ) from e
                continue
            compiled.append(CompiledTemplate(
                reference=template_file.reference,
                template=template,
                partial_name=template_file.partial_name,
                register_partial=template_file.register_partial,
            ))

        if not compiled:
            return None

        if register_on_renderer:
            for item in compiled:
                renderer.register_referenced_template(item.reference, renderer.template_from_precompile(item.template))
                if item.register_partial and item.partial_name:
                    renderer.register_partial(item.partial_name, item.template)

        return self._client_code(template_id, compiled)

    @staticmethod
    def _client_code(template_id: str, compiled: List[CompiledTemplate]) -> str:
        templates = json.dumps([c.to_dict() for c in compiled])
        return (
            _LOOKUP_PROVIDER
            + f"\ndefine({json.dumps(template_id)}, [\"templates/lookup\", \"nunjucks\"], function(TemplateLookup, nunjucks) {{\n"
            + f"    var compiledTemplates = {templates};\n"
            + f"    {_LOAD_TEMPLATES}\n"
            + "    LoadCompiledTemplates(TemplateLookup, nunjucks, compiledTemplates);\n"
            + "    return TemplateLookup;\n"
            + "});\n"
        )


def _read_text(path: str) -> str:
    with open(path, "r", encoding="utf-8") as handle:
        return handle.read()
