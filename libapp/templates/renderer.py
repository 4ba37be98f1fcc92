"""Jinja2 backed renderer.

Templates may contain ``__a.b__`` placeholders that are substituted from the
renderer context before compilation (``__a__.__b__`` joins several lookups with
a dot). Partials are plain templates registered by name and pulled in with
``{% include %}``. Templates packed for the client are also registered here
and loaded with a ``ref:`` prefix.
"""

import asyncio
import importlib.util
import logging
import os
import re
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from jinja2 import (
    ChoiceLoader,
    DictLoader,
    Environment,
    FileSystemLoader,
    Template,
    TemplateNotFound,
    TemplateSyntaxError,
    select_autoescape,
)
from markupsafe import Markup

from ..directory_loader import DirectoryLoader
from ..errors import TemplateCompileError
from ..observability.event_timer import EventTimer, EventTypes

logger = logging.getLogger(__name__)

_REFERENCED_VARIABLE = re.compile(r"__[\w.]+__")
_GLOBAL_PARTIAL_PREFIXES = ("global_", "global_partials_")


class RendererOptions:
    DISABLE_GLOBAL_PARTIAL_DIRECTORY = "disable_global_partial_directory"
    TEMPLATE_EXTENSION = "template_extension"


def _as_list(value: Union[str, Iterable[str], None]) -> List[str]:
    if not value:
        return []
    return [value] if isinstance(value, str) else list(value)


def _resolve_path(context: Optional[Dict[str, Any]], path: str) -> Any:
    current: Any = context
    for part in path.split("."):
        if isinstance(current, dict) and part in current:
            current = current[part]
        else:
            return None
    return current


def resolve_referenced_variables(context: Optional[Dict[str, Any]], text: str) -> str:
    def replace(match: re.Match) -> str:
        token = match.group(0)
        resolved = []
        for path in token[2:-2].split("__.__"):
            value = _resolve_path(context, path)
            if not value:
                logger.warning(f"Unable to resolve template reference [{token}]")
                return token
            resolved.append(str(value))
        return ".".join(resolved)

    return _REFERENCED_VARIABLE.sub(replace, text)


class JinjaRenderer:
    """Renders Jinja2 templates and precompiles template sources for packing."""

    def __init__(self, template_extension: str = ".html"):
        self.template_extension = template_extension
        self._context: Dict[str, Any] = {}
        self._template_paths: List[str] = []
        self._partials: Dict[str, str] = {}
        self._referenced: Dict[str, Template] = {}
        self._global_partial_support = True
        self.environment = Environment(
            loader=DictLoader(self._partials),
            autoescape=select_autoescape(["html", "htm", "xml"], default_for_string=False),
        )

    @property
    def partials(self) -> Dict[str, str]:
        return dict(self._partials)

    async def configure(self, template_paths: Union[str, Iterable[str], None] = None,
                        partial_paths: Union[str, Iterable[str], None] = None,
                        helper_paths: Union[str, Iterable[str], None] = None,
                        context: Optional[Dict[str, Any]] = None,
                        options: Optional[Dict[str, Any]] = None) -> None:
        options = options or {}
        self._context = dict(context or {})
        self._template_paths = _as_list(template_paths)
        self._global_partial_support = not options.get(RendererOptions.DISABLE_GLOBAL_PARTIAL_DIRECTORY, False)
        self.template_extension = options.get(RendererOptions.TEMPLATE_EXTENSION, self.template_extension)
        self.environment.loader = ChoiceLoader([
            DictLoader(self._partials),
            FileSystemLoader(self._template_paths),
        ])

        for path in _as_list(helper_paths):
            await DirectoryLoader(path, recursive=True, name_filter=r"\.py$").load(
                lambda item_path, *_: self._load_helper_module(item_path)
            )

        for path in _as_list(partial_paths):
            await self.register_partials_from_directory(
                path, recursive=True, skip_initial_level=path in self._template_paths
            )

    def _load_helper_module(self, item_path: str) -> None:
        """Import a helper file; its ``register(renderer)`` adds helpers to this renderer."""
        name = "libapp_helpers_" + re.sub(r"\W", "_", os.path.abspath(item_path))
        spec = importlib.util.spec_from_file_location(name, item_path)
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)
        register = getattr(module, "register", None)
        if callable(register):
            register(self)
        logger.debug(f"Loaded template helpers from {item_path}")

    # Compilation

    def resolve_referenced_variables(self, text: str) -> str:
        return resolve_referenced_variables(self._context, text)

    def resolve_and_precompile(self, source: str, name: Optional[str] = None) -> str:
        """Substitute context placeholders and validate the template.

        Returns the resolved source, not compiled code: Jinja only compiles to
        Python, so the packed client module ships template source and the
        browser side (nunjucks) compiles it on first use. A syntax error is
        still caught here at build time through ``Environment.parse``.
        """
        resolved = self.resolve_referenced_variables(source)
        try:
            self.environment.parse(resolved, name=name)
        except TemplateSyntaxError as e:
            raise TemplateCompileError(f"{e.message} (line {e.lineno})", path=name) from e
        return resolved

    def template_from_precompile(self, precompiled: str) -> Template:
        return self.environment.from_string(precompiled)

    # Registration

    def register_referenced_template(self, reference: str, template: Template) -> None:
        if reference and template is not None:
            self._referenced[reference.lower()] = template

    def register_partial(self, name: str, source: str) -> None:
        if name and source is not None:
            self._partials[name] = source

    async def register_partials_from_directory(self, directory: str, recursive: bool = True,
                                               skip_initial_level: bool = False) -> int:
        pattern = re.compile(re.escape(self.template_extension) + "$", re.IGNORECASE)
        files: List[tuple] = []

        def collect(item_path: str, name: str, base_path: str, depth: int) -> None:
            if depth == 0 and skip_initial_level:
                return
            files.append((item_path, os.path.relpath(item_path, directory)))

        await DirectoryLoader(directory, recursive=recursive, name_filter=pattern).load(collect)
        for item_path, relative in files:
            source = await asyncio.to_thread(_read_text, item_path)
            self.register_partial(self._partial_name(relative), self.resolve_referenced_variables(source))
        return len(files)

    def _partial_name(self, relative_path: str) -> str:
        parts = relative_path.replace("\\", "/").split("/")
        name = parts[-1][: -len(self.template_extension)]
        prefix = "_".join(parts[:-1]) + "_" if len(parts) > 1 else ""
        prefix = re.sub(r"[ -]", "_", prefix)
        if self._global_partial_support and prefix.lower() in _GLOBAL_PARTIAL_PREFIXES:
            prefix = ""
        return re.sub(r"[ -]", "_", prefix + name)

    def register_helper(self, name: str, method: Callable) -> None:
        if name and method:
            self.environment.globals[name] = method

    def safe_string(self, text: str) -> Markup:
        return Markup(text)

    # Rendering

    def load_template(self, name: str) -> Optional[Template]:
        """Load ``ref:<reference>`` packed templates, or a template from disk by name or path."""
        if name.lower().startswith("ref:"):
            return self._referenced.get(name[4:].lower())

        if not name.lower().endswith(self.template_extension):
            name += self.template_extension

        if os.path.isfile(name):
            return self.environment.from_string(self.resolve_referenced_variables(_read_text(name)))

        for template_path in self._template_paths:
            path = os.path.join(template_path, name)
            if os.path.isfile(path):
                return self.environment.from_string(self.resolve_referenced_variables(_read_text(path)))
        try:
            return self.environment.get_template(name)
        except TemplateNotFound:
            return None

    def render(self, template: Template, data: Optional[Dict[str, Any]] = None,
               timer: Optional[EventTimer] = None) -> str:
        if timer is None:
            return template.render(data or {})
        with timer.timed(EventTypes.RENDER):
            return template.render(data or {})


def _read_text(path: str) -> str:
    with open(path, "r", encoding="utf-8") as handle:
        return handle.read()
