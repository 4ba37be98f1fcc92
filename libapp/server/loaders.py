"""Import route and data provider files from directories.

Every ``*.py`` file (names starting with ``_`` are skipped) is imported and its
``setup`` function called: ``setup(app, config)`` for data providers and
``setup(app, config, http)`` for routes. ``setup`` may be a coroutine
function. Paths are processed in the order they were added, files in sorted
order, one at a time.
"""

import importlib.util
import inspect
import logging
import os
import re
from types import ModuleType
from typing import Any, Dict, List, Optional, Tuple

from ..directory_loader import DirectoryLoader
from ..observability.logging import VERBOSE

logger = logging.getLogger(__name__)

PYTHON_FILE_PATTERN = re.compile(r"^[^_].*\.py$", re.IGNORECASE)


def import_file(item_path: str, namespace: str) -> ModuleType:
    name = f"{namespace}_" + re.sub(r"\W", "_", os.path.abspath(item_path))
    spec = importlib.util.spec_from_file_location(name, item_path)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


class _SetupFileLoader:
    kind = "file"
    namespace = "libapp_setup"

    def __init__(self):
        self._paths: List[Tuple[str, bool]] = []

    @property
    def paths(self) -> List[Tuple[str, bool]]:
        return list(self._paths)

    def add_path(self, path: str, recursive: bool = False) -> None:
        self._paths.append((path, recursive))

    def _setup_args(self, app: Any, config: Dict[str, Any]) -> tuple:
        return app, config

    async def load(self, app: Any, config: Optional[Dict[str, Any]],
                   log: Optional[logging.Logger] = None) -> int:
        log = log or logger
        loaded = 0

        async def load_file(item_path: str, name: str, base_path: str, depth: int) -> None:
            nonlocal loaded
            module = import_file(item_path, self.namespace)
            setup = getattr(module, "setup", None)
            if not callable(setup):
                return
            result = setup(*self._setup_args(app, config or {}))
            if inspect.isawaitable(result):
                await result
            loaded += 1
            log.log(VERBOSE, f"Successfully loaded {self.kind} [{name}]")

        for path, recursive in self._paths:
            await DirectoryLoader(path, recursive=recursive, name_filter=PYTHON_FILE_PATTERN).load(load_file)
        return loaded


class DataProviderLoader(_SetupFileLoader):
    kind = "data provider"
    namespace = "libapp_data_provider"


class RoutesLoader(_SetupFileLoader):
    kind = "route"
    namespace = "libapp_route"

    def _setup_args(self, app: Any, config: Dict[str, Any]) -> tuple:
        return app, config, app.http
