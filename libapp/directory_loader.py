"""Enumerate files in a directory and feed them to a callback.

Traversal is depth-first with entries sorted by name at every level so that the
resulting fragment order (and therefore the content hash) is stable across
filesystems.
"""

import asyncio
import inspect
import logging
import os
import re
from typing import Awaitable, Callable, List, Optional, Pattern, Union

logger = logging.getLogger(__name__)

# callback(item_path, name, base_path, depth)
FileCallback = Callable[[str, str, str, int], Union[None, Awaitable[None]]]


class DirectoryLoader:
    """Walks ``directory`` and hands every matching file to a callback."""

    def __init__(self, directory: str, recursive: bool = False,
                 name_filter: Optional[Union[str, Pattern]] = None):
        self.directory = directory
        self.recursive = recursive
        if isinstance(name_filter, str):
            name_filter = re.compile(name_filter)
        self.name_filter = name_filter

    def _matches(self, name: str) -> bool:
        if self.name_filter is None:
            return True
        return self.name_filter.search(name) is not None

    def list_files(self) -> List[tuple]:
        """Return ``(item_path, name, base_path, depth)`` tuples in traversal order."""
        results: List[tuple] = []
        self._walk(self.directory, 0, results)
        return results

    def _walk(self, base_path: str, depth: int, results: List[tuple]) -> None:
        with os.scandir(base_path) as entries:
            ordered = sorted(entries, key=lambda e: e.name)
        for entry in ordered:
            if entry.is_dir():
                if self.recursive:
                    self._walk(entry.path, depth + 1, results)
            elif entry.is_file() and self._matches(entry.name):
                results.append((entry.path, entry.name, base_path, depth))

    async def load(self, callback: FileCallback) -> int:
        """Enumerate files off the event loop, then invoke ``callback`` for each in order.

        Returns the number of files handed to the callback.
        """
        files = await asyncio.to_thread(self.list_files)
        logger.debug(f"Found {len(files)} files in {self.directory}")
        for item in files:
            result = callback(*item)
            if inspect.isawaitable(result):
                await result
        return len(files)
