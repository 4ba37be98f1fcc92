"""WebPacker: creates packages, compresses them and keeps the named ones for serving."""

import logging
import time
from typing import Dict, Optional

from ..observability.prometheus_metrics import record_package_metrics
from ..server.routing import HttpLayer
from .package import AssetPackage

logger = logging.getLogger(__name__)


class WebPacker:
    """Factory and registry for asset packages."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self._packages: Dict[str, AssetPackage] = {}

    def create_package(self, js_file_path: Optional[str], css_file_path: Optional[str],
                       static_resource_path: Optional[str], logger: Optional[logging.Logger] = None,
                       debug: bool = False) -> AssetPackage:
        return AssetPackage(js_file_path, css_file_path, static_resource_path, logger or self.logger, debug)

    async def register_package(self, name: str, package: AssetPackage,
                               http: Optional[HttpLayer] = None) -> AssetPackage:
        """Compress ``package``, cache it under ``name`` and, given ``http``, register its routes.

        Nothing is cached or routed if compression fails.
        """
        start = time.perf_counter()
        try:
            await package.compress()
        except Exception as e:
            record_package_metrics(name, time.perf_counter() - start, error=type(e).__name__)
            self.logger.error(f"Unable to compress package [{name}]: {e}")
            raise

        record_package_metrics(
            name,
            time.perf_counter() - start,
            js_bytes=self._compiled_size(package.js_compressor),
            css_bytes=self._compiled_size(package.css_compressor),
        )
        self._packages[name] = package
        if http is not None:
            package.register_routes(http)
        self.logger.debug(f"Registered package [{name}]")
        return package

    @staticmethod
    def _compiled_size(compressor) -> int:
        if compressor is None:
            return 0
        asset = compressor.lookup_for_base_url_path("")
        return len(asset.code.encode("utf-8")) if asset else 0

    def package(self, name: str) -> Optional[AssetPackage]:
        return self._packages.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._packages

    @property
    def packages(self) -> Dict[str, AssetPackage]:
        return dict(self._packages)

    def links(self, name: str, base_url_path: Optional[str] = None) -> str:
        package = self._packages.get(name)
        if package is None:
            self.logger.error(f"Unable to find named package [{name}]")
            return ""
        return package.links(base_url_path)
