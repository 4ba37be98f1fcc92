"""libapp - declarative web application framework with a client asset packaging pipeline."""

from .config.app_config import AppConfig
from .packager.package_config import PackageConfig, PackageDescriptor
from .packager.package import AssetPackage
from .templates.template_packer import TemplatePacker

__version__ = "0.1.0"

__all__ = [
    'AppConfig',
    'PackageConfig',
    'PackageDescriptor',
    'AssetPackage',
    'TemplatePacker',
]
