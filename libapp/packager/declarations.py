"""Content declarations recorded by a PackageConfig.

The set of variants is closed; ``PackageDescriptor.create_package`` dispatches on
the concrete type and rejects anything else.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Pattern, Tuple, Union

from .static_resources import CacheOptions

if TYPE_CHECKING:
    from ..templates.template_packer import TemplatePacker


@dataclass(frozen=True)
class JsDeclaration:
    path: str
    prefix: Optional[str] = None
    recursive: bool = False


@dataclass(frozen=True)
class CssDeclaration:
    path: str
    prefix: Optional[str] = None
    recursive: bool = False


@dataclass(frozen=True)
class RawJsDeclaration:
    content: str
    basename: str
    prefix: Optional[str] = None


@dataclass(frozen=True)
class RawCssDeclaration:
    content: str
    basename: str
    prefix: Optional[str] = None


@dataclass(frozen=True)
class StaticDeclaration:
    path: str
    prefix: Optional[str] = None
    recursive: bool = False
    name_filter: Optional[Union[str, Pattern]] = None
    cache: Optional[CacheOptions] = None


@dataclass(frozen=True)
class PackageRefDeclaration:
    reference: str


@dataclass(frozen=True)
class TemplatesDeclaration:
    template_id: str
    packer: 'TemplatePacker'
    prefix: str = ""
    basename: Optional[str] = None
    register: bool = False
    renderer_type: str = "default"

    @property
    def output_basename(self) -> str:
        return self.basename or f"{self.template_id}.js"


@dataclass(frozen=True)
class BundleDeclaration:
    references: Tuple[str, ...]


Declaration = Union[
    JsDeclaration,
    CssDeclaration,
    RawJsDeclaration,
    RawCssDeclaration,
    StaticDeclaration,
    PackageRefDeclaration,
    TemplatesDeclaration,
    BundleDeclaration,
]
