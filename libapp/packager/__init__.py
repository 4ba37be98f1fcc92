"""Client asset packaging: compressors, static resources, packages and descriptors."""

from .fragments import Fix, SourceFragment
from .compressor import CompiledAsset, ContentCompressor
from .js_compressor import JSCompressor, JSCompressOptions
from .css_compressor import CSSCompressor
from .static_resources import CacheOptions, StaticResourceIndex
from .package import AssetPackage
from .webpacker import WebPacker

__all__ = [
    'Fix',
    'SourceFragment',
    'CompiledAsset',
    'ContentCompressor',
    'JSCompressor',
    'JSCompressOptions',
    'CSSCompressor',
    'CacheOptions',
    'StaticResourceIndex',
    'AssetPackage',
    'WebPacker',
]
