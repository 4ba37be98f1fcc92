"""Server-side rendering (Jinja2) and client template packing."""

from .renderer import JinjaRenderer, RendererOptions
from .template_packer import AddFileOptions, SkipTemplate, TemplatePacker

__all__ = [
    'JinjaRenderer',
    'RendererOptions',
    'AddFileOptions',
    'SkipTemplate',
    'TemplatePacker',
]
