"""Exception hierarchy for libapp.

Build-time errors (configuration, compression, template compilation) abort
application startup. Request-time errors map onto HTTP responses through the
handlers installed by ``libapp.server.extensions``.
"""

from typing import Optional


class LibAppError(Exception):
    """Base class for all libapp errors."""

    status_code: int = 500

    def __init__(self, message: str = "", status_code: Optional[int] = None):
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code


class ConfigurationError(LibAppError):
    """Invalid or missing configuration detected while building the app."""


class DuplicateBasenameError(ConfigurationError):
    """Two fragments of one compressor normalize to the same basename."""

    def __init__(self, basename: str, output_file_name: str):
        super().__init__(
            f"Duplicate file name [{basename}] found while compressing [{output_file_name}]"
        )
        self.basename = basename
        self.output_file_name = output_file_name


class PackageContentError(ConfigurationError):
    """Content added to a package that has no output path for that kind of content."""


class RendererNotFoundError(ConfigurationError):
    """A templates declaration names a renderer that was never configured."""


class PackageNotCompressedError(ConfigurationError):
    """Routes were requested for a package before compression finished."""


class CompressorSealedError(ConfigurationError):
    """Fragments were added to a compressor after compression started."""


class CompressionError(LibAppError):
    """A JS or CSS fragment could not be parsed or minified."""


class TemplateCompileError(LibAppError):
    """A template failed to precompile."""

    def __init__(self, message: str, path: Optional[str] = None, reference: Optional[str] = None):
        super().__init__(message)
        self.path = path
        self.reference = reference


class NotFoundError(LibAppError):
    status_code = 404


class AccessRestrictedError(LibAppError):
    status_code = 403
