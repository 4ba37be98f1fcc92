"""Security related middleware."""

from .cors import CORSPolicy, CORSHeadersMiddleware, validate_origin

__all__ = ['CORSPolicy', 'CORSHeadersMiddleware', 'validate_origin']
