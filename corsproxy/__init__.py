"""Public CORS proxy with an SSRF-hardened request-guard pipeline."""

__version__ = "1.0.0"
