"""
Utilities package for the Tubely backend application.

Modules:
--------
file_validator:
    Media type parsing, per-asset-kind allow-lists and libmagic content
    sniffing of staged uploads.

logger:
    Structured logging configuration (JSON and plain text formatters,
    Uvicorn integration, context enrichment via LoggerAdapter).
"""
