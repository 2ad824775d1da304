"""
Core application utilities.

This package provides:
- Application-level settings (separate from DB settings)
- Logging configuration with correlation id / source document context
- The typed exception hierarchy and shared enums
- FastAPI dependency helpers (request-scoped DB session)
"""
