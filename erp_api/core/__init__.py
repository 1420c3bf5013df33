"""
Core application utilities.

This package provides:
- Application-level settings (separate from DB settings)
- Logging configuration with correlation ids
- Domain error taxonomy
- Security helpers (JWT, password hashing) and FastAPI dependencies
- Request rate limiting
"""
