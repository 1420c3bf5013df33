"""
Public Pydantic schemas used by FastAPI routes, services, and tests.

Schemas are grouped by domain module (inventory, production, etc.) and also
include the common response envelopes.
"""

from .common import DataResponse, ListResponse, MessageResponse, PaginationMeta  # noqa: F401
