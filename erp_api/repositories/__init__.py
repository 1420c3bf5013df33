"""
Repository layer for data access.

Repositories encapsulate SQLAlchemy queries for each domain area. They share the
caller's AsyncSession; services decide when to commit.
"""
