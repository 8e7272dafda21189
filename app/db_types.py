"""Database-agnostic type definitions for SQLAlchemy models.

Models run against PostgreSQL in production and SQLite in tests, so JSON
payloads use the generic JSON type rather than JSONB.
"""
from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import UUID as PG_UUID

JSONType = JSON

# Renders as native uuid on PostgreSQL and CHAR(32) on SQLite
UUIDType = PG_UUID
