"""Storage primitives shared by services."""

from wahub.repositories.upsert import insert_for

__all__ = ["insert_for"]
