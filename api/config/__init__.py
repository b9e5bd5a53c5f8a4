"""Configuration module for the Hireflow application service."""

from .settings import settings
from .database import get_db, engine, SessionLocal, unit_of_work

__all__ = ["settings", "get_db", "engine", "SessionLocal", "unit_of_work"]
