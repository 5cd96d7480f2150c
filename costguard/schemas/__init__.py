"""Pydantic schemas for API request/response models."""

from costguard.schemas.auth import UserSession
