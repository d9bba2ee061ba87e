"""Pydantic models for secret versions, metadata and engine reports."""
