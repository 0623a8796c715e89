"""Pydantic models for typedapi's own response bodies."""
