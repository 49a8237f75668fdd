"""Shared pydantic domain models."""
