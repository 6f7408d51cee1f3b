"""Async client for the LODA HTTP API."""

from .client import LODAApiClient

__all__ = ["LODAApiClient"]
