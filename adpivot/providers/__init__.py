"""Narrative provider package."""
from adpivot.providers.base import BaseProvider
from adpivot.providers.mock_provider import MockProvider

__all__ = ["BaseProvider", "MockProvider"]
