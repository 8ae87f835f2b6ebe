"""Bedrock integration module for the form-fill package."""

from .client import BedrockClient

__all__ = [
    "BedrockClient",
]
