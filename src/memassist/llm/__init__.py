"""LLM access: key rotation and the model client."""

from .client import ModelClient, classify_error
from .keys import ApiKeyState, KeyRotationManager

__all__ = ["ApiKeyState", "KeyRotationManager", "ModelClient", "classify_error"]
