"""
Organization Settings for Briefly CoPilot

Per-organization model configuration. Each organization row carries a
free-form ``settings`` JSON column; the keys recognised here override the
platform defaults for chat, embeddings and context budgets.
"""

import logging
from dataclasses import dataclass, fields
from typing import Optional

logger = logging.getLogger(__name__)


# Models the gateway is allowed to route to (guards against arbitrary strings in settings)
SUPPORTED_CHAT_MODELS = frozenset({
    "google/gemini-2.5-flash",
    "google/gemini-2.5-pro",
    "google/gemini-2.5-flash-lite",
    "openai/gpt-5",
    "openai/gpt-5-mini",
})

EMBEDDING_DIMENSIONS = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
}

# Inclusive (min, max) for numeric overrides; None leaves that side open
SETTING_BOUNDS = {
    "max_context_chars": (1, None),
    "match_threshold": (0.0, 1.0),
    "match_count": (1, 50),
}


@dataclass
class OrganizationSettings:
    """Per-organization model and budget configuration."""
    chat_model: str = "google/gemini-2.5-flash"
    embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: int = 1536
    max_context_chars: int = 400000
    match_threshold: float = 0.5
    match_count: int = 10

    @classmethod
    def from_settings(cls, settings: Optional[dict]) -> "OrganizationSettings":
        """
        Build settings from an organization's ``settings`` JSON.

        Unknown keys are ignored. A value of the wrong type or outside its
        bounds keeps the default, and an unsupported chat model falls back
        to the default chat model.

        Args:
            settings: Parsed JSON from organizations.settings (may be None)

        Returns:
            OrganizationSettings with overrides applied
        """
        config = cls()
        if not settings:
            return config

        known = {f.name for f in fields(cls)}
        for key, value in settings.items():
            if key in known and value is not None:
                _apply(config, key, value)

        if config.chat_model not in SUPPORTED_CHAT_MODELS:
            config.chat_model = cls.chat_model

        # Keep dimensions consistent with the chosen embedding model
        config.embedding_dimensions = EMBEDDING_DIMENSIONS.get(
            config.embedding_model, config.embedding_dimensions
        )
        return config

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}


def _apply(config: OrganizationSettings, key: str, value) -> None:
    """Set one override, coerced to the field's type."""
    expected = type(getattr(config, key))
    try:
        if isinstance(value, bool) or not isinstance(value, (str, int, float)):
            raise TypeError(type(value).__name__)
        if expected is str and not isinstance(value, str):
            raise TypeError(type(value).__name__)
        coerced = expected(value)
    except (TypeError, ValueError) as e:
        logger.warning(f"Ignoring organization setting {key}={value!r}: {e}")
        return

    low, high = SETTING_BOUNDS.get(key, (None, None))
    if (low is not None and coerced < low) or (high is not None and coerced > high):
        logger.warning(f"Ignoring organization setting {key}={value!r}: out of range")
        return
    setattr(config, key, coerced)
