"""Process-type routing: which model handles which kind of work."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from src.config import Settings

logger = logging.getLogger(__name__)

MODEL_MAP: dict[str, str] = {
    "haiku": "claude-haiku-4-5-20251001",
    "sonnet": "claude-sonnet-4-5-20250929",
    "opus": "claude-opus-4-6-20250612",
}

# Reverse lookup: full model string → friendly name
FRIENDLY_NAMES: dict[str, str] = {v: k for k, v in MODEL_MAP.items()}


class ProcessType(str, Enum):
    """Kinds of agent work that can be routed to different models."""

    CHANNEL = "channel"
    BRANCH = "branch"
    WORKER = "worker"
    COMPACTOR = "compactor"
    CORTEX = "cortex"


def _resolve(name_or_id: str) -> str | None:
    """Resolve a friendly name or full model ID. Returns full ID or None."""
    if name_or_id in MODEL_MAP:
        return MODEL_MAP[name_or_id]
    if name_or_id in FRIENDLY_NAMES:
        return name_or_id
    return None


def friendly(model_id: str) -> str:
    """Return the friendly name for a model ID, or the ID itself."""
    return FRIENDLY_NAMES.get(model_id, model_id)


@dataclass(frozen=True)
class RoutingConfig:
    """Immutable routing snapshot. Swap a new one in to reconfigure."""

    channel: str = MODEL_MAP["sonnet"]
    branch: str = MODEL_MAP["sonnet"]
    worker: str = MODEL_MAP["haiku"]
    compactor: str = MODEL_MAP["haiku"]
    cortex: str = MODEL_MAP["sonnet"]

    @classmethod
    def from_settings(cls, settings: Settings) -> RoutingConfig:
        """Build a snapshot from settings, falling back to defaults for unknown names."""
        defaults = cls()
        resolved: dict[str, str] = {}
        for process_type in ProcessType:
            configured = getattr(settings, f"{process_type.value}_model")
            model_id = _resolve(configured)
            if model_id is None:
                model_id = getattr(defaults, process_type.value)
                logger.warning(
                    "Unknown model %r for %s, using %s",
                    configured,
                    process_type.value,
                    friendly(model_id),
                )
            resolved[process_type.value] = model_id
        return cls(**resolved)

    def resolve(self, process_type: ProcessType, override: str | None = None) -> str:
        """Return the model ID for *process_type*.

        An explicit *override* (friendly name or full ID) wins when it
        resolves to a known model.
        """
        if override:
            model_id = _resolve(override)
            if model_id:
                return model_id
            logger.warning("Ignoring unknown model override %r", override)
        return getattr(self, process_type.value)
