"""Process-wide tunables for selection resolution and scheduling.

Configuration via environment variables:

- ``LAYERTREE_MAX_DEPTH``: maximum recursion depth of one selection pass (default: 256)
- ``LAYERTREE_MAX_LAYER_DEPTH``: maximum nesting of layers observing layers (default: 64)
- ``LAYERTREE_DEFAULT_CONCURRENCY``: ceiling of a `PoolScheduler` built without one (default: 8)

Usage::

    from layertree.config import configure

    configure(max_layer_depth=16)
"""

import os
import threading

from attrs import evolve, field, frozen

DEFAULT_MAX_DEPTH = 256
DEFAULT_MAX_LAYER_DEPTH = 64
DEFAULT_CONCURRENCY = 8


def _positive(instance, attribute, value: int) -> None:
    if value < 1:
        raise ValueError(f"{attribute.name} must be at least 1, got {value}")


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


@frozen
class ResolutionConfig:
    """Limits applied by the selection resolver and pool scheduler."""

    max_depth: int = field(default=DEFAULT_MAX_DEPTH, validator=_positive)
    max_layer_depth: int = field(default=DEFAULT_MAX_LAYER_DEPTH, validator=_positive)
    default_concurrency: int = field(default=DEFAULT_CONCURRENCY, validator=_positive)

    @classmethod
    def from_env(cls) -> "ResolutionConfig":
        """Build a configuration from ``LAYERTREE_*`` environment variables."""
        return cls(
            max_depth=_env_int("LAYERTREE_MAX_DEPTH", DEFAULT_MAX_DEPTH),
            max_layer_depth=_env_int("LAYERTREE_MAX_LAYER_DEPTH", DEFAULT_MAX_LAYER_DEPTH),
            default_concurrency=_env_int(
                "LAYERTREE_DEFAULT_CONCURRENCY", DEFAULT_CONCURRENCY
            ),
        )


# ── Module-level singleton ──────────────────────────────────────────

_config: ResolutionConfig | None = None
_config_lock = threading.Lock()


def get_config() -> ResolutionConfig:
    """Get or create the process-wide configuration."""
    global _config
    if _config is None:
        with _config_lock:
            if _config is None:
                _config = ResolutionConfig.from_env()
    return _config


def configure(**overrides: int) -> ResolutionConfig:
    """Replace selected settings of the process-wide configuration.  Returns the new instance."""
    global _config
    with _config_lock:
        base = _config if _config is not None else ResolutionConfig.from_env()
        _config = evolve(base, **overrides)
    return _config


def reset_config() -> None:
    """Forget the current configuration so the next access re-reads the environment."""
    global _config
    with _config_lock:
        _config = None
