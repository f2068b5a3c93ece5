"""agent/turn_limits.py — Central pipeline limits registry.

Every timeout, threshold and window size used by the dialogue pipeline lives
here as a named constant. Config.json overrides via ``"turn_limits"``.

Public API:
    get_limit(name)  — lookup (int or float), KeyError on typo
    reload()         — re-read config overrides
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Default limits
# ---------------------------------------------------------------------------

DEFAULTS: dict[str, int | float] = {
    # Phase 1 (structure & selection)
    "selection.timeout_seconds":         15.0,
    "selection.phase_timeout_seconds":   30.0,
    # Conversation window sent to the model
    "history.max_messages":              10,
    # Context compactor
    "context.max_cells_full":           500,
    "context.max_sample_rows":           10,
    "context.max_sample_cols":           10,
    "context.structure_sample_rows":     10,
    # Sandbox
    "sandbox.timeout_seconds":            5.0,
    "sandbox.init_timeout_seconds":      30.0,
    # Attached documents (decoded bytes)
    "document.max_bytes":         10 * 1024 * 1024,
    # Transport disconnect polling interval (seconds)
    "transport.disconnect_poll_seconds":  0.5,
}

# ---------------------------------------------------------------------------
# Runtime overrides from config.json and tests
# ---------------------------------------------------------------------------

_overrides: dict[str, int | float] = {}


def reload() -> None:
    """Re-read config.json overrides for pipeline limits.

    Called by ``config.reload_config()`` and at import time.
    """
    global _overrides
    import config
    _overrides = dict(config.get("turn_limits", {}) or {})


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def get_limit(name: str) -> int | float:
    """Return the effective limit for *name*.

    Integer defaults stay integers; float defaults (timeouts) stay floats.
    Raises ``KeyError`` if *name* is not in DEFAULTS (catches typos).
    """
    if name not in DEFAULTS:
        raise KeyError(f"Unknown turn limit: {name!r}")
    default = DEFAULTS[name]
    override = _overrides.get(name)
    if override is None:
        return default
    return float(override) if isinstance(default, float) else int(override)


def set_override(name: str, value: int | float | None) -> None:
    """Set (or clear with ``None``) a runtime override. Used by tests."""
    if name not in DEFAULTS:
        raise KeyError(f"Unknown turn limit: {name!r}")
    if value is None:
        _overrides.pop(name, None)
    else:
        _overrides[name] = value


# ---------------------------------------------------------------------------
# Initialize overrides at import time
# ---------------------------------------------------------------------------

reload()
