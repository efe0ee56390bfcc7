# ledgerx/envelope.py
"""The ``_ledgerx`` provenance block attached to every exported artifact."""
from __future__ import annotations

from datetime import datetime, timezone
from importlib.metadata import PackageNotFoundError, version
from typing import Any

from .config import get_config


def package_version() -> str:
    try:
        return version("ledgerx")
    except PackageNotFoundError:
        # Source checkout that was never installed.
        from . import __version__

        return __version__


def build_envelope(
    *,
    pipeline: str,
    duration_s: float | None = None,
    tokens: dict[str, int] | None = None,
    segments: dict[str, int] | None = None,
    verification: dict[str, Any] | None = None,
    document: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Describe how an artifact was produced.

    The model name and temperature come from the active configuration; the
    timestamp is UTC ISO-8601.  ``tokens`` defaults to zero counts so the
    key is always present; the other optional sections are ``None`` when
    the producing command has nothing to report.
    """
    cfg = get_config()
    envelope: dict[str, Any] = {
        "version": package_version(),
        "pipeline": pipeline,
        "model": cfg.lm,
        "model_temperature": cfg.lm_temperature,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "duration_s": duration_s,
    }
    envelope["tokens"] = dict(tokens) if tokens is not None else {"input": 0, "output": 0}
    envelope["segments"] = segments
    envelope["verification"] = verification
    envelope["document"] = document
    return envelope
