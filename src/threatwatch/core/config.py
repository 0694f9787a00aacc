# Core Module - Pipeline Settings
#
# All tunables of the ingestion pipeline in one dataclass.  Defaults
# match the reference cadence (3 s synthetic tick, 60 s live poll,
# 30 s feed cooldown, 500 ms stagger).  ``from_env`` reads THREATWATCH_*
# variables, after loading a .env file when one is present.

import os
from dataclasses import dataclass, fields
from typing import Mapping, Optional

from dotenv import load_dotenv

ENV_PREFIX = "THREATWATCH_"

URLHAUS_BASE_URL = "https://urlhaus-api.abuse.ch"
BLOCKLIST_BASE_URL = "https://lists.blocklist.de"

# Reverse-proxy paths for each feed (``<proxy>/api/urlhaus/...``)
URLHAUS_PROXY_PATH = "/api/urlhaus"
BLOCKLIST_PROXY_PATH = "/api/blocklist"

VALID_MODES = ("synthetic", "live")


@dataclass
class PipelineSettings:
    """Tunables for sources, scheduler and retention."""

    mode: str = "synthetic"

    # Scheduler cadence (seconds)
    synthetic_interval: float = 3.0
    live_interval: float = 60.0
    stagger_delay: float = 0.5
    fetch_cooldown: float = 30.0

    # Feed transport
    fetch_timeout: float = 10.0
    fetch_retries: int = 2
    urlhaus_url: str = URLHAUS_BASE_URL
    urlhaus_limit: int = 10
    blocklist_url: str = BLOCKLIST_BASE_URL
    blocklist_limit: int = 5
    feed_proxy: Optional[str] = None

    # Retention caps
    max_events: int = 100
    max_alerts: int = 50

    audit_log_dir: Optional[str] = None

    # ------------------------------------------------------------------
    # Feed routing
    # ------------------------------------------------------------------

    @property
    def urlhaus_base(self) -> str:
        """URLhaus base URL, routed through the proxy when one is set."""
        if self.feed_proxy:
            return self.feed_proxy.rstrip("/") + URLHAUS_PROXY_PATH
        return self.urlhaus_url.rstrip("/")

    @property
    def blocklist_base(self) -> str:
        if self.feed_proxy:
            return self.feed_proxy.rstrip("/") + BLOCKLIST_PROXY_PATH
        return self.blocklist_url.rstrip("/")

    # ------------------------------------------------------------------
    # Validation & loading
    # ------------------------------------------------------------------

    def validate(self) -> "PipelineSettings":
        """Raise ValueError on settings the pipeline cannot run with."""
        if self.mode not in VALID_MODES:
            raise ValueError(
                f"mode must be one of {VALID_MODES}, got {self.mode!r}"
            )
        for name in ("synthetic_interval", "live_interval", "fetch_timeout"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
        for name in ("stagger_delay", "fetch_cooldown"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must not be negative")
        for name in ("max_events", "max_alerts", "urlhaus_limit", "blocklist_limit"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be at least 1")
        if self.fetch_retries < 1:
            raise ValueError("fetch_retries must be at least 1")
        return self

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        dotenv_path: Optional[str] = None,
    ) -> "PipelineSettings":
        """Build settings from THREATWATCH_* environment variables.

        Args:
            environ: Mapping to read instead of ``os.environ`` (no .env
                     file is loaded in that case).
            dotenv_path: Explicit .env file to load.

        Raises:
            ValueError: A variable holds a value of the wrong type or the
                        resulting settings fail ``validate()``.
        """
        if environ is None:
            load_dotenv(dotenv_path)
            environ = os.environ

        kwargs = {}
        for f in fields(cls):
            raw = environ.get(ENV_PREFIX + f.name.upper())
            if raw is None or raw == "":
                continue
            kwargs[f.name] = _coerce(f.name, raw, f.default)
        return cls(**kwargs).validate()


def _coerce(name: str, raw: str, default):
    """Convert an env string to the type of the field's default."""
    try:
        if isinstance(default, bool):
            return raw.strip().lower() in ("1", "true", "yes", "on")
        if isinstance(default, int):
            return int(raw)
        if isinstance(default, float):
            return float(raw)
    except ValueError as exc:
        raise ValueError(f"{ENV_PREFIX}{name.upper()}: {exc}") from exc
    return raw.strip()
