"""Configuration for discovery and migration orchestration.

Usage
-----
Create a configuration with defaults:

>>> config = DroverConfig()
>>> config.discovery_workers
5

Or load from environment variables:

>>> import os
>>> os.environ["DROVER_DISCOVERY_WORKERS"] = "8"
>>> DroverConfig.from_env().discovery_workers
8

"""

from __future__ import annotations

import dataclasses as dc
import datetime as dt
import os


@dc.dataclass(frozen=True, slots=True)
class DroverConfig:
    """Tunables for the discovery orchestrator.

    Attributes
    ----------
    discovery_workers
        Default number of repositories profiled concurrently within one
        organization or project. Callers may override it per run.
    progress_flush_every
        Number of processed-repository increments buffered in memory before
        the discovery progress record is written.
    stuck_discovery_minutes
        Age after which an ``in_progress`` discovery found at start-up is
        considered abandoned and reset.
    org_delay_seconds
        Pause between organizations during enterprise discovery, used to stay
        clear of secondary rate limits. Zero disables the pause.

    """

    discovery_workers: int = 5
    progress_flush_every: int = 5
    stuck_discovery_minutes: int = 360
    org_delay_seconds: float = 0.0

    @property
    def stuck_discovery_timeout(self) -> dt.timedelta:
        """Return the stuck-discovery cut-off as a timedelta."""
        return dt.timedelta(minutes=self.stuck_discovery_minutes)

    @staticmethod
    def _parse_positive_int(env_var: str, default: int) -> int:
        """Read a positive integer env var, falling back to a default."""
        raw = os.environ.get(env_var, "")
        if not raw.strip():
            return default
        try:
            value = int(raw)
        except ValueError as exc:
            msg = f"{env_var} must be an integer, got: {raw!r}"
            raise ValueError(msg) from exc
        if value < 1:
            msg = f"{env_var} must be positive, got: {value}"
            raise ValueError(msg)
        return value

    @staticmethod
    def _parse_non_negative_float(env_var: str, default: float) -> float:
        """Read a non-negative float env var, falling back to a default."""
        raw = os.environ.get(env_var, "")
        if not raw.strip():
            return default
        try:
            value = float(raw)
        except ValueError as exc:
            msg = f"{env_var} must be a number, got: {raw!r}"
            raise ValueError(msg) from exc
        if value < 0:
            msg = f"{env_var} must not be negative, got: {value}"
            raise ValueError(msg)
        return value

    @classmethod
    def from_env(cls) -> DroverConfig:
        """Create configuration from environment variables.

        Reads ``DROVER_DISCOVERY_WORKERS``, ``DROVER_PROGRESS_FLUSH_EVERY``,
        ``DROVER_STUCK_DISCOVERY_MINUTES`` (positive integers) and
        ``DROVER_ORG_DELAY_SECONDS`` (non-negative number).

        Raises
        ------
        ValueError
            If any variable is set to an invalid value.

        """
        return cls(
            discovery_workers=cls._parse_positive_int("DROVER_DISCOVERY_WORKERS", 5),
            progress_flush_every=cls._parse_positive_int(
                "DROVER_PROGRESS_FLUSH_EVERY", 5
            ),
            stuck_discovery_minutes=cls._parse_positive_int(
                "DROVER_STUCK_DISCOVERY_MINUTES", 360
            ),
            org_delay_seconds=cls._parse_non_negative_float(
                "DROVER_ORG_DELAY_SECONDS", 0.0
            ),
        )
