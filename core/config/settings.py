"""
IDTIX Core Config — Settings
==============================
Deployment settings, read from the environment once at startup.

Environment variables (all optional):
    IDTIX_LOG_LEVEL                     DEBUG | INFO | WARNING | ERROR (default INFO)
    IDTIX_BOOTSTRAP_ADMIN               principal granted SuperAdmin at bootstrap
    IDTIX_BOOTSTRAP_ADMIN_IDENTIFIER    when set, the bootstrap admin's identity
                                        is registered at bootstrap
    IDTIX_EVENT_ID_START                first event id (default 1)
    IDTIX_TICKET_ID_START               first ticket id (default 1)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

VALID_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})

ENV_PREFIX = "IDTIX_"


@dataclass(frozen=True)
class IdtixSettings:
    log_level: str = "INFO"
    bootstrap_admin: Optional[str] = None
    bootstrap_admin_identifier: Optional[str] = None
    event_id_start: int = 1
    ticket_id_start: int = 1

    def __post_init__(self) -> None:
        level = (self.log_level or "").upper()
        if level not in VALID_LOG_LEVELS:
            raise ValueError(
                f"log_level '{self.log_level}' not valid. "
                f"Must be one of: {sorted(VALID_LOG_LEVELS)}"
            )
        object.__setattr__(self, "log_level", level)

        if self.bootstrap_admin is not None and not self.bootstrap_admin.strip():
            raise ValueError("bootstrap_admin must be non-empty when set.")

        if self.bootstrap_admin_identifier is not None:
            if self.bootstrap_admin is None:
                raise ValueError(
                    "bootstrap_admin_identifier requires bootstrap_admin."
                )
            if not self.bootstrap_admin_identifier.strip():
                raise ValueError(
                    "bootstrap_admin_identifier must be non-empty when set."
                )

        for name in ("event_id_start", "ticket_id_start"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise ValueError(f"{name} must be a positive int, got {value!r}.")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "IdtixSettings":
        env = os.environ if environ is None else environ

        def _get(name: str) -> Optional[str]:
            value = env.get(ENV_PREFIX + name)
            if value is None or value.strip() == "":
                return None
            return value.strip()

        def _get_int(name: str, default: int) -> int:
            raw = _get(name)
            if raw is None:
                return default
            try:
                return int(raw)
            except ValueError:
                raise ValueError(
                    f"{ENV_PREFIX}{name} must be an integer, got '{raw}'."
                ) from None

        return cls(
            log_level=_get("LOG_LEVEL") or "INFO",
            bootstrap_admin=_get("BOOTSTRAP_ADMIN"),
            bootstrap_admin_identifier=_get("BOOTSTRAP_ADMIN_IDENTIFIER"),
            event_id_start=_get_int("EVENT_ID_START", 1),
            ticket_id_start=_get_int("TICKET_ID_START", 1),
        )


def configure_logging(settings: IdtixSettings) -> None:
    """
    Application-level logging setup. The library itself never installs
    handlers; scripts and services embedding IDTIX call this once.
    """
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("idtix").setLevel(settings.log_level)
