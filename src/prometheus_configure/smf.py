"""
SMF service manager adapter.

`svcs -H -o state <fmri>` prints one of the SMF states, with a trailing `*`
while a state change is in progress (e.g. `offline*` while starting). The
string is parsed once into a ServiceState so the lifecycle driver matches on
an enumeration instead of inspecting suffixes.
"""

import logging
import os
from dataclasses import dataclass
from enum import Enum

from .commands import run_command

logger = logging.getLogger(os.getenv("LOGGER_NAME", "PROMETHEUS_CONFIGURE"))

SVCS = "/usr/bin/svcs"
SVCADM = "/usr/sbin/svcadm"
SVCCFG = "/usr/sbin/svccfg"

TRANSITION_MARKER = "*"


class SmfState(Enum):
    DISABLED = "disabled"
    ONLINE = "online"
    OFFLINE = "offline"
    MAINTENANCE = "maintenance"
    DEGRADED = "degraded"
    UNINITIALIZED = "uninitialized"
    LEGACY_RUN = "legacy_run"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ServiceState:
    """
    A parsed SMF state.

    `state` is the base state; `transitional` marks a pending change away
    from it. `raw` keeps the exact svcs output for error messages.
    """
    state: SmfState
    transitional: bool = False
    raw: str = ""

    @classmethod
    def parse(cls, raw: str) -> "ServiceState":
        text = raw.strip()
        transitional = text.endswith(TRANSITION_MARKER)
        base = text.rstrip(TRANSITION_MARKER)
        try:
            state = SmfState(base)
        except ValueError:
            state = SmfState.UNKNOWN
        return cls(state=state, transitional=transitional, raw=text)

    def __str__(self) -> str:
        return self.raw or (self.state.value + (TRANSITION_MARKER if self.transitional else ""))


class Smf:
    """Synchronous wrapper over svcs/svcadm/svccfg."""

    def __init__(self, timeout: int = 60):
        self.timeout = timeout

    def query_state(self, fmri: str) -> ServiceState:
        result = run_command([SVCS, "-H", "-o", "state", fmri], timeout=self.timeout)
        return ServiceState.parse(result.stdout)

    def enable(self, fmri: str) -> None:
        logger.info(f"Enabling {fmri}")
        run_command([SVCADM, "enable", fmri], timeout=self.timeout)

    def refresh(self, fmri: str) -> None:
        logger.info(f"Refreshing {fmri}")
        run_command([SVCADM, "refresh", fmri], timeout=self.timeout)

    def clear(self, fmri: str) -> None:
        logger.info(f"Clearing maintenance on {fmri}")
        run_command([SVCADM, "clear", fmri], timeout=self.timeout)

    def import_manifest(self, manifest: str) -> None:
        logger.info(f"Importing SMF manifest {manifest}")
        run_command([SVCCFG, "import", manifest], timeout=self.timeout)
