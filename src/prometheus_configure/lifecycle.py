import logging
import os
import time
from enum import Enum
from typing import Callable, Optional

from .errors import ServiceStuckError, UnexpectedServiceStateError
from .retry import poll_until
from .smf import ServiceState, Smf, SmfState
from .structured_events import ActionResult, StructuredEventLogger

logger = logging.getLogger(os.getenv("LOGGER_NAME", "PROMETHEUS_CONFIGURE"))

DEFAULT_POLL_ATTEMPTS = 6
DEFAULT_POLL_INTERVAL = 5.0


class ServiceAction(Enum):
    NONE = "none"
    ENABLE = "enable"
    REFRESH = "refresh"
    CLEAR = "clear"


def plan_action(state: SmfState, changed: bool) -> Optional[ServiceAction]:
    """
    Decide what to do with a service in a settled state.

    State mapping:
      DISABLED    -> ENABLE   services ship disabled until configuration exists
      ONLINE      -> REFRESH  only when this service's configuration changed
      MAINTENANCE -> CLEAR    retry after a transient failure
      OFFLINE     -> NONE     SMF starts it once its dependencies are online

    Returns:
        ServiceAction, or None for any other state (DEGRADED, UNINITIALIZED,
        LEGACY_RUN, UNKNOWN), which the caller must treat as fatal.
    """
    if state == SmfState.DISABLED:
        return ServiceAction.ENABLE
    elif state == SmfState.ONLINE:
        return ServiceAction.REFRESH if changed else ServiceAction.NONE
    elif state == SmfState.MAINTENANCE:
        return ServiceAction.CLEAR
    elif state == SmfState.OFFLINE:
        return ServiceAction.NONE
    return None


def reconcile_service(fmri: str,
                      changed: bool,
                      smf: Smf,
                      poll_attempts: int = DEFAULT_POLL_ATTEMPTS,
                      poll_interval: float = DEFAULT_POLL_INTERVAL,
                      sleep: Callable[[float], None] = time.sleep,
                      structured_logger: Optional[StructuredEventLogger] = None) -> ServiceAction:
    """
    Bring one managed SMF service in line with its configuration.

    The state is always queried fresh. A transitional state is re-checked
    every `poll_interval` seconds, up to `poll_attempts` more times, before
    giving up.

    Args:
        fmri: SMF service to drive.
        changed: Whether any file of this service's configuration group
            changed during this run.
        smf: Service manager adapter.

    Returns:
        ServiceAction: The action issued (NONE when left alone).

    Raises:
        ServiceStuckError: If the service is still transitioning after the poll bound.
        UnexpectedServiceStateError: If the settled state is not one we handle.
        CommandError: If svcs/svcadm fails.
    """
    state = smf.query_state(fmri)
    if state.transitional:
        logger.info(f"{fmri} is {state}, waiting up to {poll_attempts * poll_interval:g}s for it to settle")
        state, tried, settled = poll_until(lambda: smf.query_state(fmri),
                                           lambda s: not s.transitional,
                                           max_attempts=poll_attempts,
                                           delay=poll_interval,
                                           sleep=sleep,
                                           description=f"wait for {fmri} to settle",
                                           wait_first=True)
        if not settled:
            err = ServiceStuckError(fmri, str(state), tried)
            _log(structured_logger, fmri, state, "wait", changed, ActionResult.FAILURE, str(err))
            raise err

    action = plan_action(state.state, changed)
    if action is None:
        err = UnexpectedServiceStateError(fmri, str(state))
        _log(structured_logger, fmri, state, "unknown", changed, ActionResult.FAILURE, str(err))
        raise err

    if action == ServiceAction.ENABLE:
        smf.enable(fmri)
    elif action == ServiceAction.REFRESH:
        smf.refresh(fmri)
    elif action == ServiceAction.CLEAR:
        smf.clear(fmri)
    else:
        logger.info(f"{fmri} is {state}, no action needed")

    result = ActionResult.NO_CHANGE if action == ServiceAction.NONE else ActionResult.SUCCESS
    _log(structured_logger, fmri, state, action.value, changed, result)
    return action


def _log(structured_logger: Optional[StructuredEventLogger], fmri: str, state: ServiceState,
         action: str, changed: bool, result: ActionResult, error_message: str = None) -> None:
    if structured_logger:
        structured_logger.log_service_transition(fmri, str(state), action, changed, result,
                                                 error_message=error_message)
