import logging
import time
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, Optional, Sequence


class EventType(Enum):
    """Kinds of events a configure run emits"""
    CONFIG_RENDER = "config_render"
    RESOLVER_DISCOVERY = "resolver_discovery"
    PARAMETER_RESOLUTION = "parameter_resolution"
    SERVICE_TRANSITION = "service_transition"
    CONFIGURE_LIFECYCLE = "configure_lifecycle"


class ActionResult(Enum):
    """Outcome of one step"""
    SUCCESS = "success"
    FAILURE = "failure"
    NO_CHANGE = "no_change"
    SKIPPED = "skipped"


# Results not listed log at INFO
RESULT_LEVELS = {
    ActionResult.FAILURE.value: logging.ERROR,
    ActionResult.NO_CHANGE.value: logging.DEBUG,
}


@dataclass
class StructuredEvent:
    """One structured record; `details` carries the event-specific fields"""
    event_type: str
    timestamp: float
    result: str
    component: str
    operation: str
    details: Dict[str, Any]
    duration_ms: Optional[int] = None
    error_message: Optional[str] = None
    correlation_id: Optional[str] = None


class StructuredEventLogger:
    """Emits structured events for a configure run, keyed by a per-run correlation id."""

    def __init__(self, logger_name: str):
        self.logger = logging.getLogger(logger_name)
        self.correlation_id = None

    def set_correlation_id(self, correlation_id: str):
        self.correlation_id = correlation_id

    def log_event(self, event) -> None:
        """
        Log a StructuredEvent (or an equivalent dict).

        The record's level follows its result and the full event rides along
        as `json_fields` for the structured handlers.
        """
        if isinstance(event, StructuredEvent):
            fields = asdict(event)
        elif isinstance(event, dict):
            fields = dict(event)
        else:
            raise TypeError(f"Event must be StructuredEvent dataclass or dict, got {type(event)}")

        if self.correlation_id:
            fields["correlation_id"] = self.correlation_id
        log_data = {"structured_event": True, **fields}

        result = log_data.get("result")
        message = f"{log_data.get('component', 'unknown')}.{log_data.get('operation', 'unknown')}: {result}"
        if log_data.get("error_message"):
            message += f" - {log_data['error_message']}"

        self.logger.log(RESULT_LEVELS.get(result, logging.INFO), message,
                        extra={"json_fields": log_data})

    def _emit(self, event_type: EventType, component: str, operation: str,
              result: ActionResult, details: Dict[str, Any],
              duration_ms: Optional[int] = None, error_message: Optional[str] = None) -> None:
        self.log_event(StructuredEvent(
            event_type=event_type.value,
            timestamp=time.time(),
            result=result.value,
            component=component,
            operation=operation,
            details=details,
            duration_ms=duration_ms,
            error_message=error_message,
        ))

    def log_config_render(self,
                          path: str,
                          template: str,
                          result: ActionResult,
                          backup: Optional[str] = None,
                          error_message: str = None) -> None:
        self._emit(EventType.CONFIG_RENDER, "renderer", "render_config", result,
                   {"path": path, "template": template, "backup": backup},
                   error_message=error_message)

    def log_discovery(self,
                      service_name: str,
                      resolvers: Sequence[str],
                      result: ActionResult,
                      resolver: Optional[str] = None,
                      address: Optional[str] = None,
                      attempts: int = None,
                      duration_ms: int = None,
                      error_message: str = None) -> None:
        """Log which resolver (if any) answered for the CNS service name"""
        self._emit(EventType.RESOLVER_DISCOVERY, "discovery", "discover_cns", result,
                   {
                       "service_name": service_name,
                       "resolvers": list(resolvers),
                       "resolver": resolver,
                       "address": address,
                       "attempts": attempts,
                   },
                   duration_ms=duration_ms, error_message=error_message)

    def log_service_transition(self,
                               fmri: str,
                               state: str,
                               action: str,
                               changed: bool,
                               result: ActionResult,
                               error_message: str = None) -> None:
        self._emit(EventType.SERVICE_TRANSITION, "lifecycle", f"reconcile_{action}", result,
                   {"fmri": fmri, "state": state, "action": action, "config_changed": changed},
                   error_message=error_message)
