"""
Configure run for a Triton Prometheus core zone.

Run by config-agent as the template post_cmd whenever the SAPI instance data
changes, and directly by zone setup on reprovision. The run is idempotent: if
nothing upstream changed, no file is rewritten and no service is touched.

Run Sequence:
    1. Load the SAPI instance data and the zone identity (datacenter, dns_domain)
    2. Discover the CNS address through the zone's resolvers
    3. Resolve every template parameter (deriving cmon_domain from CNS if unset)
    4. Render named.conf (bind group) and prometheus.yml (prometheus group)
    5. Normalize ownership of the configuration directory
    6. Drive the bind service, then the prometheus service

Each configuration group has its own change flag so that a BIND-only change
never refreshes Prometheus and vice versa. Any ConfigureError aborts the run;
nothing is partially applied past the step that failed.
"""

import logging
import os
import shutil
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

import requests

from .config import Config
from .discovery import discover_cns
from .errors import ConfigureError
from .lifecycle import ServiceAction, reconcile_service
from .metadata import ZoneMetadata, load_sapi_config
from .params import resolve_params, zone_identity
from .renderer import render_config
from .smf import Smf
from .structured_events import ActionResult, EventType, StructuredEventLogger

logger = logging.getLogger(os.getenv("LOGGER_NAME", "PROMETHEUS_CONFIGURE"))

PROMETHEUS_GROUP = "prometheus"
BIND_GROUP = "bind"

PROMETHEUS_PARAMS = [
    'DATACENTER_NAME',
    'CMON_DOMAIN',
    'CMON_INSECURE',
    'SCRAPE_INTERVAL',
    'SCRAPE_TIMEOUT',
    'EVALUATION_INTERVAL',
    'KEY_FILE',
    'CERT_FILE',
]

BIND_PARAMS = [
    'DATACENTER_NAME',
    'DNS_DOMAIN',
    'RESOLVER_IP',
    'CNS_IP',
    'CMON_DOMAIN',
]


@dataclass
class ReconcileReport:
    """What one configure run changed, per configuration group."""
    changed: Dict[str, List[str]] = field(default_factory=lambda: {PROMETHEUS_GROUP: [], BIND_GROUP: []})
    actions: Dict[str, ServiceAction] = field(default_factory=dict)

    def flag(self, group: str) -> List[str]:
        return self.changed.setdefault(group, [])

    def group_changed(self, group: str) -> bool:
        return bool(self.changed.get(group))

    def changed_groups(self) -> List[str]:
        return [g for g, paths in self.changed.items() if paths]


def fix_ownership(path: str, user: str, group: str) -> bool:
    """Recursively chown `path`. Skipped with a warning when not root; returns whether it ran."""
    if os.geteuid() != 0:
        logger.warning(f"Not running as root, leaving ownership of {path} unchanged")
        return False
    shutil.chown(path, user, group)
    for root, dirs, files in os.walk(path):
        for name in dirs + files:
            shutil.chown(os.path.join(root, name), user, group)
    logger.debug(f"Set ownership of {path} to {user}:{group}")
    return True


def render_all(cfg: Config, params: Dict[str, str],
               structured_logger: Optional[StructuredEventLogger] = None) -> ReconcileReport:
    """Render both managed configuration files into a fresh report."""
    report = ReconcileReport()
    render_config(cfg.bind_config_file, report.flag(BIND_GROUP), params, BIND_PARAMS,
                  cfg.templates_dir, structured_logger=structured_logger)
    render_config(cfg.prometheus_config_file, report.flag(PROMETHEUS_GROUP), params, PROMETHEUS_PARAMS,
                  cfg.templates_dir, structured_logger=structured_logger)
    return report


def configure(cfg: Config,
              metadata: Optional[ZoneMetadata] = None,
              smf: Optional[Smf] = None,
              session: Optional[requests.Session] = None,
              sleep: Callable[[float], None] = time.sleep,
              structured_logger: Optional[StructuredEventLogger] = None) -> ReconcileReport:
    """
    Perform one full configure run.

    Args:
        cfg: Loaded configuration.
        metadata: Zone metadata source (mdata-get when None).
        smf: Service manager adapter (svcs/svcadm when None).
        session: Optional requests session for the CNS lookup.
        sleep: Sleep function used by discovery and service polling.
        structured_logger: Structured event sink (created from cfg when None).

    Returns:
        ReconcileReport: changed files per group and the action taken per service.

    Raises:
        ConfigureError: On any unrecoverable condition.
    """
    metadata = metadata or ZoneMetadata(timeout=cfg.command_timeout)
    smf = smf or Smf(timeout=cfg.command_timeout)
    if structured_logger is None:
        structured_logger = StructuredEventLogger(cfg.logger_name)
        structured_logger.set_correlation_id(str(uuid.uuid4()))

    start = time.time()
    logger.info("Configure run started")

    try:
        # ── Zone context ───────────────────────────────────────────────
        sapi = load_sapi_config(cfg.sapi_inst_data_json)
        datacenter_name, dns_domain = zone_identity(sapi, metadata)
        resolvers = cfg.resolver_override() or metadata.resolvers()

        # ── CNS discovery ──────────────────────────────────────────────
        found = discover_cns(datacenter_name, dns_domain, resolvers,
                             attempts=cfg.discovery_attempts,
                             timeout=cfg.dns_query_timeout,
                             backoff=cfg.discovery_backoff,
                             sleep=sleep,
                             structured_logger=structured_logger)

        # ── Parameters and rendering ──────────────────────────────────
        params = resolve_params(sapi, datacenter_name, dns_domain, found, metadata,
                                key_file=cfg.cmon_key_file, cert_file=cfg.cmon_cert_file,
                                cns_timeout=cfg.cns_http_timeout, session=session,
                                structured_logger=structured_logger)
        report = render_all(cfg, params.as_dict(), structured_logger=structured_logger)

        if os.path.isdir(cfg.etc_dir):
            owned = fix_ownership(cfg.etc_dir, cfg.config_owner, cfg.config_group)
            structured_logger.log_event({
                "event_type": EventType.CONFIGURE_LIFECYCLE.value,
                "timestamp": time.time(),
                "result": (ActionResult.SUCCESS if owned else ActionResult.SKIPPED).value,
                "component": "configure",
                "operation": "fix_ownership",
                "details": {"path": cfg.etc_dir, "owner": f"{cfg.config_owner}:{cfg.config_group}"},
            })

        # ── Services: bind first, prometheus resolves CMON through it ─
        for group, fmri in ((BIND_GROUP, cfg.bind_fmri), (PROMETHEUS_GROUP, cfg.prometheus_fmri)):
            report.actions[group] = reconcile_service(fmri, report.group_changed(group), smf,
                                                      poll_attempts=cfg.svc_poll_attempts,
                                                      poll_interval=cfg.svc_poll_interval,
                                                      sleep=sleep,
                                                      structured_logger=structured_logger)
    except ConfigureError as e:
        structured_logger.log_event({
            "event_type": EventType.CONFIGURE_LIFECYCLE.value,
            "timestamp": time.time(),
            "result": ActionResult.FAILURE.value,
            "component": "configure",
            "operation": "configure",
            "details": {"error_type": type(e).__name__},
            "duration_ms": int((time.time() - start) * 1000),
            "error_message": str(e),
        })
        raise

    changed_groups = report.changed_groups()
    structured_logger.log_event({
        "event_type": EventType.CONFIGURE_LIFECYCLE.value,
        "timestamp": time.time(),
        "result": (ActionResult.SUCCESS if changed_groups else ActionResult.NO_CHANGE).value,
        "component": "configure",
        "operation": "configure",
        "details": {
            "changed_groups": changed_groups,
            "changed_files": report.changed,
            "actions": {g: a.value for g, a in report.actions.items()},
        },
        "duration_ms": int((time.time() - start) * 1000),
    })
    logger.info(f"Configure run complete (changed: {', '.join(changed_groups) or 'nothing'})")
    return report
