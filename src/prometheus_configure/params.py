"""
Runtime parameter resolution.

Turns the SAPI instance data, the zone metadata and the discovery result into
the flat set of template parameters. Explicit SAPI settings always win; the
CMON domain is otherwise derived from the DNS suffixes CNS serves for this
zone, and the remaining settings fall back to fixed defaults.
"""

import logging
import os
import time
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Mapping, Optional, Tuple

import requests

from .discovery import DiscoveryResult
from .errors import MissingConfigError, SuffixLookupError
from .metadata import ZoneMetadata
from .structured_events import ActionResult, EventType, StructuredEventLogger

logger = logging.getLogger(os.getenv("LOGGER_NAME", "PROMETHEUS_CONFIGURE"))

CMON_SUBDOMAIN = "cmon"
DEFAULT_SCRAPE_INTERVAL = "10"
DEFAULT_SCRAPE_TIMEOUT = "10"
DEFAULT_EVALUATION_INTERVAL = "10"


@dataclass(frozen=True)
class ConfigParams:
    """Resolved values for every template placeholder."""
    datacenter_name: str
    dns_domain: str
    resolver_ip: str
    cns_ip: str
    cmon_domain: str
    cmon_insecure: str
    scrape_interval: str
    scrape_timeout: str
    evaluation_interval: str
    key_file: str
    cert_file: str

    def as_dict(self) -> Dict[str, str]:
        """Placeholder name (e.g. SCRAPE_INTERVAL) to value."""
        return {k.upper(): v for k, v in asdict(self).items()}


def _setting(sapi: Mapping[str, Any], key: str) -> Optional[Any]:
    value = sapi.get(key)
    if value is None or value == "":
        return None
    return value


def _setting_or(sapi: Mapping[str, Any], key: str, default: str) -> str:
    value = _setting(sapi, key)
    return default if value is None else str(value)


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def zone_identity(sapi: Mapping[str, Any], metadata: ZoneMetadata) -> Tuple[str, str]:
    """
    Datacenter name and DNS domain, preferring SAPI over zone metadata.

    Raises:
        MissingConfigError: If either is unavailable from both sources.
    """
    datacenter = _setting(sapi, 'datacenter') or metadata.get('sdc:datacenter_name')
    dns_domain = _setting(sapi, 'dns_domain') or metadata.get('sdc:dns_domain')
    if not datacenter:
        raise MissingConfigError("could not determine 'datacenter'")
    if not dns_domain:
        raise MissingConfigError("could not determine 'dns_domain'")
    return str(datacenter), str(dns_domain)


def cmon_domain_from_suffix(suffix: str) -> str:
    """
    Derive the CMON domain from a CNS suffix.

    The two leading labels (service and account scope) are dropped and the
    CMON label is prepended, e.g.
    `svc.930896af-bf8c-48d4-885c-6573a94b1853.us-east-1.cns.example.com`
    becomes `cmon.us-east-1.cns.example.com`.
    """
    labels = [label for label in suffix.strip().strip('.').split('.') if label]
    if len(labels) < 3:
        raise MissingConfigError(f"CNS suffix '{suffix}' is too short to derive cmon_domain")
    return ".".join([CMON_SUBDOMAIN] + labels[2:])


def fetch_cmon_domain(cns_address: str,
                      owner_uuid: str,
                      networks: List[str],
                      timeout: float = 10,
                      session: Optional[requests.Session] = None) -> str:
    """
    Ask CNS which DNS suffixes apply to this zone and derive the CMON domain.

    Raises:
        SuffixLookupError: If CNS answers with anything but HTTP 200.
        MissingConfigError: If CNS is unreachable or returns no usable suffix.
    """
    url = f"http://{cns_address}/suffixes-for-vm"
    payload = {"owner_uuid": owner_uuid, "networks": networks}
    http = session or requests

    logger.debug(f"POST {url} {payload}")
    try:
        r = http.post(url, json=payload, timeout=timeout)
    except requests.exceptions.RequestException as e:
        raise MissingConfigError(f"could not derive cmon_domain, CNS request failed: {e}") from e

    if r.status_code != 200:
        raise SuffixLookupError(url, r.status_code, r.text)

    try:
        suffixes = r.json().get('suffixes') or []
    except (ValueError, AttributeError) as e:
        raise MissingConfigError(f"could not derive cmon_domain, bad CNS response: {e}") from e

    if not suffixes:
        raise MissingConfigError("could not derive cmon_domain, CNS returned no suffixes")

    cmon_domain = cmon_domain_from_suffix(suffixes[0])
    logger.info(f"Derived cmon_domain {cmon_domain} from CNS suffix {suffixes[0]}")
    return cmon_domain


def resolve_params(sapi: Mapping[str, Any],
                   datacenter_name: str,
                   dns_domain: str,
                   discovery: DiscoveryResult,
                   metadata: ZoneMetadata,
                   key_file: str,
                   cert_file: str,
                   cns_timeout: float = 10,
                   session: Optional[requests.Session] = None,
                   structured_logger: Optional[StructuredEventLogger] = None) -> ConfigParams:
    """
    Build the parameter set for both templates.

    Raises:
        MissingConfigError: If cmon_domain is unset and cannot be derived.
        SuffixLookupError: If the CNS lookup returned a non-200 status.
    """
    cmon_domain = _setting(sapi, 'cmon_domain')
    derived = False
    if cmon_domain is None:
        owner_uuid = metadata.owner_uuid()
        if not owner_uuid:
            raise MissingConfigError("cmon_domain is unset and sdc:owner_uuid is unavailable")
        cmon_domain = fetch_cmon_domain(discovery.address, owner_uuid,
                                        metadata.non_admin_networks(),
                                        timeout=cns_timeout, session=session)
        derived = True

    enforce_certificate = _as_bool(_setting_or(sapi, 'cmon_enforce_certificate', 'false'))

    params = ConfigParams(
        datacenter_name=datacenter_name,
        dns_domain=dns_domain,
        resolver_ip=discovery.resolver,
        cns_ip=discovery.address,
        cmon_domain=str(cmon_domain),
        cmon_insecure="false" if enforce_certificate else "true",
        scrape_interval=_setting_or(sapi, 'scrape_interval', DEFAULT_SCRAPE_INTERVAL),
        scrape_timeout=_setting_or(sapi, 'scrape_timeout', DEFAULT_SCRAPE_TIMEOUT),
        evaluation_interval=_setting_or(sapi, 'evaluation_interval', DEFAULT_EVALUATION_INTERVAL),
        key_file=key_file,
        cert_file=cert_file,
    )

    if structured_logger:
        structured_logger.log_event({
            "event_type": EventType.PARAMETER_RESOLUTION.value,
            "timestamp": time.time(),
            "result": ActionResult.SUCCESS.value,
            "component": "params",
            "operation": "resolve_params",
            "details": {**params.as_dict(), "cmon_domain_derived": derived},
        })
    return params
