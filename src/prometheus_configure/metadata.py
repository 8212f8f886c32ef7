"""
Zone context sources.

Two read-only sources feed a configure run:

- the SAPI instance data JSON that config-agent writes into the delegate
  dataset (datacenter, dns_domain, cmon_* and interval settings), and
- the zone metadata served by `mdata-get` (sdc:resolvers, sdc:nics,
  sdc:owner_uuid, ...), which the platform provides for every core zone.
"""

import json
import logging
import os
from typing import Any, Dict, List, Optional

from .commands import run_command
from .errors import CommandError, MissingConfigError

logger = logging.getLogger(os.getenv("LOGGER_NAME", "PROMETHEUS_CONFIGURE"))

MDATA_GET = "/usr/sbin/mdata-get"

# mdata-get exits 1 when the key simply has no value
MDATA_NOT_FOUND = 1


def load_sapi_config(path: str) -> Dict[str, Any]:
    """
    Read the SAPI instance data written by config-agent.

    Raises:
        MissingConfigError: If the file is absent, unreadable or not a JSON object.
    """
    try:
        with open(path, 'r') as f:
            data = json.load(f)
    except FileNotFoundError as e:
        raise MissingConfigError(f"SAPI config {path} does not exist") from e
    except (OSError, ValueError) as e:
        raise MissingConfigError(f"could not read SAPI config {path}: {e}") from e

    if not isinstance(data, dict):
        raise MissingConfigError(f"SAPI config {path} is not a JSON object")
    return data


class ZoneMetadata:
    """Thin wrapper over `mdata-get`."""

    def __init__(self, binary: str = MDATA_GET, timeout: int = 60):
        self.binary = binary
        self.timeout = timeout

    def get(self, key: str) -> Optional[str]:
        result = run_command([self.binary, key], timeout=self.timeout, check=False)
        if result.returncode == MDATA_NOT_FOUND:
            return None
        if result.returncode != 0:
            raise CommandError([self.binary, key], result.returncode, result.stderr or "")
        value = result.stdout.strip()
        return value or None

    def get_json(self, key: str) -> Any:
        raw = self.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError as e:
            raise MissingConfigError(f"metadata key {key} is not valid JSON: {e}") from e

    def resolvers(self) -> List[str]:
        """Ordered resolver addresses from sdc:resolvers."""
        value = self.get_json('sdc:resolvers') or []
        if not isinstance(value, list):
            raise MissingConfigError(f"sdc:resolvers is not a list: {value!r}")
        return [str(r) for r in value if r]

    def owner_uuid(self) -> Optional[str]:
        return self.get('sdc:owner_uuid')

    def non_admin_networks(self) -> List[str]:
        """Network UUIDs of every NIC not on the admin nic tag."""
        nics = self.get_json('sdc:nics') or []
        if not isinstance(nics, list) or not all(isinstance(nic, dict) for nic in nics):
            raise MissingConfigError(f"sdc:nics is not a list of NIC objects: {nics!r}")
        networks = []
        for nic in nics:
            if nic.get('nic_tag') == 'admin':
                continue
            network_uuid = nic.get('network_uuid')
            if network_uuid:
                networks.append(network_uuid)
        return networks
