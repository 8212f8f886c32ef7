"""
One-time setup of a Triton Prometheus core zone.

Runs once per (re)provision of the image from the zone's user-script, but is
safe to run again. The Prometheus SMF service is imported disabled; the
configure run enables it once a configuration exists.

The SAPI instance data lives on the delegate dataset, so on a reprovision it
already exists and config-agent may have nothing to change (and so never
triggers its post_cmd). In that case setup runs configure itself.
"""

import logging
import os
from typing import Optional

from .config import Config
from .configure import configure
from .errors import MissingConfigError
from .metadata import ZoneMetadata
from .smf import Smf

logger = logging.getLogger(os.getenv("LOGGER_NAME", "PROMETHEUS_CONFIGURE"))


def check_first_run(cfg: Config) -> bool:
    """First-time zone setup iff config-agent has not written SAPI data yet."""
    return not os.path.isfile(cfg.sapi_inst_data_json)


def setup_directories(cfg: Config) -> None:
    for path in (cfg.etc_dir, cfg.data_dir):
        os.makedirs(path, exist_ok=True)


def run_setup(cfg: Config,
              metadata: Optional[ZoneMetadata] = None,
              smf: Optional[Smf] = None,
              **configure_kwargs) -> bool:
    """
    Prepare the zone and, on reprovision, run configure.

    Returns:
        bool: True if this was first-time setup.

    Raises:
        MissingConfigError: If sdc:dns_domain is not set for the zone.
        ConfigureError: From the configure run on reprovision.
    """
    metadata = metadata or ZoneMetadata(timeout=cfg.command_timeout)
    smf = smf or Smf(timeout=cfg.command_timeout)

    # Must be decided before config-agent is set up, which creates the file
    first_run = check_first_run(cfg)

    if not metadata.get('sdc:dns_domain'):
        raise MissingConfigError("could not determine 'dns_domain'")

    setup_directories(cfg)
    smf.import_manifest(cfg.prometheus_manifest)

    if first_run:
        logger.info("First-time zone setup; config-agent will run configure")
    else:
        logger.info("Reprovisioned zone; running configure")
        configure(cfg, metadata=metadata, smf=smf, **configure_kwargs)
    return first_run
