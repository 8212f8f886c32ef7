import os
from dataclasses import dataclass
from dotenv import load_dotenv

# Load environment variables from a .env file into the runtime environment
load_dotenv()

PERSIST_DIR = os.getenv('PERSIST_DIR', '/data/prometheus')
ETC_DIR = os.path.join(PERSIST_DIR, 'etc')
KEYS_DIR = os.path.join(PERSIST_DIR, 'keys')
PKG_DIR = os.getenv('PROMETHEUS_PKG_DIR', '/opt/triton/prometheus')


@dataclass
class Config:
    """
    Central configuration for the Prometheus zone configure run.

    All fields are populated from environment variables (optionally via a
    .env file) and type-cast as needed. The SAPI instance data itself is not
    part of this class; it is read per run by metadata.load_sapi_config().

    Attributes:
        Logging:
            - logger_name: Name the logger will log as.
            - log_level: Log verbosity (e.g., DEBUG, INFO, WARNING).
            - log_file: Path to optional log file.
            - log_max_bytes / log_backup_count: Log rotation settings.
            - enable_structured_console: Output JSON to console for structured events.
            - enable_structured_file: Output JSON lines to a separate structured log file.
            - structured_log_file: Path to the structured log file.

        Layout:
            - persist_dir / etc_dir / data_dir: Delegate dataset layout.
            - templates_dir: Directory holding <basename>.in templates.
            - prometheus_config_file: Live Prometheus configuration path.
            - bind_config_file: Live BIND (named) configuration path.
            - sapi_inst_data_json: JSON written by config-agent.
            - cmon_key_file / cmon_cert_file: Client credentials for CMON.
            - config_owner / config_group: Ownership applied to etc_dir after rendering.

        Services:
            - prometheus_fmri / bind_fmri: SMF services driven by the lifecycle driver.
            - prometheus_manifest: SMF manifest imported on zone setup.

        Discovery and polling:
            - resolvers: Comma separated override for the sdc:resolvers metadata.
            - discovery_attempts: Rounds over the resolver list before giving up.
            - discovery_backoff: Seconds between discovery rounds.
            - dns_query_timeout: Lifetime of a single DNS query.
            - svc_poll_attempts: Checks of a transitional SMF state before giving up.
            - svc_poll_interval: Seconds between those checks.
            - cns_http_timeout: Timeout for the CNS suffixes-for-vm request.
            - command_timeout: Timeout for svcs/svcadm/mdata-get invocations.
    """
    # Logging
    logger_name: str = os.getenv('LOGGER_NAME', 'PROMETHEUS_CONFIGURE').upper()
    log_level: str = os.getenv('LOG_LEVEL', 'INFO').upper()
    log_file: str | None = os.getenv('LOG_FILE', '/var/log/prometheus-configure.log')
    log_max_bytes: int = int(os.getenv('LOG_MAX_BYTES', 10 * 1024 * 1024))
    log_backup_count: int = int(os.getenv('LOG_BACKUP_COUNT', 5))
    enable_structured_console: bool = os.getenv('ENABLE_STRUCTURED_CONSOLE', 'false').lower() == 'true'
    enable_structured_file: bool = os.getenv('ENABLE_STRUCTURED_FILE', 'false').lower() == 'true'
    structured_log_file: str | None = os.getenv('STRUCTURED_LOG_FILE', '/var/log/prometheus-configure.json')

    # Delegate dataset layout:
    #   /data/prometheus/
    #       data/    # TSDB database
    #       etc/     # config file(s)
    #       keys/    # keys with which to auth with CMON
    persist_dir: str = PERSIST_DIR
    etc_dir: str = ETC_DIR
    data_dir: str = os.path.join(PERSIST_DIR, 'data')
    templates_dir: str = os.getenv('TEMPLATES_DIR', os.path.join(os.path.dirname(__file__), 'templates'))
    prometheus_config_file: str = os.getenv('PROMETHEUS_CONFIG_FILE', os.path.join(ETC_DIR, 'prometheus.yml'))
    bind_config_file: str = os.getenv('BIND_CONFIG_FILE', '/opt/local/etc/named.conf')
    sapi_inst_data_json: str = os.getenv('SAPI_INST_DATA_JSON', os.path.join(ETC_DIR, 'sapi-inst-data.json'))
    cmon_key_file: str = os.getenv('CMON_KEY_FILE', os.path.join(KEYS_DIR, 'prometheus.key.pem'))
    cmon_cert_file: str = os.getenv('CMON_CERT_FILE', os.path.join(KEYS_DIR, 'prometheus.cert.pem'))
    config_owner: str = os.getenv('CONFIG_OWNER', 'nobody')
    config_group: str = os.getenv('CONFIG_GROUP', 'nobody')

    # SMF services
    prometheus_fmri: str = os.getenv('PROMETHEUS_FMRI', 'svc:/triton/application/prometheus:default')
    bind_fmri: str = os.getenv('BIND_FMRI', 'svc:/pkgsrc/bind:default')
    prometheus_manifest: str = os.getenv('PROMETHEUS_MANIFEST', os.path.join(PKG_DIR, 'smf', 'manifests', 'prometheus.xml'))

    # Discovery and polling
    resolvers: str | None = os.getenv('RESOLVERS')
    discovery_attempts: int = int(os.getenv('DISCOVERY_ATTEMPTS', 10))
    discovery_backoff: float = float(os.getenv('DISCOVERY_BACKOFF_SECONDS', 2))
    dns_query_timeout: float = float(os.getenv('DNS_QUERY_TIMEOUT', 10))
    svc_poll_attempts: int = int(os.getenv('SVC_POLL_ATTEMPTS', 6))
    svc_poll_interval: float = float(os.getenv('SVC_POLL_INTERVAL_SECONDS', 5))
    cns_http_timeout: float = float(os.getenv('CNS_HTTP_TIMEOUT', 10))
    command_timeout: int = int(os.getenv('COMMAND_TIMEOUT', 60))

    def resolver_override(self) -> list[str]:
        """Resolvers from the RESOLVERS variable, empty when unset."""
        if not self.resolvers:
            return []
        return [r.strip() for r in self.resolvers.split(',') if r.strip()]


def validate_configuration(cfg: Config) -> list[str]:
    """
    Validates the loaded configuration for correctness and consistency.

    This includes:
    - Validating numeric ranges for retry and timeout knobs.
    - Checking the templates directory holds both managed templates.
    - Checking the configured log level is a real logging level.

    Args:
        cfg (Config): Parsed and populated configuration object.

    Returns:
        list[str]: A list of human-readable error strings. Empty list means validation passed.
    """
    errors: list[str] = []

    numeric_ranges = {
        'DISCOVERY_ATTEMPTS': (1, 100),
        'DISCOVERY_BACKOFF_SECONDS': (0, 60),
        'DNS_QUERY_TIMEOUT': (1, 120),
        'SVC_POLL_ATTEMPTS': (1, 100),
        'SVC_POLL_INTERVAL_SECONDS': (0, 60),
        'CNS_HTTP_TIMEOUT': (1, 300),
        'COMMAND_TIMEOUT': (1, 600),
        'LOG_MAX_BYTES': (1024, 1073741824),  # 1 KB to 1 GB
        'LOG_BACKUP_COUNT': (1, 100),
    }

    for var, (mn, mx) in numeric_ranges.items():
        raw = os.getenv(var)
        if raw:
            try:
                val = float(raw)
                if val < mn or val > mx:
                    errors.append(f"{var} must be between {mn} and {mx}, got {val}")
            except ValueError:
                errors.append(f"{var} must be numeric, got '{raw}'")

    if cfg.log_level not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
        errors.append(f"LOG_LEVEL must be a standard logging level, got '{cfg.log_level}'")

    if not os.path.isdir(cfg.templates_dir):
        errors.append(f"Templates directory not found: {cfg.templates_dir}")
    else:
        for live in (cfg.prometheus_config_file, cfg.bind_config_file):
            template = os.path.join(cfg.templates_dir, os.path.basename(live) + '.in')
            if not os.path.isfile(template):
                errors.append(f"Template not found: {template}")

    return errors
