"""
Error taxonomy for the Prometheus zone configuration run.

Every unrecoverable condition raises a subclass of ConfigureError. Leaf
components never exit the process themselves; the CLI in __main__ catches
ConfigureError, logs it and exits non-zero. A half-applied configuration is
worse than a stalled zone, so nothing here is retried past its bound.
"""


class ConfigureError(Exception):
    """Base class for all fatal configuration errors."""


class MissingConfigError(ConfigureError):
    """A required setting is absent and no default can be derived."""


class DiscoveryError(ConfigureError):
    """No resolver returned an address for the CNS service name."""

    def __init__(self, service_name: str, resolvers: list, attempts: int):
        self.service_name = service_name
        self.resolvers = list(resolvers)
        self.attempts = attempts
        super().__init__(
            f"could not resolve {service_name} after {attempts} attempts "
            f"(resolvers: {', '.join(self.resolvers) or 'none'})"
        )


class SuffixLookupError(ConfigureError):
    """CNS answered the suffixes-for-vm request with a non-200 status."""

    def __init__(self, url: str, status_code: int, body: str = ""):
        self.url = url
        self.status_code = status_code
        self.body = body
        super().__init__(f"CNS request to {url} failed with HTTP {status_code}: {body}")


class TemplateError(ConfigureError):
    """A template and its parameter list disagree."""


class CommandError(ConfigureError):
    """An external command (svcs, svcadm, mdata-get, ...) failed."""

    def __init__(self, argv: list, returncode: int, stderr: str = ""):
        self.argv = list(argv)
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(
            f"command '{' '.join(self.argv)}' exited {returncode}: {stderr.strip()}"
        )


class ServiceStuckError(ConfigureError):
    """An SMF service stayed in a transitional state past the poll bound."""

    def __init__(self, fmri: str, state: str, attempts: int):
        self.fmri = fmri
        self.state = state
        self.attempts = attempts
        super().__init__(
            f"service {fmri} still transitioning ({state}) after {attempts} checks"
        )


class UnexpectedServiceStateError(ConfigureError):
    """An SMF service reported a state the lifecycle driver does not handle."""

    def __init__(self, fmri: str, state: str):
        self.fmri = fmri
        self.state = state
        super().__init__(f"unexpected state for service {fmri}: '{state}'")
