"""
CNS address discovery over the zone's resolvers.

The zone learns its resolvers (binder instances) from metadata. CNS is
published there as `cns.<datacenter>.<dns_domain>`. Each round tries every
resolver in order and the first one to return an A record wins; a round
with no answer is followed by a short sleep so a restarting binder is not
hammered. Running out of rounds is fatal: nothing downstream can be rendered
without the CNS address.

A resolver that answers with no records is treated like an unreachable one
and the next resolver is tried.
"""

import logging
import os
import time
from typing import Callable, NamedTuple, Optional, Sequence

import dns.exception
import dns.resolver

from .errors import DiscoveryError
from .retry import poll_until
from .structured_events import ActionResult, StructuredEventLogger

logger = logging.getLogger(os.getenv("LOGGER_NAME", "PROMETHEUS_CONFIGURE"))

CNS_SUBDOMAIN = "cns"
DEFAULT_ATTEMPTS = 10
DEFAULT_QUERY_TIMEOUT = 10.0
DEFAULT_BACKOFF = 2.0


class DiscoveryResult(NamedTuple):
    resolver: str
    address: str


def cns_service_name(datacenter_name: str, dns_domain: str) -> str:
    return f"{CNS_SUBDOMAIN}.{datacenter_name}.{dns_domain}"


def query_resolver(name: str, resolver_ip: str, timeout: float = DEFAULT_QUERY_TIMEOUT) -> Optional[str]:
    """
    Ask a single resolver for the A record of `name`.

    Returns the first address, or None when the resolver did not answer or
    had no record.
    """
    try:
        resolver = dns.resolver.Resolver(configure=False)
        resolver.nameservers = [resolver_ip]
        answer = resolver.resolve(name, "A", lifetime=timeout)
    except dns.exception.DNSException as e:
        logger.debug(f"resolver {resolver_ip} gave no answer for {name}: {e}")
        return None
    except ValueError as e:
        logger.warning(f"skipping invalid resolver address {resolver_ip!r}: {e}")
        return None

    for rdata in answer:
        return str(rdata.address)
    return None


def discover_cns(datacenter_name: str,
                 dns_domain: str,
                 resolvers: Sequence[str],
                 attempts: int = DEFAULT_ATTEMPTS,
                 timeout: float = DEFAULT_QUERY_TIMEOUT,
                 backoff: float = DEFAULT_BACKOFF,
                 query: Callable[[str, str, float], Optional[str]] = query_resolver,
                 sleep: Callable[[float], None] = time.sleep,
                 structured_logger: Optional[StructuredEventLogger] = None) -> DiscoveryResult:
    """
    Find the CNS address via the first resolver that answers.

    Args:
        datacenter_name: Datacenter the zone lives in.
        dns_domain: DNS domain of the Triton deployment.
        resolvers: Ordered candidate resolver addresses.
        attempts: Rounds over the full resolver list.
        timeout: Lifetime of each DNS query in seconds.
        backoff: Seconds to sleep after a round with no answer.
        query: Single-resolver lookup, injectable for tests.
        sleep: Sleep function, injectable for tests.
        structured_logger: Optional structured event sink.

    Returns:
        DiscoveryResult: (resolver that answered, resolved CNS address)

    Raises:
        DiscoveryError: If the resolver list is empty or no resolver answered
            within `attempts` rounds.
    """
    name = cns_service_name(datacenter_name, dns_domain)
    candidates = list(resolvers)
    start = time.time()

    def fail(tried: int) -> DiscoveryError:
        err = DiscoveryError(name, candidates, tried)
        if structured_logger:
            structured_logger.log_discovery(name, candidates, ActionResult.FAILURE,
                                            attempts=tried,
                                            duration_ms=int((time.time() - start) * 1000),
                                            error_message=str(err))
        return err

    if not candidates:
        raise fail(0)

    def one_round() -> Optional[DiscoveryResult]:
        for resolver_ip in candidates:
            address = query(name, resolver_ip, timeout)
            if address:
                return DiscoveryResult(resolver_ip, address)
        return None

    logger.info(f"Resolving {name} via {', '.join(candidates)}")
    found, tried, ok = poll_until(one_round, lambda r: r is not None,
                                  max_attempts=attempts, delay=backoff, sleep=sleep,
                                  description=f"resolve {name}")
    if not ok:
        raise fail(tried)

    logger.info(f"Resolved {name} to {found.address} (resolver {found.resolver})")
    if structured_logger:
        structured_logger.log_discovery(name, candidates, ActionResult.SUCCESS,
                                        resolver=found.resolver, address=found.address,
                                        attempts=tried,
                                        duration_ms=int((time.time() - start) * 1000))
    return found
