"""
Redirect-chain navigator.

Drives repeated single-hop fetches from scheme://hostname/ under an upgrade
policy until a terminal response, an error, or the hop cap, then classifies
the chain by its TLS usage:

    last hop TLS, no plain hop    -> SECURE
    last hop TLS, some plain hop  -> INSECURE_REDIRECT
    last hop plain                -> INSECURE
    no hops                       -> ERROR

Hop-level failures never raise out of navigate(); they come back as the
ERROR result plus an error string alongside the partial chain.
"""

from __future__ import annotations

import logging
from typing import List, NamedTuple, Optional, Sequence
from urllib.parse import urlsplit, urlunsplit

from core.models import MAX_HOPS, Hop, Result, UpgradePolicy
from probers.http_probe import HopFetcher

log = logging.getLogger(__name__)


class NavigationOutcome(NamedTuple):
    chain: List[Hop]
    result: Result
    error: Optional[str]


def result_from_chain(chain: Sequence[Hop]) -> Result:
    if not chain:
        return Result.ERROR
    has_insecure = any(hop.insecure for hop in chain)
    ends_insecure = chain[-1].insecure
    if not ends_insecure and not has_insecure:
        return Result.SECURE
    if not ends_insecure:
        return Result.INSECURE_REDIRECT
    return Result.INSECURE


def should_upgrade(url: str, upgrade: UpgradePolicy) -> bool:
    if urlsplit(url).scheme != "http":
        return False
    return upgrade in (UpgradePolicy.OPTIONAL, UpgradePolicy.FORCE)


def can_retry(upgrade: UpgradePolicy) -> bool:
    # FORCE never falls back to plain http
    return upgrade == UpgradePolicy.OPTIONAL


def upgraded(url: str) -> str:
    return urlsplit(url)._replace(scheme="https").geturl()


def start_url(hostname: str, scheme: str) -> str:
    return urlunsplit((scheme, hostname, "/", "", ""))


def navigate(
    hostname: str,
    scheme: str,
    upgrade: UpgradePolicy,
    fetcher: HopFetcher,
    max_hops: int = MAX_HOPS,
) -> NavigationOutcome:
    max_hops = min(max_hops, MAX_HOPS)
    url = start_url(hostname, scheme)
    chain: List[Hop] = []
    try:
        urlsplit(url)
    except ValueError as exc:
        # redirect targets are parsed when resolved, so only the start url can fail here
        error = f"invalid url {url!r}: {exc}"
        log.debug("navigation error | host=%s | err=%s", hostname, error)
        return NavigationOutcome(chain, Result.ERROR, error)

    while len(chain) < max_hops:
        original = url
        attempt_upgrade = should_upgrade(url, upgrade)
        if attempt_upgrade:
            url = upgraded(url)
        did_upgrade = attempt_upgrade

        hop, next_url, error = fetcher.fetch(url)
        if error is not None and attempt_upgrade and can_retry(upgrade):
            log.info("upgrade failed, retrying without | url=%s | err=%s", url, error)
            did_upgrade = False
            hop, next_url, error = fetcher.fetch(original)

        if error is not None:
            return NavigationOutcome(chain, Result.ERROR, error)

        chain.append(hop.model_copy(update={"upgraded": did_upgrade}))
        if hop.terminal or next_url is None:
            break
        url = next_url
    else:
        log.warning("hop cap reached | host=%s | scheme=%s | policy=%s | hops=%d", hostname, scheme, upgrade.name, len(chain))

    return NavigationOutcome(chain, result_from_chain(chain), None)
