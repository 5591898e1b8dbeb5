"""
Endpoint Resolver Module

Hands out a live Web3 connection from an ordered list of candidate RPC
endpoints (primary, secondary, public pool). The index of the last endpoint
that passed a health check is remembered so steady-state calls cost a single
probe.
"""

from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Optional
import logging

from web3 import Web3

from ..config.chain_config import PUBLIC_RPC_URLS, RPC_TIMEOUT
from .errors import EndpointUnavailable

logger = logging.getLogger(__name__)

KIND_HTTP = "http"
KIND_IPC = "ipc"


@dataclass(frozen=True)
class EndpointCandidate:
    """One RPC endpoint the resolver may hand out."""
    url: str
    kind: str = KIND_HTTP

    @classmethod
    def from_url(cls, url: str) -> "EndpointCandidate":
        return cls(url=url, kind=KIND_IPC if is_ipc_path(url) else KIND_HTTP)


@dataclass
class ResolvedEndpoint:
    """A connection that passed its health check, and where it points."""
    w3: Any
    url: str


def is_ipc_path(url: str) -> bool:
    """Check if a URL is an IPC socket path"""
    return url.endswith('.ipc') or url.startswith('/')


def build_candidates(
    primary_url: str,
    secondary_url: Optional[str] = None,
    public_urls: Iterable[str] = PUBLIC_RPC_URLS,
) -> List[EndpointCandidate]:
    """
    Build the candidate order: primary, secondary (if any), then public RPCs.
    Duplicate URLs keep their first position.
    """
    urls = [primary_url]
    if secondary_url:
        urls.append(secondary_url)
    urls.extend(public_urls)

    seen = set()
    candidates = []
    for url in urls:
        if not url or url in seen:
            continue
        seen.add(url)
        candidates.append(EndpointCandidate.from_url(url))
    return candidates


def create_web3(candidate: EndpointCandidate, timeout: float = RPC_TIMEOUT) -> Web3:
    """Create a Web3 connection for the candidate (HTTP or IPC transport)."""
    if candidate.kind == KIND_IPC:
        return Web3(Web3.IPCProvider(candidate.url, timeout=timeout))
    return Web3(Web3.HTTPProvider(candidate.url, request_kwargs={'timeout': timeout}))


def probe_endpoint(w3: Any, timeout: float = RPC_TIMEOUT) -> bool:
    """
    Health check: fetch the current block number within ``timeout`` seconds.

    Runs on a worker thread so a stuck transport cannot hold the caller past
    the timeout; a call that times out is abandoned, not retried.
    """
    executor = ThreadPoolExecutor(max_workers=1)
    try:
        future = executor.submit(lambda: w3.eth.block_number)
        block_number = future.result(timeout=timeout)
        logger.debug(f"Probe ok at block {block_number}")
        return True
    except FutureTimeoutError:
        logger.debug(f"Probe timed out after {timeout}s")
        return False
    except Exception as e:
        logger.debug(f"Probe failed: {e}")
        return False
    finally:
        executor.shutdown(wait=False)


class EndpointResolver:
    """
    Resolves a working RPC connection from an ordered candidate list.

    State (the last known good index) belongs to the instance. The processor
    drives it from a single thread, so no locking is done here.
    """

    def __init__(
        self,
        candidates: List[EndpointCandidate],
        timeout: float = RPC_TIMEOUT,
        connect: Optional[Callable[[EndpointCandidate, float], Any]] = None,
        probe: Optional[Callable[[Any, float], bool]] = None,
    ):
        if not candidates:
            raise ValueError("EndpointResolver needs at least one candidate")
        self.candidates = list(candidates)
        self.timeout = timeout
        self._connect = connect or create_web3
        self._probe = probe or probe_endpoint
        self._last_good_index: Optional[int] = None

    @classmethod
    def from_settings(cls, settings) -> "EndpointResolver":
        candidates = build_candidates(settings.primary_rpc_url, settings.secondary_rpc_url)
        return cls(candidates, timeout=settings.rpc_timeout)

    @property
    def last_good_index(self) -> Optional[int]:
        return self._last_good_index

    def invalidate(self) -> None:
        """Forget the last known good endpoint so the next resolve probes all."""
        self._last_good_index = None

    def _try(self, index: int) -> Optional[ResolvedEndpoint]:
        candidate = self.candidates[index]
        try:
            w3 = self._connect(candidate, self.timeout)
        except Exception as e:
            logger.warning(f"[RPC] Could not create provider for {candidate.url}: {e}")
            return None

        if not self._probe(w3, self.timeout):
            logger.warning(f"[RPC] Failed health check: {candidate.url}")
            return None
        return ResolvedEndpoint(w3=w3, url=candidate.url)

    def resolve(self) -> ResolvedEndpoint:
        """
        Return a live connection, preferring the last endpoint known to work.

        Raises:
            EndpointUnavailable: no candidate passed the health check
        """
        failed_index = None
        if self._last_good_index is not None and self._last_good_index < len(self.candidates):
            resolved = self._try(self._last_good_index)
            if resolved is not None:
                return resolved
            # Last working RPC failed, reset and try the rest
            failed_index = self._last_good_index
            self._last_good_index = None

        for index in range(len(self.candidates)):
            if index == failed_index:
                continue
            resolved = self._try(index)
            if resolved is None:
                continue
            self._last_good_index = index
            if index > 0:
                logger.info(f"[RPC] Using fallback: {resolved.url}")
            return resolved

        logger.error(f"[RPC] All {len(self.candidates)} RPC endpoints failed!")
        raise EndpointUnavailable("All RPC endpoints failed - unable to connect to Ethereum network")
