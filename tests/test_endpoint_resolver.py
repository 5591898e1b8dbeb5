"""
Unit tests for RPC endpoint resolution.

Tests:
- Candidate order and de-duplication
- First healthy endpoint wins, nothing probed after it
- Last known good endpoint is tried first
- All endpoints down raises EndpointUnavailable (transient)
- Health probe timeout
"""
import pytest
import time
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from settlement_app.config.chain_config import PUBLIC_RPC_URLS
from settlement_app.services.endpoint_resolver import (
    KIND_HTTP,
    KIND_IPC,
    EndpointCandidate,
    EndpointResolver,
    build_candidates,
    probe_endpoint,
)
from settlement_app.services.errors import EndpointUnavailable


class FakeNetwork:
    """Connection factory + probe over a set of healthy urls, recording every probe."""

    def __init__(self, healthy):
        self.healthy = set(healthy)
        self.probed = []

    def connect(self, candidate, timeout):
        return candidate.url

    def probe(self, w3, timeout):
        self.probed.append(w3)
        return w3 in self.healthy


def make_resolver(urls, healthy):
    network = FakeNetwork(healthy)
    candidates = [EndpointCandidate.from_url(u) for u in urls]
    return EndpointResolver(candidates, timeout=1, connect=network.connect, probe=network.probe), network


class TestBuildCandidates:
    """Test candidate ordering."""

    def test_order_primary_secondary_public(self):
        candidates = build_candidates("http://primary:8545", "http://secondary:8545")
        urls = [c.url for c in candidates]

        assert urls[:2] == ["http://primary:8545", "http://secondary:8545"]
        assert urls[2:] == list(PUBLIC_RPC_URLS)

    def test_duplicates_removed_keeping_first(self):
        candidates = build_candidates(PUBLIC_RPC_URLS[1], None)
        urls = [c.url for c in candidates]

        assert urls[0] == PUBLIC_RPC_URLS[1]
        assert urls.count(PUBLIC_RPC_URLS[1]) == 1
        assert len(urls) == len(PUBLIC_RPC_URLS)

    def test_ipc_kind_detection(self):
        assert EndpointCandidate.from_url("/var/run/geth.ipc").kind == KIND_IPC
        assert EndpointCandidate.from_url("geth.ipc").kind == KIND_IPC
        assert EndpointCandidate.from_url("https://eth.llamarpc.com").kind == KIND_HTTP

    def test_resolver_needs_candidates(self):
        with pytest.raises(ValueError):
            EndpointResolver([])


class TestEndpointResolver:
    """Test failover and last-known-good behaviour."""

    def test_first_healthy_wins_and_stops_probing(self):
        urls = ["a", "b", "c", "d"]
        resolver, network = make_resolver(urls, healthy={"b", "c"})

        resolved = resolver.resolve()

        assert resolved.url == "b"
        assert network.probed == ["a", "b"], "nothing after the first success is probed"
        assert resolver.last_good_index == 1

    def test_last_good_is_tried_first(self):
        resolver, network = make_resolver(["a", "b", "c"], healthy={"b"})
        resolver.resolve()
        network.probed.clear()

        resolved = resolver.resolve()

        assert resolved.url == "b"
        assert network.probed == ["b"], "steady state costs a single probe"

    def test_last_good_failure_rescans_without_reprobing_it(self):
        resolver, network = make_resolver(["a", "b", "c"], healthy={"b"})
        resolver.resolve()
        network.healthy = {"c"}
        network.probed.clear()

        resolved = resolver.resolve()

        assert resolved.url == "c"
        assert network.probed == ["b", "a", "c"]
        assert resolver.last_good_index == 2

    def test_probes_bounded_by_candidate_count(self):
        urls = ["a", "b", "c", "d", "e"]
        resolver, network = make_resolver(urls, healthy={"a"})
        resolver.resolve()
        network.healthy = set()
        network.probed.clear()

        with pytest.raises(EndpointUnavailable):
            resolver.resolve()

        assert len(network.probed) <= len(urls)

    def test_all_down_raises_transient_error(self):
        resolver, network = make_resolver(["a", "b"], healthy=set())

        with pytest.raises(EndpointUnavailable) as exc_info:
            resolver.resolve()

        assert exc_info.value.transient is True
        assert network.probed == ["a", "b"]
        assert resolver.last_good_index is None

    def test_invalidate_forces_full_scan(self):
        resolver, network = make_resolver(["a", "b"], healthy={"a", "b"})
        resolver.resolve()
        resolver._last_good_index = 1
        resolver.invalidate()
        network.probed.clear()

        assert resolver.resolve().url == "a"
        assert network.probed == ["a"]

    def test_connect_error_counts_as_failed_candidate(self):
        network = FakeNetwork(healthy={"b"})

        def connect(candidate, timeout):
            if candidate.url == "a":
                raise OSError("socket missing")
            return candidate.url

        resolver = EndpointResolver(
            [EndpointCandidate.from_url(u) for u in ["a", "b"]],
            connect=connect,
            probe=network.probe,
        )

        assert resolver.resolve().url == "b"


class TestProbeEndpoint:
    """Test the block-number health check."""

    class _Eth:
        def __init__(self, block=None, delay=0.0, error=None):
            self._block = block
            self._delay = delay
            self._error = error

        @property
        def block_number(self):
            if self._delay:
                time.sleep(self._delay)
            if self._error:
                raise self._error
            return self._block

    class _W3:
        def __init__(self, eth):
            self.eth = eth

    def test_healthy_endpoint(self):
        assert probe_endpoint(self._W3(self._Eth(block=19_000_000)), timeout=1) is True

    def test_error_is_unhealthy(self):
        assert probe_endpoint(self._W3(self._Eth(error=ConnectionError("refused"))), timeout=1) is False

    def test_timeout_is_unhealthy(self):
        start = time.monotonic()
        healthy = probe_endpoint(self._W3(self._Eth(block=1, delay=1.0)), timeout=0.1)
        elapsed = time.monotonic() - start

        assert healthy is False
        assert elapsed < 0.9, "probe must not wait for the hung call"
