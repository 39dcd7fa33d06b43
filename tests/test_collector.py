"""
Unit tests for src/collector.py.

A fake client stands in for CloudflareClient so enrichment can be tested
without HTTP.
"""

import json
import threading
from pathlib import Path

import pytest

from src.analyzer import CDN_NOT_SETUP, aggregate
from src.collector import collect, enrich_zone
from src.errors import TransportError

FIXTURES = Path(__file__).parent / "fixtures" / "sample_zones.json"


def _cache_rule(domain: str, level: str) -> dict:
    return {
        "targets": [{"target": "url", "constraint": {"operator": "matches", "value": f"*{domain}/*"}}],
        "actions": [{"id": "cache_level", "value": level}],
    }


class FakeClient:
    """Serves canned zone / WAF / page-rule data and counts calls like the real client."""

    def __init__(self, zones, waf=None, pagerules=None, fail_on=None, cancel_event=None, forks=None):
        self.zones = zones
        self.waf = waf or {}
        self.pagerules = pagerules or {}
        self.fail_on = fail_on
        self.cancel_event = cancel_event
        self.api_calls = 0
        self.requested: list[str] = []
        self.closed = False
        # Shared by a client and all of its forks
        self.forks = forks if forks is not None else []

    def fork(self):
        forked = FakeClient(self.zones, self.waf, self.pagerules, self.fail_on, self.cancel_event, self.forks)
        self.forks.append(forked)
        return forked

    def close(self):
        self.closed = True

    def _call(self, path):
        self.api_calls += 1
        self.requested.append(path)
        if self.fail_on == path:
            raise TransportError(f"timeout on {path}")

    def list_zones(self):
        self._call("zones")
        return list(self.zones)

    def get_waf_setting(self, zone_id):
        self._call(f"zones/{zone_id}/settings/waf")
        return {"result": {"id": "waf", "value": self.waf.get(zone_id, "off")}}

    def get_pagerules(self, zone_id):
        self._call(f"zones/{zone_id}/pagerules")
        return self.pagerules.get(zone_id, [])


@pytest.fixture
def sample_zones():
    return json.loads(FIXTURES.read_text(encoding="utf-8"))


# ── enrich_zone ────────────────────────────────────────────────────────────────


class TestEnrichZone:
    def test_filtered_zone_costs_no_calls(self, sample_zones):
        client = FakeClient(sample_zones)
        assert enrich_zone(client, sample_zones[2], ".*", check_waf=True, check_cdn=True) is None
        assert client.api_calls == 0

    def test_no_checks_no_calls(self, sample_zones):
        client = FakeClient(sample_zones)
        zone = enrich_zone(client, sample_zones[0], ".*")
        assert zone.waf is None and zone.cdn is None
        assert client.api_calls == 0

    def test_waf_on(self, sample_zones):
        client = FakeClient(sample_zones, waf={"zone-acme-1": "on"})
        zone = enrich_zone(client, sample_zones[0], ".*", check_waf=True)
        assert zone.waf is True
        assert client.requested == ["zones/zone-acme-1/settings/waf"]

    def test_waf_off(self, sample_zones):
        client = FakeClient(sample_zones, waf={"zone-acme-1": "off"})
        assert enrich_zone(client, sample_zones[0], ".*", check_waf=True).waf is False

    def test_cdn_last_match_wins(self, sample_zones):
        rules = [_cache_rule("acme.com", "simplified"), _cache_rule("acme.com", "cache_everything")]
        client = FakeClient(sample_zones, pagerules={"zone-acme-1": rules})
        zone = enrich_zone(client, sample_zones[0], ".*", check_cdn=True)
        assert zone.cdn == "cache_everything"
        assert client.api_calls == 1

    def test_cdn_not_setup_warns(self, sample_zones, capsys):
        client = FakeClient(sample_zones)
        zone = enrich_zone(client, sample_zones[0], ".*", check_cdn=True)
        assert zone.cdn == CDN_NOT_SETUP
        assert "acme.com" in capsys.readouterr().out

    def test_both_checks_two_calls(self, sample_zones):
        client = FakeClient(sample_zones)
        enrich_zone(client, sample_zones[0], ".*", check_waf=True, check_cdn=True)
        assert client.api_calls == 2


# ── collect ────────────────────────────────────────────────────────────────────


class TestCollect:
    def test_acme_scenario(self, sample_zones):
        client = FakeClient(sample_zones[:3])
        zones, api_calls = collect(client, ".*")
        grouped, counters = aggregate(zones)
        assert list(grouped) == ["Acme"]
        assert len(grouped["Acme"]) == 2
        assert counters.total == 2
        assert counters.by_status["active"] == 1
        assert counters.by_status["pending"] == 1
        assert api_calls == 1

    def test_filter_applied(self, sample_zones):
        zones, _ = collect(FakeClient(sample_zones), "^Globex")
        assert [z.domain for z in zones] == ["globex.io"]

    def test_order_preserved(self, sample_zones):
        zones, _ = collect(FakeClient(sample_zones), ".*")
        assert [z.id for z in zones] == ["zone-acme-1", "zone-acme-2", "zone-globex-1", "zone-acme-3"]

    def test_api_calls_include_enrichment(self, sample_zones):
        zones, api_calls = collect(FakeClient(sample_zones), ".*", check_waf=True, check_cdn=True)
        assert api_calls == 1 + 2 * len(zones)

    def test_cdn_enabled_counted(self, sample_zones):
        rules = [_cache_rule("acme.com", "simplified"), _cache_rule("acme.com", "cache_everything")]
        client = FakeClient(sample_zones, pagerules={"zone-acme-1": rules})
        zones, _ = collect(client, ".*", check_cdn=True)
        _, counters = aggregate(zones, cdn_checked=True)
        assert counters.cdn_enabled == 1

    def test_enrichment_failure_propagates(self, sample_zones):
        client = FakeClient(sample_zones, fail_on="zones/zone-acme-2/settings/waf")
        with pytest.raises(TransportError):
            collect(client, ".*", check_waf=True)


class TestCollectParallel:
    def test_same_result_as_sequential(self, sample_zones):
        waf = {"zone-acme-1": "on", "zone-globex-1": "on"}
        rules = {"zone-acme-2": [_cache_rule("acme.net", "cache_everything")]}
        sequential = collect(FakeClient(sample_zones, waf, rules), ".*", True, True, workers=1)
        parallel = collect(FakeClient(sample_zones, waf, rules), ".*", True, True, workers=4)
        assert parallel == sequential

    def test_worker_calls_summed(self, sample_zones):
        client = FakeClient(sample_zones)
        zones, api_calls = collect(client, ".*", check_waf=True, workers=3)
        # Only pagination ran on the caller's client
        assert client.api_calls == 1
        assert api_calls == 1 + len(zones)

    def test_failure_propagates_and_cancels(self, sample_zones):
        event = threading.Event()
        client = FakeClient(sample_zones, fail_on="zones/zone-globex-1/settings/waf", cancel_event=event)
        with pytest.raises(TransportError):
            collect(client, ".*", check_waf=True, workers=2)
        assert event.is_set()

    def test_one_client_per_worker_thread(self):
        raw_zones = [
            {"id": f"z{i}", "name": f"z{i}.com", "status": "active",
             "owner": {"type": "organization", "name": "Acme"}}
            for i in range(40)
        ]
        client = FakeClient(raw_zones)
        zones, api_calls = collect(client, ".*", check_waf=True, workers=4)
        assert len(zones) == 40
        assert 1 <= len(client.forks) <= 4
        assert all(forked.closed for forked in client.forks)
        assert api_calls == 1 + 40
        assert sum(forked.api_calls for forked in client.forks) == 40

    def test_worker_clients_closed_after_failure(self, sample_zones):
        client = FakeClient(sample_zones, fail_on="zones/zone-globex-1/settings/waf", cancel_event=threading.Event())
        with pytest.raises(TransportError):
            collect(client, ".*", check_waf=True, workers=2)
        assert client.forks
        assert all(forked.closed for forked in client.forks)
