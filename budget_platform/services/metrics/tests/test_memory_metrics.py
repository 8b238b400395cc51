import pytest

from budget_platform.services.metrics.memory_metrics import MemoryMetrics


def test_counter_increments():
    m = MemoryMetrics()
    m.counter("rates_refresh_total")
    m.counter("rates_refresh_total")
    m.counter("rates_refresh_total", value=3)
    assert m.counters["rates_refresh_total"] == 5


def test_counter_tracks_tags_separately():
    m = MemoryMetrics()
    m.counter("currency_rate_lookups_total", tags={"source": "memory"})
    m.counter("currency_rate_lookups_total", tags={"source": "upstream"})
    m.counter("currency_rate_lookups_total", tags={"source": "memory"})
    assert m.counters["currency_rate_lookups_total"] == 3
    assert m.count("currency_rate_lookups_total", source="memory") == 2
    assert m.count("currency_rate_lookups_total", source="upstream") == 1
    assert m.count("currency_rate_lookups_total", source="stale") == 0


def test_gauge_sets_value():
    m = MemoryMetrics()
    m.gauge("rates_hours_since_refresh", 0.5)
    m.gauge("rates_hours_since_refresh", 1.25)
    assert m.gauges["rates_hours_since_refresh"] == 1.25


def test_histogram_records_values():
    m = MemoryMetrics()
    m.histogram("latency", 10.0)
    m.histogram("latency", 20.0)
    assert m.histograms["latency"] == [10.0, 20.0]


def test_timed_records_even_on_error():
    m = MemoryMetrics()
    with m.timed("currency_api_request_ms"):
        pass
    with pytest.raises(RuntimeError):
        with m.timed("currency_api_request_ms"):
            raise RuntimeError("boom")
    assert len(m.histograms["currency_api_request_ms"]) == 2
    assert all(v >= 0 for v in m.histograms["currency_api_request_ms"])
