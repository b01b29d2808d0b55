"""Tests for the Prometheus exporter."""

from rpcgate.proxy.metrics import MAX_LABEL_VALUES, OVERFLOW_LABEL, GatewayMetrics


def test_label_values_are_escaped():
    metrics = GatewayMetrics()
    metrics.record_rpc("rpc/generic", 'get"Slot\\\nbogus 1', None, 1.0)

    lines = metrics.export().splitlines()

    assert 'rpcgate_requests_by_method{method="get\\"Slot\\\\\\nbogus 1"} 1' in lines
    assert not any(line.startswith("bogus") for line in lines)


def test_method_labels_fold_into_overflow():
    metrics = GatewayMetrics()
    for i in range(MAX_LABEL_VALUES + 5):
        metrics.record_rpc("rpc/devnet", f"method{i}", "https://dev-a.test", 1.0)
    metrics.record_rpc("rpc/devnet", "method0", "https://dev-a.test", 1.0)

    assert len(metrics.requests_by_method) == MAX_LABEL_VALUES + 1
    assert metrics.requests_by_method[OVERFLOW_LABEL] == 5
    assert metrics.requests_by_method["method0"] == 2
    assert metrics.requests_by_endpoint == {"https://dev-a.test": MAX_LABEL_VALUES + 6}


def test_endpoint_not_recorded_when_absent():
    metrics = GatewayMetrics()
    metrics.record_rpc("rpc/generic", "getSlot", None, 2.0)

    assert metrics.to_dict()["by_endpoint"] == {}
    assert metrics.requests_by_route == {"rpc/generic": 1}
