import json

import pytest

import orchestrator
from metrics.discovery import ClusterSourceError
from normalize.quantity import InvalidAskError, QuantityParseError


@pytest.fixture
def use_source(monkeypatch):
    """Route get_source to an in-memory source"""
    def _use(source):
        monkeypatch.setattr(orchestrator.discovery_mod, 'get_source', lambda *a, **k: source)
        return source
    return _use


def test_run_once_structure(two_worker_source):
    out = orchestrator.run_once("1", "1G", "1", "1G", 5, source=two_worker_source)

    assert 'generated_at' in out
    assert out['net_replicas'] == 5
    assert out['schedulable'] is True
    assert out['requested_replicas'] == 5
    assert out['asks'] == {
        'cpu_request': "1", 'memory_request': "1G",
        'cpu_limit': "1", 'memory_limit': "1G",
    }
    assert [n['short_name'] for n in out['nodes']] == ["worker-a", "worker-b"]


def test_run_once_builds_source(use_source, two_worker_source):
    use_source(two_worker_source)
    out = orchestrator.run_once("1000m", "1G", "0", "0G", 6)
    assert out['schedulable'] is False


def test_bad_cpu_ask_fails_before_cluster_contact(monkeypatch):
    def _boom(*a, **k):
        raise AssertionError("cluster should not be contacted")
    monkeypatch.setattr(orchestrator.discovery_mod, 'get_source', _boom)

    with pytest.raises(QuantityParseError):
        orchestrator.run_once("abc", "1G", "100m", "1G", 1)


def test_zero_memory_request_rejected(two_worker_source):
    with pytest.raises(InvalidAskError):
        orchestrator.run_once("100m", "0G", "100m", "1G", 1, source=two_worker_source)
    assert two_worker_source.pod_calls == []


def test_zero_limit_ask_allowed(two_worker_source):
    out = orchestrator.run_once("100m", "1G", "0", "garbage", 1, source=two_worker_source)
    assert out['schedulable'] is True


def test_main_prints_report(use_source, two_worker_source, capsys):
    use_source(two_worker_source)

    rc = orchestrator.main(["--cpureq", "1", "--memreq", "1G", "--replicas", "5", "--source", "kube"])

    assert rc == 0
    out = capsys.readouterr().out
    assert "worker-a" in out
    assert "Is Schedulable?" in out


def test_main_writes_json(use_source, two_worker_source, tmp_path):
    use_source(two_worker_source)
    path = tmp_path / "reports" / "capacity.json"

    rc = orchestrator.main(["--cpureq", "1", "--memreq", "1G", "--source", "kube", "--output", str(path)])

    assert rc == 0
    data = json.loads(path.read_text())
    assert data['net_replicas'] == 5
    assert [p.name for p in path.parent.iterdir()] == ["capacity.json"]


def test_main_version(capsys, monkeypatch):
    monkeypatch.setattr(orchestrator, 'get_version', lambda: "1.4.0")
    monkeypatch.setattr(orchestrator, 'BUILD_DATE', "2024-01-04")

    assert orchestrator.main(["--version"]) == 0
    assert capsys.readouterr().out == "version:\t1.4.0\nbuildDate:\t2024-01-04\n"


def test_main_legends(capsys):
    assert orchestrator.main(["--legends"]) == 0
    assert "Legends" in capsys.readouterr().out


@pytest.mark.parametrize("argv", [
    ["--cpureq", "abc"],
    ["--memreq", "0G"],
    ["--memreq", "1" + "0" * 400 + "G"],
    ["--cpureq", "\u00b2"],
])
def test_main_rejects_bad_asks(use_source, two_worker_source, argv):
    use_source(two_worker_source)
    assert orchestrator.main(argv + ["--source", "kube"]) == 1


def test_main_source_failure(use_source, fake_source_cls, make_node):
    use_source(fake_source_cls(["broken"], [make_node("w1")], fail_on="broken"))
    assert orchestrator.main(["--source", "kube"]) == 1


def test_main_unreachable_cluster(monkeypatch):
    def _fail(*a, **k):
        raise ClusterSourceError("connection refused")
    monkeypatch.setattr(orchestrator.discovery_mod, 'get_source', _fail)
    assert orchestrator.main(["--source", "kube"]) == 1


def test_main_bad_thresholds_file(tmp_path, use_source, two_worker_source):
    use_source(two_worker_source)
    path = tmp_path / "thresholds.yaml"
    path.write_text("node_cpu_limit_pct: -1\n")
    assert orchestrator.main(["--source", "kube", "--thresholds", str(path)]) == 1


def test_main_custom_thresholds_applied(tmp_path, use_source, fake_source_cls, make_node,
                                       make_pod, make_container):
    use_source(fake_source_cls(["default"], [make_node("w1", cpu=4000)], pods={
        ("default", "w1"): [make_pod("a", containers=[make_container(cpu_req=100, cpu_lim=3000)])],
    }))
    path = tmp_path / "thresholds.yaml"
    path.write_text("overcommit:\n  node_cpu_limit_pct: 50\n")
    out_path = tmp_path / "out.json"

    rc = orchestrator.main(["--source", "kube", "--cpulimit", "0", "--memlimit", "0G",
                            "--thresholds", str(path), "--output", str(out_path)])

    assert rc == 0
    assert json.loads(out_path.read_text())['overcommitted_nodes'] == ["w1"]


def test_get_version_without_metadata(monkeypatch):
    monkeypatch.setattr(orchestrator, 'DISTRIBUTION_NAME', "no-such-distribution-xyz")
    assert orchestrator.get_version() == "unknown"
