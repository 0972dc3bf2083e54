import pytest

from hostprobe.core.errors import InvalidTargetError
from hostprobe.core.target import Target, parse_targets, validate_target


@pytest.mark.parametrize("value", ["", ".", "localhost", "LOCALHOST", "127.0.0.1", None])
def test_local_aliases(value):
    target = Target.parse(value)
    assert target == Target.local()
    assert not target.is_remote
    assert str(target) == "localhost"


def test_remote_target_strips_unc_prefix():
    target = Target.parse(r"\\WS01")
    assert target.is_remote
    assert target.host == "WS01"
    assert str(target) == "WS01"


@pytest.mark.parametrize("host", ["bad host", "-dash.example.com", "host_name!", "300.1.1.1"])
def test_invalid_remote_target(host):
    with pytest.raises(InvalidTargetError):
        Target.remote(host)


def test_validate_target():
    assert validate_target("192.168.1.10")
    assert validate_target("dc01.corp.example.com")
    assert not validate_target("256.0.0.1")


def test_parse_targets_expands_and_deduplicates():
    targets = parse_targets(["WS01,WS02", "WS01", "10.0.0.5"])
    assert [t.host for t in targets] == ["WS01", "WS02", "10.0.0.5"]


def test_parse_targets_empty_means_local():
    assert parse_targets([]) == [Target.local()]
    assert parse_targets(None) == [Target.local()]


def test_target_is_immutable():
    target = Target.remote("WS01")
    with pytest.raises(Exception):
        target.host = "WS02"


@pytest.mark.parametrize("hosts, expected", [
    (["WS01,"], ["WS01"]),
    (["WS01,,WS02"], ["WS01", "WS02"]),
    ([" , WS02"], ["WS02"]),
])
def test_parse_targets_skips_blank_entries(hosts, expected):
    assert [t.host for t in parse_targets(hosts)] == expected


def test_parse_targets_only_blank_entries_means_local():
    assert parse_targets([",", ""]) == [Target.local()]


def test_parse_targets_deduplicates_case_insensitively():
    targets = parse_targets(["WS01", "ws01,Ws01", "localhost,."])
    assert targets == [Target("WS01"), Target.local()]
