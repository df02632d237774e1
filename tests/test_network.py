import sys

import netifaces
import pytest

from napkin_notes.server import capabilities, network
from napkin_notes.server.network import build_share_url, get_local_ip


@pytest.fixture
def fake_interfaces(monkeypatch):
    def install(table, route_ip=None):
        monkeypatch.setattr(netifaces, "interfaces", lambda: list(table))
        monkeypatch.setattr(
            netifaces,
            "ifaddresses",
            lambda name: {netifaces.AF_INET: [{"addr": a} for a in table[name]]} if table[name] else {},
        )
        monkeypatch.setattr(network, "_route_probe_ip", lambda: route_ip)

    return install


def test_first_non_loopback_ipv4_wins(fake_interfaces):
    fake_interfaces({"lo": ["127.0.0.1"], "eth0": ["192.168.1.20"], "wlan0": ["10.0.0.5"]})
    assert get_local_ip() == "192.168.1.20"


def test_link_local_addresses_skipped(fake_interfaces):
    fake_interfaces({"lo": ["127.0.0.1"], "eth0": ["169.254.3.4"], "wlan0": ["10.0.0.5"]})
    assert get_local_ip() == "10.0.0.5"


def test_falls_back_to_localhost_when_only_loopback(fake_interfaces):
    fake_interfaces({"lo": ["127.0.0.1"], "docker0": []})
    assert get_local_ip() == "localhost"


def test_route_probe_used_when_no_interface_qualifies(fake_interfaces):
    fake_interfaces({"lo": ["127.0.0.1"]}, route_ip="192.168.50.7")
    assert get_local_ip() == "192.168.50.7"


def test_loopback_route_probe_ignored(fake_interfaces):
    fake_interfaces({"lo": ["127.0.0.1"]}, route_ip="127.0.1.1")
    assert get_local_ip() == "localhost"


def test_enumeration_failure_does_not_raise(monkeypatch):
    def boom():
        raise OSError("permission denied")

    monkeypatch.setattr(netifaces, "interfaces", boom)
    monkeypatch.setattr(network, "_route_probe_ip", lambda: None)
    assert get_local_ip() == "localhost"


def test_sandboxed_platform_skips_enumeration(monkeypatch):
    monkeypatch.setattr(capabilities.sys, "platform", "emscripten")
    monkeypatch.setattr(network, "_route_probe_ip", lambda: None)
    assert get_local_ip() == "localhost"


def test_share_url_carries_token():
    assert build_share_url("192.168.1.20", 8081, "abc123") == "http://192.168.1.20:8081/?token=abc123"
    assert build_share_url("::1", 8081, "t").startswith("http://[::1]:8081/")


def test_missing_netifaces_falls_back_to_route_probe(monkeypatch):
    monkeypatch.setitem(sys.modules, "netifaces", None)
    monkeypatch.setattr(network, "_route_probe_ip", lambda: "192.168.7.7")
    assert get_local_ip() == "192.168.7.7"

    monkeypatch.setattr(network, "_route_probe_ip", lambda: None)
    assert get_local_ip() == "localhost"
