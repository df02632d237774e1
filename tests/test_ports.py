import pytest

from napkin_notes.errors import InvalidPortRangeError
from napkin_notes.server.ports import bind_listening_socket, find_available_port, is_port_available
from napkin_notes.types import PortRange

from helpers import LOCALHOST


def test_returns_only_free_port_in_middle_of_range(occupied_ports):
    base, socks = occupied_ports(5)
    # free exactly the middle port
    socks[2].close()
    free = base + 2

    assert find_available_port(PortRange(base, base + 4), host=LOCALHOST) == free


def test_exhausted_range_returns_none_after_probing_every_port(occupied_ports):
    base, _ = occupied_ports(4)
    probed = []

    def probe(port, host):
        probed.append(port)
        return is_port_available(port, host)

    assert find_available_port((base, base + 3), host=LOCALHOST, probe=probe) is None
    assert probed == [base, base + 1, base + 2, base + 3]


def test_scan_is_ascending_and_stops_at_first_success():
    probed = []

    def probe(port, host):
        probed.append(port)
        return port >= 9003

    assert find_available_port((9000, 9010), probe=probe) == 9003
    assert probed == [9000, 9001, 9002, 9003]


def test_probe_releases_port(free_port):
    assert is_port_available(free_port, LOCALHOST)
    # the probe must not leave anything bound behind
    sock = bind_listening_socket(LOCALHOST, free_port)
    try:
        assert not is_port_available(free_port, LOCALHOST)
    finally:
        sock.close()
    assert is_port_available(free_port, LOCALHOST)


def test_bind_listening_socket_is_non_blocking(free_port):
    sock = bind_listening_socket(LOCALHOST, free_port)
    try:
        assert sock.getblocking() is False
        assert sock.getsockname()[1] == free_port
    finally:
        sock.close()


@pytest.mark.parametrize(
    "value",
    [(10, 5), (0, 10), (1, 70000), ("80", 90), (True, 5), (8080,), None],
)
def test_invalid_port_ranges_rejected(value):
    with pytest.raises(InvalidPortRangeError):
        PortRange.coerce(value)


def test_port_range_coerce_and_len():
    port_range = PortRange.coerce([8080, 8090])
    assert port_range == PortRange(8080, 8090)
    assert len(port_range) == 11
    assert str(port_range) == "8080-8090"
    assert PortRange.coerce(port_range) is port_range
    # InvalidPortRangeError doubles as a ValueError for callers validating settings
    with pytest.raises(ValueError):
        PortRange(5, 4)
