import socket

import pytest

from helpers import LOCALHOST, grab_consecutive_ports


@pytest.fixture
def occupied_ports():
    held = []

    def grab(count):
        base, socks = grab_consecutive_ports(count)
        held.extend(socks)
        return base, socks

    yield grab
    for sock in held:
        sock.close()


@pytest.fixture
def free_port():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind((LOCALHOST, 0))
        return s.getsockname()[1]
