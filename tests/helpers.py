import socket

LOCALHOST = "127.0.0.1"


def _occupy(port):
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        sock.bind((LOCALHOST, port))
        sock.listen(1)
    except OSError:
        sock.close()
        raise
    return sock


def grab_consecutive_ports(count, first=20000, last=60000):
    """Listen on ``count`` consecutive localhost ports; returns (first_port, sockets)."""
    for base in range(first, last, count + 3):
        held = []
        try:
            for port in range(base, base + count):
                held.append(_occupy(port))
        except OSError:
            for sock in held:
                sock.close()
            continue
        return base, held
    raise RuntimeError("could not find a free block of ports")


def multipart_body(files, boundary="napkinboundary", fields=()):
    """Encode (filename, payload) pairs as a multipart/form-data body."""
    chunks = []
    for name, value in fields:
        chunks.append(
            f"--{boundary}\r\nContent-Disposition: form-data; name=\"{name}\"\r\n\r\n".encode()
            + value
            + b"\r\n"
        )
    for filename, payload in files:
        chunks.append(file_part(filename, payload, boundary))
    chunks.append(f"--{boundary}--\r\n".encode())
    return b"".join(chunks)


def file_part(filename, payload, boundary="napkinboundary"):
    return (
        (
            f"--{boundary}\r\n"
            f"Content-Disposition: form-data; name=\"image\"; filename=\"{filename}\"\r\n"
            f"Content-Type: application/octet-stream\r\n\r\n"
        ).encode()
        + payload
        + b"\r\n"
    )
