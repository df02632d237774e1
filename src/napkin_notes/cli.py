"""Run an upload session from the terminal: show a QR code, save whatever the phone sends."""
import argparse
import asyncio
import contextlib
import logging
import signal
import sys
import webbrowser
from pathlib import Path
from typing import List, Optional

import qrcode
from dotenv import load_dotenv

from napkin_notes import config
from napkin_notes.errors import UploadServerError
from napkin_notes.server import UploadServer
from napkin_notes.storage import ImageStore
from napkin_notes.types import ConnectionInfo, ServerInfo, UploadEvent


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="napkin-notes",
        description="Receive photos from your phone over the local network.",
    )
    port_range = config.get_port_range()
    parser.add_argument("--port-start", type=int, default=port_range.start, help="first port to try")
    parser.add_argument("--port-end", type=int, default=port_range.end, help="last port to try")
    parser.add_argument("--host", default=config.get_bind_host(), help="interface to listen on")
    parser.add_argument(
        "--output-dir", type=Path, default=config.get_upload_dir(), help="where received photos are saved"
    )
    parser.add_argument(
        "--qr-file", type=Path, default=Path("upload_page_qr.png"), help="PNG to write the QR code to"
    )
    parser.add_argument(
        "--max-file-size",
        type=int,
        default=config.get_max_file_size() or 0,
        help="per-photo limit in bytes (0 for unlimited)",
    )
    parser.add_argument(
        "--idle-timeout",
        type=float,
        default=config.get_idle_timeout() or 0,
        help="stop after this many idle seconds (0 to run until Ctrl+C)",
    )
    parser.add_argument("--open-browser", action="store_true", help="also open the upload page locally")
    parser.add_argument("--show-config", action="store_true", help="print configuration and exit")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def show_qr(info: ServerInfo, qr_file: Optional[Path]) -> None:
    print(f"\nOpen on your phone: {info.url}\n")

    qr = qrcode.QRCode(border=1)
    qr.add_data(info.url)
    qr.make(fit=True)
    qr.print_ascii(invert=True)

    if qr_file is not None:
        img = qrcode.make(info.url)
        img.save(qr_file)
        print(f"Saved QR code: {qr_file.resolve()}")


async def serve(args: argparse.Namespace) -> int:
    store = ImageStore(args.output_dir)
    saved: List[Path] = []

    async def on_upload(event: UploadEvent) -> None:
        path = await asyncio.to_thread(store.save, event)
        saved.append(path)
        print(f"[INFO] Received {event.filename} -> {path}")

    def on_connect(info: ConnectionInfo) -> None:
        print(f"[INFO] Phone connected from {info.remote_address} ({info.user_agent or 'unknown browser'})")

    server = UploadServer(
        on_upload,
        on_connect,
        host=args.host,
        fallback_filename=config.get_fallback_filename(),
        max_file_size=args.max_file_size or None,
        idle_timeout=args.idle_timeout or None,
    )
    try:
        info = await server.start((args.port_start, args.port_end))
    except (UploadServerError, ValueError) as e:
        print(f"[ERROR] Failed to start upload server: {e}", file=sys.stderr)
        return 1

    show_qr(info, args.qr_file)
    if args.open_browser:
        try:
            webbrowser.open(info.url)
        except Exception:
            pass
    print("Press Ctrl+C to stop the server\n")

    stop_requested = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        # Not available on Windows; Ctrl+C then arrives as KeyboardInterrupt
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop_requested.set)

    waiters = [
        asyncio.ensure_future(stop_requested.wait()),
        asyncio.ensure_future(server.wait_closed()),
    ]
    try:
        await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for waiter in waiters:
            waiter.cancel()
        await server.stop()

    print(f"\nServer stopped. {len(saved)} photo(s) saved to {store.directory.resolve()}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    try:
        args = build_parser().parse_args(argv)
    except ValueError as e:
        print(f"[ERROR] Invalid configuration: {e}", file=sys.stderr)
        return 2

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.show_config:
        config.print_configuration()
        return 0

    try:
        return asyncio.run(serve(args))
    except KeyboardInterrupt:
        print("\n\nServer stopped.")
        return 130


if __name__ == "__main__":
    sys.exit(main())
