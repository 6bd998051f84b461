"""Command line interface: database setup and the HTTP server."""

from __future__ import annotations

import argparse
import signal
import socketserver
import sqlite3
import sys
import threading
from collections.abc import Sequence
from wsgiref.simple_server import WSGIRequestHandler, WSGIServer

from fasim.app import create_app
from fasim.db import Database
from fasim.entities import get_models

DEFAULT_DATABASE = "fasim.db"
DEFAULT_PORT = "8080"
REQUEST_TIMEOUT = 60.0
SHUTDOWN_TIMEOUT = 10.0

_DESCRIPTION = (
    "Factory Automation Simulator (Fasim) is a tool for simulating and\n"
    "optimizing manufacturing processes in factory automation systems."
)


class _RequestHandler(WSGIRequestHandler):
    timeout = REQUEST_TIMEOUT


class _Server(socketserver.ThreadingMixIn, WSGIServer):
    daemon_threads = True

    def server_bind(self) -> None:
        # Skip the reverse lookup of the bound address done by the base class.
        socketserver.TCPServer.server_bind(self)
        host, port = self.server_address[:2]
        self.server_name = str(host)
        self.server_port = port
        self.setup_environ()


def init_db(path: str = DEFAULT_DATABASE) -> None:
    """Create the database file if needed and set up every table."""
    try:
        database = Database(path)
    except sqlite3.Error as err:
        raise RuntimeError(f"failed to create database connection: {err}") from err
    with database:
        try:
            database.run_migrations(*get_models())
        except sqlite3.Error as err:
            raise RuntimeError(f"failed to run migrations: {err}") from err
    print("Database initialized successfully")


def migrate(path: str = DEFAULT_DATABASE) -> None:
    """Create any missing tables and indexes in the database."""
    with Database(path) as database:
        database.run_migrations(*get_models())


def _parse_port(port: str | int) -> int:
    try:
        number = int(port)
    except (TypeError, ValueError) as err:
        raise ValueError(f"invalid port {port!r}") from err
    if not 0 <= number <= 65535:
        raise ValueError(f"invalid port {port!r}")
    return number


def start_server(port: str | int = DEFAULT_PORT, path: str = DEFAULT_DATABASE) -> None:
    """Serve the API until SIGINT or SIGTERM, then shut down gracefully."""
    try:
        database = Database(path)
    except sqlite3.Error as err:
        raise RuntimeError(f"Failed to connect to database: {err}") from err

    with database:
        app = create_app(database)
        try:
            server = _Server(("0.0.0.0", _parse_port(port)), _RequestHandler)
        except (OSError, ValueError) as err:
            raise RuntimeError(f"Failed to start server: {err}") from err
        server.set_app(app)

        stop = threading.Event()

        def _request_stop(signum: int, frame: object) -> None:
            stop.set()

        previous = {
            signum: signal.signal(signum, _request_stop)
            for signum in (signal.SIGINT, signal.SIGTERM)
        }
        worker = threading.Thread(
            target=server.serve_forever, kwargs={"poll_interval": 0.2}, daemon=True
        )
        try:
            worker.start()
            stop.wait()
            server.shutdown()
            worker.join(SHUTDOWN_TIMEOUT)
            if worker.is_alive():
                raise RuntimeError("Failed to shutdown server: timed out")
        finally:
            server.server_close()
            for signum, handler in previous.items():
                signal.signal(signum, handler)

    print("Server shutdown successfully", file=sys.stderr)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fasim",
        description=_DESCRIPTION,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    commands = parser.add_subparsers(dest="command", metavar="command")

    init_cmd = commands.add_parser(
        "init-db",
        help="Initialize the database",
        description=(
            "Initialize the SQLite database with required tables.\n"
            "This command will create a new database file if it doesn't exist\n"
            "and run all necessary migrations to set up the schema."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    init_cmd.set_defaults(run=lambda args: init_db(DEFAULT_DATABASE))

    migrate_cmd = commands.add_parser(
        "migrate",
        help="Run database migrations",
        description="Execute database migration files in the migrations directory",
    )
    migrate_cmd.set_defaults(run=lambda args: migrate(DEFAULT_DATABASE))

    server_cmd = commands.add_parser(
        "server",
        help="Start the Fasim server",
        description="Start the Factory Automation Simulator server to handle API requests.",
    )
    server_cmd.add_argument(
        "-p", "--port", default=DEFAULT_PORT, help="Port to run the server on"
    )
    server_cmd.set_defaults(run=lambda args: start_server(args.port, DEFAULT_DATABASE))
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run the command named in ``argv``; return the process exit status."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return 0
    try:
        args.run(args)
    except (RuntimeError, ValueError, OSError, sqlite3.Error) as err:
        print(err, file=sys.stderr)
        return 1
    return 0