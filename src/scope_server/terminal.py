"""Interactive SCPI terminal for manual testing and debugging."""

from __future__ import annotations

import argparse
import shlex
import socket
from dataclasses import dataclass
from typing import List, Optional

DEFAULT_PORT = 5025


class TerminalError(RuntimeError):
    pass


class CommandError(RuntimeError):
    pass


@dataclass
class CommandResult:
    lines: List[str]
    exit: bool = False


@dataclass
class ConnectionInfo:
    host: str
    port: int


class _CommandParser(argparse.ArgumentParser):
    def __init__(self, prog: str) -> None:
        super().__init__(prog=prog, add_help=False)

    def error(self, message: str) -> None:  # type: ignore[override]
        raise CommandError(message)

    def exit(self, status: int = 0, message: Optional[str] = None) -> None:  # type: ignore[override]
        if message:
            raise CommandError(message)
        raise CommandError()


class ScpiTerminal:
    """Line-oriented client for the control-plane socket.

    Local commands are lower case; everything else is sent verbatim and, for
    queries (lines containing ``?``), one reply line is read back.
    """

    def __init__(self, *, auto_read: bool = True, io_timeout: float = 2.0) -> None:
        self._auto_read = auto_read
        self._io_timeout = max(0.1, io_timeout)
        self._sock: Optional[socket.socket] = None
        self._connection: Optional[ConnectionInfo] = None
        self._pending = bytearray()

    @property
    def prompt(self) -> str:
        if self._connection is None:
            return "scpi> "
        info = self._connection
        return f"scpi({info.host}:{info.port})> "

    def close(self) -> None:
        if self._sock is not None:
            try:
                self._sock.close()
            finally:
                self._sock = None
        self._connection = None
        self._pending.clear()

    def execute(self, line: str) -> CommandResult:
        line = line.strip()
        if not line:
            return CommandResult([])
        tokens = shlex.split(line)
        if not tokens:
            return CommandResult([])
        command = tokens[0]
        args = tokens[1:]
        if command == "quit":
            return CommandResult(["Bye."], exit=True)
        handler = {
            "connect": self._cmd_connect,
            "disconnect": self._cmd_disconnect,
            "read": self._cmd_read,
            "status": self._cmd_status,
            "help": self._cmd_help,
            "?": self._cmd_help,
        }.get(command)
        try:
            if handler is not None:
                return CommandResult(handler(args))
            return CommandResult(self._send_and_receive(line))
        except CommandError as exc:
            return CommandResult([f"Command error: {exc}"])
        except TerminalError as exc:
            return CommandResult([str(exc)])

    def _cmd_help(self, _: List[str]) -> List[str]:
        return [
            "Commands:",
            "  connect <host> [--port N]",
            "  disconnect",
            "  read",
            "  status",
            "  help",
            "  ?",
            "  quit",
            "Other lines are sent to the server; queries (containing '?') read one reply.",
        ]

    def _cmd_connect(self, args: List[str]) -> List[str]:
        parser = _CommandParser("connect")
        parser.add_argument("host")
        parser.add_argument("--port", type=int, default=DEFAULT_PORT)
        parsed = parser.parse_args(args)
        self._connect(parsed.host, parsed.port)
        info = self._connection
        if info is None:
            raise TerminalError("Connection failed")
        return [f"Connected to {info.host}:{info.port}"]

    def _cmd_disconnect(self, _: List[str]) -> List[str]:
        if self._connection is None:
            return ["Not connected."]
        self.close()
        return ["Disconnected."]

    def _cmd_read(self, _: List[str]) -> List[str]:
        self._require_connection()
        return [self._format_read(self._read_line())]

    def _cmd_status(self, _: List[str]) -> List[str]:
        if self._connection is None:
            return ["Not connected."]
        info = self._connection
        return [
            f"Host: {info.host}:{info.port}",
            f"Timeout: {self._io_timeout}s",
        ]

    def _send_and_receive(self, payload: str) -> List[str]:
        self._require_connection()
        assert self._sock is not None
        data = payload.encode("ascii", errors="replace") + b"\n"
        try:
            self._sock.sendall(data)
        except OSError as exc:
            self.close()
            raise TerminalError(f"Write failed: {exc}") from exc
        lines = [f"[write] {len(data)} bytes"]
        if self._auto_read and "?" in payload:
            lines.append(self._format_read(self._read_line()))
        return lines

    def _read_line(self) -> Optional[str]:
        assert self._sock is not None
        while b"\n" not in self._pending:
            try:
                chunk = self._sock.recv(4096)
            except socket.timeout:
                return None
            except OSError as exc:
                self.close()
                raise TerminalError(f"Read failed: {exc}") from exc
            if not chunk:
                self.close()
                raise TerminalError("Connection closed by server.")
            self._pending += chunk
        raw, _, rest = bytes(self._pending).partition(b"\n")
        self._pending = bytearray(rest)
        return raw.decode("ascii", errors="replace")

    def _connect(self, host: str, port: int) -> None:
        self.close()
        try:
            sock = socket.create_connection((host, port), timeout=self._io_timeout)
        except OSError as exc:
            raise TerminalError(f"Failed to contact {host}:{port}: {exc}") from exc
        sock.settimeout(self._io_timeout)
        self._sock = sock
        self._connection = ConnectionInfo(host=host, port=port)

    def _require_connection(self) -> None:
        if self._connection is None or self._sock is None:
            raise TerminalError("Not connected. Use 'connect <host>' first.")

    @staticmethod
    def _format_read(text: Optional[str]) -> str:
        if text is None:
            return "[read] timeout"
        return f"[read] {text}"


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Interactive SCPI terminal")
    parser.add_argument("--host")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT)
    parser.add_argument("--timeout", type=float, default=2.0)
    parser.add_argument("--no-auto-read", action="store_true")
    ns = parser.parse_args(argv)

    terminal = ScpiTerminal(auto_read=not ns.no_auto_read, io_timeout=ns.timeout)
    try:
        if ns.host:
            try:
                terminal._connect(ns.host, ns.port)
                for line in terminal._cmd_status([]):
                    print(line)
            except TerminalError as exc:
                print(exc)
        while True:
            try:
                line = input(terminal.prompt)
            except EOFError:
                print()
                break
            except KeyboardInterrupt:
                print()
                break
            result = terminal.execute(line)
            for out_line in result.lines:
                print(out_line)
            if result.exit:
                break
        return 0
    finally:
        terminal.close()


if __name__ == "__main__":
    raise SystemExit(main())
