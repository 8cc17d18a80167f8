"""Telnet control client for the Liquidsoap audio engine.

Only used to request "skip to next track now". Commands are fire-and-forget:
the acknowledgement is read and discarded, never validated, so a skip that
fails inside the audio engine looks the same as one that succeeded. Callers
get at-most-once, unconfirmed delivery; the boundary watcher re-evaluates on
its next tick if the divergence persists.
"""

import socket
import time
from typing import Callable, Optional

from loguru import logger

from rotaplay.core.config import LiquidsoapConfig

SKIP_COMMAND = "stream.skip"
QUIT_COMMAND = "quit"
LINE_ENDING = "\r\n"


class LiquidsoapClient:
    """One-shot connections to the Liquidsoap telnet server."""

    def __init__(
        self,
        host: str = "localhost",
        port: int = 1234,
        timeout: float = 3.0,
        banner_grace: float = 0.1,
        ack_wait: float = 0.2,
        connect: Optional[Callable[..., socket.socket]] = None,
    ) -> None:
        self.host = host
        self.port = port
        self.timeout = timeout
        self.banner_grace = banner_grace
        self.ack_wait = ack_wait
        self._connect = connect or socket.create_connection

    @classmethod
    def from_config(cls, config: LiquidsoapConfig) -> "LiquidsoapClient":
        return cls(
            host=config.host,
            port=config.port,
            timeout=config.timeout,
            banner_grace=config.banner_grace,
            ack_wait=config.ack_wait,
        )

    def _drain(self, sock: socket.socket, period: float) -> bytes:
        """Read and return whatever arrives within `period` seconds."""
        received = b""
        deadline = time.monotonic() + period
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            sock.settimeout(remaining)
            try:
                chunk = sock.recv(1024)
            except socket.timeout:
                break
            if not chunk:
                break
            received += chunk
        return received

    def _send_line(self, sock: socket.socket, line: str) -> None:
        sock.settimeout(self.timeout)
        sock.sendall((line + LINE_ENDING).encode("utf-8"))

    def send_command(self, command: str) -> bool:
        """
        Send one command, then quit.

        Args:
            command: Telnet command (e.g., 'stream.skip')

        Returns:
            True if the command was written, False on connection failure
        """
        try:
            sock = self._connect((self.host, self.port), timeout=self.timeout)
        except socket.timeout:
            logger.warning(
                f"Cannot connect to Liquidsoap at {self.host}:{self.port} (timeout)"
            )
            return False
        except OSError as e:
            logger.warning(f"Cannot connect to Liquidsoap at {self.host}:{self.port} ({e})")
            return False

        try:
            # The server greets with a banner that is not a command response
            banner = self._drain(sock, self.banner_grace)
            if banner:
                logger.debug(f"Discarded Liquidsoap banner ({len(banner)} bytes)")

            self._send_line(sock, command)
            ack = self._drain(sock, self.ack_wait)
            logger.debug(f"Liquidsoap ack for {command!r}: {ack[:80]!r}")

            self._send_line(sock, QUIT_COMMAND)
            return True
        except OSError as e:
            logger.warning(f"Liquidsoap command {command!r} failed: {e}")
            return False
        finally:
            sock.close()

    def skip(self) -> bool:
        """Ask the audio engine to skip to the next track now."""
        return self.send_command(SKIP_COMMAND)


def send_skip(config: Optional[LiquidsoapConfig] = None) -> bool:
    """Send a single skip using the given (or default) configuration."""
    return LiquidsoapClient.from_config(config or LiquidsoapConfig()).skip()
