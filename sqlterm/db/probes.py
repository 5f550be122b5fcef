"""Network probes used by the connection test."""

import logging
import shutil
import socket
import subprocess
import sys
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class ProbeResult:
    """Outcome of a single probe."""
    ok: bool
    message: str
    elapsed_ms: float = 0.0


def _ping_command(host: str, timeout: float) -> list:
    seconds = max(1, int(round(timeout)))
    if sys.platform.startswith("win"):
        return ["ping", "-n", "1", "-w", str(seconds * 1000), host]
    return ["ping", "-c", "1", "-W", str(seconds), host]


def ping_host(host: str, timeout: float = 3.0) -> ProbeResult:
    """ICMP-style reachability check.

    Uses the system ``ping`` when available. Without it, a TCP connection
    attempt to the echo port stands in: an answer of any kind, including a
    refusal, means the host is up.
    """
    try:
        socket.getaddrinfo(host, None)
    except socket.gaierror as e:
        return ProbeResult(False, f"Cannot resolve host '{host}': {e}")

    ping = shutil.which("ping")
    if ping:
        try:
            completed = subprocess.run(
                _ping_command(host, timeout),
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                timeout=timeout + 2,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.debug(f"ping failed for {host}: {e}")
            return ProbeResult(False, f"Host '{host}' did not answer ping")
        if completed.returncode == 0:
            return ProbeResult(True, f"Host '{host}' answered ping")
        return ProbeResult(False, f"Host '{host}' did not answer ping")

    try:
        with socket.create_connection((host, 7), timeout=timeout):
            return ProbeResult(True, f"Host '{host}' is reachable")
    except ConnectionRefusedError:
        return ProbeResult(True, f"Host '{host}' is reachable")
    except OSError as e:
        return ProbeResult(False, f"Host '{host}' is unreachable: {e}")


def probe_port(host: str, port: Optional[int], timeout: float = 3.0) -> ProbeResult:
    """Check that a TCP connection to ``host:port`` can be opened."""
    if port is None:
        return ProbeResult(False, "No port configured")
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return ProbeResult(True, f"Port {port} is open on '{host}'")
    except socket.timeout:
        return ProbeResult(False, f"Port {port} on '{host}' timed out (filtered?)")
    except OSError as e:
        return ProbeResult(False, f"Port {port} on '{host}' is closed: {e}")
