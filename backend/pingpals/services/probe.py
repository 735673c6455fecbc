"""Probes - a single HTTP request or ICMP echo against a service target."""
import asyncio
import re
import ssl
import time
from dataclasses import dataclass
from typing import Optional

import httpx

from ..exceptions import ServiceTypeError
from ..schemas import ServiceConfig

USER_AGENT = "PingPals-Monitor/1.0"

# Error classifications recorded alongside the message
ERROR_TIMEOUT = "timeout"
ERROR_TLS = "tls"
ERROR_CONNECTION = "connection"
ERROR_HTTP_STATUS = "http_status"
ERROR_UNREACHABLE = "unreachable"
ERROR_MALFORMED = "malformed"
ERROR_PERMISSION = "permission"
ERROR_UNKNOWN = "unknown"

_TLS_MARKERS = ("ssl", "tls", "cert")


@dataclass
class ProbeResult:
    """Outcome of one probe attempt."""
    success: bool
    duration_ms: int
    error: Optional[str] = None
    error_kind: Optional[str] = None


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


def _is_tls_error(exc: BaseException) -> bool:
    """Check the exception chain for an SSL failure."""
    while exc is not None:
        if isinstance(exc, ssl.SSLError):
            return True
        if any(marker in str(exc).lower() for marker in _TLS_MARKERS):
            return True
        exc = exc.__cause__ or exc.__context__
    return False


class HttpProbe:
    """Performs one GET request. Any 2xx final status counts as up."""

    service_type = "http"

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        # transport is injectable so tests can use httpx.MockTransport
        self._transport = transport

    async def probe(self, config: ServiceConfig, timeout_ms: int) -> ProbeResult:
        if config.type != self.service_type:
            raise ServiceTypeError(self.service_type, config.type)

        start = time.perf_counter()
        try:
            async with httpx.AsyncClient(
                timeout=timeout_ms / 1000,
                follow_redirects=True,
                transport=self._transport,
                headers={"User-Agent": USER_AGENT},
            ) as client:
                response = await client.get(config.url)
            duration = _elapsed_ms(start)
        except httpx.TimeoutException:
            return ProbeResult(False, _elapsed_ms(start), "Request timed out", ERROR_TIMEOUT)
        except httpx.ConnectError as e:
            if _is_tls_error(e):
                return ProbeResult(False, _elapsed_ms(start), f"TLS connection failed: {e}", ERROR_TLS)
            return ProbeResult(False, _elapsed_ms(start), f"Connection error: {e}", ERROR_CONNECTION)
        except (httpx.DecodingError, httpx.RemoteProtocolError) as e:
            return ProbeResult(False, _elapsed_ms(start), f"Malformed response: {e}", ERROR_MALFORMED)
        except httpx.HTTPError as e:
            if _is_tls_error(e):
                return ProbeResult(False, _elapsed_ms(start), f"TLS connection failed: {e}", ERROR_TLS)
            return ProbeResult(False, _elapsed_ms(start), str(e) or type(e).__name__, ERROR_CONNECTION)

        if not response.is_success:
            return ProbeResult(
                False,
                duration,
                f"HTTP {response.status_code}: {response.reason_phrase}",
                ERROR_HTTP_STATUS,
            )
        return ProbeResult(True, duration)


class IcmpProbe:
    """Sends one echo request through the system ping command."""

    service_type = "icmp"

    # Example line: "64 bytes from 8.8.8.8: icmp_seq=1 ttl=117 time=14.2 ms"
    _time_pattern = re.compile(r"time=(\d+(?:\.\d+)?)\s*ms")

    def __init__(self, ping_binary: str = "ping"):
        self.ping_binary = ping_binary

    async def probe(self, config: ServiceConfig, timeout_ms: int) -> ProbeResult:
        if config.type != self.service_type:
            raise ServiceTypeError(self.service_type, config.type)

        # -c 1: single echo, -W: reply wait in whole seconds
        wait_seconds = max(1, round(timeout_ms / 1000))
        start = time.perf_counter()
        try:
            proc = await asyncio.create_subprocess_exec(
                self.ping_binary, "-c", "1", "-W", str(wait_seconds), config.host,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            return ProbeResult(False, 0, f"{self.ping_binary} command not available", ERROR_UNKNOWN)

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout_ms / 1000)
        except asyncio.TimeoutError:
            return ProbeResult(False, _elapsed_ms(start), "Timeout", ERROR_TIMEOUT)
        finally:
            # Also reached when the caller cancels the check
            if proc.returncode is None:
                try:
                    proc.kill()
                except ProcessLookupError:
                    pass
                await proc.wait()

        wall_ms = _elapsed_ms(start)
        output = stdout.decode(errors="replace")
        error_output = stderr.decode(errors="replace").strip()

        if proc.returncode == 0:
            match = self._time_pattern.search(output)
            duration = int(float(match.group(1))) if match else wall_ms
            return ProbeResult(True, duration)

        if "permission denied" in error_output.lower() or "operation not permitted" in error_output.lower():
            return ProbeResult(
                False,
                wall_ms,
                "Permission denied for ICMP check. Configure ping privileges.",
                ERROR_PERMISSION,
            )
        return ProbeResult(False, wall_ms, error_output or "Host unreachable", ERROR_UNREACHABLE)
