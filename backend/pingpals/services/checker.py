"""Checker service - wraps probes with a timeout and bounded retry."""
import asyncio
import logging
import time
from typing import Dict, Optional

from ..exceptions import ServiceTypeError
from ..schemas import MonitoringResult, ServiceConfig
from ..utils.clock import now_ms
from .probe import ERROR_TIMEOUT, HttpProbe, IcmpProbe, ProbeResult

logger = logging.getLogger(__name__)


class CheckExecutor:
    """Runs a full check for a service: up to retry_attempts probes.

    execute() never raises. Every failure, including a config handed to the
    wrong probe type, ends up in MonitoringResult.error.

    The reported duration is the latency of the attempt that decided the
    outcome. Time spent sleeping between retries is not included.
    """

    def __init__(
        self,
        retry_attempts: int = 3,
        retry_delay_ms: int = 1000,
        default_timeout_ms: int = 30000,
        probes: Optional[Dict[str, object]] = None,
    ):
        self.retry_attempts = max(1, retry_attempts)
        self.retry_delay_ms = retry_delay_ms
        self.default_timeout_ms = default_timeout_ms
        self.probes = probes or {"http": HttpProbe(), "icmp": IcmpProbe()}

    async def execute(self, config: ServiceConfig) -> MonitoringResult:
        """Check a service and return the result of its final attempt."""
        logger.debug(f"Checking service {config.name} ({config.id})")

        try:
            outcome = await self._run_attempts(config)
        except ServiceTypeError as e:
            logger.error(f"Misconfigured service {config.id}: {e}")
            outcome = ProbeResult(False, 0, str(e))
        except Exception as e:
            logger.exception(f"Unexpected error checking service {config.id}")
            outcome = ProbeResult(False, 0, str(e) or type(e).__name__)

        if outcome.success:
            logger.info(f"Service {config.name} ({config.id}) is UP ({outcome.duration_ms}ms)")
        else:
            logger.warning(f"Service {config.name} ({config.id}) is DOWN: {outcome.error}")

        return MonitoringResult(
            service_id=config.id,
            timestamp=now_ms(),
            success=outcome.success,
            duration=outcome.duration_ms,
            error=None if outcome.success else (outcome.error or "Unknown error"),
        )

    async def _run_attempts(self, config: ServiceConfig) -> ProbeResult:
        probe = self.probes.get(config.type)
        if probe is None:
            raise ServiceTypeError("http or icmp", config.type)

        timeout_ms = config.timeout or self.default_timeout_ms
        outcome = ProbeResult(False, 0, "No attempts made")

        for attempt in range(1, self.retry_attempts + 1):
            outcome = await self._attempt(probe, config, timeout_ms)
            if outcome.success:
                return outcome

            logger.debug(
                f"Attempt {attempt}/{self.retry_attempts} failed for service {config.id}: {outcome.error}"
            )
            if attempt < self.retry_attempts:
                await asyncio.sleep(self.retry_delay_ms / 1000)

        return outcome

    async def _attempt(self, probe, config: ServiceConfig, timeout_ms: int) -> ProbeResult:
        """One probe, hard-bounded by the service timeout."""
        start = time.perf_counter()
        try:
            return await asyncio.wait_for(probe.probe(config, timeout_ms), timeout=timeout_ms / 1000)
        except asyncio.TimeoutError:
            duration = int((time.perf_counter() - start) * 1000)
            return ProbeResult(False, duration, "Request timed out", ERROR_TIMEOUT)
