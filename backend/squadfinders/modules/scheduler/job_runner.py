import asyncio
import contextlib
import logging
import time
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, Optional

from squadfinders.models.models import JobStatus, utcnow
from squadfinders.utils.metrics import SCHEDULER_TICK_DURATION_HISTOGRAM, SCHEDULER_TICKS_COUNTER

logger = logging.getLogger(__name__)


class ScheduledJobRunner:
    """
    Ejecuta la corrutina 'target' cada 'interval_seconds' dentro del event loop.

    - start() idempotente: la primera corrida es inmediata.
    - Si un tick sigue en curso cuando toca el siguiente, el nuevo se salta.
    - Un tick que falla o excede tick_timeout se registra y no detiene el timer.
    - stop() cancela el timer y espera el tick en curso hasta shutdown_timeout.
    """
    def __init__(
        self,
        name: str,
        interval_seconds: float,
        target: Callable[[], Awaitable[Any]],
        tick_timeout: Optional[float] = None,
        shutdown_timeout: float = 10.0,
        clock: Callable[[], datetime] = utcnow,
    ):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds debe ser mayor que 0")
        self.name = name
        self.interval_seconds = float(interval_seconds)
        self.target = target
        self.tick_timeout = tick_timeout
        self.shutdown_timeout = shutdown_timeout
        self.clock = clock
        self._timer: Optional[asyncio.Task] = None
        self._current: Optional[asyncio.Task] = None
        self._running = False
        self._next_run: Optional[datetime] = None
        self._last_run: Optional[datetime] = None
        self._last_result: Any = None
        self._last_error: Optional[str] = None
        self.runs = 0
        self.failures = 0
        self.skipped = 0

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def busy(self) -> bool:
        return self._current is not None and not self._current.done()

    @property
    def next_run(self) -> Optional[datetime]:
        return self._next_run

    @property
    def last_run(self) -> Optional[datetime]:
        return self._last_run

    @property
    def last_result(self) -> Any:
        return self._last_result

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    def start(self) -> None:
        if self._running:
            logger.warning(f"⚠️ Job '{self.name}' ya está en ejecución")
            return
        self._running = True
        self._timer = asyncio.get_running_loop().create_task(self._loop(), name=f"job-timer:{self.name}")

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False

        if self._timer is not None:
            self._timer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._timer
        self._timer = None
        self._next_run = None

        current = self._current
        if current is not None and not current.done():
            logger.info(f"⏳ Esperando tick en curso de '{self.name}' (máx {self.shutdown_timeout}s)")
            try:
                await asyncio.wait_for(asyncio.shield(current), timeout=self.shutdown_timeout)
            except asyncio.TimeoutError:
                logger.warning(f"⚠️ Tick de '{self.name}' abandonado al detener")
                current.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await current
        logger.info(f"🛑 Job '{self.name}' detenido")

    async def run_now(self) -> Dict[str, Any]:
        """Disparo manual; respeta el mismo guard de ocupado que el timer."""
        task = self._fire()
        if task is None:
            return {"skipped": True, "reason": "busy"}
        await task
        return {"skipped": False, "result": self._last_result, "error": self._last_error}

    async def _loop(self) -> None:
        logger.info(f"🕒 Job '{self.name}' iniciado (cada {self.interval_seconds:g}s)")
        while True:
            self._fire()
            self._next_run = self.clock() + timedelta(seconds=self.interval_seconds)
            await asyncio.sleep(self.interval_seconds)

    def _fire(self) -> Optional[asyncio.Task]:
        if self.busy:
            self.skipped += 1
            SCHEDULER_TICKS_COUNTER.labels(job=self.name, outcome="skipped").inc()
            logger.warning(f"⏭️ Tick de '{self.name}' saltado: el anterior sigue en curso")
            return None
        self._current = asyncio.get_running_loop().create_task(self._execute(), name=f"job-tick:{self.name}")
        return self._current

    async def _execute(self) -> None:
        self._last_run = self.clock()
        started = time.monotonic()
        outcome = "ok"
        try:
            if self.tick_timeout:
                result = await asyncio.wait_for(self.target(), timeout=self.tick_timeout)
            else:
                result = await self.target()
            self._last_result = result
            self._last_error = None
        except asyncio.TimeoutError:
            outcome = "timeout"
            self.failures += 1
            self._last_error = f"Timeout tras {self.tick_timeout}s"
            logger.error(f"❌ Tick de '{self.name}' excedió {self.tick_timeout}s")
        except asyncio.CancelledError:
            outcome = "cancelled"
            raise
        except Exception as e:
            outcome = "error"
            self.failures += 1
            self._last_error = f"{type(e).__name__}: {e}"
            logger.exception(f"❌ Error ejecutando job '{self.name}': {e}")
        finally:
            self.runs += 1
            SCHEDULER_TICKS_COUNTER.labels(job=self.name, outcome=outcome).inc()
            SCHEDULER_TICK_DURATION_HISTOGRAM.labels(job=self.name).observe(time.monotonic() - started)

    def get_status(self) -> JobStatus:
        return JobStatus(
            name=self.name,
            isRunning=self._running,
            busy=self.busy,
            interval_seconds=self.interval_seconds,
            last_run=self._last_run,
            next_run=self._next_run,
            last_result=self._last_result,
            last_error=self._last_error,
            runs=self.runs,
            failures=self.failures,
            skipped=self.skipped,
        )
