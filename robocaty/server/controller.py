"""
Lifecycle controller for the RoboCaty bridge.
"""

import atexit
import logging
import sys
import threading
from typing import TextIO

import psutil  # type: ignore[import-untyped]

from robocaty.backends.base import SourceSystem, TargetSystem
from robocaty.config import BridgeConfig
from robocaty.errors import BackendConnectionError
from robocaty.mapping import MappingTable
from robocaty.server.async_logging import AsyncLogHandler
from robocaty.server.engine import SynchronizationEngine
from robocaty.server.reporter import Reporter, StatusScreen
from robocaty.server.state import EngineState, LifecycleState

logger = logging.getLogger("robocaty.server.controller")

WORKER_THREAD_NAME = "RoboCatyWorker"


class LifecycleController:
    """
    Owns the source/target connections and the cycle worker thread.

    States: STARTING -> RUNNING -> STOP_REQUESTED -> DRAINING -> STOPPED.

    - start() connects both sides (failure is fatal, nothing keeps running)
      and launches the worker.
    - request_stop() triggers the stop token; safe from any thread and from
      signal handlers.
    - shutdown() is the single cleanup path for every exit route: it waits
      for the in-flight cycle up to the grace period, then releases the
      connections exactly once.
    """

    def __init__(
        self,
        config: BridgeConfig,
        table: MappingTable,
        source: SourceSystem,
        target: TargetSystem,
        stream: TextIO | None = None,
        status_screen: StatusScreen | None = None,
    ):
        """
        Initialize the controller.

        Args:
            config: Runtime configuration
            table: Parsed mapping table
            source: ADS side adapter (not yet connected)
            target: Robot side adapter (not yet connected)
            stream: Operator output stream for the dashboard (default stdout)
            status_screen: Callback that prints the home screen
        """
        self.config = config
        self.table = table
        self.source = source
        self.target = target
        self.state = EngineState(dashboard_enabled=config.dashboard)
        self.engine = SynchronizationEngine(
            table,
            source,
            target,
            self.state,
            interval_s=config.cycle_interval_s,
            quantum_s=config.stop_quantum_s,
        )
        self.reporter = Reporter(
            self.state,
            stream=stream,
            redraw_interval_s=config.display_interval_s,
            cycle_time_ms=config.cycle_time_ms,
            status_screen=status_screen,
        )

        self._lifecycle = LifecycleState.STARTING
        self._lifecycle_lock = threading.RLock()
        self._shutdown_lock = threading.RLock()
        self._release_lock = threading.Lock()
        self._released = False
        self._connected: list[SourceSystem | TargetSystem] = []
        self._worker: threading.Thread | None = None
        self._worker_done = threading.Event()
        self._worker_error: BaseException | None = None
        self._async_log = AsyncLogHandler()
        self.release_count = 0

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def lifecycle(self) -> LifecycleState:
        with self._lifecycle_lock:
            return self._lifecycle

    def _transition(self, new: LifecycleState) -> None:
        with self._lifecycle_lock:
            old = self._lifecycle
            self._lifecycle = new
        if old is not new:
            logger.debug("Lifecycle %s -> %s", old.name, new.name)

    @property
    def worker_error(self) -> BaseException | None:
        """Exception that terminated the worker thread, if any."""
        return self._worker_error

    def is_running(self) -> bool:
        return self.lifecycle is LifecycleState.RUNNING

    # ------------------------------------------------------------------
    # Start
    # ------------------------------------------------------------------

    def start(self) -> None:
        """
        Connect both sides and start the cycle worker.

        Raises:
            BackendConnectionError: if either side cannot be connected
            RuntimeError: if called more than once
        """
        if self.lifecycle is not LifecycleState.STARTING:
            raise RuntimeError(f"Controller cannot start from state {self.lifecycle.name}")

        try:
            self._connect(self.target)
            self._connect(self.source)
        except BackendConnectionError:
            self.release_connections()
            self._transition(LifecycleState.STOPPED)
            raise

        if self.config.high_priority:
            self._set_high_priority()

        # Move log I/O off the worker thread
        self._async_log.start()
        atexit.register(self.shutdown)

        self._worker = threading.Thread(
            target=self._worker_main, name=WORKER_THREAD_NAME, daemon=True
        )
        self._transition(LifecycleState.RUNNING)
        self._worker.start()
        logger.info("Bridge running (%d directives)", len(self.table))

    def _connect(self, backend: SourceSystem | TargetSystem) -> None:
        try:
            backend.connect()
        except BackendConnectionError:
            raise
        except Exception as e:
            raise BackendConnectionError(
                f"Could not connect to {backend.describe()}: {e}"
            ) from e
        self._connected.append(backend)
        logger.info("Connected: %s", backend.describe())

    def _worker_main(self) -> None:
        try:
            self.engine.run(on_report=self.reporter.submit)
        except Exception as e:
            self._worker_error = e
            logger.critical(f"Critical worker error: {e}", exc_info=True)
        finally:
            self._worker_done.set()
            # A worker that ends on its own must also end the operator loop
            self.request_stop()

    # ------------------------------------------------------------------
    # Operator actions
    # ------------------------------------------------------------------

    def request_stop(self) -> bool:
        """Trigger the stop token. Returns True only for the first request."""
        first = self.state.request_stop()
        with self._lifecycle_lock:
            if self._lifecycle is LifecycleState.RUNNING:
                self._lifecycle = LifecycleState.STOP_REQUESTED
        if first:
            logger.info("Stop requested")
        return first

    def toggle_dashboard(self) -> bool:
        """Flip the live dashboard on/off; returns the new setting."""
        enabled = self.state.toggle_dashboard()
        if not enabled:
            self.reporter.hide()
        logger.debug("Dashboard %s", "enabled" if enabled else "disabled")
        return enabled

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the worker has finished; True if it did."""
        return self._worker_done.wait(timeout)

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    def shutdown(self, grace_s: float | None = None) -> bool:
        """
        Stop the worker and release both connections.

        Waits for the in-flight cycle to finish, but no longer than the grace
        period. Safe to call repeatedly and concurrently.

        Returns:
            True if the worker finished within the grace period (or never ran)
        """
        grace = self.config.grace_s if grace_s is None else grace_s
        self.request_stop()
        with self._shutdown_lock:
            if self.lifecycle is LifecycleState.STOPPED:
                return True
            self._transition(LifecycleState.DRAINING)

            drained = True
            worker = self._worker
            if worker is not None and worker is not threading.current_thread():
                drained = self._worker_done.wait(grace)
                if not drained:
                    logger.warning(
                        "Worker did not finish within %.1f s; releasing connections anyway",
                        grace,
                    )

            self.release_connections()
            self._async_log.stop()
            self._transition(LifecycleState.STOPPED)
            atexit.unregister(self.shutdown)
            logger.info("Bridge stopped")
            return drained

    def release_connections(self) -> bool:
        """Close connections in reverse connect order, exactly once.

        Returns:
            False if the connections were already released
        """
        with self._release_lock:
            if self._released:
                return False
            self._released = True
            to_close, self._connected = list(reversed(self._connected)), []
            self.release_count += 1

        for backend in to_close:
            try:
                backend.close()
            except Exception as e:
                logger.warning(f"Error closing {backend.describe()}: {e}")
        return True

    def _set_high_priority(self) -> None:
        """Raise process priority where the OS allows it."""
        try:
            p = psutil.Process()
            if sys.platform == "win32":
                p.nice(psutil.HIGH_PRIORITY_CLASS)
                logger.info("Set process priority to HIGH_PRIORITY_CLASS")
            else:
                try:
                    p.nice(-10)
                    logger.info("Set process nice value to -10")
                except psutil.AccessDenied:
                    logger.debug("Cannot set negative nice value without privileges")
        except Exception as e:
            logger.warning(f"Failed to set process priority: {e}")
