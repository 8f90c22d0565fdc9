"""Periodic push scheduler."""
from enum import Enum
from typing import Callable, Optional
import logging
import threading

from prometheus_client import CollectorRegistry, REGISTRY

from pushagent.collector import RuntimeCollector, initialize_default_exports, register_build_info
from pushagent.config import AgentConfig
from pushagent.errors import AgentError, DeliveryFailure, SchedulingInterrupted, SetupFailure
from pushagent.gateway import PushGatewayClient
from pushagent.labels import LabelSet, ProcessIdentity

logger = logging.getLogger(__name__)

# Sleep multiplier applied after a failed delivery
BACKOFF_FACTOR = 3

ExitHandler = Callable[[int, str], None]


class SchedulerState(Enum):
    INITIALIZING = "initializing"
    RUNNING = "running"
    EXITED = "exited"


class Sleeper:
    """Interruptible sleep primitive."""

    def __init__(self):
        self._interrupted = threading.Event()

    def sleep(self, seconds: float):
        """Sleep for seconds; raises InterruptedError if interrupt() is called meanwhile."""
        if self._interrupted.wait(seconds):
            self._interrupted.clear()
            raise InterruptedError("sleep interrupted")

    def interrupt(self):
        self._interrupted.set()


class PushScheduler:
    """Pushes the registry to the gateway every interval, forever."""

    def __init__(
        self,
        config: AgentConfig,
        identity: ProcessIdentity,
        labels: LabelSet,
        registry: CollectorRegistry = REGISTRY,
        gateway: Optional[PushGatewayClient] = None,
        sleeper: Optional[Sleeper] = None,
        collector_factory: Callable[[str, LabelSet], RuntimeCollector] = RuntimeCollector,
    ):
        self.config = config
        self.identity = identity
        self.labels = labels
        self.registry = registry
        self.gateway = gateway
        self.sleeper = sleeper or Sleeper()
        self.collector_factory = collector_factory

        self.state = SchedulerState.INITIALIZING
        self.exit_code: Optional[int] = None
        self.push_count = 0
        self.failure_count = 0
        self.thread: Optional[threading.Thread] = None

    @property
    def job_name(self) -> str:
        return self.identity.job_name

    def setup(self):
        """Register collectors and build the gateway client."""
        try:
            register_build_info(self.registry)
            self.registry.register(self.collector_factory(self.config.config_file, self.labels))
            initialize_default_exports(self.registry)
            if self.gateway is None:
                self.gateway = PushGatewayClient(self.config.address())
        except Exception as e:
            raise SetupFailure(e) from e

        logger.info(
            f"Pushing to {self.config.address()} as job '{self.job_name}' "
            f"every {self.config.interval}s"
        )

    def push_once(self) -> bool:
        """Push the registry once. Returns False if delivery failed."""
        try:
            self.gateway.push_add(self.registry, self.job_name)
        except DeliveryFailure as e:
            self.failure_count += 1
            logger.warning(str(e))
            return False

        self.push_count += 1
        return True

    def _sleep(self, seconds: float):
        try:
            self.sleeper.sleep(seconds)
        except InterruptedError as e:
            raise SchedulingInterrupted(str(e)) from e

    def run(self):
        """
        Set up and run the push loop.

        Only returns by raising: SetupFailure before the loop starts,
        SchedulingInterrupted if a sleep is interrupted, or any unexpected
        error raised while pushing.
        """
        self.setup()
        self.state = SchedulerState.RUNNING

        interval = self.config.interval
        while True:
            if self.push_once():
                self._sleep(interval)
            else:
                self._sleep(interval * BACKOFF_FACTOR)

    def run_until_exit(self, on_exit: ExitHandler) -> int:
        """Run the loop and report the fatal condition that ended it through on_exit."""
        try:
            self.run()
        except AgentError as e:
            code = e.exit_code
            message = str(e)
            logger.error(f"Push agent stopped: {message}")
        except Exception as e:
            code = 1
            message = str(e)
            logger.error(f"Push agent failed: {message}", exc_info=True)

        self.state = SchedulerState.EXITED
        self.exit_code = code
        on_exit(code, message)
        return code

    def start(self, on_exit: ExitHandler) -> threading.Thread:
        """Run the scheduler on a daemon thread and return immediately."""
        self.thread = threading.Thread(
            target=self.run_until_exit,
            args=(on_exit,),
            name="pushagent-scheduler",
            daemon=True
        )
        self.thread.start()
        logger.info("Push scheduler started")
        return self.thread

    def interrupt(self):
        """Interrupt the current or next sleep, which ends the agent."""
        self.sleeper.interrupt()
