"""Runtime metrics collector and baseline exports using prometheus_client."""
from importlib import metadata
from typing import Callable, Dict, Iterable, List, Sequence
import gc
import logging
import sys
import threading
import time
import weakref

from prometheus_client import (
    CollectorRegistry, Info, REGISTRY,
    GCCollector, PlatformCollector, ProcessCollector
)
from prometheus_client.core import GaugeMetricFamily

from pushagent.config import DescriptorConfig, load_descriptor
from pushagent.labels import LabelSet

logger = logging.getLogger(__name__)

DISTRIBUTION_NAME = "pushgw-agent"

# Registries that already carry the baseline process/platform/gc collectors
_default_exports = weakref.WeakSet()


class RuntimeCollector:
    """
    Exposes interpreter runtime state ("beans") as gauges.

    Every sample carries the agent's extra labels. Which beans are exported and
    how metric names are built is controlled by the YAML descriptor.
    """

    def __init__(self, descriptor_path: str, labels: LabelSet):
        self.descriptor_path = descriptor_path
        self.descriptor: DescriptorConfig = load_descriptor(descriptor_path)
        self.labels = labels
        self.start_time = time.time()

        self.beans: Dict[str, Callable[[], List[GaugeMetricFamily]]] = {
            "runtime": self._collect_runtime,
            "threading": self._collect_threading,
            "gc": self._collect_gc,
        }

        logger.info(
            f"Runtime collector loaded {descriptor_path}: "
            f"beans {[b for b in self.beans if self.descriptor.bean_enabled(b)]}"
        )

    def _name(self, *parts: str) -> str:
        name = "_".join((self.descriptor.prefix,) + parts)
        if self.descriptor.lowercase_output_name:
            name = name.lower()
        return name

    def _gauge(self, name: str, documentation: str, label_names: Sequence[str] = ()) -> GaugeMetricFamily:
        return GaugeMetricFamily(
            name,
            documentation,
            labels=list(label_names) + list(self.labels.names)
        )

    def _add(self, family: GaugeMetricFamily, value: float, label_values: Sequence[str] = ()):
        family.add_metric(list(label_values) + list(self.labels.values), value)

    def _collect_runtime(self) -> List[GaugeMetricFamily]:
        uptime = self._gauge(self._name("runtime", "uptime_seconds"), "Seconds since the collector was created")
        self._add(uptime, time.time() - self.start_time)

        modules = self._gauge(self._name("runtime", "modules_loaded"), "Number of imported modules")
        self._add(modules, len(sys.modules))

        recursion = self._gauge(self._name("runtime", "recursion_limit"), "Interpreter recursion limit")
        self._add(recursion, sys.getrecursionlimit())

        return [uptime, modules, recursion]

    def _collect_threading(self) -> List[GaugeMetricFamily]:
        threads = threading.enumerate()

        active = self._gauge(self._name("threading", "active_threads"), "Number of alive threads")
        self._add(active, len(threads))

        daemon = self._gauge(self._name("threading", "daemon_threads"), "Number of alive daemon threads")
        self._add(daemon, sum(1 for t in threads if t.daemon))

        return [active, daemon]

    def _collect_gc(self) -> List[GaugeMetricFamily]:
        tracked = self._gauge(
            self._name("gc", "tracked_objects"),
            "Objects tracked by the garbage collector per generation",
            ["generation"]
        )
        for generation, count in enumerate(gc.get_count()):
            self._add(tracked, count, [str(generation)])

        threshold = self._gauge(
            self._name("gc", "threshold"),
            "Garbage collector threshold per generation",
            ["generation"]
        )
        for generation, value in enumerate(gc.get_threshold()):
            self._add(threshold, value, [str(generation)])

        return [tracked, threshold]

    def collect(self) -> Iterable[GaugeMetricFamily]:
        start = time.time()
        error = 0
        families: List[GaugeMetricFamily] = []

        for bean, reader in self.beans.items():
            if not self.descriptor.bean_enabled(bean):
                continue
            try:
                families.extend(reader())
            except Exception as e:
                logger.error(f"Failed to read bean '{bean}': {e}")
                error = 1

        yield from families

        duration = self._gauge(self._name("scrape_duration_seconds"), "Time this runtime scrape took, in seconds")
        self._add(duration, time.time() - start)
        yield duration

        scrape_error = self._gauge(self._name("scrape_error"), "Non-zero if this scrape failed")
        self._add(scrape_error, error)
        yield scrape_error


def agent_version() -> str:
    try:
        return metadata.version(DISTRIBUTION_NAME)
    except metadata.PackageNotFoundError:
        return "unknown"


def register_build_info(registry: CollectorRegistry = REGISTRY) -> Info:
    """Register the pushagent_build_info metric."""
    build_info = Info("pushagent_build", "A metric with a constant '1' value labeled with the agent version", registry=registry)
    build_info.info({"name": DISTRIBUTION_NAME, "version": agent_version()})
    return build_info


def initialize_default_exports(registry: CollectorRegistry = REGISTRY):
    """Register process, platform and gc collectors once per registry."""
    if registry is REGISTRY or registry in _default_exports:
        # prometheus_client registers these on the default registry at import time
        return

    ProcessCollector(registry=registry)
    PlatformCollector(registry=registry)
    GCCollector(registry=registry)
    _default_exports.add(registry)
    logger.info("Default exports initialized")
