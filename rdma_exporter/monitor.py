# -------------------------------------------------------------------------------
# MIT License
#
# Copyright (c) 2023 - 2026 Advanced Micro Devices, Inc. All Rights Reserved.
#
# Permission is hereby granted, free of charge, to any person obtaining a copy
# of this software and associated documentation files (the "Software"), to deal
# in the Software without restriction, including without limitation the rights
# to use, copy, modify, merge, publish, distribute, sublicense, and/or sell
# copies of the Software, and to permit persons to whom the Software is
# furnished to do so, subject to the following conditions:
#
# The above copyright notice and this permission notice shall be included in all
# copies or substantial portions of the Software.
#
# THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
# IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
# FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL THE
# AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
# LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM,
# OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN THE
# SOFTWARE.
# -------------------------------------------------------------------------------

# Prometheus exporter for RDMA devices.
#
# Supporting monitor class owning the prometheus registry and the enabled data
# collector(s).
# --

import configparser
import importlib
import logging
import platform
import sys
import threading
import time
from typing import Callable, List, Optional

from prometheus_client import CollectorRegistry, Gauge, generate_latest
from prometheus_client import GCCollector, PlatformCollector, ProcessCollector

from rdma_exporter import utils
from rdma_exporter.collector_base import Collector
from rdma_exporter.collector_definitions import COLLECTORS
from rdma_exporter.config import parseLogLevel
from rdma_exporter.context import ScrapeContext


class Monitor:
    def __init__(self, config: configparser.ConfigParser, logFile: Optional[str] = None):

        self.config = config  # cache runtime configuration

        logLevel = parseLogLevel(config["rdma_exporter"].get("log_level", "info"))
        if logFile:
            hostname = platform.node().split(".", 1)[0]
            logging.basicConfig(
                format=f"[{hostname}: %(asctime)s] %(message)s",
                level=logLevel,
                filename=logFile,
                datefmt="%H:%M:%S",
            )
        else:
            logging.basicConfig(format="%(message)s", level=logLevel, stream=sys.stdout)

        # prometheus registry holding every exported metric
        self.__registry = CollectorRegistry()
        ProcessCollector(registry=self.__registry)
        PlatformCollector(registry=self.__registry)
        GCCollector(registry=self.__registry)

        # initialize collection of data collectors
        self.__collectors: List[Collector] = []
        self.__scrapeLock = threading.Lock()

        logging.debug("Completed collector initialization (base class)")
        return

    @property
    def registry(self) -> CollectorRegistry:
        return self.__registry

    def initMetrics(self, collectors: Optional[List[Collector]] = None):
        """Instantiate and register the enabled collectors.

        Args:
            collectors (list, optional): Pre-built collectors to use instead of
                the ones listed in collector_definitions.
        """

        if collectors is None:
            collectors = []
            for collector in COLLECTORS:
                runtime_option = collector["runtime_option"]
                default = collector["enabled_by_default"]
                if runtime_option:
                    enabled = self.config["rdma_exporter.collectors"].getboolean(runtime_option, default)
                else:
                    enabled = default
                if enabled:
                    module = importlib.import_module(collector["file"])
                    cls = getattr(module, collector["class_name"])
                    collectors.append(cls(config=self.config))

        self.__collectors.extend(collectors)

        # Initialize all metrics
        prefix_filter = utils.PrefixFilter("   ")
        for collector in self.__collectors:
            logging.info("\nRegistering metrics for collector: %s" % collector.__class__.__name__)
            logging.getLogger().addFilter(prefix_filter)
            try:
                collector.registerMetrics(self.__registry)
            finally:
                logging.getLogger().removeFilter(prefix_filter)

        # Register performance runtime metric
        logging.info("\nRegistering performance metrics for scrape timing")
        self.__perfMetric = Gauge(
            "rdma_exporter_scrape_duration_seconds",
            "Time to complete the previous scrape in seconds",
            registry=self.__registry,
        )

    def setContext(self, ctx: Optional[ScrapeContext]):
        """Set the cancellation context used by the next collection."""
        for collector in self.__collectors:
            if hasattr(collector, "setContext"):
                collector.setContext(ctx)

    def resetContext(self):
        self.setContext(None)

    def updateAllMetrics(
        self,
        encoder: Callable[[CollectorRegistry], bytes] = generate_latest,
        ctx: Optional[ScrapeContext] = None,
    ) -> bytes:
        """Refresh all collectors and encode the registry.

        Scrapes are serialized; ctx is installed on the collectors for the
        duration of this scrape only.

        Args:
            encoder (callable): prometheus_client exposition encoder.
            ctx (ScrapeContext, optional): Cancellation context of the scrape.

        Returns:
            bytes: Encoded exposition payload.
        """
        with self.__scrapeLock:
            start_time = time.perf_counter()

            self.setContext(ctx)
            try:
                for collector in self.__collectors:
                    collector.updateMetrics()
                latest = encoder(self.__registry)
            finally:
                self.resetContext()

            # Reported on the next scrape
            self.__perfMetric.set(time.perf_counter() - start_time)

        return latest
