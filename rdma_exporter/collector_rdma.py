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

"""RDMA port monitoring

Implements a custom prometheus collector exporting every counter found under
/sys/class/infiniband/<device>/ports/<port>/{counters,hw_counters}, a port info
metric and, for RoCE ports, the PFC pause statistics of the associated network
interface. Example metrics:

rdma_port_rcv_data_total{device="mlx5_0",port="1"} 5.0
rdma_out_of_buffer_total{device="mlx5_0",port="1"} 0.0
rdma_port_info{device="mlx5_0",link_layer="Ethernet",link_speed="200 Gb/sec",link_width="4X",phys_state="LINK_UP",port="1",state="ACTIVE"} 1.0
rdma_roce_pfc_pause_frames_total{device="mlx5_0",direction="rx",interface="ens1f0np0",port="1",priority="3"} 42.0
rdma_scrape_errors_total 0.0
rdma_roce_pfc_scrape_errors_total 0.0

Counter names are not known in advance: metric names are allocated on first
sight by the MetricRegistry and stay fixed for the lifetime of the process.
Collections are serialized; a second scrape waits for the first to finish.
"""

import configparser
import logging
import threading
import time
from collections import OrderedDict
from typing import Dict, List, Optional

from prometheus_client import CollectorRegistry
from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily, Metric

from rdma_exporter.collector_base import Collector
from rdma_exporter.config import parseList
from rdma_exporter.context import ScrapeContext
from rdma_exporter.netdev import EthtoolStatsProvider, NetDevStatsCache, NetDevStatsError
from rdma_exporter.pfc import PFCKind, extract
from rdma_exporter.registry import Family, MetricDescriptor, MetricRegistry
from rdma_exporter.sysfs import DEFAULT_SYSFS_ROOT, PortAttributes, SysfsProvider

PORT_INFO_LABELS = ["device", "port", "link_layer", "state", "phys_state", "link_width", "link_speed"]
PFC_LABELS = ["device", "port", "interface", "direction", "priority"]

# fmt: off
PFC_METRICS = {
    PFCKind.FRAMES:      {"metricName": "rdma_roce_pfc_pause_frames_total",      "description": "RoCEv2 PFC pause frame counter sourced from ethtool stats."},
    PFCKind.DURATION:    {"metricName": "rdma_roce_pfc_pause_duration_total",    "description": "RoCEv2 PFC pause duration counter sourced from ethtool stats."},
    PFCKind.TRANSITIONS: {"metricName": "rdma_roce_pfc_pause_transitions_total", "description": "RoCEv2 PFC pause transition counter sourced from ethtool stats."},
}
# fmt: on

RESERVED_METRIC_NAMES = [
    "rdma_port_info",
    "rdma_scrape_errors_total",
    "rdma_roce_pfc_scrape_errors_total",
] + [item["metricName"] for item in PFC_METRICS.values()]

SCRAPE_ERRORS_HELP = "Total number of errors encountered while scraping RDMA sysfs."
PFC_SCRAPE_ERRORS_HELP = "Total number of errors encountered while scraping RoCEv2 PFC ethtool stats."


class RDMA(Collector):
    def __init__(
        self,
        config: Optional[configparser.ConfigParser] = None,
        provider=None,
        netdev_stats_provider=None,
        metric_registry: Optional[MetricRegistry] = None,
    ):
        """Initialize the RDMA data collector.

        Args:
            config (configparser.ConfigParser): Cached copy of runtime configuration.
            provider (optional): Device enumerator exposing devices(ctx); defaults
                to a SysfsProvider built from the runtime configuration.
            netdev_stats_provider (optional): Source of interface statistics
                exposing stats(ctx, netdev). When omitted, an ethtool-backed
                provider is created if enable_roce_pfc_metrics is set.
            metric_registry (MetricRegistry, optional): Name allocation cache.
        """
        logging.debug("Initializing RDMA data collector")

        sysfs_root = DEFAULT_SYSFS_ROOT
        exclude_devices = []
        enable_pfc = False
        ethtool_path = "ethtool"

        if config is not None and config.has_section("rdma_exporter.collectors"):
            section = config["rdma_exporter.collectors"]
            sysfs_root = section.get("sysfs_root", DEFAULT_SYSFS_ROOT)
            exclude_devices = parseList(section.get("exclude_devices", ""))
            enable_pfc = section.getboolean("enable_roce_pfc_metrics", False)
            ethtool_path = section.get("ethtool_path", "ethtool")

        if provider is None:
            provider = SysfsProvider(sysfs_root, exclude_devices)
            logging.info(f"--> sysfs root: {sysfs_root}")
            if exclude_devices:
                logging.info(f"--> excluding devices from monitoring: {exclude_devices}")

        if netdev_stats_provider is None and enable_pfc:
            try:
                netdev_stats_provider = EthtoolStatsProvider(ethtool_path)
            except NetDevStatsError as e:
                logging.warning(f"--> failed to initialize RoCE PFC stats provider; PFC metrics are disabled: {e}")

        if metric_registry is None:
            metric_registry = MetricRegistry(reserved=RESERVED_METRIC_NAMES)

        self.__provider = provider
        self.__netdev_stats_provider = netdev_stats_provider
        self.__metric_registry = metric_registry

        self.__collect_lock = threading.Lock()
        self.__ctx_lock = threading.Lock()
        self.__ctx = ScrapeContext.background()

        # Process-lifetime error counts, exported through collect()
        self.__scrape_errors = 0
        self.__pfc_scrape_errors = 0

    # --------------------------------------------------------------------------------------
    # Required child methods

    def registerMetrics(self, registry: CollectorRegistry):
        """Register metrics of interest"""

        registry.register(self)
        logging.info("--> [registered] rdma_port_info (gauge)")
        for item in PFC_METRICS.values():
            logging.info(f"--> [registered] {item['metricName']} (counter)")
        logging.info("--> [registered] rdma_scrape_errors_total (counter)")
        logging.info("--> [registered] rdma_roce_pfc_scrape_errors_total (counter)")
        if self.__netdev_stats_provider is None:
            logging.info("--> RoCE PFC metrics disabled")

    def updateMetrics(self):
        """Update registered metrics of interest"""

        # Values are read from sysfs at exposition time by collect().
        return

    # --------------------------------------------------------------------------------------
    # Cancellation context used by the next collection

    def setContext(self, ctx: Optional[ScrapeContext]):
        with self.__ctx_lock:
            self.__ctx = ctx if ctx is not None else ScrapeContext.background()

    def resetContext(self):
        self.setContext(None)

    def getContext(self) -> ScrapeContext:
        with self.__ctx_lock:
            return self.__ctx

    # --------------------------------------------------------------------------------------
    # prometheus_client custom collector interface

    def describe(self) -> List[Metric]:
        metrics = self.__fixedFamilies()
        with self.__collect_lock:
            descriptors = self.__metric_registry.descriptors()
        for descriptor in descriptors:
            metrics.append(CounterMetricFamily(descriptor.name, descriptor.documentation, labels=descriptor.labelnames))
        return metrics

    def collect(self) -> List[Metric]:
        with self.__collect_lock:
            ctx = self.getContext()

            try:
                devices = self.__provider.devices(ctx)
            except Exception as e:
                err = ctx.err()
                if err is not None:
                    logging.warning(f"RDMA: scrape aborted by context: {err}")
                else:
                    logging.warning(f"RDMA: scrape failed: {e}")
                self.__scrape_errors += 1
                return [self.__scrapeErrorsFamily()]

            counter_families: Dict[str, CounterMetricFamily] = OrderedDict()
            emitted = set()
            port_info = GaugeMetricFamily(
                "rdma_port_info", "RDMA port metadata exported as labels.", labels=PORT_INFO_LABELS
            )
            pfc_families = {
                kind: CounterMetricFamily(item["metricName"], item["description"], labels=PFC_LABELS)
                for kind, item in PFC_METRICS.items()
            }

            cache = None
            if self.__netdev_stats_provider is not None:
                cache = NetDevStatsCache(self.__netdev_stats_provider, on_error=self.__countPFCError)

            for device in devices:
                start_time = time.perf_counter()
                port_ids = []
                for port in device.ports:
                    port_id = str(port.id)
                    port_ids.append(port_id)

                    for family, values in [(Family.STAT, port.stats), (Family.HW, port.hw_stats)]:
                        for name in sorted(values):
                            descriptor = self.__metric_registry.identifier_for(name, family)
                            self.__addCounterSample(
                                counter_families, emitted, descriptor, values[name], device.name, port_id, name
                            )

                    attr = port.attributes
                    self.__collectPFC(ctx, cache, pfc_families, device.name, port_id, attr)

                    port_info.add_metric(
                        [device.name, port_id, attr.link_layer, attr.state, attr.phys_state, attr.link_width, attr.link_speed],
                        1,
                    )

                elapsed_time = time.perf_counter() - start_time
                logging.debug(f"RDMA: device {device.name} scraped ports={port_ids} duration={elapsed_time:.6f}s")

            metrics: List[Metric] = list(counter_families.values())
            if port_info.samples:
                metrics.append(port_info)
            metrics.extend(family for family in pfc_families.values() if family.samples)
            metrics.append(self.__scrapeErrorsFamily())
            metrics.append(self.__pfcScrapeErrorsFamily())
            return metrics

    # --------------------------------------------------------------------------------------
    # Additional custom methods unique to this collector

    @staticmethod
    def __fixedFamilies() -> List[Metric]:
        metrics = [GaugeMetricFamily("rdma_port_info", "RDMA port metadata exported as labels.", labels=PORT_INFO_LABELS)]
        for item in PFC_METRICS.values():
            metrics.append(CounterMetricFamily(item["metricName"], item["description"], labels=PFC_LABELS))
        metrics.append(CounterMetricFamily("rdma_scrape_errors", SCRAPE_ERRORS_HELP))
        metrics.append(CounterMetricFamily("rdma_roce_pfc_scrape_errors", PFC_SCRAPE_ERRORS_HELP))
        return metrics

    def __scrapeErrorsFamily(self) -> CounterMetricFamily:
        return CounterMetricFamily("rdma_scrape_errors", SCRAPE_ERRORS_HELP, value=self.__scrape_errors)

    def __pfcScrapeErrorsFamily(self) -> CounterMetricFamily:
        return CounterMetricFamily("rdma_roce_pfc_scrape_errors", PFC_SCRAPE_ERRORS_HELP, value=self.__pfc_scrape_errors)

    @staticmethod
    def __addCounterSample(families, emitted, descriptor: MetricDescriptor, value, device, port, stat):
        key = (descriptor.name, device, port)
        if key in emitted:
            # Alias of an already emitted counter from the same directory, e.g. SymbolErrorCounter
            logging.debug(f"RDMA: skipping duplicate {descriptor.name} for {device}:{port} from {stat}")
            return
        emitted.add(key)

        family = families.get(descriptor.name)
        if family is None:
            family = CounterMetricFamily(descriptor.name, descriptor.documentation, labels=descriptor.labelnames)
            families[descriptor.name] = family
        family.add_metric([device, port], float(value))

    def __countPFCError(self, netdev: str, err: Exception):
        self.__pfc_scrape_errors += 1

    def __collectPFC(
        self,
        ctx: ScrapeContext,
        cache: Optional[NetDevStatsCache],
        pfc_families: Dict[PFCKind, CounterMetricFamily],
        device: str,
        port: str,
        attr: PortAttributes,
    ):
        if cache is None:
            return
        if attr.link_layer != "Ethernet" or not attr.netdev:
            return

        try:
            stats = cache.stats(ctx, attr.netdev)
        except Exception as e:
            err = ctx.err()
            if err is not None:
                logging.warning(
                    f"RDMA: roce pfc scrape aborted by context device={device} port={port} interface={attr.netdev}: {err}"
                )
            else:
                logging.warning(f"RDMA: roce pfc scrape failed device={device} port={port} interface={attr.netdev}: {e}")
            return

        for name in sorted(stats):
            pfc = extract(name)
            if pfc is None:
                continue
            pfc_families[pfc.kind].add_metric(
                [device, port, attr.netdev, pfc.direction, pfc.priority], float(stats[name])
            )
