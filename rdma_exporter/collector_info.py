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

"""Info metric

Implements an info metric to log execution details of the exporter. Example:

rdma_exporter_info{schema="1.0",sysfs_root="/sys",version="0.3.0"} 1.0
"""

import configparser
import logging

from prometheus_client import CollectorRegistry, Gauge

import rdma_exporter.utils as utils
from rdma_exporter.collector_base import Collector


class INFO(Collector):
    def __init__(self, config: configparser.ConfigParser):
        """Initialize info metric.

        Args:
            config (configparser.ConfigParser): Cached copy of runtime configuration.
        """
        logging.debug(f"Initializing {self.__class__.__name__} data collector")

        self.__version = utils.getVersion()
        self.__schema = 1.0
        self.__sysfs_root = config["rdma_exporter.collectors"].get("sysfs_root", "/sys")

    def registerMetrics(self, registry: CollectorRegistry):
        """Register metrics of interest"""

        labels = ["version", "schema", "sysfs_root"]
        self.__info = Gauge("rdma_exporter_info", "Info metric", labelnames=labels, registry=registry)
        self.__info.labels(version=self.__version, schema=self.__schema, sysfs_root=self.__sysfs_root).set(1)
        logging.info("--> [registered] rdma_exporter_info (gauge)")

    def updateMetrics(self):
        """Update registered metrics of interest"""

        return
