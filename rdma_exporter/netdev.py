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

"""Network device statistics

EthtoolStatsProvider reads the driver statistics of a network interface
(`ethtool -S <interface>`), which is where the mlx5 driver publishes its
per-priority PFC pause counters. NetDevStatsCache memoizes those reads for the
duration of a single scrape so that several RDMA ports sharing one interface
trigger a single ethtool call.
"""

import logging
import re
import shutil
import subprocess
import threading
from typing import Callable, Dict, Optional, Tuple

from rdma_exporter.context import ScrapeContext, ScrapeDeadlineExceeded

# "     rx_prio3_pause: 42"
ETHTOOL_STAT_PATTERN = re.compile(r"^\s*([^:]+?):\s+([0-9]+)\s*$")


class NetDevStatsError(Exception):
    """Raised when statistics for a network interface cannot be read."""


def parse_ethtool_stats(text: str) -> Dict[str, int]:
    """Parse `ethtool -S` output into a name -> value mapping.

    The "NIC statistics:" header and non-numeric entries are skipped.
    """
    stats = {}
    for line in text.splitlines():
        match = ETHTOOL_STAT_PATTERN.match(line)
        if match:
            stats[match.group(1)] = int(match.group(2))
    return stats


class EthtoolStatsProvider:
    def __init__(self, ethtool_path: str = "ethtool"):
        """Initialize the ethtool statistics provider.

        Args:
            ethtool_path (str): ethtool binary name or absolute path.

        Raises:
            NetDevStatsError: if the ethtool binary cannot be found.
        """
        self.__lock = threading.Lock()
        self.__ethtool = shutil.which(ethtool_path)
        if self.__ethtool is None:
            raise NetDevStatsError(f"ethtool binary not found: {ethtool_path}")
        logging.debug(f"NETDEV: using {self.__ethtool}")

    def stats(self, ctx: ScrapeContext, netdev: str) -> Dict[str, int]:
        """Fetch driver statistics for a network interface.

        Raises:
            ScrapeCancelled: if ctx finishes before or while ethtool runs.
            NetDevStatsError: if ethtool fails.
        """
        ctx.raise_if_done()

        with self.__lock:
            ctx.raise_if_done()

            try:
                result = subprocess.run(
                    [self.__ethtool, "-S", netdev],
                    capture_output=True,
                    text=True,
                    timeout=ctx.remaining(),
                    check=False,
                )
            except subprocess.TimeoutExpired as e:
                raise ScrapeDeadlineExceeded(f"ethtool stats for {netdev}: timed out") from e
            except OSError as e:
                raise NetDevStatsError(f"read ethtool stats for {netdev}: {e}") from e

        if result.returncode != 0:
            raise NetDevStatsError(
                f"read ethtool stats for {netdev}: exit status {result.returncode}: {result.stderr.strip()}"
            )
        return parse_ethtool_stats(result.stdout)


class NetDevStatsCache:
    """Per-scrape memo of interface statistics, failures included."""

    def __init__(self, provider, on_error: Optional[Callable[[str, Exception], None]] = None):
        self.__provider = provider
        self.__on_error = on_error
        self.__entries: Dict[str, Tuple[Optional[Dict[str, int]], Optional[Exception]]] = {}

    def stats(self, ctx: ScrapeContext, netdev: str) -> Dict[str, int]:
        """Return statistics for netdev, fetching them at most once.

        A failed fetch is remembered and re-raised for every later lookup of the
        same interface; on_error is only invoked for the first failure.
        """
        if netdev not in self.__entries:
            try:
                self.__entries[netdev] = (self.__provider.stats(ctx, netdev), None)
            except Exception as e:
                self.__entries[netdev] = (None, e)
                if self.__on_error is not None:
                    self.__on_error(netdev, e)

        stats, err = self.__entries[netdev]
        if err is not None:
            raise err
        return stats

    def __len__(self):
        return len(self.__entries)
