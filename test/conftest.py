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

import configparser
import threading
from collections import Counter
from pathlib import Path

import pytest

from rdma_exporter.config import DEFAULTS
from rdma_exporter.sysfs import Device, Port, PortAttributes


class StubProvider:
    """Device enumerator returning a fixed snapshot or raising a fixed error."""

    def __init__(self, devices=None, err=None):
        self.devices_list = devices or []
        self.err = err
        self.calls = 0
        self.contexts = []

    def devices(self, ctx):
        self.calls += 1
        self.contexts.append(ctx)
        if self.err is not None:
            raise self.err
        return self.devices_list


class StubNetDevStatsProvider:
    """Interface statistics source keyed by interface name."""

    def __init__(self):
        self.stats_by_netdev = {}
        self.errs = {}
        self.__calls = Counter()
        self.__lock = threading.Lock()

    def stats(self, ctx, netdev):
        with self.__lock:
            self.__calls[netdev] += 1
        if netdev in self.errs:
            raise self.errs[netdev]
        return dict(self.stats_by_netdev.get(netdev, {}))

    def callCount(self, netdev):
        with self.__lock:
            return self.__calls[netdev]


def buildConfig(**collector_options):
    config = configparser.ConfigParser(interpolation=None)
    config.read_dict(DEFAULTS)
    for key, value in collector_options.items():
        config["rdma_exporter.collectors"][key] = str(value)
    return config


def ethernetPort(port_id=1, netdev="ens1f0np0", stats=None, hw_stats=None):
    return Port(
        id=port_id,
        stats=stats or {},
        hw_stats=hw_stats or {},
        attributes=PortAttributes(
            link_layer="Ethernet",
            state="ACTIVE",
            phys_state="LINK_UP",
            link_width="4X",
            link_speed="100 Gb/sec",
            netdev=netdev,
        ),
    )


def samplesByName(metrics):
    """Flatten metric families into {sample name: [(labels, value), ...]}."""
    samples = {}
    for family in metrics:
        for sample in family.samples:
            samples.setdefault(sample.name, []).append((sample.labels, sample.value))
    return samples


def writeSysfsPort(
    root: Path,
    device: str,
    port: int,
    counters=None,
    hw_counters=None,
    link_layer="InfiniBand",
    state="4: ACTIVE",
    phys_state="5: LinkUp",
    link_width="4X",
    rate="100 Gb/sec (4X EDR)",
    ndevs=None,
):
    """Create /sys/class/infiniband/<device>/ports/<port> under root."""
    port_dir = root / "class" / "infiniband" / device / "ports" / str(port)
    (port_dir / "counters").mkdir(parents=True, exist_ok=True)
    for name, value in (counters or {}).items():
        (port_dir / "counters" / name).write_text(f"{value}\n")
    if hw_counters is not None:
        (port_dir / "hw_counters").mkdir(exist_ok=True)
        for name, value in hw_counters.items():
            (port_dir / "hw_counters" / name).write_text(f"{value}\n")
    for name, value in [
        ("link_layer", link_layer),
        ("state", state),
        ("phys_state", phys_state),
        ("link_width", link_width),
        ("rate", rate),
    ]:
        (port_dir / name).write_text(f"{value}\n")
    if ndevs is not None:
        ndevs_dir = port_dir / "gid_attrs" / "ndevs"
        ndevs_dir.mkdir(parents=True, exist_ok=True)
        for index, value in ndevs.items():
            (ndevs_dir / str(index)).write_text(f"{value}\n")
    return port_dir


@pytest.fixture
def netdev_provider():
    return StubNetDevStatsProvider()


@pytest.fixture
def single_device():
    """One mlx5_0 Ethernet port with a couple of counters in each directory."""
    return [
        Device(
            name="mlx5_0",
            ports=[
                ethernetPort(
                    stats={"port_xmit_data": 10, "port_rcv_data": 5},
                    hw_stats={"symbol_error": 1},
                )
            ],
        )
    ]
