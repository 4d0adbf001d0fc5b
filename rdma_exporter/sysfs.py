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

"""RDMA device enumeration from sysfs

Walks /sys/class/infiniband and returns a fully materialized snapshot of every
HCA, its ports, their counters and their link attributes. For example, for
port 1 of mlx5_0:

/sys/class/infiniband/mlx5_0/ports/1/counters/port_rcv_data
/sys/class/infiniband/mlx5_0/ports/1/hw_counters/out_of_buffer
/sys/class/infiniband/mlx5_0/ports/1/link_layer
/sys/class/infiniband/mlx5_0/ports/1/gid_attrs/ndevs/0
"""

import logging
import re
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from rdma_exporter.context import ScrapeContext

DEFAULT_SYSFS_ROOT = "/sys"

CLASS_INFINIBAND_PATH = "class/infiniband"
DIGITS_PATTERN = re.compile(r"^[0-9]+$")

# ref. include/rdma/ib_verbs.h (enum ib_port_state, enum ib_port_phys_state)
PORT_STATE_NAMES = {
    0: "NOP",
    1: "DOWN",
    2: "INIT",
    3: "ARMED",
    4: "ACTIVE",
    5: "ACTIVE_DEFER",
}
PORT_PHYS_STATE_NAMES = {
    1: "SLEEP",
    2: "POLLING",
    3: "DISABLED",
    4: "PORT_CONFIGURATION_TRAINING",
    5: "LINK_UP",
    6: "LINK_ERROR_RECOVERY",
    7: "PHY_TEST",
}


class SysfsError(Exception):
    """Raised when the sysfs tree cannot be read into a consistent snapshot."""


@dataclass(frozen=True)
class PortAttributes:
    link_layer: str = ""
    state: str = ""
    phys_state: str = ""
    link_width: str = ""
    link_speed: str = ""
    netdev: str = ""


@dataclass(frozen=True)
class Port:
    id: int
    stats: Dict[str, int] = field(default_factory=dict)
    hw_stats: Dict[str, int] = field(default_factory=dict)
    attributes: PortAttributes = field(default_factory=PortAttributes)


@dataclass(frozen=True)
class Device:
    name: str
    ports: List[Port] = field(default_factory=list)


def _normalizeLabelKey(label: str) -> str:
    return "".join(c.upper() for c in label if c.isalnum())


def _canonicalFromLabel(label: str, names: Dict[int, str]) -> str:
    normalized = _normalizeLabelKey(label)
    if not normalized:
        return ""
    for name in names.values():
        if _normalizeLabelKey(name) == normalized:
            return name
    return ""


def normalize_port_state(value: str, names: Dict[int, str]) -> str:
    """Map a raw state file ("4: ACTIVE", "LinkUp", "5") to its kernel name.

    Unrecognized values are returned unchanged (after trimming).
    """
    value = value.strip()
    if not value:
        return ""

    match = re.search(r"\d+", value)
    if match and int(match.group()) in names:
        return names[int(match.group())]

    if ":" in value:
        label = _canonicalFromLabel(value.split(":", 1)[1], names)
        if label:
            return label

    label = _canonicalFromLabel(value, names)
    if label:
        return label

    return value


class SysfsProvider:
    def __init__(self, sysfs_root: str = DEFAULT_SYSFS_ROOT, exclude_devices: Optional[Iterable[str]] = None):
        """Initialize the sysfs device provider.

        Args:
            sysfs_root (str): Root of the sysfs tree (normally /sys).
            exclude_devices (list, optional): Device names to skip entirely.
        """
        self.__lock = threading.Lock()
        self.__sysfs_root = Path(sysfs_root or DEFAULT_SYSFS_ROOT)
        self.__exclude_devices = set(exclude_devices or [])

    @property
    def sysfs_root(self) -> Path:
        with self.__lock:
            return self.__sysfs_root

    def setSysfsRoot(self, root: str):
        with self.__lock:
            self.__sysfs_root = Path(root or DEFAULT_SYSFS_ROOT)

    def setExcludeDevices(self, devices: Iterable[str]):
        with self.__lock:
            self.__exclude_devices = set(devices)

    def __isExcluded(self, device: str) -> bool:
        with self.__lock:
            return device in self.__exclude_devices

    def devices(self, ctx: ScrapeContext) -> List[Device]:
        """Return a snapshot of RDMA devices and their ports.

        Raises:
            ScrapeCancelled: if ctx finishes during the walk.
            SysfsError: if a counter directory or file cannot be read.
        """
        ctx.raise_if_done()

        class_dir = self.sysfs_root / CLASS_INFINIBAND_PATH
        if not class_dir.is_dir():
            logging.debug(f"RDMA: {class_dir} not present")
            return []

        devices = []
        for entry in sorted(class_dir.iterdir()):
            ctx.raise_if_done()

            # Entries are normally symlinks into /sys/devices; is_dir() follows them.
            if not entry.is_dir():
                continue
            if self.__isExcluded(entry.name):
                continue

            devices.append(Device(name=entry.name, ports=self.__ports(ctx, entry)))
        return devices

    def __ports(self, ctx: ScrapeContext, device_dir: Path) -> List[Port]:
        ports_dir = device_dir / "ports"
        if not ports_dir.is_dir():
            return []

        ports = []
        entries = [p for p in ports_dir.iterdir() if p.is_dir() and DIGITS_PATTERN.match(p.name)]
        for entry in sorted(entries, key=lambda p: int(p.name)):
            ctx.raise_if_done()

            port_id = int(entry.name)

            stats = self.readCounterDir(entry / "counters")
            hw_dir = entry / "hw_counters"
            hw_stats = self.readCounterDir(hw_dir) if hw_dir.exists() else {}

            ports.append(
                Port(
                    id=port_id,
                    stats=stats,
                    hw_stats=hw_stats,
                    attributes=self.readPortAttributes(entry),
                )
            )
        return ports

    @staticmethod
    def readCounterDir(path: Path) -> Dict[str, int]:
        """Read every counter file in a directory.

        Raises:
            SysfsError: if the directory or any counter file cannot be read or parsed.
        """
        try:
            entries = sorted(path.iterdir())
        except OSError as e:
            raise SysfsError(f"read counters {path}: {e}") from e

        counters = {}
        for entry in entries:
            if entry.is_dir():
                continue
            try:
                raw = entry.read_text().strip()
            except OSError as e:
                raise SysfsError(f"read counter {entry}: {e}") from e
            if not DIGITS_PATTERN.match(raw):
                raise SysfsError(f"parse counter {entry.name}: invalid value {raw!r}")
            counters[entry.name] = int(raw)
        return counters

    @staticmethod
    def __readAttr(port_dir: Path, name: str) -> str:
        try:
            return (port_dir / name).read_text().strip()
        except OSError:
            return ""

    @classmethod
    def readPortAttributes(cls, port_dir: Path) -> PortAttributes:
        def read(name):
            # "100 Gb/sec (4X EDR)" -> "100 Gb/sec"
            value = cls.__readAttr(port_dir, name)
            idx = value.find("(")
            if idx > 0:
                value = value[:idx].strip()
            return value

        return PortAttributes(
            link_layer=read("link_layer"),
            state=normalize_port_state(cls.__readAttr(port_dir, "state"), PORT_STATE_NAMES),
            phys_state=normalize_port_state(cls.__readAttr(port_dir, "phys_state"), PORT_PHYS_STATE_NAMES),
            link_width=read("link_width"),
            link_speed=read("rate"),
            netdev=cls.readPortNetDev(port_dir),
        )

    @staticmethod
    def readPortNetDev(port_dir: Path) -> str:
        """Return the first network interface bound to the port's GIDs, or ""."""
        ndevs_dir = port_dir / "gid_attrs" / "ndevs"
        try:
            entries = sorted(ndevs_dir.iterdir(), key=lambda p: (len(p.name), p.name))
        except OSError:
            return ""

        for entry in entries:
            if entry.is_dir():
                continue
            try:
                value = entry.read_text().strip()
            except OSError:
                # Unpopulated GID slots return EINVAL on read.
                continue
            if value:
                return value
        return ""
