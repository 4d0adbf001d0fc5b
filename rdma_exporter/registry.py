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

"""Metric identifier registry

Allocates one exported Prometheus metric name per documented counter name and
remembers it for the lifetime of the process, so that a series keeps its
identity across scrapes even when the driver renames or aliases the underlying
sysfs file. Primary (counters/) and hardware (hw_counters/) counters are kept
in separate families: the two are never aliased against each other, and a
name owned by one family is disambiguated with a digest suffix in the other.

The registry is not thread-safe on its own; the RDMA collector only touches it
while holding its collection lock.
"""

import hashlib
import logging
from enum import Enum
from typing import Dict, Iterable, List, NamedTuple, Tuple

from rdma_exporter import counters

PORT_LABELS = ("device", "port")


class Family(Enum):
    STAT = "stat"
    HW = "hw"


FAMILY_FALLBACK_HELP = {
    Family.STAT: "RDMA port counter sourced from sysfs counters.",
    Family.HW: "RDMA port hardware counter sourced from sysfs hw_counters.",
}


class MetricDescriptor(NamedTuple):
    name: str
    documentation: str
    labelnames: Tuple[str, ...]


class MetricEntry(NamedTuple):
    identifier: str
    docName: str
    rawName: str
    family: Family
    descriptor: MetricDescriptor


def digest(doc_name: str) -> str:
    """Fixed-width (8 hex digits) digest used to disambiguate colliding names."""
    return hashlib.blake2s(doc_name.encode("utf-8"), digest_size=4).hexdigest()


class MetricRegistry:
    def __init__(self, prefix: str = "rdma_", suffix: str = "_total", reserved: Iterable[str] = ()):
        """Create an empty registry.

        Args:
            prefix (str): Prepended to every generated metric name.
            suffix (str): Appended to every generated metric name.
            reserved (list): Metric names owned by fixed metrics; generated names
                never reuse them.
        """
        self.__prefix = prefix
        self.__suffix = suffix
        self.__reserved = frozenset(reserved)

        # Per-family identifier -> MetricEntry
        self.__entries: Dict[Family, Dict[str, MetricEntry]] = {family: {} for family in Family}

        # Per-family lookup of raw sysfs name -> identifier
        self.__lookup: Dict[Family, Dict[str, str]] = {family: {} for family in Family}

        # Allocation order across both families
        self.__allocated: List[MetricEntry] = []

    def identifier_for(self, raw_name: str, family: Family) -> MetricDescriptor:
        """Resolve the descriptor for a raw counter name, allocating it on first use.

        Args:
            raw_name (str): Counter file name as found in sysfs.
            family (Family): Counter directory the name was read from.

        Returns:
            MetricDescriptor: Stable descriptor for the counter.
        """
        entries = self.__entries[family]
        lookup = self.__lookup[family]
        identifier = lookup.get(raw_name)
        if identifier is not None:
            return entries[identifier].descriptor

        docName = counters.canonical(raw_name)
        identifier = self.__buildIdentifier(docName, family)

        entry = entries.get(identifier)
        if entry is None:
            description = counters.help_for(docName, FAMILY_FALLBACK_HELP[family])
            descriptor = MetricDescriptor(identifier, description, PORT_LABELS)
            entry = MetricEntry(identifier, docName, raw_name, family, descriptor)
            entries[identifier] = entry
            self.__allocated.append(entry)
            logging.debug(f"--> [registered] {identifier} -> {raw_name} ({family.value})")

        lookup[raw_name] = identifier
        return entry.descriptor

    def __isTaken(self, identifier: str, doc_name: str, family: Family) -> bool:
        if identifier in self.__reserved:
            return True
        entry = self.__entries[family].get(identifier)
        if entry is not None and entry.docName != doc_name:
            return True
        return any(identifier in self.__entries[other] for other in Family if other is not family)

    def __buildIdentifier(self, doc_name: str, family: Family) -> str:
        base = counters.sanitize(doc_name)
        candidates = [
            f"{self.__prefix}{base}{self.__suffix}",
            f"{self.__prefix}{base}_{digest(doc_name)}{self.__suffix}",
            f"{self.__prefix}{base}_{digest(f'{family.value}:{doc_name}')}{self.__suffix}",
        ]

        for identifier in candidates:
            if not self.__isTaken(identifier, doc_name, family):
                break
        if identifier != candidates[0]:
            logging.debug(f"--> metric name collision for {doc_name} ({family.value}); using {identifier}")

        return identifier

    def entries(self) -> List[MetricEntry]:
        return list(self.__allocated)

    def descriptors(self) -> List[MetricDescriptor]:
        """Snapshot of every descriptor allocated so far, in allocation order."""
        return [entry.descriptor for entry in self.__allocated]

    def __len__(self):
        return len(self.__allocated)
