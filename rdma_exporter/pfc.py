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

"""RoCEv2 priority flow control (PFC) statistics

The mlx5 driver reports per-priority pause statistics through ethtool using a
flat namespace, e.g.:

rx_prio3_pause 42
tx_prio3_pause_duration 1200
tx_prio7_pause_transition 5

extract() decomposes such names into (direction, priority, kind); every other
ethtool statistic is ignored.
"""

import re
from enum import Enum
from typing import NamedTuple, Optional

PFC_STAT_PATTERN = re.compile(r"(rx|tx)_prio([0-7])_pause(?:_(duration|transition))?")


class PFCKind(Enum):
    FRAMES = "frames"
    DURATION = "duration"
    TRANSITIONS = "transitions"


_KIND_BY_SUFFIX = {
    None: PFCKind.FRAMES,
    "duration": PFCKind.DURATION,
    "transition": PFCKind.TRANSITIONS,
}


class PFCStat(NamedTuple):
    direction: str
    priority: str
    kind: PFCKind


def extract(name: str) -> Optional[PFCStat]:
    """Classify an ethtool statistic name, returning None when it is not a PFC pause counter."""
    match = PFC_STAT_PATTERN.fullmatch(name)
    if not match:
        return None

    direction, priority, suffix = match.groups()
    return PFCStat(direction, priority, _KIND_BY_SUFFIX[suffix])
