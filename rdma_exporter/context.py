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

"""Scrape cancellation

A ScrapeContext is handed to every blocking call made during one collection
(the sysfs walk and the ethtool query). The HTTP layer creates one per request
with the configured scrape timeout and cancels it when the client gives up
waiting; the blocking calls check it and bail out with ScrapeCancelled.
"""

import threading
import time
from typing import Optional


class ScrapeCancelled(Exception):
    """The scrape was cancelled before it completed."""


class ScrapeDeadlineExceeded(ScrapeCancelled):
    """The scrape ran past its deadline."""


class ScrapeContext:
    def __init__(self, deadline: Optional[float] = None):
        """Create a cancellation context.

        Args:
            deadline (float, optional): time.monotonic() value after which the
                context is done. None means no deadline.
        """
        self.__deadline = deadline
        self.__cancelled = threading.Event()

    @classmethod
    def background(cls):
        """Context that never finishes unless cancelled explicitly."""
        return cls()

    @classmethod
    def with_timeout(cls, timeout: Optional[float]):
        if timeout is None or timeout <= 0:
            return cls()
        return cls(deadline=time.monotonic() + timeout)

    def cancel(self):
        self.__cancelled.set()

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None without a deadline."""
        if self.__deadline is None:
            return None
        return max(0.0, self.__deadline - time.monotonic())

    def err(self) -> Optional[ScrapeCancelled]:
        if self.__cancelled.is_set():
            return ScrapeCancelled("scrape cancelled")
        if self.__deadline is not None and time.monotonic() >= self.__deadline:
            return ScrapeDeadlineExceeded("scrape deadline exceeded")
        return None

    def done(self) -> bool:
        return self.err() is not None

    def raise_if_done(self):
        err = self.err()
        if err is not None:
            raise err

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the context is done or timeout elapses; returns done()."""
        remaining = self.remaining()
        if remaining is not None and (timeout is None or remaining < timeout):
            timeout = remaining
        self.__cancelled.wait(timeout)
        return self.done()
