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

"""HTTP endpoints

Flask application serving the prometheus exposition and a health check. Each
scrape is bounded by the configured timeout: the encoding runs on a worker
thread while the request thread waits on its future, and a scrape that does
not finish in time is cancelled and answered with 504 without waiting for it.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from typing import Optional

from flask import Flask, Response, request
from prometheus_client.exposition import choose_encoder

from rdma_exporter.context import ScrapeContext


def create_app(
    monitor,
    metrics_path: str = "/metrics",
    health_path: str = "/healthz",
    scrape_timeout: Optional[float] = None,
    executor: Optional[ThreadPoolExecutor] = None,
) -> Flask:
    """Build the exporter Flask application.

    Args:
        monitor (Monitor): Owner of the prometheus registry and collectors.
        metrics_path (str): Route serving the exposition.
        health_path (str): Route serving the health check.
        scrape_timeout (float, optional): Seconds allowed per scrape; None or
            0 disables the timeout.
        executor (ThreadPoolExecutor, optional): Pool running the collections.
    """
    app = Flask("rdma_exporter")
    if executor is None:
        executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="rdma-scrape")

    def metrics():
        ctx = ScrapeContext.with_timeout(scrape_timeout)
        encoder, content_type = choose_encoder(request.headers.get("Accept"))

        future = executor.submit(monitor.updateAllMetrics, encoder, ctx)
        try:
            output = future.result(timeout=ctx.remaining())
        except FuturesTimeoutError:
            ctx.cancel()
            logging.warning(f"metrics gather timed out after {scrape_timeout}s")
            return Response("scrape timed out\n", status=504, mimetype="text/plain")
        except Exception as e:
            logging.error(f"metrics gather failed: {e}")
            return Response("metrics gather failed\n", status=500, mimetype="text/plain")

        return Response(output, status=200, headers={"Content-Type": content_type})

    def health():
        return Response("ok\n", status=200, mimetype="text/plain")

    app.add_url_rule(metrics_path, "metrics", metrics, methods=["GET"])
    app.add_url_rule(health_path, "health", health, methods=["GET"])
    return app
