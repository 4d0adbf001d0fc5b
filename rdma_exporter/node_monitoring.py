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
# Entry point: parses the runtime configuration and serves the exporter with
# gunicorn. A single worker process is used so that metric names allocated by
# the RDMA collector stay stable for the lifetime of the exporter.
# --

import logging
import sys

import gunicorn.app.base
from flask import Flask

from rdma_exporter import utils
from rdma_exporter.config import loadConfig, parseDuration
from rdma_exporter.monitor import Monitor
from rdma_exporter.server import create_app


class ExporterServer(gunicorn.app.base.BaseApplication):
    def __init__(self, app: Flask, options=None):
        self.options = options or {}
        self.application = app
        super().__init__()

    def load_config(self):
        config = {key: value for key, value in self.options.items() if key in self.cfg.settings and value is not None}
        for key, value in config.items():
            self.cfg.set(key.lower(), value)

    def load(self):
        return self.application


def bindAddress(listen_address: str) -> str:
    """Translate a Go-style listen address (":9879") into a gunicorn bind."""
    if listen_address.startswith(":"):
        return f"0.0.0.0{listen_address}"
    return listen_address


def main(argv=None):
    try:
        args, config = loadConfig(argv)
    except ValueError as e:
        print(f"rdma_exporter: {e}", file=sys.stderr)
        sys.exit(2)

    if args.version:
        print(f"rdma_exporter v{utils.getVersion()}")
        sys.exit(0)

    settings = config["rdma_exporter"]
    scrape_timeout = parseDuration(settings["scrape_timeout"])

    monitor = Monitor(config, logFile=args.logfile)
    logging.info(
        "starting prometheus rdma exporter listen_address=%s metrics_path=%s health_path=%s scrape_timeout=%ss "
        "sysfs_root=%s enable_roce_pfc_metrics=%s"
        % (
            settings["listen_address"],
            settings["metrics_path"],
            settings["health_path"],
            scrape_timeout,
            config["rdma_exporter.collectors"]["sysfs_root"],
            config["rdma_exporter.collectors"]["enable_roce_pfc_metrics"],
        )
    )

    app = create_app(
        monitor,
        metrics_path=settings["metrics_path"],
        health_path=settings["health_path"],
        scrape_timeout=scrape_timeout,
    )

    def post_fork(server, worker):
        monitor.initMetrics()

    options = {
        "bind": bindAddress(settings["listen_address"]),
        "workers": 1,
        "worker_class": "gthread",
        "threads": 4,
        "graceful_timeout": 10,
        "post_fork": post_fork,
    }
    ExporterServer(app, options).run()
    logging.info("shutdown complete")


if __name__ == "__main__":
    main()
