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

"""Runtime configuration

Settings are gathered into a configparser.ConfigParser from, in increasing
priority: built-in defaults, an optional INI file, RDMA_EXPORTER_* environment
variables and command-line flags. Example INI file:

[rdma_exporter]
listen_address = :9879
scrape_timeout = 5s
log_level = info

[rdma_exporter.collectors]
sysfs_root = /sys
exclude_devices = mlx5_2,mlx5_3
enable_roce_pfc_metrics = True
"""

import argparse
import configparser
import logging
import math
import os
import re
from typing import Mapping, Optional, Sequence

from rdma_exporter import utils

# fmt: off
DEFAULTS = {
    "rdma_exporter": {
        "listen_address": ":9879",
        "metrics_path":   "/metrics",
        "health_path":    "/healthz",
        "log_level":      "info",
        "scrape_timeout": "5s",
    },
    "rdma_exporter.collectors": {
        "enable_rdma":             "True",
        "sysfs_root":              "/sys",
        "exclude_devices":         "",
        "enable_roce_pfc_metrics": "False",
        "ethtool_path":            "ethtool",
    },
}

# (section, option, environment variable, command-line destination)
OPTIONS = [
    ("rdma_exporter",            "listen_address",          "RDMA_EXPORTER_LISTEN_ADDRESS",          "listen_address"),
    ("rdma_exporter",            "metrics_path",            "RDMA_EXPORTER_METRICS_PATH",            "metrics_path"),
    ("rdma_exporter",            "health_path",             "RDMA_EXPORTER_HEALTH_PATH",             "health_path"),
    ("rdma_exporter",            "log_level",               "RDMA_EXPORTER_LOG_LEVEL",               "log_level"),
    ("rdma_exporter",            "scrape_timeout",          "RDMA_EXPORTER_SCRAPE_TIMEOUT",          "scrape_timeout"),
    ("rdma_exporter.collectors", "sysfs_root",              "RDMA_EXPORTER_SYSFS_ROOT",              "sysfs_root"),
    ("rdma_exporter.collectors", "exclude_devices",         "RDMA_EXPORTER_EXCLUDE_DEVICES",         "exclude_devices"),
    ("rdma_exporter.collectors", "enable_roce_pfc_metrics", "RDMA_EXPORTER_ENABLE_ROCE_PFC_METRICS", "enable_roce_pfc_metrics"),
    ("rdma_exporter.collectors", "ethtool_path",            "RDMA_EXPORTER_ETHTOOL_PATH",            "ethtool_path"),
]
# fmt: on

LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "err": logging.ERROR,
}

DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
DURATION_PATTERN = re.compile(r"([0-9]*\.?[0-9]+)(ns|us|µs|ms|s|m|h)")


def parseDuration(value: str) -> float:
    """Parse a Go-style duration ("500ms", "5s", "1m30s") or bare seconds into seconds.

    Raises:
        ValueError: if the value is not a valid duration.
    """
    value = value.strip()
    if not value:
        raise ValueError("empty duration")

    try:
        seconds = float(value)
    except ValueError:
        pass
    else:
        if not math.isfinite(seconds):
            raise ValueError(f"invalid duration {value!r}")
        return seconds

    total = 0.0
    pos = 0
    for match in DURATION_PATTERN.finditer(value):
        if match.start() != pos:
            break
        total += float(match.group(1)) * DURATION_UNITS[match.group(2)]
        pos = match.end()

    if pos != len(value):
        raise ValueError(f"invalid duration {value!r}")
    return total


def parseLogLevel(value: str) -> int:
    """Map a log level name to its logging constant.

    Raises:
        ValueError: for unknown level names.
    """
    level = LOG_LEVELS.get(value.strip().lower())
    if level is None:
        raise ValueError(f"invalid log level {value!r}")
    return level


def parseList(value: str) -> list:
    return [item.strip() for item in value.split(",") if item.strip()]


def buildParser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="rdma_exporter", description="Prometheus exporter for RDMA device counters")
    parser.add_argument("--configfile", type=str, help="INI runtime config file", default=None)
    parser.add_argument("--listen-address", dest="listen_address", help="Address to listen on for HTTP requests.")
    parser.add_argument("--metrics-path", dest="metrics_path", help="HTTP path under which metrics are served.")
    parser.add_argument("--health-path", dest="health_path", help="HTTP path for health checks.")
    parser.add_argument("--log-level", dest="log_level", help="Log level (debug, info, warn, error).")
    parser.add_argument("--logfile", type=str, help="Write log messages to file instead of stdout", default=None)
    parser.add_argument("--sysfs-root", dest="sysfs_root", help="Root of the sysfs tree to read RDMA data from.")
    parser.add_argument(
        "--scrape-timeout", dest="scrape_timeout", help="Maximum duration to spend gathering metrics per scrape."
    )
    parser.add_argument(
        "--exclude-devices", dest="exclude_devices", help="Comma-separated list of RDMA devices to skip."
    )
    parser.add_argument(
        "--enable-roce-pfc-metrics",
        dest="enable_roce_pfc_metrics",
        action="store_const",
        const="True",
        default=None,
        help="Export RoCEv2 PFC pause counters read through ethtool.",
    )
    parser.add_argument("--ethtool-path", dest="ethtool_path", help="ethtool binary used for PFC statistics.")
    parser.add_argument("--version", action="store_true", help="Print version information and exit.")
    return parser


def readConfig(
    configfile: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    args: Optional[argparse.Namespace] = None,
) -> configparser.ConfigParser:
    """Assemble and validate the runtime configuration.

    Args:
        configfile (str, optional): INI file with [rdma_exporter] and
            [rdma_exporter.collectors] sections.
        env (dict, optional): Environment to read RDMA_EXPORTER_* overrides
            from; defaults to os.environ.
        args (argparse.Namespace, optional): Parsed command-line flags.

    Raises:
        ValueError: if the config file is missing or a value is invalid.
    """
    if env is None:
        env = os.environ

    config = configparser.ConfigParser(interpolation=None)
    config.read_dict(DEFAULTS)

    if configfile:
        if not os.path.isfile(configfile):
            raise ValueError(f"config file not found: {configfile}")
        config.read(configfile)

    for section, option, env_name, dest in OPTIONS:
        value = env.get(env_name, "").strip()
        if value:
            config[section][option] = value
        if args is not None and getattr(args, dest, None) is not None:
            config[section][option] = getattr(args, dest)

    for section in config.sections():
        for option, value in config[section].items():
            config[section][option] = utils.removeQuotes(value)

    validateConfig(config)
    return config


def validateConfig(config: configparser.ConfigParser):
    """Check values that are parsed lazily elsewhere.

    Raises:
        ValueError: describing the first invalid setting.
    """
    settings = config["rdma_exporter"]
    try:
        parseDuration(settings["scrape_timeout"])
    except ValueError as e:
        raise ValueError(f"invalid scrape_timeout: {e}") from e
    parseLogLevel(settings["log_level"])

    for option in ("metrics_path", "health_path"):
        if not settings[option].startswith("/"):
            raise ValueError(f"invalid {option} {settings[option]!r}: must start with '/'")

    collectors = config["rdma_exporter.collectors"]
    for option in ("enable_rdma", "enable_roce_pfc_metrics"):
        try:
            collectors.getboolean(option)
        except ValueError as e:
            raise ValueError(f"invalid {option}: {e}") from e


def loadConfig(argv: Optional[Sequence[str]] = None, env: Optional[Mapping[str, str]] = None):
    """Parse command-line flags and build the runtime configuration.

    Returns:
        tuple: (argparse.Namespace, configparser.ConfigParser)
    """
    args = buildParser().parse_args(argv)
    config = readConfig(args.configfile, env=env, args=args)
    return args, config
