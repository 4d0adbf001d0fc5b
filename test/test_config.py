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

import pytest

from rdma_exporter.config import buildParser, loadConfig, parseDuration, parseList, parseLogLevel, readConfig


@pytest.fixture
def configfile(tmp_path):
    path = tmp_path / "rdma_exporter.config"
    path.write_text(
        "[rdma_exporter]\n"
        "listen_address = :9100\n"
        "scrape_timeout = 10s\n"
        "log_level = debug\n"
        "\n"
        "[rdma_exporter.collectors]\n"
        'sysfs_root = "/host/sys"\n'
        "exclude_devices = mlx5_2, mlx5_3\n"
        "enable_roce_pfc_metrics = True\n"
    )
    return str(path)


class TestDurations:
    # fmt: off
    @pytest.mark.parametrize("value,expected", [
        ("5s",     5.0),
        ("500ms",  0.5),
        ("1m30s",  90.0),
        ("1.5h",   5400.0),
        ("250us",  0.00025),
        ("0",      0.0),
        ("2.5",    2.5),
        (" 3s ",   3.0),
    ])
    # fmt: on
    def test_valid(self, value, expected):
        assert parseDuration(value) == pytest.approx(expected)

    @pytest.mark.parametrize("value", ["", "five", "5x", "s", "5s garbage", "-", "nan", "inf"])
    def test_invalid(self, value):
        with pytest.raises(ValueError):
            parseDuration(value)


class TestHelpers:
    def test_log_levels(self):
        assert parseLogLevel("DEBUG") == 10
        assert parseLogLevel("warn") == 30
        assert parseLogLevel("") == 20
        with pytest.raises(ValueError):
            parseLogLevel("chatty")

    def test_parse_list(self):
        assert parseList("mlx5_0, mlx5_1,,") == ["mlx5_0", "mlx5_1"]
        assert parseList("") == []


class TestReadConfig:
    def test_defaults(self):
        config = readConfig(env={})
        assert config["rdma_exporter"]["listen_address"] == ":9879"
        assert config["rdma_exporter"]["metrics_path"] == "/metrics"
        assert config["rdma_exporter"]["health_path"] == "/healthz"
        assert parseDuration(config["rdma_exporter"]["scrape_timeout"]) == 5.0
        assert config["rdma_exporter.collectors"]["sysfs_root"] == "/sys"
        assert config["rdma_exporter.collectors"].getboolean("enable_roce_pfc_metrics") is False
        assert config["rdma_exporter.collectors"].getboolean("enable_rdma") is True

    def test_config_file(self, configfile):
        config = readConfig(configfile, env={})
        assert config["rdma_exporter"]["listen_address"] == ":9100"
        assert config["rdma_exporter"]["log_level"] == "debug"
        assert config["rdma_exporter.collectors"]["sysfs_root"] == "/host/sys"
        assert parseList(config["rdma_exporter.collectors"]["exclude_devices"]) == ["mlx5_2", "mlx5_3"]
        # unset keys keep their defaults
        assert config["rdma_exporter"]["metrics_path"] == "/metrics"

    def test_missing_config_file(self, tmp_path):
        with pytest.raises(ValueError, match="not found"):
            readConfig(str(tmp_path / "nope.config"), env={})

    def test_precedence(self, configfile):
        env = {"RDMA_EXPORTER_LISTEN_ADDRESS": ":9200", "RDMA_EXPORTER_SCRAPE_TIMEOUT": "2s"}
        args = buildParser().parse_args(["--listen-address", "127.0.0.1:9300"])
        config = readConfig(configfile, env=env, args=args)

        # flag beats environment beats file
        assert config["rdma_exporter"]["listen_address"] == "127.0.0.1:9300"
        assert config["rdma_exporter"]["scrape_timeout"] == "2s"
        assert config["rdma_exporter"]["log_level"] == "debug"

    def test_empty_environment_value_is_ignored(self):
        config = readConfig(env={"RDMA_EXPORTER_SYSFS_ROOT": "  "})
        assert config["rdma_exporter.collectors"]["sysfs_root"] == "/sys"

    @pytest.mark.parametrize(
        "env",
        [
            {"RDMA_EXPORTER_SCRAPE_TIMEOUT": "soon"},
            {"RDMA_EXPORTER_LOG_LEVEL": "verbose"},
            {"RDMA_EXPORTER_METRICS_PATH": "metrics"},
            {"RDMA_EXPORTER_ENABLE_ROCE_PFC_METRICS": "maybe"},
        ],
    )
    def test_invalid_values(self, env):
        with pytest.raises(ValueError):
            readConfig(env=env)


class TestLoadConfig:
    def test_flags(self):
        args, config = loadConfig(
            ["--sysfs-root", "/tmp/sys", "--enable-roce-pfc-metrics", "--exclude-devices", "mlx5_1"], env={}
        )
        assert args.version is False
        collectors = config["rdma_exporter.collectors"]
        assert collectors["sysfs_root"] == "/tmp/sys"
        assert collectors.getboolean("enable_roce_pfc_metrics") is True
        assert collectors["exclude_devices"] == "mlx5_1"

    def test_unset_flag_does_not_override_environment(self):
        _, config = loadConfig([], env={"RDMA_EXPORTER_ENABLE_ROCE_PFC_METRICS": "true"})
        assert config["rdma_exporter.collectors"].getboolean("enable_roce_pfc_metrics") is True

    def test_version_flag(self):
        args, _ = loadConfig(["--version"], env={})
        assert args.version is True
