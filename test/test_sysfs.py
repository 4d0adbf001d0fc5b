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

from conftest import writeSysfsPort
from rdma_exporter.context import ScrapeCancelled, ScrapeContext
from rdma_exporter.sysfs import (
    PORT_PHYS_STATE_NAMES,
    PORT_STATE_NAMES,
    SysfsError,
    SysfsProvider,
    normalize_port_state,
)


@pytest.fixture
def ctx():
    return ScrapeContext.background()


class TestDevices:
    def test_missing_class_directory(self, tmp_path, ctx):
        assert SysfsProvider(str(tmp_path)).devices(ctx) == []

    def test_reads_counters_and_attributes(self, tmp_path, ctx):
        writeSysfsPort(
            tmp_path,
            "mlx5_0",
            1,
            counters={"port_rcv_data": 5, "port_xmit_data": 10},
            hw_counters={"out_of_buffer": 2},
            link_layer="Ethernet",
            ndevs={0: "ens1f0np0"},
        )

        devices = SysfsProvider(str(tmp_path)).devices(ctx)
        assert len(devices) == 1
        device = devices[0]
        assert device.name == "mlx5_0"
        (port,) = device.ports
        assert port.id == 1
        assert port.stats == {"port_rcv_data": 5, "port_xmit_data": 10}
        assert port.hw_stats == {"out_of_buffer": 2}
        assert port.attributes.link_layer == "Ethernet"
        assert port.attributes.state == "ACTIVE"
        assert port.attributes.phys_state == "LINK_UP"
        assert port.attributes.link_width == "4X"
        assert port.attributes.link_speed == "100 Gb/sec"
        assert port.attributes.netdev == "ens1f0np0"

    def test_hw_counters_are_optional(self, tmp_path, ctx):
        writeSysfsPort(tmp_path, "mlx4_0", 1, counters={"symbol_error": 0})
        (device,) = SysfsProvider(str(tmp_path)).devices(ctx)
        assert device.ports[0].hw_stats == {}
        assert device.ports[0].attributes.netdev == ""

    def test_devices_and_ports_are_sorted(self, tmp_path, ctx):
        for device in ["mlx5_1", "mlx5_0"]:
            for port in [10, 2, 1]:
                writeSysfsPort(tmp_path, device, port, counters={"port_rcv_data": port})
        # Non-numeric entries under ports/ are not ports
        (tmp_path / "class" / "infiniband" / "mlx5_0" / "ports" / "lost+found").mkdir()

        devices = SysfsProvider(str(tmp_path)).devices(ctx)
        assert [d.name for d in devices] == ["mlx5_0", "mlx5_1"]
        assert [p.id for p in devices[0].ports] == [1, 2, 10]

    def test_excluded_devices_are_skipped(self, tmp_path, ctx):
        writeSysfsPort(tmp_path, "mlx5_0", 1, counters={"port_rcv_data": 1})
        writeSysfsPort(tmp_path, "mlx5_1", 1, counters={"port_rcv_data": 1})

        provider = SysfsProvider(str(tmp_path), exclude_devices=["mlx5_0"])
        assert [d.name for d in provider.devices(ctx)] == ["mlx5_1"]

        provider.setExcludeDevices([])
        assert [d.name for d in provider.devices(ctx)] == ["mlx5_0", "mlx5_1"]

    def test_set_sysfs_root(self, tmp_path, ctx):
        writeSysfsPort(tmp_path / "alt", "mlx5_0", 1, counters={"port_rcv_data": 1})
        provider = SysfsProvider(str(tmp_path))
        assert provider.devices(ctx) == []
        provider.setSysfsRoot(str(tmp_path / "alt"))
        assert [d.name for d in provider.devices(ctx)] == ["mlx5_0"]

    def test_invalid_counter_value(self, tmp_path, ctx):
        writeSysfsPort(tmp_path, "mlx5_0", 1, counters={"port_rcv_data": "N/A"})
        with pytest.raises(SysfsError, match="port_rcv_data"):
            SysfsProvider(str(tmp_path)).devices(ctx)

    def test_negative_counter_value(self, tmp_path, ctx):
        writeSysfsPort(tmp_path, "mlx5_0", 1, counters={"port_rcv_data": -1})
        with pytest.raises(SysfsError):
            SysfsProvider(str(tmp_path)).devices(ctx)

    def test_missing_counters_directory(self, tmp_path, ctx):
        port_dir = writeSysfsPort(tmp_path, "mlx5_0", 1)
        (port_dir / "counters").rmdir()
        with pytest.raises(SysfsError):
            SysfsProvider(str(tmp_path)).devices(ctx)

    def test_cancelled_context(self, tmp_path):
        writeSysfsPort(tmp_path, "mlx5_0", 1, counters={"port_rcv_data": 1})
        ctx = ScrapeContext.background()
        ctx.cancel()
        with pytest.raises(ScrapeCancelled):
            SysfsProvider(str(tmp_path)).devices(ctx)

    def test_counter_values_beyond_64_bits_are_kept(self, tmp_path, ctx):
        writeSysfsPort(tmp_path, "mlx5_0", 1, counters={"port_xmit_data": 2**64 - 1})
        (device,) = SysfsProvider(str(tmp_path)).devices(ctx)
        assert device.ports[0].stats["port_xmit_data"] == 2**64 - 1


class TestPortAttributes:
    def test_first_populated_ndev_wins(self, tmp_path):
        port_dir = writeSysfsPort(tmp_path, "mlx5_0", 1, ndevs={0: "", 1: "ens2f0", 10: "ens9"})
        assert SysfsProvider.readPortNetDev(port_dir) == "ens2f0"

    def test_missing_attribute_files(self, tmp_path):
        port_dir = writeSysfsPort(tmp_path, "mlx5_0", 1)
        for name in ["link_layer", "state", "phys_state", "link_width", "rate"]:
            (port_dir / name).unlink()
        attributes = SysfsProvider.readPortAttributes(port_dir)
        assert attributes.link_layer == ""
        assert attributes.state == ""
        assert attributes.phys_state == ""
        assert attributes.link_speed == ""


class TestNormalizePortState:
    # fmt: off
    @pytest.mark.parametrize("raw,names,expected", [
        ("4: ACTIVE",     PORT_STATE_NAMES,      "ACTIVE"),
        ("1: DOWN",       PORT_STATE_NAMES,      "DOWN"),
        ("4",             PORT_STATE_NAMES,      "ACTIVE"),
        ("active",        PORT_STATE_NAMES,      "ACTIVE"),
        ("5: LinkUp",     PORT_PHYS_STATE_NAMES, "LINK_UP"),
        ("LinkUp",        PORT_PHYS_STATE_NAMES, "LINK_UP"),
        ("3: Disabled",   PORT_PHYS_STATE_NAMES, "DISABLED"),
        ("  ",            PORT_STATE_NAMES,      ""),
        ("mystery",       PORT_STATE_NAMES,      "mystery"),
        ("42: Weird",     PORT_STATE_NAMES,      "42: Weird"),
    ])
    # fmt: on
    def test_normalize(self, raw, names, expected):
        assert normalize_port_state(raw, names) == expected
