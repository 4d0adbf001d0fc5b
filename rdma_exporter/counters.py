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

"""Counter canonicalization

Maps raw sysfs counter names to a stable "documented name" so that the exported
series identity survives case, underscore and kernel-version spelling changes.
Known counters carry the help text from "Understanding mlx5 Linux Counters and
Status Parameters":

https://enterprise-support.nvidia.com/s/article/understanding-mlx5-linux-counters-and-status-parameters
"""

from typing import Dict

# fmt: off
COUNTER_DEFINITIONS = [
    {"docName": "port_rcv_data",                   "description": "The total number of data octets, divided by 4 (counting in double words, 32 bits), received on all VLs from the port."},
    {"docName": "port_rcv_packets",                "description": "Total number of packets (may include packets containing errors)."},
    {"docName": "port_multicast_rcv_packets",      "description": "Total number of multicast packets, including multicast packets containing errors."},
    {"docName": "port_unicast_rcv_packets",        "description": "Total number of unicast packets, including unicast packets containing errors."},
    {"docName": "port_xmit_data",                  "description": "The total number of data octets, divided by 4, transmitted on all VLs from the port."},
    {"docName": "port_xmit_packets",               "description": "Total number of packets transmitted on all VLs from this port (may include packets with errors)."},
    {"docName": "port_multicast_xmit_packets",     "description": "Total number of multicast packets transmitted on all VLs from the port (may include multicast packets with errors)."},
    {"docName": "port_unicast_xmit_packets",       "description": "Total number of unicast packets transmitted on all VLs from the port (may include unicast packets with errors)."},
    {"docName": "port_rcv_switch_relay_errors",    "description": "Total number of packets received on the port that were discarded because they could not be forwarded by the switch relay."},
    {"docName": "port_rcv_errors",                 "description": "Total number of packets containing an error that were received on the port."},
    {"docName": "port_rcv_constraint_errors",      "description": "Total number of packets received on the switch physical port that are discarded."},
    {"docName": "local_link_integrity_errors",     "description": "Number of times that the count of local physical errors exceeded the threshold specified by LocalPhyErrors."},
    {"docName": "port_xmit_wait",                  "description": "Number of ticks during which the port had data to transmit but no data was sent during the entire tick."},
    {"docName": "port_xmit_discards",              "description": "Total number of outbound packets discarded by the port because the port is down or congested."},
    {"docName": "port_xmit_constraint_errors",     "description": "Total number of packets not transmitted from the switch physical port."},
    {"docName": "port_rcv_remote_physical_errors", "description": "Total number of packets marked with the EBP delimiter received on the port."},
    {"docName": "symbol_error",                    "description": "Total number of minor link errors detected on one or more physical lanes."},
    {"docName": "VL15_dropped",                    "description": "Number of incoming VL15 packets dropped due to resource limitations."},
    {"docName": "link_error_recovery",             "description": "Total number of times the Port Training state machine successfully completed the link error recovery process."},
    {"docName": "link_downed",                     "description": "Total number of times the Port Training state machine failed the link error recovery process and downed the link."},
    {"docName": "duplicate_request",               "description": "Number of received packets. A duplicate request is a request that had been previously executed."},
    {"docName": "implied_nak_seq_err",             "description": "Number of times the requester decided an ACK with a PSN larger than the expected PSN for an RDMA read or response."},
    {"docName": "lifespan",                        "description": "The maximum period in ms which defines the aging of the counter reads. Two consecutive reads within this period might return the same values."},
    {"docName": "local_ack_timeout_err",           "description": "The number of times QP's ack timer expired for RC, XRC, DCT QPs at the sender side. The QP retry limit was not exceeded, therefore it is still a recoverable error."},
    {"docName": "np_cnp_sent",                     "description": "The number of CNP packets sent by the Notification Point when it noticed congestion experienced in the RoCEv2 IP header (ECN bits). The counter was added in MLNX_OFED 4.1."},
    {"docName": "np_ecn_marked_roce_packets",      "description": "The number of RoCEv2 packets received by the notification point which were marked for experiencing congestion (ECN bits were '11' on the ingress RoCE traffic). The counter was added in MLNX_OFED 4.1."},
    {"docName": "out_of_buffer",                   "description": "The number of drops that occurred due to lack of WQE for the associated QPs."},
    {"docName": "out_of_sequence",                 "description": "The number of out-of-sequence packets received."},
    {"docName": "packet_seq_err",                  "description": "The number of received NAK sequence error packets. The QP retry limit was not exceeded."},
    {"docName": "req_cqe_error",                   "description": "The number of times requester detected CQEs completed with errors. Added in MLNX_OFED 4.1."},
    {"docName": "req_cqe_flush_error",             "description": "The number of times requester detected CQEs completed with flushed errors. Added in MLNX_OFED 4.1."},
    {"docName": "req_remote_access_errors",        "description": "The number of times requester detected remote access errors. Added in MLNX_OFED 4.1."},
    {"docName": "req_remote_invalid_request",      "description": "The number of times requester detected remote invalid request errors. Added in MLNX_OFED 4.1."},
    {"docName": "resp_cqe_error",                  "description": "The number of times responder detected CQEs completed with errors. Added in MLNX_OFED 4.1."},
    {"docName": "resp_cqe_flush_error",            "description": "The number of times responder detected CQEs completed with flushed errors. Added in MLNX_OFED 4.1."},
    {"docName": "resp_local_length_error",         "description": "The number of times responder detected local length errors. Added in MLNX_OFED 4.1."},
    {"docName": "resp_remote_access_errors",       "description": "The number of times responder detected remote access errors. Added in MLNX_OFED 4.1."},
    {"docName": "rnr_nak_retry_err",               "description": "The number of received RNR NAK packets. The QP retry limit was not exceeded."},
    {"docName": "roce_adp_retrans",                "description": "Counts the number of adaptive retransmissions for RoCE traffic. Added in MLNX_OFED rev 5.0-1.0.0.0 and kernel v5.6.0."},
    {"docName": "roce_adp_retrans_to",             "description": "Counts the number of times RoCE traffic reached timeout due to adaptive retransmission. Added in MLNX_OFED rev 5.0-1.0.0.0 and kernel v5.6.0."},
    {"docName": "roce_slow_restart",               "description": "Counts the number of times RoCE slow restart was used. Added in MLNX_OFED rev 5.0-1.0.0.0 and kernel v5.6.0."},
    {"docName": "roce_slow_restart_cnps",          "description": "Counts the number of times RoCE slow restart generated CNP packets. Added in MLNX_OFED rev 5.0-1.0.0.0 and kernel v5.6.0."},
    {"docName": "roce_slow_restart_trans",         "description": "Counts the number of times RoCE slow restart changed state to slow restart. Added in MLNX_OFED rev 5.0-1.0.0.0 and kernel v5.6.0."},
    {"docName": "rp_cnp_handled",                  "description": "The number of CNP packets handled by the Reaction Point HCA to throttle the transmission rate. Added in MLNX_OFED 4.1."},
    {"docName": "rp_cnp_ignored",                  "description": "The number of CNP packets received and ignored by the Reaction Point HCA. This counter should not raise if RoCE Congestion Control was enabled in the network. If this counter rises, verify that ECN was enabled on the adapter. Added in MLNX_OFED 4.1."},
    {"docName": "rx_atomic_requests",              "description": "The number of received ATOMIC requests for the associated QPs."},
    {"docName": "rx_dct_connect",                  "description": "The number of received connection requests for the associated DCTs."},
    {"docName": "rx_icrc_encapsulated",            "description": "The number of RoCE packets with ICRC errors. This counter was added in MLNX_OFED 4.4 and kernel 4.19."},
    {"docName": "rx_read_requests",                "description": "The number of received READ requests for the associated QPs."},
    {"docName": "rx_write_requests",               "description": "The number of received WRITE requests for the associated QPs."},
]

# Spellings seen across kernel and driver releases for the same counter.
COUNTER_ALIASES = {
    "vl15_dropped":          "VL15_dropped",
    "VL15Dropped":           "VL15_dropped",
    "SymbolErrorCounter":    "symbol_error",
    "LinkDownedCounter":     "link_downed",
    "LinkErrorRecoveryCounter": "link_error_recovery",
    "PortXmitWait":          "port_xmit_wait",
    "PortXmitDiscards":      "port_xmit_discards",
    "PortRcvErrors":         "port_rcv_errors",
}
# fmt: on


def _buildKnownNames() -> Dict[str, str]:
    known = {}
    for item in COUNTER_DEFINITIONS:
        known[item["docName"]] = item["docName"]
    for alias, docName in COUNTER_ALIASES.items():
        known[alias] = docName
    return known


KNOWN_NAMES = _buildKnownNames()
HELP_BY_DOC_NAME = {item["docName"]: item["description"] for item in COUNTER_DEFINITIONS}


def sanitize(name: str) -> str:
    """Reduce a raw name to the [a-z0-9_] alphabet of a metric identifier.

    A leading digit is prefixed with an underscore, anything outside the
    alphabet becomes an underscore and input without a single usable character
    becomes "unknown".
    """
    chars = []
    valid = False
    for i, c in enumerate(name):
        if "a" <= c <= "z" or c == "_":
            chars.append(c)
            valid = True
        elif "A" <= c <= "Z":
            chars.append(c.lower())
            valid = True
        elif "0" <= c <= "9":
            if i == 0:
                chars.append("_")
            chars.append(c)
            valid = True
        else:
            chars.append("_")

    if not valid:
        return "unknown"
    return "".join(chars)


def canonical(raw_name: str) -> str:
    """Return the documented name for a raw counter name."""
    docName = KNOWN_NAMES.get(raw_name)
    if docName is not None:
        return docName

    sanitized = sanitize(raw_name)
    return KNOWN_NAMES.get(sanitized, sanitized)


def help_for(doc_name: str, fallback: str) -> str:
    return HELP_BY_DOC_NAME.get(doc_name, fallback)
