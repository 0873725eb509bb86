from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .record import TshRecord


MIN_HEADER_LENGTH = 20

TOTAL = "Total"
DF = "DF"
MF = "MF"
ECT = "ECT"
CE = "CE"
NORMAL = "Normal"
CLASS_SELECTOR = "Class Selector"
AF_PHB = "AF PHB"
EF_PHB = "EF PHB"
NO_IP_OPTIONS = "No IP Options"
IP_OPTIONS = "IP Options"

# Report column order.
CATEGORIES = (
    TOTAL,
    DF,
    MF,
    ECT,
    CE,
    NORMAL,
    CLASS_SELECTOR,
    AF_PHB,
    EF_PHB,
    NO_IP_OPTIONS,
    IP_OPTIONS,
)


def fragmentation_classes(flags_fragment_offset: int) -> list[str]:
    classes: list[str] = []
    if flags_fragment_offset & 0x4000:
        classes.append(DF)
    if flags_fragment_offset & 0x2000:
        classes.append(MF)
    return classes


def diffserv_class(dscp: int) -> Optional[str]:
    """Map a DSCP to its DiffServ class; first match wins.

    Zero is checked before the class selector test, so it is always Normal.
    """
    if dscp == 0:
        return NORMAL
    if dscp % 8 == 0:
        return CLASS_SELECTOR
    if dscp % 2 == 0:
        half = dscp >> 1
        if 4 < half < 20:
            return AF_PHB
        if half == 23:
            return EF_PHB
    return None


def ecn_classes(ecn: int) -> list[str]:
    classes: list[str] = []
    if ecn:
        classes.append(ECT)
    if ecn == 0b11:
        classes.append(CE)
    return classes


def ip_options_class(ihl: int) -> Optional[str]:
    """None means an undersized header; the caller reports it."""
    if ihl == MIN_HEADER_LENGTH:
        return NO_IP_OPTIONS
    if ihl > MIN_HEADER_LENGTH:
        return IP_OPTIONS
    return None


def ip_categories(record: TshRecord) -> list[str]:
    categories = [TOTAL]
    categories.extend(fragmentation_classes(record.flags_fragment_offset))
    diffserv = diffserv_class(record.dscp)
    if diffserv is not None:
        categories.append(diffserv)
    categories.extend(ecn_classes(record.ecn))
    options = ip_options_class(record.ihl)
    if options is not None:
        categories.append(options)
    return categories


ACK_CUMULATIVE = "cumulative"
ACK_OPTIONS = "options"


@dataclass(frozen=True)
class TcpObservation:
    header_length: int
    payload_length: int
    syn: bool
    syn_ack: bool
    syn_payload: bool
    window: int
    hard_window: bool
    ack: bool
    ack_kind: Optional[str]
    pure_ack: bool
    anomalies: tuple[str, ...]


def classify_tcp(record: TshRecord) -> TcpObservation:
    flags = record.flags
    header_length = record.tcp_header_length
    payload = record.tcp_payload_length

    anomalies: list[str] = []
    if payload < 0:
        anomalies.append(
            f"TCP segment with negative payload length {payload} "
            f"(total length {record.total_length}, IP header {record.ihl}, TCP header {header_length})"
        )

    ack_kind: Optional[str] = None
    pure_ack = False
    if flags.ack:
        if header_length == MIN_HEADER_LENGTH:
            ack_kind = ACK_CUMULATIVE
            pure_ack = payload == 0
        elif header_length > MIN_HEADER_LENGTH:
            ack_kind = ACK_OPTIONS
        else:
            anomalies.append(f"TCP header with only {header_length} bytes detected")

    return TcpObservation(
        header_length=header_length,
        payload_length=payload,
        syn=flags.syn,
        syn_ack=flags.syn and flags.ack,
        syn_payload=flags.syn and payload > 0,
        window=record.window,
        hard_window=flags.syn and header_length == MIN_HEADER_LENGTH,
        ack=flags.ack,
        ack_kind=ack_kind,
        pure_ack=pure_ack,
        anomalies=tuple(anomalies),
    )
