from __future__ import annotations

from pathlib import Path
import json
import logging

from scapy.layers.inet import IP, IPOption_EOL, TCP
from scapy.packet import Packet
from scapy.utils import RawPcapWriter

from .classify import MIN_HEADER_LENGTH
from .protocols import TCP_PROTOCOL, protocol_name
from .record import TshRecord
from .summary import TraceSummary
from .trace import iter_records
from .utils import get_ip_address, to_serializable


logger = logging.getLogger(__name__)

LINKTYPE_RAW_IP = 101


def _ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def export_json(summary: TraceSummary, output_path: str | Path) -> Path:
    output_path = Path(output_path)
    _ensure_parent(output_path)
    payload = to_serializable(summary.to_dict())
    output_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    return output_path


def record_to_packet(record: TshRecord) -> Packet:
    """Rebuild the recorded headers as a scapy packet.

    Only the headers survive in a TSH record, so the packet is truncated:
    its wire length is the IP total length while the captured bytes stop
    after the headers. IP options are not recorded, so a longer IP header
    is filled with end-of-option-list bytes. The TCP checksum and urgent
    pointer are not recorded either and are written as zero.
    """
    ip = IP(
        version=record.version,
        ihl=record.version_ihl & 0x0F,
        tos=record.type_of_service,
        len=record.total_length,
        id=record.identification,
        flags=record.flags_fragment_offset >> 13,
        frag=record.flags_fragment_offset & 0x1FFF,
        ttl=record.ttl,
        proto=record.protocol,
        chksum=record.header_checksum,
        src=get_ip_address(record.source_address),
        dst=get_ip_address(record.destination_address),
    )
    if record.ihl > MIN_HEADER_LENGTH:
        ip.options = [IPOption_EOL() for _ in range(record.ihl - MIN_HEADER_LENGTH)]
    if protocol_name(record.protocol) == TCP_PROTOCOL:
        packet = ip / TCP(
            sport=record.source_port,
            dport=record.destination_port,
            seq=record.sequence_number,
            ack=record.acknowledgment_number,
            dataofs=record.data_offset_reserved >> 4,
            reserved=(record.data_offset_reserved >> 1) & 0x07,
            # The last reserved bit is the NS flag in scapy's 9-bit flags field.
            flags=record.tcp_flags | ((record.data_offset_reserved & 0x01) << 8),
            window=record.window,
            chksum=0,
            urgptr=0,
        )
    else:
        packet = ip
    packet.time = record.time
    packet.wirelen = max(record.total_length, len(packet))
    return packet


def export_pcap(trace_path: str | Path, output_path: str | Path) -> int:
    """Convert a TSH trace to a raw-IP pcap; returns packets written."""
    output_path = Path(output_path)
    _ensure_parent(output_path)
    written = 0
    writer = RawPcapWriter(str(output_path), linktype=LINKTYPE_RAW_IP, sync=False)
    try:
        writer.write_header(None)
        for record in iter_records(trace_path):
            packet = record_to_packet(record)
            raw = bytes(packet)
            writer.write_packet(
                raw,
                sec=record.seconds,
                usec=record.usec,
                caplen=len(raw),
                wirelen=packet.wirelen,
            )
            written += 1
    finally:
        writer.close()
    logger.info("wrote %d packets to %s", written, output_path)
    return written
