"""Decoding of fixed-size TSH (Time Sequenced Headers) records.

Each 44-byte record holds three sections:

* time and interface: seconds (32 bits), interface number (8 bits) and
  microseconds (24 bits),
* the 20-byte IPv4 header, options not recorded,
* the first 16 bytes of the TCP header (no checksum, urgent pointer or
  options).

All multi-byte fields are big-endian.
"""

from __future__ import annotations

from dataclasses import dataclass
import struct

from .errors import MalformedRecordError


RECORD_LENGTH = 44
USEC_PER_SECOND = 1_000_000

_RECORD = struct.Struct(">IB3sBBHHHBBHIIHHIIBBH")

DF_MASK = 0x4000
MF_MASK = 0x2000


@dataclass(frozen=True)
class TcpFlags:
    cwr: bool
    ece: bool
    urg: bool
    ack: bool
    psh: bool
    rst: bool
    syn: bool
    fin: bool

    @classmethod
    def from_byte(cls, value: int) -> "TcpFlags":
        return cls(
            cwr=bool(value & 0x80),
            ece=bool(value & 0x40),
            urg=bool(value & 0x20),
            ack=bool(value & 0x10),
            psh=bool(value & 0x08),
            rst=bool(value & 0x04),
            syn=bool(value & 0x02),
            fin=bool(value & 0x01),
        )


@dataclass(frozen=True)
class TshRecord:
    seconds: int
    interface: int
    usec: int
    version_ihl: int
    type_of_service: int
    total_length: int
    identification: int
    flags_fragment_offset: int
    ttl: int
    protocol: int
    header_checksum: int
    source_address: int
    destination_address: int
    source_port: int
    destination_port: int
    sequence_number: int
    acknowledgment_number: int
    data_offset_reserved: int
    tcp_flags: int
    window: int

    @property
    def microseconds(self) -> float:
        """Fractional part of the timestamp, always below 1.0."""
        return self.usec / USEC_PER_SECOND

    @property
    def time(self) -> float:
        return self.seconds + self.microseconds

    @property
    def version(self) -> int:
        return (self.version_ihl & 0xF0) >> 4

    @property
    def ihl(self) -> int:
        """IP header length in bytes."""
        return (self.version_ihl & 0x0F) << 2

    @property
    def dscp(self) -> int:
        return self.type_of_service >> 2

    @property
    def ecn(self) -> int:
        return self.type_of_service & 0b11

    @property
    def dont_fragment(self) -> bool:
        return bool(self.flags_fragment_offset & DF_MASK)

    @property
    def more_fragments(self) -> bool:
        return bool(self.flags_fragment_offset & MF_MASK)

    @property
    def tcp_header_length(self) -> int:
        return (self.data_offset_reserved & 0xF0) >> 2

    @property
    def tcp_payload_length(self) -> int:
        # Negative for malformed records; callers decide how to report it.
        return self.total_length - self.ihl - self.tcp_header_length

    @property
    def flags(self) -> TcpFlags:
        return TcpFlags.from_byte(self.tcp_flags)


def decode_record(buffer: bytes) -> TshRecord:
    if len(buffer) != RECORD_LENGTH:
        raise MalformedRecordError(
            f"TSH record must be {RECORD_LENGTH} bytes, got {len(buffer)}"
        )
    (
        seconds,
        interface,
        usec_raw,
        version_ihl,
        tos,
        total_length,
        identification,
        flags_offset,
        ttl,
        protocol,
        checksum,
        src,
        dst,
        src_port,
        dst_port,
        seq_num,
        ack_num,
        data_offset,
        tcp_flags,
        window,
    ) = _RECORD.unpack(buffer)

    usec = int.from_bytes(usec_raw, "big")
    if usec >= USEC_PER_SECOND:
        raise MalformedRecordError(
            f"Microseconds record field exceeds 1,000,000 ({usec})"
        )

    return TshRecord(
        seconds=seconds,
        interface=interface,
        usec=usec,
        version_ihl=version_ihl,
        type_of_service=tos,
        total_length=total_length,
        identification=identification,
        flags_fragment_offset=flags_offset,
        ttl=ttl,
        protocol=protocol,
        header_checksum=checksum,
        source_address=src,
        destination_address=dst,
        source_port=src_port,
        destination_port=dst_port,
        sequence_number=seq_num,
        acknowledgment_number=ack_num,
        data_offset_reserved=data_offset,
        tcp_flags=tcp_flags,
        window=window,
    )


def encode_record(record: TshRecord) -> bytes:
    """Inverse of :func:`decode_record`."""
    return _RECORD.pack(
        record.seconds,
        record.interface,
        record.usec.to_bytes(3, "big"),
        record.version_ihl,
        record.type_of_service,
        record.total_length,
        record.identification,
        record.flags_fragment_offset,
        record.ttl,
        record.protocol,
        record.header_checksum,
        record.source_address,
        record.destination_address,
        record.source_port,
        record.destination_port,
        record.sequence_number,
        record.acknowledgment_number,
        record.data_offset_reserved,
        record.tcp_flags,
        record.window,
    )
