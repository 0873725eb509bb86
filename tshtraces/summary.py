from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Optional

from .classify import ACK_CUMULATIVE, ACK_OPTIONS, TOTAL, TcpObservation
from .errors import ConsistencyError
from .protocols import TCP_PROTOCOL


DEFAULT_LINK_CAPACITY = 155_520_000

PACKETS_SUFFIX = " Packets"
BYTES_SUFFIX = " Bytes"
PACKET_SIZE = "Packet Size"


@dataclass
class StatBucket:
    """Paired packet/byte counters per category, plus a size histogram."""

    packets: Counter[str] = field(default_factory=Counter)
    bytes: Counter[str] = field(default_factory=Counter)
    packet_size: Counter[int] = field(default_factory=Counter)

    def add(self, category: str, size: int) -> None:
        self.packets[category] += 1
        self.bytes[category] += size
        if category == TOTAL:
            self.packet_size[size] += 1

    def merge(self, other: "StatBucket") -> None:
        self.packets.update(other.packets)
        self.bytes.update(other.bytes)
        self.packet_size.update(other.packet_size)

    def __getitem__(self, key: str) -> Any:
        if key == PACKET_SIZE:
            return self.packet_size
        if key.endswith(PACKETS_SUFFIX):
            return self.packets[key[: -len(PACKETS_SUFFIX)]]
        if key.endswith(BYTES_SUFFIX):
            return self.bytes[key[: -len(BYTES_SUFFIX)]]
        raise KeyError(key)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        for category in sorted(self.packets):
            data[f"{category}{PACKETS_SUFFIX}"] = self.packets[category]
            data[f"{category}{BYTES_SUFFIX}"] = self.bytes[category]
        data[PACKET_SIZE] = {size: self.packet_size[size] for size in sorted(self.packet_size)}
        return data


_TCP_COUNTER_NAMES = {
    "Total ACKs": "total_acks",
    "Cumulative ACKs": "cumulative_acks",
    "Pure ACKs": "pure_acks",
    "Options ACKs": "options_acks",
    "SYN/Payload": "syn_payload",
    "Concurrent Segments": "concurrent_segments",
    "ACK Option Size": "ack_option_size",
    "SYN": "syn",
    "SYN/ACK": "syn_ack",
    "rwnd": "rwnd",
    "awnd": "awnd",
}


@dataclass
class TcpStats:
    total_acks: int = 0
    cumulative_acks: int = 0
    pure_acks: int = 0
    options_acks: int = 0
    ack_option_size: Counter[int] = field(default_factory=Counter)
    syn: Counter[int] = field(default_factory=Counter)
    syn_ack: Counter[int] = field(default_factory=Counter)
    syn_payload: int = 0
    # Soft count: every SYN. Hard count: SYNs with an option-free header.
    rwnd: Counter[int] = field(default_factory=Counter)
    awnd: Counter[int] = field(default_factory=Counter)
    concurrent_segments: int = 0

    def observe(self, obs: TcpObservation) -> None:
        if obs.syn:
            self.syn[obs.header_length] += 1
            if obs.syn_ack:
                self.syn_ack[obs.header_length] += 1
            if obs.syn_payload:
                self.syn_payload += 1
            self.rwnd[obs.window] += 1
            if obs.hard_window:
                self.awnd[obs.window] += 1

        if obs.ack:
            self.total_acks += 1
            if obs.ack_kind == ACK_CUMULATIVE:
                self.cumulative_acks += 1
                if obs.pure_ack:
                    self.pure_acks += 1
            elif obs.ack_kind == ACK_OPTIONS:
                self.options_acks += 1
                self.ack_option_size[obs.header_length] += 1

    def merge(self, other: "TcpStats") -> None:
        self.total_acks += other.total_acks
        self.cumulative_acks += other.cumulative_acks
        self.pure_acks += other.pure_acks
        self.options_acks += other.options_acks
        self.ack_option_size.update(other.ack_option_size)
        self.syn.update(other.syn)
        self.syn_ack.update(other.syn_ack)
        self.syn_payload += other.syn_payload
        self.rwnd.update(other.rwnd)
        self.awnd.update(other.awnd)
        self.concurrent_segments += other.concurrent_segments

    def __getitem__(self, key: str) -> Any:
        try:
            return getattr(self, _TCP_COUNTER_NAMES[key])
        except KeyError:
            raise KeyError(key) from None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        for name, attr in _TCP_COUNTER_NAMES.items():
            value = getattr(self, attr)
            if isinstance(value, Counter):
                value = {key: value[key] for key in sorted(value)}
            data[name] = value
        return data


@dataclass
class InterfaceSummary:
    interface: int
    ends: float = 0.0
    ip: StatBucket = field(default_factory=StatBucket)
    transport: dict[str, StatBucket] = field(default_factory=dict)
    tcp: TcpStats = field(default_factory=TcpStats)

    def bucket(self, protocol: str) -> StatBucket:
        bucket = self.transport.get(protocol)
        if bucket is None:
            bucket = self.transport[protocol] = StatBucket()
        return bucket

    def to_dict(self) -> dict[str, Any]:
        transport = {name: self.transport[name].to_dict() for name in sorted(self.transport)}
        if TCP_PROTOCOL in transport:
            transport[TCP_PROTOCOL].update(self.tcp.to_dict())
        return {"ends": self.ends, "IP": self.ip.to_dict(), "Transport": transport}


@dataclass
class TraceSummary:
    """Aggregate statistics for one processed trace.

    Counters are kept per interface and across interfaces. The aggregate
    view is rebuilt from the interfaces by :meth:`finalize`, so finalizing
    twice gives the same result.
    """

    filename: str = ""
    log: Optional[str] = None
    starts: Optional[float] = None
    ends: float = 0.0
    records: int = 0
    unidirectional: Optional[bool] = None
    link_capacity: int = DEFAULT_LINK_CAPACITY
    ip: StatBucket = field(default_factory=StatBucket)
    transport: dict[str, StatBucket] = field(default_factory=dict)
    tcp: TcpStats = field(default_factory=TcpStats)
    interfaces: dict[int, InterfaceSummary] = field(default_factory=dict)
    interface_numbers: list[int] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def interface_count(self) -> int:
        return len(self.interface_numbers)

    def reset(self) -> None:
        fresh = TraceSummary()
        for name in self.__dataclass_fields__:
            setattr(self, name, getattr(fresh, name))

    def interface(self, number: int) -> InterfaceSummary:
        summary = self.interfaces.get(number)
        if summary is None:
            summary = self.interfaces[number] = InterfaceSummary(interface=number)
        return summary

    def bucket(self, protocol: str) -> StatBucket:
        bucket = self.transport.get(protocol)
        if bucket is None:
            bucket = self.transport[protocol] = StatBucket()
        return bucket

    def record(self, interface: int, protocol: str, category: str, size: int) -> None:
        """Count one packet of ``size`` bytes under ``category``.

        The IP bucket and the protocol bucket are both updated, at the
        interface scope and across interfaces.
        """
        iface = self.interface(interface)
        iface.ip.add(category, size)
        iface.bucket(protocol).add(category, size)
        self.ip.add(category, size)
        self.bucket(protocol).add(category, size)

    def observe_tcp(self, interface: int, obs: TcpObservation) -> None:
        self.interface(interface).tcp.observe(obs)
        self.tcp.observe(obs)

    def count_concurrent_segment(self, interface: int) -> None:
        self.interface(interface).tcp.concurrent_segments += 1
        self.tcp.concurrent_segments += 1

    def transport_total_packets(self) -> int:
        return sum(bucket.packets[TOTAL] for bucket in self.transport.values())

    def finalize(self) -> None:
        ip = StatBucket()
        transport: dict[str, StatBucket] = {}
        tcp = TcpStats()
        for number in sorted(self.interfaces):
            iface = self.interfaces[number]
            ip.merge(iface.ip)
            for protocol, bucket in iface.transport.items():
                transport.setdefault(protocol, StatBucket()).merge(bucket)
            tcp.merge(iface.tcp)
        self.ip = ip
        self.transport = transport
        self.tcp = tcp
        self.interface_numbers = sorted(self.interfaces)

        total = self.transport_total_packets()
        if total != self.records:
            raise ConsistencyError(
                f"Total number of packets ({total}) does not match "
                f"total number of trace records ({self.records})"
            )

    def __getitem__(self, key: str) -> Any:
        """Dictionary-style access mirroring the report layout.

        ``summary["IP"]``, ``summary["Transport"]["UDP"]`` and
        ``summary["Transport"]["TCP"]["Total ACKs"]`` all work.
        """
        if key == "IP":
            return self.ip
        if key == "Transport":
            return _TransportView(self)
        if key == "Link Capacity":
            return self.link_capacity
        if key in ("filename", "log", "starts", "ends", "records", "unidirectional"):
            return getattr(self, key)
        raise KeyError(key)

    def to_dict(self) -> dict[str, Any]:
        transport = {name: self.transport[name].to_dict() for name in sorted(self.transport)}
        if TCP_PROTOCOL in transport:
            transport[TCP_PROTOCOL].update(self.tcp.to_dict())
        return {
            "filename": self.filename,
            "log": self.log,
            "starts": self.starts,
            "ends": self.ends,
            "records": self.records,
            "interfaces": len(self.interface_numbers),
            "unidirectional": self.unidirectional,
            "Link Capacity": self.link_capacity,
            "IP": self.ip.to_dict(),
            "Transport": transport,
            "Interfaces": {number: self.interfaces[number].to_dict() for number in sorted(self.interfaces)},
            "warnings": list(self.warnings),
        }


class _TransportView:
    def __init__(self, summary: TraceSummary) -> None:
        self._summary = summary

    def __getitem__(self, protocol: str) -> "_ProtocolView":
        bucket = self._summary.transport.get(protocol)
        if bucket is None:
            raise KeyError(protocol)
        tcp = self._summary.tcp if protocol == TCP_PROTOCOL else None
        return _ProtocolView(bucket, tcp)

    def __contains__(self, protocol: object) -> bool:
        return protocol in self._summary.transport

    def __iter__(self):
        return iter(sorted(self._summary.transport))

    def keys(self) -> list[str]:
        return sorted(self._summary.transport)


class _ProtocolView:
    def __init__(self, bucket: StatBucket, tcp: Optional[TcpStats]) -> None:
        self._bucket = bucket
        self._tcp = tcp

    def __getitem__(self, key: str) -> Any:
        if self._tcp is not None and key in _TCP_COUNTER_NAMES:
            return self._tcp[key]
        return self._bucket[key]
