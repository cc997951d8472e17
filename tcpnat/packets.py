"""Read-only IPv4 and TCP packet views with checksum handling."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from ipaddress import IPv4Address
from typing import Union

IPV4_MIN_HEADER_LENGTH = 20
TCP_MIN_HEADER_LENGTH = 20
PROTOCOL_ICMP = 1
PROTOCOL_TCP = 6

AddressLike = Union[IPv4Address, str, int]


class PacketError(ValueError):
    """Raised when bytes cannot be read or written as the expected packet."""


def checksum(data: bytes) -> int:
    """Return the 16-bit one's complement Internet checksum of ``data``."""
    data = bytes(data)
    if len(data) % 2:
        data += b"\x00"
    total = sum(word for (word,) in struct.iter_unpack("!H", data))
    while total >> 16:
        total = (total & 0xFFFF) + (total >> 16)
    return ~total & 0xFFFF


def _check_port(port: int) -> int:
    if not 0 <= port <= 0xFFFF:
        raise ValueError(f"port out of range: {port}")
    return port


@dataclass(frozen=True)
class Ipv4Packet:
    """An IPv4 packet split into its header (with options) and payload."""

    header: bytes
    payload: bytes

    @property
    def version(self) -> int:
        return self.header[0] >> 4

    @property
    def header_length(self) -> int:
        """Header length in 32-bit words."""
        return self.header[0] & 0x0F

    @property
    def total_length(self) -> int:
        return struct.unpack_from("!H", self.header, 2)[0]

    @property
    def ttl(self) -> int:
        return self.header[8]

    @property
    def protocol(self) -> int:
        return self.header[9]

    @property
    def checksum(self) -> int:
        return struct.unpack_from("!H", self.header, 10)[0]

    @property
    def source(self) -> IPv4Address:
        return IPv4Address(self.header[12:16])

    @property
    def destination(self) -> IPv4Address:
        return IPv4Address(self.header[16:20])

    def __bytes__(self) -> bytes:
        return self.header + self.payload

    def rebuild(
        self,
        payload: bytes | TcpPacket,
        source: AddressLike | None = None,
        destination: AddressLike | None = None,
    ) -> Ipv4Packet:
        """Return a copy carrying ``payload``, with fresh length and checksum.

        ``source`` and ``destination`` replace the addresses when given.
        """
        body = bytes(payload)
        header = bytearray(self.header)
        if source is not None:
            header[12:16] = IPv4Address(source).packed
        if destination is not None:
            header[16:20] = IPv4Address(destination).packed
        total = len(header) + len(body)
        if total > 0xFFFF:
            raise PacketError(f"packet too long: {total} bytes")
        struct.pack_into("!H", header, 2, total)
        header[10:12] = b"\x00\x00"
        struct.pack_into("!H", header, 10, checksum(header))
        return Ipv4Packet(bytes(header), body)


@dataclass(frozen=True)
class TcpPacket:
    """A TCP segment, header and payload together."""

    data: bytes

    @property
    def source_port(self) -> int:
        return struct.unpack_from("!H", self.data, 0)[0]

    @property
    def destination_port(self) -> int:
        return struct.unpack_from("!H", self.data, 2)[0]

    @property
    def sequence(self) -> int:
        return struct.unpack_from("!I", self.data, 4)[0]

    @property
    def acknowledgement(self) -> int:
        return struct.unpack_from("!I", self.data, 8)[0]

    @property
    def data_offset(self) -> int:
        """Header length in 32-bit words."""
        return self.data[12] >> 4

    @property
    def flags(self) -> int:
        return struct.unpack_from("!H", self.data, 12)[0] & 0x01FF

    @property
    def window(self) -> int:
        return struct.unpack_from("!H", self.data, 14)[0]

    @property
    def checksum(self) -> int:
        return struct.unpack_from("!H", self.data, 16)[0]

    @property
    def payload(self) -> bytes:
        offset = min(max(self.data_offset * 4, TCP_MIN_HEADER_LENGTH), len(self.data))
        return self.data[offset:]

    def __bytes__(self) -> bytes:
        return self.data

    def with_ports(
        self,
        source_ip: AddressLike,
        destination_ip: AddressLike,
        source_port: int,
        destination_port: int,
    ) -> TcpPacket:
        """Return a copy with new ports and a checksum over the given addresses."""
        segment = bytearray(self.data)
        if len(segment) > 0xFFFF:
            raise PacketError(f"segment too long: {len(segment)} bytes")
        struct.pack_into(
            "!HH", segment, 0, _check_port(source_port), _check_port(destination_port)
        )
        segment[16:18] = b"\x00\x00"
        pseudo_header = (
            IPv4Address(source_ip).packed
            + IPv4Address(destination_ip).packed
            + bytes((0, PROTOCOL_TCP))
            + len(segment).to_bytes(2, "big")
        )
        struct.pack_into("!H", segment, 16, checksum(pseudo_header + segment))
        return TcpPacket(bytes(segment))


def parse_ipv4(data: bytes) -> Ipv4Packet:
    """Read an IPv4 packet; the payload is bounded by the total length field."""
    data = bytes(data)
    if len(data) < IPV4_MIN_HEADER_LENGTH:
        raise PacketError(f"IPv4 packet too short: {len(data)} bytes")
    header_length = (data[0] & 0x0F) * 4
    if header_length < IPV4_MIN_HEADER_LENGTH:
        raise PacketError(f"IPv4 header length too small: {header_length} bytes")
    if header_length > len(data):
        raise PacketError(f"IPv4 header length {header_length} exceeds packet")
    total_length = struct.unpack_from("!H", data, 2)[0]
    end = min(max(total_length, header_length), len(data))
    return Ipv4Packet(data[:header_length], data[header_length:end])


def parse_tcp(data: bytes) -> TcpPacket:
    """Read a TCP segment."""
    data = bytes(data)
    if len(data) < TCP_MIN_HEADER_LENGTH:
        raise PacketError(f"TCP segment too short: {len(data)} bytes")
    return TcpPacket(data)