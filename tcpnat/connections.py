"""Connection tracking and address translation for TCP over IPv4."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from ipaddress import IPv4Address, IPv4Network

from tcpnat.packets import AddressLike, Ipv4Packet, PacketError, TcpPacket, parse_tcp

logger = logging.getLogger(__name__)

ALICE_SUBNET = IPv4Network("192.168.1.0/24")
EPHEMERAL_PORTS = range(49152, 65535)


@dataclass
class Connection:
    """One translated flow: the original endpoints and the address used for it."""

    source_ip: IPv4Address
    source_port: int
    destination_ip: IPv4Address
    destination_port: int
    remapped_source_ip: IPv4Address
    remapped_source_port: int

    def __post_init__(self) -> None:
        self.source_ip = IPv4Address(self.source_ip)
        self.destination_ip = IPv4Address(self.destination_ip)
        self.remapped_source_ip = IPv4Address(self.remapped_source_ip)


def set_tcp(
    tcp: TcpPacket,
    source_ip: AddressLike,
    destination_ip: AddressLike,
    source_port: int,
    destination_port: int,
) -> TcpPacket:
    """Return ``tcp`` with new ports and a checksum for the given addresses."""
    return tcp.with_ports(source_ip, destination_ip, source_port, destination_port)


def remap(
    packet: Ipv4Packet,
    connections: list[Connection],
    nat_ip_alice: AddressLike,
    nat_ip_bob: AddressLike,
) -> Ipv4Packet | None:
    """Translate the source of an outgoing packet, recording new flows.

    Returns ``None`` when the payload is not a TCP segment.
    """
    original_source_ip = packet.source
    destination_ip = packet.destination
    if original_source_ip in ALICE_SUBNET:
        source_ip = IPv4Address(nat_ip_bob)
    else:
        source_ip = IPv4Address(nat_ip_alice)

    try:
        tcp = parse_tcp(packet.payload)
    except PacketError:
        return None

    original_source_port = tcp.source_port
    destination_port = tcp.destination_port
    existing = next(
        (
            c
            for c in connections
            if c.source_ip == original_source_ip and c.source_port == original_source_port
        ),
        None,
    )
    if existing is not None:
        source_port = existing.remapped_source_port
        logger.info(
            "Connection found: %s:%d (original %s:%d) -> %s:%d",
            source_ip, source_port, original_source_ip, original_source_port,
            destination_ip, destination_port,
        )
    else:
        source_port = random.randrange(EPHEMERAL_PORTS.start, EPHEMERAL_PORTS.stop)
        logger.info(
            "Adding connection: %s:%d (original %s:%d) -> %s:%d",
            source_ip, source_port, original_source_ip, original_source_port,
            destination_ip, destination_port,
        )
        connections.append(
            Connection(
                source_ip=original_source_ip,
                source_port=original_source_port,
                destination_ip=destination_ip,
                destination_port=destination_port,
                remapped_source_ip=source_ip,
                remapped_source_port=source_port,
            )
        )
        logger.info("Total connections: %d", len(connections))

    new_tcp = set_tcp(tcp, source_ip, destination_ip, source_port, destination_port)
    return packet.rebuild(new_tcp, source=source_ip)


def unmap(packet: Ipv4Packet, connections: list[Connection]) -> Ipv4Packet | None:
    """Translate a reply back to the endpoint that opened the flow.

    Returns ``None`` when the payload is not TCP or no flow matches.
    """
    try:
        tcp = parse_tcp(packet.payload)
    except PacketError:
        return None

    logger.info(
        "Unmapping TCP packet: %s:%d -> %s:%d",
        packet.source, tcp.source_port, packet.destination, tcp.destination_port,
    )
    connection = next(
        (
            c
            for c in connections
            if c.remapped_source_ip == packet.destination
            and c.remapped_source_port == tcp.destination_port
        ),
        None,
    )
    if connection is None:
        logger.info("Failed to find connection")
        return None

    new_tcp = set_tcp(
        tcp,
        connection.destination_ip,
        connection.source_ip,
        connection.destination_port,
        connection.source_port,
    )
    result = packet.rebuild(new_tcp, destination=connection.source_ip)
    logger.info(
        "Remapping from connection: %s:%d (%s:%d) -> %s:%d",
        packet.source, new_tcp.source_port, connection.source_ip,
        connection.source_port, packet.destination, new_tcp.destination_port,
    )
    return result