"""Packet capture loop and dispatch for the two-interface TCP NAT."""

from __future__ import annotations

import argparse
import logging
import socket
import struct
import threading
from contextlib import AbstractContextManager, nullcontext
from ipaddress import IPv4Address
from typing import Callable, Optional

from tcpnat.connections import Connection, remap, unmap
from tcpnat.packets import (
    PROTOCOL_ICMP,
    PROTOCOL_TCP,
    Ipv4Packet,
    PacketError,
    parse_ipv4,
)

logger = logging.getLogger(__name__)

NAT_IP_ALICE = IPv4Address("192.168.1.5")
NAT_IP_BOB = IPv4Address("10.0.1.5")

ETHERNET_HEADER_LENGTH = 14
ETHERTYPE_IPV4 = 0x0800
ETH_P_ALL = 0x0003
RECEIVE_BUFFER_SIZE = 65535
SIOCGIFADDR = 0x8915

Sender = Callable[[Ipv4Packet], None]


def send_packet_tcp(packet: Ipv4Packet) -> None:
    """Send a complete IPv4 packet carrying TCP through a raw layer-3 socket."""
    with socket.socket(socket.AF_INET, socket.SOCK_RAW, socket.IPPROTO_TCP) as sock:
        sock.setsockopt(socket.IPPROTO_IP, socket.IP_HDRINCL, 1)
        sock.sendto(bytes(packet), (str(packet.destination), 0))


def process_tcp(
    packet: Ipv4Packet,
    connections: list[Connection],
    lock: Optional[AbstractContextManager] = None,
    sender: Sender = send_packet_tcp,
) -> Ipv4Packet | None:
    """Translate a TCP packet and hand it to ``sender``.

    Replies addressed to a NAT address are translated back; packets that
    come from a NAT address are left alone; everything else is translated
    outwards. Returns the packet that was sent, or ``None``.
    """
    nat_addresses = (NAT_IP_ALICE, NAT_IP_BOB)
    with lock if lock is not None else nullcontext():
        if packet.source in nat_addresses or packet.destination in nat_addresses:
            if packet.destination in nat_addresses:
                translated = unmap(packet, connections)
            else:
                translated = None
        else:
            translated = remap(packet, connections, NAT_IP_ALICE, NAT_IP_BOB)
        if translated is None:
            return None
        try:
            sender(translated)
        except OSError as error:
            logger.warning("Failed to send packet to %s: %s", translated.destination, error)
        return translated


def process_frame(
    frame: bytes,
    connections: list[Connection],
    lock: Optional[AbstractContextManager] = None,
    sender: Sender = send_packet_tcp,
) -> Ipv4Packet | None:
    """Dispatch one Ethernet frame; only IPv4 TCP traffic is translated."""
    frame = bytes(frame)
    if len(frame) < ETHERNET_HEADER_LENGTH:
        raise PacketError(f"Ethernet frame too short: {len(frame)} bytes")
    ethertype = int.from_bytes(frame[12:14], "big")
    if ethertype != ETHERTYPE_IPV4:
        return None
    try:
        packet = parse_ipv4(frame[ETHERNET_HEADER_LENGTH:])
    except PacketError:
        return None
    if packet.protocol == PROTOCOL_ICMP:
        logger.info("ICMP: %s -> %s", packet.source, packet.destination)
        return None
    if packet.protocol == PROTOCOL_TCP:
        return process_tcp(packet, connections, lock, sender)
    return None


def _interface_address(name: str) -> str:
    """Return the first IPv4 address of an interface, or a placeholder text."""
    try:
        import fcntl

        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            request = struct.pack("256s", name.encode()[:15])
            reply = fcntl.ioctl(sock.fileno(), SIOCGIFADDR, request)
        return socket.inet_ntoa(reply[20:24])
    except (ImportError, OSError):
        return "no address"


def start_listener(
    interface: str,
    connections: list[Connection],
    lock: Optional[AbstractContextManager],
) -> None:
    """Read frames from ``interface`` forever, translating TCP traffic."""
    try:
        sock = socket.socket(socket.AF_PACKET, socket.SOCK_RAW, socket.htons(ETH_P_ALL))
    except OSError as error:
        raise RuntimeError(
            f"An error occurred when creating the datalink channel: {error}"
        ) from error
    with sock:
        try:
            sock.bind((interface, 0))
        except OSError as error:
            raise RuntimeError(
                f"An error occurred when creating the datalink channel: {error}"
            ) from error
        logger.info(
            "Start reading packets on %s (%s)", interface, _interface_address(interface)
        )
        while True:
            try:
                frame = sock.recv(RECEIVE_BUFFER_SIZE)
            except OSError as error:
                raise RuntimeError(f"An error occurred while reading: {error}") from error
            process_frame(frame, connections, lock)


def _listen(label: str, interface: str, connections: list[Connection], lock) -> None:
    logger.info(
        "Starting listener for %s on %s (%s)",
        label, interface, _interface_address(interface),
    )
    start_listener(interface, connections, lock)


def main(argv: list[str] | None = None) -> int:
    """Run the NAT between the Alice and Bob interfaces."""
    parser = argparse.ArgumentParser(
        prog="tcpnat", description="Translate TCP traffic between two interfaces."
    )
    parser.add_argument("--alice", help="interface facing Alice (default: the third one)")
    parser.add_argument("--bob", help="interface facing Bob (default: the fourth one)")
    args = parser.parse_args(argv)

    alice, bob = args.alice, args.bob
    if alice is None or bob is None:
        names = [name for _, name in sorted(socket.if_nameindex())]
        if len(names) < 4:
            parser.error(
                f"need at least four network interfaces to choose defaults, found {len(names)}"
            )
        alice = alice or names[2]
        bob = bob or names[3]

    logging.basicConfig(level=logging.INFO, format="%(message)s")
    connections: list[Connection] = []
    lock = threading.Lock()
    threads = [
        threading.Thread(target=_listen, args=("Alice", alice, connections, lock)),
        threading.Thread(target=_listen, args=("Bob", bob, connections, lock)),
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    return 0