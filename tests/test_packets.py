import struct
from ipaddress import IPv4Address

import pytest

from tcpnat.packets import (
    PROTOCOL_TCP,
    Ipv4Packet,
    PacketError,
    TcpPacket,
    checksum,
    parse_ipv4,
    parse_tcp,
)

CLIENT = IPv4Address("192.168.1.20")
SERVER = IPv4Address("10.0.1.30")


def make_tcp(source_port, destination_port, payload=b"", sequence=1, flags=0x18):
    header = struct.pack(
        "!HHIIBBHHH", source_port, destination_port, sequence, 0, 5 << 4, flags, 1024, 0, 0
    )
    return header + payload


def make_ipv4(source, destination, payload, protocol=PROTOCOL_TCP, options=b""):
    ihl = 5 + len(options) // 4
    header = struct.pack(
        "!BBHHHBBH4s4s",
        (4 << 4) | ihl,
        0,
        20 + len(options) + len(payload),
        0x1234,
        0x4000,
        64,
        protocol,
        0,
        source.packed,
        destination.packed,
    )
    return header + options + payload


def pseudo_header(source, destination, segment):
    return source.packed + destination.packed + bytes((0, PROTOCOL_TCP)) + len(segment).to_bytes(2, "big")


def test_checksum_of_known_header():
    header = bytes.fromhex("450000730000400040110000c0a80001c0a800c7")
    assert checksum(header) == 0xB861


def test_checksum_of_empty_data():
    assert checksum(b"") == 0xFFFF


def test_checksum_pads_odd_length():
    assert checksum(b"\x12\x34\x56") == checksum(b"\x12\x34\x56\x00")


def test_checksum_verifies_when_included():
    data = b"\x01\x02\x03\x04\xfe\xdc"
    value = checksum(data)
    assert checksum(data + value.to_bytes(2, "big")) == 0


def test_parse_ipv4_fields():
    tcp = make_tcp(40000, 80, b"hello")
    packet = parse_ipv4(make_ipv4(CLIENT, SERVER, tcp))
    assert packet.version == 4
    assert packet.header_length == 5
    assert packet.source == CLIENT
    assert packet.destination == SERVER
    assert packet.protocol == PROTOCOL_TCP
    assert packet.ttl == 64
    assert packet.total_length == 20 + len(tcp)
    assert packet.payload == tcp


def test_parse_ipv4_drops_trailing_padding():
    tcp = make_tcp(40000, 80)
    packet = parse_ipv4(make_ipv4(CLIENT, SERVER, tcp) + b"\x00" * 6)
    assert packet.payload == tcp


def test_parse_ipv4_round_trip():
    raw = make_ipv4(CLIENT, SERVER, make_tcp(1, 2, b"abc"), options=b"\x01\x01\x01\x00")
    assert bytes(parse_ipv4(raw)) == raw


@pytest.mark.parametrize(
    "raw",
    [
        b"\x45" + b"\x00" * 10,
        b"\x44" + b"\x00" * 30,
        b"\x4f" + b"\x00" * 30,
    ],
)
def test_parse_ipv4_rejects_bad_input(raw):
    with pytest.raises(PacketError):
        parse_ipv4(raw)


def test_rebuild_sets_addresses_length_and_checksum():
    packet = parse_ipv4(make_ipv4(CLIENT, SERVER, make_tcp(1, 2)))
    new_payload = make_tcp(3, 4, b"longer payload")
    nat = IPv4Address("10.0.1.5")
    rebuilt = packet.rebuild(new_payload, source=nat)
    assert rebuilt.source == nat
    assert rebuilt.destination == SERVER
    assert rebuilt.payload == new_payload
    assert rebuilt.total_length == len(rebuilt.header) + len(new_payload)
    assert checksum(rebuilt.header) == 0


def test_rebuild_keeps_options_and_other_fields():
    options = b"\x01\x01\x01\x00"
    packet = parse_ipv4(make_ipv4(CLIENT, SERVER, make_tcp(1, 2), options=options))
    rebuilt = packet.rebuild(TcpPacket(make_tcp(5, 6)), destination="192.168.1.99")
    assert rebuilt.header[20:] == options
    assert rebuilt.destination == IPv4Address("192.168.1.99")
    assert rebuilt.source == CLIENT
    assert rebuilt.header[4:10] == packet.header[4:10]
    assert parse_ipv4(bytes(rebuilt)) == rebuilt


def test_rebuild_rejects_oversized_payload():
    packet = parse_ipv4(make_ipv4(CLIENT, SERVER, make_tcp(1, 2)))
    with pytest.raises(PacketError):
        packet.rebuild(b"\x00" * 0x10000)


def test_parse_tcp_fields():
    raw = make_tcp(40000, 443, b"data", sequence=77, flags=0x12)
    tcp = parse_tcp(raw)
    assert tcp.source_port == 40000
    assert tcp.destination_port == 443
    assert tcp.sequence == 77
    assert tcp.flags == 0x12
    assert tcp.data_offset == 5
    assert tcp.window == 1024
    assert tcp.payload == b"data"
    assert bytes(tcp) == raw


def test_parse_tcp_rejects_short_segment():
    with pytest.raises(PacketError):
        parse_tcp(b"\x00" * 19)


def test_with_ports_sets_ports_and_valid_checksum():
    tcp = parse_tcp(make_tcp(40000, 80, b"odd"))
    nat = IPv4Address("10.0.1.5")
    changed = tcp.with_ports(nat, SERVER, 50000, 80)
    assert changed.source_port == 50000
    assert changed.destination_port == 80
    assert changed.payload == b"odd"
    assert changed.sequence == tcp.sequence
    assert checksum(pseudo_header(nat, SERVER, changed.data) + changed.data + b"\x00") == 0


def test_with_ports_checksum_depends_on_addresses():
    tcp = parse_tcp(make_tcp(1000, 2000))
    first = tcp.with_ports(CLIENT, SERVER, 1000, 2000)
    second = tcp.with_ports(SERVER, CLIENT, 1000, 2000)
    assert checksum(pseudo_header(CLIENT, SERVER, first.data) + first.data) == 0
    assert checksum(pseudo_header(SERVER, CLIENT, second.data) + second.data) == 0


@pytest.mark.parametrize("port", [-1, 0x10000])
def test_with_ports_rejects_out_of_range_port(port):
    tcp = parse_tcp(make_tcp(1, 2))
    with pytest.raises(ValueError):
        tcp.with_ports(CLIENT, SERVER, port, 2)


def test_ipv4_packet_is_value_object():
    raw = make_ipv4(CLIENT, SERVER, make_tcp(1, 2))
    assert parse_ipv4(raw) == Ipv4Packet(raw[:20], raw[20:])