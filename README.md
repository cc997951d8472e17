# tcpnat

`tcpnat` is a small TCP network address translator for two networks, named
Alice (`192.168.1.0/24`) and Bob. It listens on one interface for each
network. It rewrites IPv4 TCP traffic so that hosts on one side reach the
other side through the NAT's address on that side.

## How it works

- A TCP packet that neither comes from nor goes to one of the NAT's own
  addresses (`192.168.1.5` and `10.0.1.5`) is translated outwards. It gets
  a new source address. Traffic from the Alice subnet gets `10.0.1.5`, and
  all other traffic gets `192.168.1.5`. It also gets a random source port
  from 49152 to 65534. The flow is recorded in a connection table. Later
  packets from the same original address and port reuse the same port.
- A packet addressed to one of the NAT's addresses is looked up in the
  table by destination address and port. It is then rewritten back toward
  the host that opened the flow. A packet that comes from a NAT address but
  is not addressed to one is left alone.
- Each time a packet is rewritten, the IPv4 header checksum and the total
  length are recomputed. The TCP checksum is recomputed as well, and it
  covers the pseudo-header.
- ICMP packets are only logged. Other protocols, non-IPv4 frames and
  malformed IPv4 packets are ignored.
- Translated packets are sent through a raw layer-3 socket. A failed send
  is logged as a warning.

## Installation

```
pip install .
```

## Running

On Linux, capturing frames and sending raw IPv4 packets need root
privileges or the `CAP_NET_RAW` capability:

```
sudo tcpnat --alice eth1 --bob eth2
```

- `--alice`: the interface facing Alice.
- `--bob`: the interface facing Bob.

If either option is left out, the command falls back to the host's
interfaces ordered by index. The third interface faces Alice and the fourth
faces Bob. If the host has fewer than four interfaces, the command stops
with an error.

The command runs one listener thread per interface. Both threads share a
single connection table behind a lock. Progress is logged at INFO level to
standard error. This includes each listener starting, each connection added
or found, and each reply translated back.

## Using the library

The packet and translation logic works without raw sockets.

`tcpnat.packets` provides the packet tools:

- `parse_ipv4` and `parse_tcp` read raw bytes into `Ipv4Packet` and
  `TcpPacket`. They raise `PacketError`, a `ValueError`, on malformed input.
- `Ipv4Packet.rebuild` and `TcpPacket.with_ports` return modified copies
  with fresh checksums.
- `checksum` computes the Internet checksum.

`tcpnat.connections` provides the translation:

```python
from tcpnat.packets import parse_ipv4
from tcpnat.connections import remap, unmap

table = []
outgoing = remap(parse_ipv4(raw_bytes), table, "192.168.1.5", "10.0.1.5")
```

Both `remap` and `unmap` return a new `Ipv4Packet`. They return `None` in
two cases: when the payload is too short to be a TCP segment, or, for
`unmap`, when no connection matches. The table is a plain list of
`Connection` records, and `remap` appends to it.

`tcpnat.nat.process_frame` takes one Ethernet frame. `tcpnat.nat.process_tcp`
takes one parsed packet. Each applies the rules above with the fixed NAT
addresses. Both accept an optional lock and a `sender` callable, which stands
in for the raw socket. They return the packet that was handed to `sender`,
or `None`.

## Limitations

- Only IPv4 TCP is translated. ICMP, UDP and IPv6 are not forwarded.
- The NAT addresses and the Alice subnet are fixed.
- Connections are never removed from the table.
- Frames can only be captured on Linux, because capture uses `AF_PACKET`
  sockets.

## Tests

```
pip install .[test]
pytest
```