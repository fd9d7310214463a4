"""Address policy for outbound requests: which IPs the crawler may reach."""
import ipaddress

_BLOCKED_V4 = tuple(
    ipaddress.ip_network(net)
    for net in (
        "0.0.0.0/8",        # current network
        "10.0.0.0/8",       # private
        "127.0.0.0/8",      # loopback
        "169.254.0.0/16",   # link-local, cloud metadata
        "172.16.0.0/12",    # private
        "192.168.0.0/16",   # private
        "192.0.2.0/24",     # TEST-NET-1
        "198.51.100.0/24",  # TEST-NET-2
        "203.0.113.0/24",   # TEST-NET-3
    )
)
# Multicast (224.0.0.0/4) and everything above it.
_V4_CEILING = ipaddress.IPv4Address("224.0.0.0")

_BLOCKED_V6 = tuple(
    ipaddress.ip_network(net)
    for net in (
        "::/128",         # unspecified
        "::1/128",        # loopback
        "::ffff:0:0/96",  # IPv4-mapped
        "fe80::/10",      # link-local
        "fc00::/7",       # unique local
        "ff00::/8",       # multicast
    )
)


def is_blocked_address(ip: str) -> bool:
    """Return True when ``ip`` must not be contacted.

    Anything that is not a canonical IPv4 or IPv6 address, including dotted
    quads with an octet above 255, is blocked.
    """
    try:
        address = ipaddress.ip_address(str(ip).strip())
    except ValueError:
        return True

    if address.version == 4:
        return address >= _V4_CEILING or any(address in net for net in _BLOCKED_V4)
    # Zone ids ("fe80::1%eth0") do not affect network membership.
    address = ipaddress.IPv6Address(str(address).split("%", 1)[0])
    return any(address in net for net in _BLOCKED_V6)
