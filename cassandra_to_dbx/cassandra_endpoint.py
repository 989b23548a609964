"""
Replica Endpoint Selection

Picks which replica of a split to connect to. A replica running on this
machine is preferred so rows are read without a network hop; otherwise the
first replica in the split's listed order is used, so retries of a split
always land on the same host.
"""

import socket
from typing import Callable, Iterable, List, Optional, Set

import psutil

from .cassandra_errors import ConfigurationError


_LOOPBACK_ADDRESSES = {"127.0.0.1", "::1"}


def get_local_addresses() -> Set[str]:
    """
    Return every IP address bound to a network interface of this machine.

    Returns:
        Set of IPv4 and IPv6 addresses (IPv6 scope suffixes removed), always
        including the loopback addresses
    """
    addresses = set(_LOOPBACK_ADDRESSES)
    for interface_addresses in psutil.net_if_addrs().values():
        for address in interface_addresses:
            if address.family in (socket.AF_INET, socket.AF_INET6):
                addresses.add(address.address.split("%", 1)[0])
    return addresses


def resolve_addresses(host: str) -> Set[str]:
    """
    Resolve a host name to all of its IP addresses.

    Returns:
        Set of addresses, empty when the name cannot be resolved
    """
    try:
        infos = socket.getaddrinfo(host, None)
    except (socket.gaierror, UnicodeError):
        return set()
    return {info[4][0].split("%", 1)[0] for info in infos}


def select_endpoint(
    locations: List[str],
    local_addresses: Optional[Iterable[str]] = None,
    resolve: Callable[[str], Set[str]] = resolve_addresses,
) -> str:
    """
    Choose the replica endpoint to read a split from.

    Args:
        locations: Candidate replica hosts, in the split's listed order
        local_addresses: Addresses of this machine (default: get_local_addresses())
        resolve: Host name -> set of addresses (default: DNS lookup)

    Returns:
        The first location that resolves to a local address, or else the
        first location

    Raises:
        ConfigurationError: If no location is given

    Example:
        >>> select_endpoint(["10.0.0.5", "10.0.0.6"], local_addresses={"10.0.0.6"})
        '10.0.0.6'
        >>> select_endpoint(["10.0.0.5", "10.0.0.6"], local_addresses=set())
        '10.0.0.5'
    """
    if not locations:
        raise ConfigurationError("Split has no replica locations to connect to")

    local = set(local_addresses) if local_addresses is not None else get_local_addresses()

    for location in locations:
        if resolve(location) & local:
            return location
    return locations[0]
