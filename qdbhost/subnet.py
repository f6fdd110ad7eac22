"""Subnets used for device networks and a pool that hands out reservations."""

from __future__ import annotations

import ipaddress
import logging
import socket
import threading
import weakref
from dataclasses import dataclass
from typing import Iterable, Optional, Union

import psutil

logger = logging.getLogger("qdb.subnet")

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


@dataclass(frozen=True)
class Subnet:
    """An address together with the length of its network prefix."""

    address: IPAddress
    prefix_length: int

    def __post_init__(self) -> None:
        address = ipaddress.ip_address(self.address)
        object.__setattr__(self, "address", address)
        if not 0 <= self.prefix_length <= address.max_prefixlen:
            raise ValueError(
                f"invalid prefix length {self.prefix_length} for {address}"
            )

    def __str__(self) -> str:
        return f"{self.address}/{self.prefix_length}"

    def _network(self) -> Union[ipaddress.IPv4Network, ipaddress.IPv6Network]:
        return ipaddress.ip_network(f"{self.address}/{self.prefix_length}", strict=False)

    def overlaps(self, other: Subnet) -> bool:
        """Tell whether the two subnets share any address."""
        if self.address.version != other.address.version:
            return False
        # Prefix-defined subnets cannot overlap partially: one contains the other.
        return self.address in other._network() or other.address in self._network()


_DEFAULT_CANDIDATES = tuple(
    Subnet(ipaddress.ip_address(address), 30)
    for address in (
        "172.16.58.1",
        "172.17.58.1",
        "172.18.58.1",
        "172.19.58.1",
        "172.20.58.1",
        "172.21.58.1",
        "172.22.58.1",
        "172.23.58.1",
        "172.24.58.1",
        "172.25.58.1",
        "172.26.58.1",
        "172.27.58.1",
        "172.28.58.1",
        "172.29.58.1",
        "172.30.58.1",
        "172.31.58.1",
        "192.168.58.1",
        "10.17.20.1",
    )
)


class SubnetReservation:
    """A subnet held in a pool until released or garbage collected."""

    def __init__(self, pool: SubnetPool, subnet: Subnet) -> None:
        self.subnet = subnet
        self._finalizer = weakref.finalize(self, pool.free, subnet)

    @property
    def released(self) -> bool:
        return not self._finalizer.alive

    def release(self) -> None:
        """Give the subnet back to its pool; later calls do nothing."""
        self._finalizer()

    def __enter__(self) -> SubnetReservation:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.release()

    def __repr__(self) -> str:
        return f"SubnetReservation({self.subnet}, released={self.released})"


class SubnetPool:
    """Thread-safe set of candidate subnets and the ones currently reserved."""

    _instance: Optional[SubnetPool] = None
    _instance_lock = threading.Lock()

    def __init__(self, candidates: Optional[Iterable[Subnet]] = None) -> None:
        self._lock = threading.Lock()
        self._candidates = list(_DEFAULT_CANDIDATES if candidates is None else candidates)
        self._reserved: list[Subnet] = []

    @classmethod
    def instance(cls) -> SubnetPool:
        """Return the process-wide pool."""
        with cls._instance_lock:
            if cls._instance is None:
                cls._instance = cls()
            return cls._instance

    def candidates(self) -> list[Subnet]:
        """Candidate subnets that are not reserved, in preference order."""
        with self._lock:
            return [subnet for subnet in self._candidates if subnet not in self._reserved]

    def reserve(self, subnet: Subnet) -> Optional[SubnetReservation]:
        """Reserve a subnet, or return None if it is already reserved."""
        with self._lock:
            if subnet in self._reserved:
                return None
            self._reserved.append(subnet)
        return SubnetReservation(self, subnet)

    def free(self, subnet: Subnet) -> None:
        """Drop a reservation; unknown subnets are ignored."""
        with self._lock:
            if subnet in self._reserved:
                self._reserved.remove(subnet)


def find_unused_subnet(
    candidate_subnets: Iterable[Subnet], used_subnets: Iterable[Subnet]
) -> Optional[Subnet]:
    """Return the first candidate that overlaps none of the used subnets."""
    used = list(used_subnets)
    return next(
        (
            candidate
            for candidate in candidate_subnets
            if not any(candidate.overlaps(subnet) for subnet in used)
        ),
        None,
    )


def _prefix_length(netmask: str) -> int:
    return bin(int(ipaddress.ip_address(netmask))).count("1")


def fetch_used_subnets() -> list[Subnet]:
    """Subnets of all addresses configured on the host's network interfaces."""
    subnets = []
    for entries in psutil.net_if_addrs().values():
        for entry in entries:
            if entry.family not in (socket.AF_INET, socket.AF_INET6) or not entry.netmask:
                continue
            address = entry.address.split("%", 1)[0]
            try:
                subnets.append(
                    Subnet(ipaddress.ip_address(address), _prefix_length(entry.netmask))
                )
            except ValueError:
                logger.debug("Ignoring interface address %s/%s", entry.address, entry.netmask)
    return subnets


def reserve_unused_subnet(pool: Optional[SubnetPool] = None) -> Optional[SubnetReservation]:
    """Reserve a free candidate subnet not in use on the host, or return None."""
    pool = pool if pool is not None else SubnetPool.instance()
    subnet = find_unused_subnet(pool.candidates(), fetch_used_subnets())
    if subnet is None:
        return None
    return pool.reserve(subnet)