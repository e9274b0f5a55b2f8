"""Client IP helpers for rate-limit keys. Raw addresses are never persisted."""
import hashlib
import ipaddress
from typing import List, Optional

from fastapi import Request


def _expand_ipv6_groups(ip: str) -> List[str]:
    """Expand ``::`` shorthand into the full 8-group form without validating the groups."""
    if "::" not in ip:
        return ip.split(":")
    left, _, right = ip.partition("::")
    left_groups = left.split(":") if left else []
    right_groups = right.split(":") if right else []
    missing = max(8 - len(left_groups) - len(right_groups), 0)
    return left_groups + ["0"] * missing + right_groups


def normalize_ip(ip: str) -> str:
    """
    IPv4 addresses, including IPv4-mapped IPv6 ones, are returned as plain IPv4.
    IPv6 addresses collapse to their /64 prefix (``2001:db8:0:0::/64``) so
    privacy-extension addresses share one key.
    """
    ip = (ip or "").strip()
    if ":" not in ip:
        return ip

    try:
        addr = ipaddress.IPv6Address(ip.split("%", 1)[0])
    except ValueError:
        groups = _expand_ipv6_groups(ip)
        return ":".join(groups[:4]) + "::/64"

    # Dual-stack sockets report IPv4 peers as ::ffff:a.b.c.d.
    if addr.ipv4_mapped:
        return str(addr.ipv4_mapped)

    prefix = int(addr) >> 64
    groups = [(prefix >> shift) & 0xFFFF for shift in (48, 32, 16, 0)]
    return ":".join(f"{g:x}" for g in groups) + "::/64"


def hash_ip(ip: str, secret: str) -> str:
    normalized = normalize_ip(ip)
    return hashlib.sha256((normalized + secret).encode("utf-8")).hexdigest()


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()

    for header in ("x-real-ip", "cf-connecting-ip"):
        value: Optional[str] = request.headers.get(header)
        if value:
            return value.strip()

    if request.client and request.client.host:
        return request.client.host
    return "unknown"
