"""Host name resolution."""

from __future__ import annotations

import ipaddress
import logging
import socket

logger = logging.getLogger(__name__)


def resolve(hostname: str) -> str:
    """Resolve a host name to its first IPv4 address.

    Args:
        hostname: Host name or IPv4 literal

    Returns:
        Dotted-quad address, or an empty string if resolution failed

    """
    try:
        return str(ipaddress.IPv4Address(hostname))
    except ValueError:
        pass

    try:
        infos = socket.getaddrinfo(
            hostname,
            None,
            family=socket.AF_INET,
            type=socket.SOCK_STREAM,
        )
    except (socket.gaierror, UnicodeError) as e:
        logger.error("Failed to resolve %s: %s", hostname, e)
        return ""

    for _family, _type, _proto, _canonname, sockaddr in infos:
        # First result wins
        logger.debug("Resolved %s to %s", hostname, sockaddr[0])
        return sockaddr[0]

    logger.error("No addresses returned for %s", hostname)
    return ""
