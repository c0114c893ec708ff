"""tlsfetch - one-shot HTTPS fetch over a hardened TLS client session.

Connects to a host, sends a single request line, and drains the response
into a file while separating the header block from the body.
"""

from __future__ import annotations

__version__ = "0.1.0"

__all__ = ["__version__"]
