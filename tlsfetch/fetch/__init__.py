"""Response draining and the one-shot fetch workflow."""

from __future__ import annotations

from tlsfetch.fetch.demux import ResponseHead, StreamDemultiplexer
from tlsfetch.fetch.drain import DrainLoop, DrainOutcome
from tlsfetch.fetch.fetcher import Fetcher, FetchResult
from tlsfetch.fetch.sink import FileSink

__all__ = [
    "DrainLoop",
    "DrainOutcome",
    "FetchResult",
    "Fetcher",
    "FileSink",
    "ResponseHead",
    "StreamDemultiplexer",
]
