"""
Cache Module
============

Process-wide memo of encoded results.

    - ResultCache: bounded FIFO store guarded by a lock
    - SingleFlight: collapses concurrent identical encodes
"""

from timelapse_server.cache.result_cache import ResultCache
from timelapse_server.cache.single_flight import SingleFlight


__all__ = [
    "ResultCache",
    "SingleFlight",
]
