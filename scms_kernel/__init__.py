"""
SCMS Kernel - concurrency-safe mutation core

The write side of the publishing backend:
- Optimistic-concurrency updates of versioned JSON records
- Row-locked, limit-gated magic-link access with an access log
- Append-only activity feed written in the caller's transaction
"""

__version__ = "0.1.0"
