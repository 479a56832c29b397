"""
Deployment shape enumerations.

Topology answers: "How is this backend deployed right now?"
Confidence answers: "How sure is the classifier about it?"
"""

from __future__ import annotations

from enum import Enum


class Topology(str, Enum):
    """Mutually exclusive deployment shapes of a backend."""

    STANDALONE = "standalone"
    REPLICATED = "replicated"
    SHARDED = "sharded"
    CLUSTERED = "clustered"
    SENTINEL_MANAGED = "sentinel-managed"
    UNKNOWN = "unknown"


class Confidence(str, Enum):
    """
    How a topology was derived.

    PROBED:
        Every diagnostic needed for the decision answered.

    INFERRED:
        A verification probe was unsupported; the shape comes from
        a single self-reported field.

    FALLBACK:
        The primary diagnostic was unsupported; the coarsest shape
        consistent with a working connection was reported.
    """

    PROBED = "probed"
    INFERRED = "inferred"
    FALLBACK = "fallback"
