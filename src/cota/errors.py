"""Typed errors for COTA.

Single source of truth for the error hierarchy.

Policy:
- Errors are small and boring.
- Codec failures always raise; a header or directory that fails to parse never
  comes back as a zero-valued structure.
- A missing tile is NOT an error (resolve returns None).
"""

from __future__ import annotations


class CotaError(Exception):
    """Base error for COTA."""


# ------------
# Usage/config
# ------------


class UsageError(CotaError):
    pass


class ConfigurationError(UsageError):
    """The directory builder cannot satisfy the requested size bound."""


class BuildSpecError(UsageError, ValueError):
    pass


# ----------------
# Corrupt payloads
# ----------------


class CorruptPayload(CotaError):
    pass


class MalformedHeader(CorruptPayload):
    pass


class BadMagic(MalformedHeader):
    pass


class UnsupportedVersion(MalformedHeader):
    pass


class MalformedEntries(CorruptPayload):
    pass


class InconsistentArchive(CorruptPayload):
    """Sections decode fine but disagree with each other (counts, bounds, order)."""


# ---
# I/O
# ---


class ArchiveIOError(CotaError, OSError):
    """Short or failed read from the underlying byte source."""


class UnsupportedCompression(CotaError):
    pass
