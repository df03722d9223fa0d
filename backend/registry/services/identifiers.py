"""
Identifier Service - issues record ids and certification numbers.

Certification numbers have the form PREFIX-YYYY-NNNN where NNNN is the
current record count plus one, zero-padded to four digits:

    format_certification_id(3, 2024) -> "ILA-CLT-2024-0004"

The count is read by the caller; uniqueness is enforced by the database
constraint on trainers.certification_id and the retry loop in
trainer_store.create_trainer.
"""

import os
import time
import uuid

CERTIFICATION_PREFIX = os.getenv("CERTIFICATION_PREFIX", "ILA-CLT")
SEQUENCE_WIDTH = 4


def format_certification_id(count: int, year: int, prefix: str = None) -> str:
    """
    Build the certification number for the next record.

    Args:
        count: Number of trainer records that already exist
        year: Calendar year of issuance
        prefix: Registry prefix (defaults to CERTIFICATION_PREFIX)

    Returns:
        "<prefix>-<year>-<count + 1, zero-padded>"
    """
    if count < 0:
        raise ValueError("record count cannot be negative: {}".format(count))
    prefix = prefix or CERTIFICATION_PREFIX
    return "{}-{}-{}".format(prefix, year, str(count + 1).zfill(SEQUENCE_WIDTH))


def generate_record_id() -> str:
    """
    Generate a UUIDv7 string for a trainer record.

    Layout: 48-bit Unix timestamp in milliseconds, 4-bit version (0b0111),
    then random bits, so ids sort by creation time.
    """
    ts_ms = int(time.time() * 1000)
    raw = bytearray(ts_ms.to_bytes(6, "big", signed=False) + os.urandom(10))
    raw[6] = (raw[6] & 0x0F) | 0x70
    raw[8] = (raw[8] & 0x3F) | 0x80
    return str(uuid.UUID(bytes=bytes(raw)))


def generate_log_id() -> str:
    """Client-side id for an email log, assigned before the insert."""
    return str(uuid.uuid4())
