"""
Content fingerprints
"""
import hashlib
from typing import Iterable, Tuple


def hash_text(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def syllabus_fingerprint(entries: Iterable[Tuple[str, str]]) -> str:
    """
    Deterministic fingerprint of a syllabus set

    Same (subject, text) pairs in any order -> same hash, which makes
    generation content-addressed.

    Args:
        entries: (subject_name, raw_text) pairs

    Returns:
        SHA-256 hex digest
    """
    parts = sorted(f"{subject}:{raw_text}" for subject, raw_text in entries)
    return hash_text("||".join(parts))
