import re
import secrets
from datetime import UTC, datetime

DIGITS_RE = re.compile(r"^\d+$")


def now() -> datetime:
    return datetime.now(UTC)


def local_id() -> str:
    """Generate an id for entries that are not backed by a server record."""
    return f"local-{secrets.token_hex(8)}"


def id_newer_than(candidate: str, watermark: str | None) -> bool:
    """Whether ``candidate`` sorts after ``watermark``.

    Decimal ids compare numerically so that "100" is newer than "99";
    everything else (e.g. fixed-width ObjectId hex) compares lexicographically.
    """
    if watermark is None:
        return True
    if DIGITS_RE.fullmatch(candidate) and DIGITS_RE.fullmatch(watermark):
        return int(candidate) > int(watermark)
    return candidate > watermark
