from __future__ import annotations

import hashlib
import sys
from typing import Iterable, List


def progress(message: str, done: bool = False) -> None:
    """Print a progress message to stderr (doesn't interfere with stdout output)."""
    if done:
        print(f"  [done] {message}", file=sys.stderr)
    else:
        print(f"  [....] {message}", file=sys.stderr)


def report_warnings(warnings: Iterable[str]) -> int:
    count = 0
    for message in warnings:
        print(f"  [warn] {message}", file=sys.stderr)
        count += 1
    return count


def drain(warnings: List[str]) -> List[str]:
    """Hand back the collected warnings and empty the list in place."""
    pending = list(warnings)
    del warnings[:]
    return pending


def hash_bytes(data: bytes) -> str:
    return hashlib.sha1(data).hexdigest()
