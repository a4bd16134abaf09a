from typing import Optional


def short(sha: Optional[str]) -> str:
    """Abbreviate an object id for log output."""
    return sha[:8] if sha else "<none>"
