"""Pretty formatting utilities for CLI output."""

import shutil
import sys
from typing import IO, TYPE_CHECKING, List, Optional, Sequence

if TYPE_CHECKING:
    from ..sync import StatusRow

def get_term_width() -> int:
    """Get terminal width, default to 80 if can't detect."""
    try:
        return shutil.get_terminal_size().columns
    except (AttributeError, ValueError, OSError):
        return 80


def header(text: str, use_emoji: bool = True) -> str:
    """Create a boxed header with optional emoji."""
    emoji = "📚 " if use_emoji else ""
    width = max(get_term_width(), len(text) + len(emoji) + 4)
    h_line = "─" * (width - 2)
    v_line = "│"

    result = [
        f"┌{h_line}┐",
        f"{v_line} {emoji}{text}{' ' * (width - len(text) - len(emoji) - 3)}{v_line}",
        f"└{h_line}┘"
    ]
    return "\n".join(result)


def status_line(row: 'StatusRow') -> str:
    """One commit of the stack: PR, published version, local state, metadata check."""
    pr = f"#{row.number}" if row.number is not None else "no PR"
    if row.pr_state and row.pr_state != "open":
        pr = f"{pr} ({row.pr_state})"
    version = f"v{row.version}" if row.version else "unpublished"
    local = " +local changes" if row.changed and row.version else ""
    if row.metadata_ok is None:
        meta = ""
    else:
        meta = " [meta ok]" if row.metadata_ok else " [meta out of date]"
    return f"{pr:>8} {version}{local} {row.stable_id}: {row.subject}{meta}"


def format_status(branch: str, rows: Sequence['StatusRow']) -> str:
    """Stack status, top of the stack first."""
    lines: List[str] = [header(f"{branch}: {len(rows)} commit(s)")]
    if not rows:
        lines.append("  nothing between upstream and HEAD")
    for row in reversed(rows):
        lines.append(status_line(row))
    return "\n".join(lines)


def print_header(text: str, use_emoji: bool = True, file: Optional[IO[str]] = None) -> None:
    """Print a header to file (default stdout)."""
    if file is None:
        file = sys.stdout
    print(header(text, use_emoji), file=file)


def print_status(branch: str, rows: Sequence['StatusRow'], file: Optional[IO[str]] = None) -> None:
    """Print stack status to file (default stdout)."""
    if file is None:
        file = sys.stdout
    print(format_status(branch, rows), file=file)
