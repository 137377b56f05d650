"""Render ExtractedMedia as CSV or plain text."""

import csv
import io
from datetime import datetime, timezone
from typing import TextIO

from .models import ExtractedMedia

CSV_COLUMNS = [
    "index",
    "type",
    "url",
    "thumbnail",
    "width",
    "height",
    "filesize",
]


def media_to_csv(extracted: ExtractedMedia, output: TextIO | None = None) -> str:
    """Convert extracted items to CSV format.

    Args:
        extracted: Result of a post resolution.
        output: Optional file-like object to write to. If None, returns CSV as string.

    Returns:
        CSV content as a string (also written to output if provided).
    """
    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=CSV_COLUMNS, quoting=csv.QUOTE_MINIMAL)
    writer.writeheader()

    for index, item in enumerate(extracted.items, start=1):
        writer.writerow(
            {
                "index": index,
                "type": item.type.value,
                "url": item.url,
                "thumbnail": item.thumbnail,
                "width": item.width,
                "height": item.height,
                "filesize": item.filesize,
            }
        )

    result = buf.getvalue()
    if output is not None:
        output.write(result)
    return result


def _format_size(size: int) -> str:
    if not size:
        return "size unknown"
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.1f} MB"


def render_text(extracted: ExtractedMedia) -> str:
    """Human-readable summary, one line per item."""
    meta = extracted.meta
    lines = [f"@{meta.username}" if meta.username else "@unknown"]
    if meta.shortcode:
        lines.append(f"Shortcode: {meta.shortcode}")
    if meta.post_timestamp:
        posted = datetime.fromtimestamp(meta.post_timestamp / 1000, tz=timezone.utc)
        lines.append(f"Posted: {posted.strftime('%Y-%m-%d %H:%M UTC')}")
    lines.append("")

    for index, item in enumerate(extracted.items, start=1):
        dims = f"{item.width}x{item.height}" if item.width and item.height else "?x?"
        lines.append(
            f"{index}. [{item.type.value}] {dims}, {_format_size(item.filesize)}"
        )
        lines.append(f"   {item.url}")

    return "\n".join(lines) + "\n"
