# Copyright 2024 termchat contributors
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Human-readable sizes, ages and plain text tables."""

from datetime import datetime, timezone
from typing import Optional

_BYTE_UNITS = [
    (1000 ** 4, "TB"),
    (1000 ** 3, "GB"),
    (1000 ** 2, "MB"),
    (1000, "KB"),
]


def human_bytes(size: int) -> str:
    """Format a byte count, e.g. 3825819519 -> '3.8 GB'."""
    for factor, unit in _BYTE_UNITS:
        if size >= factor:
            value = size / factor
            if value >= 100:
                return f"{value:.0f} {unit}"
            return f"{value:.1f} {unit}"
    return f"{size} B"


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}" if count == 1 else f"{count} {unit}s"


def human_time(when: Optional[datetime], zero_value: str = "Never", now: Optional[datetime] = None) -> str:
    """Describe how long ago a timestamp was, e.g. '3 days ago'.

    Args:
        when: Timestamp to describe (None means it never happened)
        zero_value: Text returned for a missing timestamp
        now: Reference time, defaults to the current time

    Returns:
        Relative description of the timestamp
    """
    if when is None:
        return zero_value
    if now is None:
        now = datetime.now(timezone.utc)
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)

    seconds = int((now - when).total_seconds())
    suffix = "ago"
    if seconds < 0:
        seconds = -seconds
        suffix = "from now"

    if seconds < 1:
        return "Less than a second " + suffix
    if seconds < 60:
        return f"{_plural(seconds, 'second')} {suffix}"
    minutes = seconds // 60
    if minutes == 1:
        return "About a minute " + suffix
    if minutes < 60:
        return f"{minutes} minutes {suffix}"
    hours = minutes // 60
    if hours == 1:
        return "About an hour " + suffix
    if hours < 36:
        return f"{hours} hours {suffix}"
    days = hours // 24
    if days < 7:
        return f"{days} days {suffix}"
    if days < 30:
        return f"{_plural(days // 7, 'week')} {suffix}"
    if days < 365:
        return f"{_plural(days // 30, 'month')} {suffix}"
    return f"{_plural(days // 365, 'year')} {suffix}"


def parse_timestamp(value: str) -> Optional[datetime]:
    """Parse an RFC 3339 timestamp as returned by the backend."""
    if not value:
        return None
    text = value.strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    # Trim nanoseconds to what fromisoformat accepts
    if '.' in text:
        head, _, rest = text.partition('.')
        count = 0
        while count < len(rest) and rest[count].isdigit():
            count += 1
        digits, tz = rest[:count], rest[count:]
        text = f"{head}.{digits[:6].ljust(6, '0')}{tz}"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def format_table(headers: list[str], rows: list[list[str]], padding: int = 4) -> str:
    """Left-aligned table without borders."""
    widths = [len(h) for h in headers]
    for row in rows:
        for i, cell in enumerate(row):
            widths[i] = max(widths[i], len(cell))

    def render(cells):
        return "".join(
            cell.ljust(widths[i] + padding) if i < len(cells) - 1 else cell
            for i, cell in enumerate(cells)
        )

    return "\n".join([render(headers)] + [render(row) for row in rows])
