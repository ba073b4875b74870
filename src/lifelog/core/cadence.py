"""
Cadence Rules - "next invocation time" over cron-like rules

Supported forms:
- Five-field cron: "minute hour day-of-month month day-of-week"
  with *, lists (1,2), ranges (1-5), steps (*/15, 10-50/10) and
  three-letter month/day names
- Aliases: @hourly, @daily, @midnight, @weekly, @monthly, @yearly
- Fixed intervals: "@every 30m" (units s, m, h, d), aligned to the epoch

All computation is done in UTC.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from lifelog.errors import ValidationError

ALIASES = {
    "@hourly": "0 * * * *",
    "@daily": "0 0 * * *",
    "@midnight": "0 0 * * *",
    "@weekly": "0 0 * * 0",
    "@monthly": "0 0 1 * *",
    "@yearly": "0 0 1 1 *",
    "@annually": "0 0 1 1 *",
}

MONTH_NAMES = {
    name: i + 1
    for i, name in enumerate(
        ["jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec"]
    )
}
DAY_NAMES = {name: i for i, name in enumerate(["sun", "mon", "tue", "wed", "thu", "fri", "sat"])}

# (low, high, names) per cron field
FIELD_SPECS = [
    ("minute", 0, 59, {}),
    ("hour", 0, 23, {}),
    ("day-of-month", 1, 31, {}),
    ("month", 1, 12, MONTH_NAMES),
    ("day-of-week", 0, 7, DAY_NAMES),
]

INTERVAL_PATTERN = re.compile(r"^@every\s+(\d+)\s*([smhd])$", re.IGNORECASE)
INTERVAL_UNITS = {"s": 1, "m": 60, "h": 3600, "d": 86400}

# Search horizon for next_after (covers Feb 29 rules)
HORIZON = timedelta(days=366 * 8)


def _parse_value(token: str, names: dict[str, int], field: str) -> int:
    lowered = token.lower()
    if lowered in names:
        return names[lowered]
    if not token.isdigit():
        raise ValidationError(f"Invalid {field} value: {token!r}")
    return int(token)


def _parse_field(text: str, field: str, low: int, high: int, names: dict[str, int]) -> frozenset[int]:
    """Expand one cron field into the set of matching values."""
    values: set[int] = set()
    for part in text.split(","):
        if not part:
            raise ValidationError(f"Empty list element in {field} field: {text!r}")

        step = 1
        if "/" in part:
            part, step_text = part.split("/", 1)
            if not step_text.isdigit() or int(step_text) == 0:
                raise ValidationError(f"Invalid step in {field} field: {text!r}")
            step = int(step_text)

        if part == "*":
            start, end = low, high
        elif "-" in part:
            a, b = part.split("-", 1)
            start = _parse_value(a, names, field)
            end = _parse_value(b, names, field)
        else:
            start = _parse_value(part, names, field)
            end = high if step > 1 else start

        if start < low or end > high or start > end:
            raise ValidationError(f"{field} out of range {low}-{high}: {text!r}")
        values.update(range(start, end + 1, step))
    return frozenset(values)


@dataclass(frozen=True)
class CadenceRule:
    """
    Parsed cadence rule.

    Use CadenceRule.parse() rather than constructing directly.
    """

    text: str
    minutes: frozenset[int] = frozenset()
    hours: frozenset[int] = frozenset()
    days: frozenset[int] = frozenset()
    months: frozenset[int] = frozenset()
    weekdays: frozenset[int] = frozenset()
    day_restricted: bool = False
    weekday_restricted: bool = False
    interval_seconds: int | None = None

    @classmethod
    def parse(cls, text: str) -> "CadenceRule":
        """
        Parse a cadence rule.

        Args:
            text: Cron expression, alias, or "@every <N><unit>"

        Returns:
            CadenceRule

        Raises:
            ValidationError: If the rule is malformed
        """
        if not isinstance(text, str) or not text.strip():
            raise ValidationError("Cadence rule must be a non-empty string")

        original = text.strip()
        match = INTERVAL_PATTERN.match(original)
        if match:
            seconds = int(match.group(1)) * INTERVAL_UNITS[match.group(2).lower()]
            if seconds <= 0:
                raise ValidationError(f"Interval must be positive: {original!r}")
            return cls(text=original, interval_seconds=seconds)

        expression = ALIASES.get(original.lower(), original)
        fields = expression.split()
        if len(fields) != 5:
            raise ValidationError(
                f"Cron rule needs 5 fields (minute hour day month weekday): {original!r}"
            )

        parsed = [
            _parse_field(value, name, low, high, names)
            for value, (name, low, high, names) in zip(fields, FIELD_SPECS)
        ]
        # 7 is an alias for Sunday
        weekdays = frozenset(0 if d == 7 else d for d in parsed[4])

        return cls(
            text=original,
            minutes=parsed[0],
            hours=parsed[1],
            days=parsed[2],
            months=parsed[3],
            weekdays=weekdays,
            day_restricted=fields[2] != "*",
            weekday_restricted=fields[4] != "*",
        )

    @property
    def is_interval(self) -> bool:
        return self.interval_seconds is not None

    def _day_matches(self, t: datetime) -> bool:
        cron_weekday = (t.weekday() + 1) % 7
        if self.day_restricted and self.weekday_restricted:
            return t.day in self.days or cron_weekday in self.weekdays
        if self.day_restricted:
            return t.day in self.days
        if self.weekday_restricted:
            return cron_weekday in self.weekdays
        return True

    def next_after(self, instant: datetime) -> datetime | None:
        """
        Next firing strictly after instant.

        Args:
            instant: Reference time (naive values are taken as UTC)

        Returns:
            Aware UTC datetime, or None if the rule never fires within the horizon
        """
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        instant = instant.astimezone(timezone.utc)

        if self.interval_seconds is not None:
            periods = int(instant.timestamp() // self.interval_seconds) + 1
            return datetime.fromtimestamp(periods * self.interval_seconds, tz=timezone.utc)

        t = instant.replace(second=0, microsecond=0) + timedelta(minutes=1)
        limit = t + HORIZON
        while t <= limit:
            if t.month not in self.months:
                if t.month == 12:
                    t = t.replace(year=t.year + 1, month=1, day=1, hour=0, minute=0)
                else:
                    t = t.replace(month=t.month + 1, day=1, hour=0, minute=0)
                continue
            if not self._day_matches(t):
                t = (t + timedelta(days=1)).replace(hour=0, minute=0)
                continue
            if t.hour not in self.hours:
                t = (t + timedelta(hours=1)).replace(minute=0)
                continue
            if t.minute not in self.minutes:
                t += timedelta(minutes=1)
                continue
            return t
        return None

    def __str__(self) -> str:
        return self.text
