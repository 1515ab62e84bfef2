"""Standard five-field cron expressions and the ``@`` descriptors."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Mapping, NamedTuple


class ScheduleError(ValueError):
    """Raised when a cron expression cannot be parsed."""


@dataclass(frozen=True)
class _Bounds:
    low: int
    high: int
    names: Mapping[str, int] | None = None

    @property
    def every_value(self) -> frozenset[int]:
        return frozenset(range(self.low, self.high + 1))


_SECONDS = _Bounds(0, 59)
_MINUTES = _Bounds(0, 59)
_HOURS = _Bounds(0, 23)
_DAYS_OF_MONTH = _Bounds(1, 31)
_MONTHS = _Bounds(
    1,
    12,
    {
        name: number
        for number, name in enumerate(
            ("jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec"),
            start=1,
        )
    },
)
_DAYS_OF_WEEK = _Bounds(
    0, 6, {name: number for number, name in enumerate(("sun", "mon", "tue", "wed", "thu", "fri", "sat"))}
)

_INTEGER = re.compile(r"[+-]?[0-9]+")


class _Stage(NamedTuple):
    matches: Callable[[datetime], bool]
    truncate: Callable[[datetime], datetime]
    step: Callable[[datetime], datetime]
    wrapped: Callable[[datetime], bool]


def _add_month(t: datetime) -> datetime:
    year, month_index = divmod(t.month, 12)
    return t.replace(year=t.year + year, month=month_index + 1, day=1) + timedelta(days=t.day - 1)


@dataclass(frozen=True)
class Schedule:
    """A parsed schedule; either a set of matching field values or a constant delay."""

    seconds: frozenset[int] = frozenset()
    minutes: frozenset[int] = frozenset()
    hours: frozenset[int] = frozenset()
    days_of_month: frozenset[int] = frozenset()
    months: frozenset[int] = frozenset()
    days_of_week: frozenset[int] = frozenset()
    dom_star: bool = False
    dow_star: bool = False
    delay: timedelta | None = None

    def _day_matches(self, t: datetime) -> bool:
        dom = t.day in self.days_of_month
        dow = t.isoweekday() % 7 in self.days_of_week
        if self.dom_star or self.dow_star:
            return dom and dow
        return dom or dow

    def _stages(self) -> tuple[_Stage, ...]:
        return (
            _Stage(
                lambda t: t.month in self.months,
                lambda t: t.replace(day=1, hour=0, minute=0, second=0),
                _add_month,
                lambda t: t.month == 1,
            ),
            _Stage(
                self._day_matches,
                lambda t: t.replace(hour=0, minute=0, second=0),
                lambda t: t + timedelta(days=1),
                lambda t: t.day == 1,
            ),
            _Stage(
                lambda t: t.hour in self.hours,
                lambda t: t.replace(minute=0, second=0),
                lambda t: t + timedelta(hours=1),
                lambda t: t.hour == 0,
            ),
            _Stage(
                lambda t: t.minute in self.minutes,
                lambda t: t.replace(second=0),
                lambda t: t + timedelta(minutes=1),
                lambda t: t.minute == 0,
            ),
            _Stage(
                lambda t: t.second in self.seconds,
                lambda t: t,
                lambda t: t + timedelta(seconds=1),
                lambda t: t.second == 0,
            ),
        )

    def next(self, after: datetime) -> datetime | None:
        """Return the first activation strictly after ``after``, or None within five years."""
        if self.delay is not None:
            return after.replace(microsecond=0) + self.delay

        t = after.replace(microsecond=0) + timedelta(seconds=1)
        added = False
        year_limit = t.year + 5
        stages = self._stages()
        while t.year <= year_limit:
            for stage in stages:
                wrapped = False
                while not stage.matches(t):
                    if not added:
                        added = True
                        t = stage.truncate(t)
                    t = stage.step(t)
                    if stage.wrapped(t):
                        wrapped = True
                        break
                if wrapped:
                    break
            else:
                return t
        return None


def _parse_int(expr: str) -> int:
    if not _INTEGER.fullmatch(expr):
        raise ScheduleError(
            f'Failed to parse int from {expr}: strconv.Atoi: parsing "{expr}": invalid syntax'
        )
    number = int(expr)
    if number < 0:
        raise ScheduleError(f"Negative number ({number}) not allowed: {expr}")
    return number


def _parse_int_or_name(expr: str, names: Mapping[str, int] | None) -> int:
    if names is not None and (named := names.get(expr.lower())) is not None:
        return named
    return _parse_int(expr)


def _get_range(expr: str, bounds: _Bounds) -> tuple[frozenset[int], bool]:
    range_and_step = expr.split("/")
    low_and_high = range_and_step[0].split("-")
    single_digit = len(low_and_high) == 1
    star = False

    if low_and_high[0] in ("*", "?"):
        start, end, star = bounds.low, bounds.high, True
    else:
        start = _parse_int_or_name(low_and_high[0], bounds.names)
        if len(low_and_high) == 1:
            end = start
        elif len(low_and_high) == 2:
            end = _parse_int_or_name(low_and_high[1], bounds.names)
        else:
            raise ScheduleError(f"Too many hyphens: {expr}")

    if len(range_and_step) == 1:
        step = 1
    elif len(range_and_step) == 2:
        step = _parse_int(range_and_step[1])
        if single_digit:
            end = bounds.high
    else:
        raise ScheduleError(f"Too many slashes: {expr}")

    if start < bounds.low:
        raise ScheduleError(f"Beginning of range ({start}) below minimum ({bounds.low}): {expr}")
    if end > bounds.high:
        raise ScheduleError(f"End of range ({end}) above maximum ({bounds.high}): {expr}")
    if start > end:
        raise ScheduleError(f"Beginning of range ({start}) beyond end of range ({end}): {expr}")
    if step == 0:
        raise ScheduleError(f"Step of range should be a positive number: {expr}")
    return frozenset(range(start, end + 1, step)), star


def _get_field(text: str, bounds: _Bounds) -> tuple[frozenset[int], bool]:
    values: set[int] = set()
    star = False
    for part in text.split(","):
        part_values, part_star = _get_range(part, bounds)
        values |= part_values
        star = star or part_star
    return frozenset(values), star


_UNIT_NANOSECONDS = {
    "ns": 1,
    "us": 1_000,
    "\u00b5s": 1_000,
    "\u03bcs": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60 * 1_000_000_000,
    "h": 3600 * 1_000_000_000,
}
_DURATION_TERM = re.compile(r"([0-9]*)(\.[0-9]*)?([^.0-9]*)")


def _parse_duration(text: str) -> int:
    """Parse a duration such as ``1h30m`` into nanoseconds."""
    original = text
    negative = False
    if text[:1] in ("-", "+"):
        negative = text[0] == "-"
        text = text[1:]
    if text == "0":
        return 0
    if not text:
        raise ValueError(f'time: invalid duration "{original}"')
    total = 0
    position = 0
    while position < len(text):
        match = _DURATION_TERM.match(text, position)
        whole, fraction, unit = match.group(1), match.group(2) or "", match.group(3)
        if not whole and len(fraction) <= 1:
            raise ValueError(f'time: invalid duration "{original}"')
        if not unit:
            raise ValueError(f'time: missing unit in duration "{original}"')
        if unit not in _UNIT_NANOSECONDS:
            raise ValueError(f'time: unknown unit "{unit}" in duration "{original}"')
        total += int(Decimal(whole + fraction) * _UNIT_NANOSECONDS[unit])
        position = match.end()
    return -total if negative else total


def _every(nanoseconds: int) -> Schedule:
    one_second = 1_000_000_000
    nanoseconds = max(nanoseconds, one_second)
    return Schedule(delay=timedelta(seconds=nanoseconds // one_second))


def _parse_descriptor(spec: str) -> Schedule:
    every_dom = _DAYS_OF_MONTH.every_value
    every_month = _MONTHS.every_value
    every_dow = _DAYS_OF_WEEK.every_value
    midnight = dict(seconds=frozenset({0}), minutes=frozenset({0}), hours=frozenset({0}))
    if spec in ("@yearly", "@annually"):
        return Schedule(
            **midnight,
            days_of_month=frozenset({1}),
            months=frozenset({1}),
            days_of_week=every_dow,
            dow_star=True,
        )
    if spec == "@monthly":
        return Schedule(
            **midnight,
            days_of_month=frozenset({1}),
            months=every_month,
            days_of_week=every_dow,
            dow_star=True,
        )
    if spec == "@weekly":
        return Schedule(
            **midnight,
            days_of_month=every_dom,
            months=every_month,
            days_of_week=frozenset({0}),
            dom_star=True,
        )
    if spec in ("@daily", "@midnight"):
        return Schedule(
            **midnight,
            days_of_month=every_dom,
            months=every_month,
            days_of_week=every_dow,
            dom_star=True,
            dow_star=True,
        )
    if spec == "@hourly":
        return Schedule(
            seconds=frozenset({0}),
            minutes=frozenset({0}),
            hours=_HOURS.every_value,
            days_of_month=every_dom,
            months=every_month,
            days_of_week=every_dow,
            dom_star=True,
            dow_star=True,
        )
    prefix = "@every "
    if spec.startswith(prefix):
        try:
            nanoseconds = _parse_duration(spec[len(prefix):])
        except ValueError as err:
            raise ScheduleError(f"Failed to parse duration {spec}: {err}") from err
        return _every(nanoseconds)
    raise ScheduleError(f"Unrecognized descriptor: {spec}")


def parse_standard(spec: str) -> Schedule:
    """Parse a five-field cron expression (minute hour dom month dow) or a descriptor."""
    if not spec:
        raise ScheduleError("Empty spec string")
    if spec.startswith("@"):
        return _parse_descriptor(spec)
    fields = spec.split()
    if len(fields) != 5:
        raise ScheduleError(f"Expected exactly 5 fields, found {len(fields)}: {spec}")
    minute, hour, dom, month, dow = fields
    seconds, _ = _get_field("0", _SECONDS)
    minutes, _ = _get_field(minute, _MINUTES)
    hours, _ = _get_field(hour, _HOURS)
    days_of_month, dom_star = _get_field(dom, _DAYS_OF_MONTH)
    months, _ = _get_field(month, _MONTHS)
    days_of_week, dow_star = _get_field(dow, _DAYS_OF_WEEK)
    return Schedule(
        seconds=seconds,
        minutes=minutes,
        hours=hours,
        days_of_month=days_of_month,
        months=months,
        days_of_week=days_of_week,
        dom_star=dom_star,
        dow_star=dow_star,
    )