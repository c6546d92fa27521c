#
# Durations and timestamps, in nanoseconds.
#
# (C) 2024, Nicolai Langfeldt, Schibsted Products and Technology
#
# Thresholds are given the way Go tools take them ("720h", "1h30m",
# "1.5h") and Docker Hub hands out RFC 3339 timestamps with up to
# nanosecond precision.  datetime stops at microseconds, so ages are
# computed on plain integer nanoseconds instead.
#

import re
import calendar
from dateutil.parser import isoparse

NANOSECOND = 1
MICROSECOND = 1000 * NANOSECOND
MILLISECOND = 1000 * MICROSECOND
SECOND = 1000 * MILLISECOND
MINUTE = 60 * SECOND
HOUR = 60 * MINUTE

UNITS = {
    "ns": NANOSECOND,
    "us": MICROSECOND,
    "µs": MICROSECOND,   # micro sign
    "μs": MICROSECOND,   # greek mu
    "ms": MILLISECOND,
    "s": SECOND,
    "m": MINUTE,
    "h": HOUR,
}

# Largest magnitude a signed 64 bit nanosecond count can hold
MAX_DURATION = (1 << 63) - 1

_component = re.compile(r'([0-9]*)(?:\.([0-9]*))?([^0-9.]*)')
_rfc3339 = re.compile(r'[0-9]{4}-[0-9]{2}-[0-9]{2}T([01][0-9]|2[0-3]):[0-5][0-9]:[0-5][0-9]'
                      r'(?:\.([0-9]+))?(?:Z|[+-][0-9]{2}:[0-9]{2})\Z')


def parse_duration(text):
    """Parse a duration string like "720h" or "1h15m30.5s" and return
    it as integer nanoseconds.

    A duration is an optional sign followed by one or more decimal
    numbers, each with an optional fraction and a unit suffix.  Valid
    units are "ns", "us" (or "µs"), "ms", "s", "m" and "h".  A bare "0"
    is allowed without a unit.

    Raises ValueError if the string can't be parsed or does not fit in
    a signed 64 bit nanosecond count.
    """

    orig = text
    negative = False

    if text[:1] in ("-", "+"):
        negative = text[0] == "-"
        text = text[1:]

    if text == "0":
        return 0

    if text == "":
        raise ValueError('time: invalid duration "%s"' % orig)

    total = 0
    pos = 0

    while pos < len(text):
        m = _component.match(text, pos)
        whole, frac, unit = m.groups()

        if whole == "" and not frac:
            raise ValueError('time: invalid duration "%s"' % orig)

        if unit == "":
            raise ValueError('time: missing unit in duration "%s"' % orig)

        if unit not in UNITS:
            raise ValueError('time: unknown unit "%s" in duration "%s"' % (unit, orig))

        scale = UNITS[unit]
        value = int(whole or "0") * scale
        if frac:
            value += int(frac) * scale // 10 ** len(frac)

        total += value
        if total > MAX_DURATION + 1:
            raise ValueError('time: invalid duration "%s"' % orig)

        pos = m.end()

    if negative:
        return -total

    if total > MAX_DURATION:
        raise ValueError('time: invalid duration "%s"' % orig)

    return total


def _decimal(value, precision):
    """Render value / 10**precision without trailing zeros"""

    whole, frac = divmod(value, 10 ** precision)
    frac_text = ("%0*d" % (precision, frac)).rstrip("0")
    if frac_text:
        return "%d.%s" % (whole, frac_text)
    return "%d" % whole


def format_duration(ns):
    """Format nanoseconds the way Go prints a time.Duration, e.g.
    "48h0m0s", "1.5s" or "250ms"."""

    if ns == 0:
        return "0s"

    sign = "-" if ns < 0 else ""
    u = abs(ns)

    if u < SECOND:
        if u < MICROSECOND:
            return "%s%dns" % (sign, u)
        if u < MILLISECOND:
            return "%s%sµs" % (sign, _decimal(u, 3))
        return "%s%sms" % (sign, _decimal(u, 6))

    text = "%ss" % _decimal(u % MINUTE, 9)

    minutes = u // MINUTE
    if minutes > 0:
        text = "%dm%s" % (minutes % 60, text)
        hours = minutes // 60
        if hours > 0:
            text = "%dh%s" % (hours, text)

    return sign + text


def parse_timestamp(text):
    """Parse a RFC 3339 timestamp with optional fractional seconds.

    Return a tuple: datetime, nanoseconds since the epoch

    The datetime is timezone aware and only good to the microsecond,
    the nanosecond count keeps every digit of the fraction.

    Only the strict form is taken: full date, "T", time, and "Z" or a
    numeric offset.  Date only strings, other separators, 24:00 and
    timestamps without an offset raise ValueError.
    """

    m = _rfc3339.match(text)
    if not m:
        raise ValueError("not a RFC 3339 timestamp: %r" % (text,))

    when = isoparse(text)

    nanos = 0
    if m.group(2):
        nanos = int(m.group(2)[:9].ljust(9, "0"))

    seconds = calendar.timegm(when.utctimetuple())

    return when, seconds * SECOND + nanos
