#!/usr/bin/env python3
"""
Selection rule parsing and matching for registry tags.

A rule is written as "<operator>:<argument>":

- ``regexp:<expression>`` matches tags where the expression is found anywhere
- ``date:<ops><offset>`` compares tags named like YYYYMMDD against today
  shifted by ``offset`` days; ``ops`` is any mix of ``<``, ``>`` and ``=``
- ``equal:<literal>`` matches one tag exactly

Examples:
    date:<-30        tags dated more than 30 days ago
    date:>=0         tags dated today or later
    regexp:^pr-\\d+$  pull request builds
"""

import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Optional, Union

from registry_pruner.logging_utils import get_logger

logger = get_logger(__name__)

SEPARATOR = ":"
DATE_TAG_FORMAT = "%Y%m%d"

_DATE_TAG_RE = re.compile(r"[0-9]{8}")
_OFFSET_RE = re.compile(r"[+-]?[0-9]+")


class PatternParseError(ValueError):
    """Raised when a selection rule cannot be parsed.

    Attributes:
        pattern: The offending rule string, exactly as configured
        reason: What is wrong with it
    """

    def __init__(self, pattern: str, reason: str):
        self.pattern = pattern
        self.reason = reason
        super().__init__(f"{reason}: {pattern!r}")


@dataclass(frozen=True)
class RegexpPattern:
    expression: str
    compiled: re.Pattern = field(compare=False, repr=False)

    def matches(self, tag: str, now: datetime) -> bool:
        return self.compiled.search(tag) is not None


@dataclass(frozen=True)
class DatePattern:
    """Date comparison between a tag and today shifted by offset_days."""

    before: bool
    after: bool
    equal: bool
    offset_days: int

    def target_date(self, now: datetime) -> date:
        """Return ``now`` shifted by the offset, truncated to midnight."""
        return (now + timedelta(days=self.offset_days)).date()

    def matches(self, tag: str, now: datetime) -> bool:
        tag_date = parse_tag_date(tag)
        if tag_date is None:
            return False
        target = self.target_date(now)
        if self.before and tag_date < target:
            return True
        if self.after and tag_date > target:
            return True
        if self.equal and tag_date == target:
            return True
        return False


@dataclass(frozen=True)
class EqualPattern:
    literal: str

    def matches(self, tag: str, now: datetime) -> bool:
        return tag == self.literal


Pattern = Union[RegexpPattern, DatePattern, EqualPattern]


def parse_tag_date(tag: str) -> Optional[date]:
    """Parse a tag named like 20230102 into a date.

    Returns:
        The calendar date, or None if the tag is not exactly eight digits
        forming a valid date
    """
    if not _DATE_TAG_RE.fullmatch(tag):
        return None
    try:
        return datetime.strptime(tag, DATE_TAG_FORMAT).date()
    except ValueError:
        return None


def _parse_regexp(pattern: str, argument: str) -> RegexpPattern:
    try:
        compiled = re.compile(argument)
    except re.error as e:
        raise PatternParseError(pattern, f"regex pattern compile failure ({e})") from e
    return RegexpPattern(expression=argument, compiled=compiled)


def _parse_date(pattern: str, argument: str) -> DatePattern:
    before = after = equal = False
    index = 0
    for index, ch in enumerate(argument):
        if ch == "<":
            before = True
        elif ch == ">":
            after = True
        elif ch == "=":
            equal = True
        else:
            break
    else:
        # Only operator characters (or nothing at all): there is no offset
        index = len(argument)

    offset = argument[index:]
    if not _OFFSET_RE.fullmatch(offset):
        raise PatternParseError(pattern, "date offset not an integer")

    parsed = DatePattern(before=before, after=after, equal=equal, offset_days=int(offset))
    if before and after and equal:
        logger.warning(f"⚠️  Date rule {pattern!r} enables <, > and = together and matches every date tag")
    elif not (before or after or equal):
        logger.warning(f"⚠️  Date rule {pattern!r} enables no comparison operator and never matches")
    return parsed


def _parse_equal(pattern: str, argument: str) -> EqualPattern:
    return EqualPattern(literal=argument)


_PARSERS = {
    "regexp": _parse_regexp,
    "date": _parse_date,
    "equal": _parse_equal,
}


def parse_pattern(pattern: str) -> Pattern:
    """Parse a "<operator>:<argument>" rule into a matcher.

    The string is split on its first separator, so arguments may contain
    colons themselves.

    Args:
        pattern: Rule string from the config file

    Returns:
        A RegexpPattern, DatePattern or EqualPattern

    Raises:
        PatternParseError: If the separator is missing, the operator is
            unknown, the regular expression does not compile, or the date
            offset is not an integer
    """
    operator, separator, argument = pattern.partition(SEPARATOR)
    if not separator:
        raise PatternParseError(pattern, "wrong pattern format, expected '<operator>:<argument>'")

    parser = _PARSERS.get(operator)
    if parser is None:
        raise PatternParseError(pattern, f"pattern operator not found: {operator!r}")
    return parser(pattern, argument)
