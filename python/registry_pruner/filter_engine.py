"""
Selection set computation over a repository's tag universe.

Select rules mark tags as deletion candidates; except rules protect tags.
Except rules always win, whatever the rule order in the config.
"""

from dataclasses import dataclass
from datetime import datetime
from types import MappingProxyType
from typing import FrozenSet, Iterable, List, Mapping, Optional, Sequence, Union

from registry_pruner.pattern_matcher import Pattern, parse_pattern


@dataclass(frozen=True)
class SelectionSet:
    """Result of applying select and except rules to a tag universe.

    Attributes:
        matched: Tags matched by at least one select rule
        excepted: Tags matched by at least one except rule
    """

    matched: FrozenSet[str]
    excepted: FrozenSet[str]

    @property
    def selected(self) -> FrozenSet[str]:
        """Tags to delete: select matches minus except matches."""
        return self.matched - self.excepted

    @property
    def flags(self) -> Mapping[str, bool]:
        """Inclusion flag for every tag touched by a rule.

        Tags matched by no rule are absent and count as excluded.
        """
        flags = {tag: True for tag in self.matched}
        flags.update((tag, False) for tag in self.excepted)
        return MappingProxyType(flags)

    def __contains__(self, tag: str) -> bool:
        return tag in self.selected

    def __len__(self) -> int:
        return len(self.selected)


def parse_patterns(patterns: Sequence[Union[str, Pattern]]) -> List[Pattern]:
    """Parse rules in order; the first malformed one raises PatternParseError.

    Already parsed patterns are passed through unchanged.
    """
    return [parse_pattern(p) if isinstance(p, str) else p for p in patterns]


def match_any(patterns: Iterable[Pattern], universe: FrozenSet[str], now: datetime) -> FrozenSet[str]:
    """Return the tags of universe matched by at least one pattern."""
    matched = set()
    for pattern in patterns:
        matched.update(tag for tag in universe if pattern.matches(tag, now))
    return frozenset(matched)


def compute_selection(
    select_patterns: Sequence[Union[str, Pattern]],
    except_patterns: Sequence[Union[str, Pattern]],
    universe: Iterable[str],
    now: Optional[datetime] = None,
) -> SelectionSet:
    """Compute which tags of a repository are selected for deletion.

    All rules are parsed before any is evaluated, so a malformed rule never
    leaves a partial selection behind.

    Args:
        select_patterns: Ordered select ("cleanup") rules
        except_patterns: Ordered except rules
        universe: Every tag currently in the repository
        now: Reference instant for date rules; captured here when omitted

    Returns:
        Immutable SelectionSet

    Raises:
        PatternParseError: If any rule is malformed
    """
    selects = parse_patterns(select_patterns)
    excepts = parse_patterns(except_patterns)

    if now is None:
        now = datetime.now()
    tags = frozenset(universe)

    return SelectionSet(
        matched=match_any(selects, tags, now),
        excepted=match_any(excepts, tags, now),
    )
