"""
Typed filter builder for DynamoDB scans, queries and write conditions.

Filters are immutable predicate nodes. They compose with & and | into
And/Or trees and can either be rendered into a boto3 condition
(to_condition) or evaluated against a plain item (matches).
"""
from dataclasses import dataclass
from functools import reduce
from typing import Any, Optional, Tuple

from boto3.dynamodb.conditions import Attr, ConditionBase

_MISSING = object()


class Filter:
    """Base predicate node."""

    def to_condition(self) -> ConditionBase:
        raise NotImplementedError

    def matches(self, item: dict) -> bool:
        raise NotImplementedError

    def __and__(self, other: 'Filter') -> 'Filter':
        return And((self, other))

    def __or__(self, other: 'Filter') -> 'Filter':
        return Or((self, other))


def _compare(item: dict, attr: str, op) -> bool:
    value = item.get(attr, _MISSING)
    if value is _MISSING or value is None:
        return False
    try:
        return op(value)
    except TypeError:
        # DynamoDB comparisons between different types are simply false
        return False


@dataclass(frozen=True)
class Eq(Filter):
    attr: str
    value: Any

    def to_condition(self):
        return Attr(self.attr).eq(self.value)

    def matches(self, item):
        return self.attr in item and item[self.attr] == self.value


@dataclass(frozen=True)
class Ne(Filter):
    attr: str
    value: Any

    def to_condition(self):
        return Attr(self.attr).ne(self.value)

    def matches(self, item):
        return self.attr in item and item[self.attr] != self.value


@dataclass(frozen=True)
class In(Filter):
    attr: str
    values: Tuple[Any, ...]

    def __post_init__(self):
        if not self.values:
            raise ValueError('In filter needs at least one value')
        object.__setattr__(self, 'values', tuple(self.values))

    def to_condition(self):
        return Attr(self.attr).is_in(list(self.values))

    def matches(self, item):
        return self.attr in item and item[self.attr] in self.values


@dataclass(frozen=True)
class Contains(Filter):
    """String contains substring, or list/set contains element."""
    attr: str
    value: Any

    def to_condition(self):
        return Attr(self.attr).contains(self.value)

    def matches(self, item):
        container = item.get(self.attr)
        if isinstance(container, (str, list, set, tuple)):
            return self.value in container
        return False


@dataclass(frozen=True)
class Gt(Filter):
    attr: str
    value: Any

    def to_condition(self):
        return Attr(self.attr).gt(self.value)

    def matches(self, item):
        return _compare(item, self.attr, lambda v: v > self.value)


@dataclass(frozen=True)
class Gte(Filter):
    attr: str
    value: Any

    def to_condition(self):
        return Attr(self.attr).gte(self.value)

    def matches(self, item):
        return _compare(item, self.attr, lambda v: v >= self.value)


@dataclass(frozen=True)
class Lt(Filter):
    attr: str
    value: Any

    def to_condition(self):
        return Attr(self.attr).lt(self.value)

    def matches(self, item):
        return _compare(item, self.attr, lambda v: v < self.value)


@dataclass(frozen=True)
class Lte(Filter):
    attr: str
    value: Any

    def to_condition(self):
        return Attr(self.attr).lte(self.value)

    def matches(self, item):
        return _compare(item, self.attr, lambda v: v <= self.value)


@dataclass(frozen=True)
class Exists(Filter):
    attr: str

    def to_condition(self):
        return Attr(self.attr).exists()

    def matches(self, item):
        return self.attr in item


@dataclass(frozen=True)
class NotExists(Filter):
    attr: str

    def to_condition(self):
        return Attr(self.attr).not_exists()

    def matches(self, item):
        return self.attr not in item


@dataclass(frozen=True)
class And(Filter):
    children: Tuple[Filter, ...]

    def __post_init__(self):
        if not self.children:
            raise ValueError('And filter needs at least one child')
        object.__setattr__(self, 'children', tuple(self.children))

    def to_condition(self):
        return reduce(lambda a, b: a & b, (c.to_condition() for c in self.children))

    def matches(self, item):
        return all(c.matches(item) for c in self.children)


@dataclass(frozen=True)
class Or(Filter):
    children: Tuple[Filter, ...]

    def __post_init__(self):
        if not self.children:
            raise ValueError('Or filter needs at least one child')
        object.__setattr__(self, 'children', tuple(self.children))

    def to_condition(self):
        return reduce(lambda a, b: a | b, (c.to_condition() for c in self.children))

    def matches(self, item):
        return any(c.matches(item) for c in self.children)


def all_of(*filters: Optional[Filter]) -> Optional[Filter]:
    """AND together the given filters, skipping None. Returns None if nothing is left."""
    present = [f for f in filters if f is not None]
    if not present:
        return None
    if len(present) == 1:
        return present[0]
    return And(tuple(present))


def any_of(*filters: Optional[Filter]) -> Optional[Filter]:
    """OR together the given filters, skipping None. Returns None if nothing is left."""
    present = [f for f in filters if f is not None]
    if not present:
        return None
    if len(present) == 1:
        return present[0]
    return Or(tuple(present))
