from dataclasses import dataclass
from typing import FrozenSet, Tuple, Union

from app.models.resource import Cluster, Command


@dataclass(frozen=True)
class MatchedPair:
    cluster: Cluster
    command: Command


@dataclass(frozen=True)
class UniqueMatch:
    pair: MatchedPair
    criteria: FrozenSet[str]


@dataclass(frozen=True)
class AmbiguousMatch:
    """
    Several clusters of the same criteria offer a matching command.
    There is no rule for choosing among them, the caller picks.
    """

    candidates: Tuple[MatchedPair, ...]
    criteria: FrozenSet[str]


@dataclass(frozen=True)
class NoMatchResult:
    pass


MatchResult = Union[UniqueMatch, AmbiguousMatch, NoMatchResult]
