import logging
import random
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional, Tuple

from app.adapters.tagrepository import AbstractTagRepository
from app.internal.errors import NoMatch
from app.models.matchresult import (
    AmbiguousMatch,
    MatchedPair,
    MatchResult,
    NoMatchResult,
    UniqueMatch,
)
from app.models.resource import Application, Cluster, Command

logger = logging.getLogger(__name__)

SelectionPolicy = Callable[[Tuple[MatchedPair, ...]], MatchedPair]


def first_found(candidates: Tuple[MatchedPair, ...]) -> MatchedPair:
    return candidates[0]


def random_choice(candidates: Tuple[MatchedPair, ...]) -> MatchedPair:
    return random.choice(candidates)


POLICIES: Dict[str, SelectionPolicy] = {
    "FIRST": first_found,
    "RANDOM": random_choice,
}


def policy_factory(kind: str) -> SelectionPolicy:
    if kind not in POLICIES:
        raise ValueError(f"match policy {kind} not supported")
    return POLICIES[kind]


class CriteriaMatcher:
    """
    Resolves the cluster criterias and the command criteria of a job
    into a (cluster, command) pair.

    The cluster criterias are tried in order and the first one that
    matches any eligible cluster is the only one used: falling back
    happens on zero matching clusters, never on ambiguity. Every
    cluster of that criteria is scanned for a command, so the next
    criteria is only tried once all of them came up empty.

    Which of several matching clusters runs the job is left to the
    selection policy and carries no ordering guarantee.
    """

    def __init__(
        self,
        tags: AbstractTagRepository,
        policy: Optional[SelectionPolicy] = None,
    ):
        self.tags = tags
        self.policy = policy or random_choice

    def _matching_clusters(self, criteria: FrozenSet[str]) -> List[Cluster]:
        return [
            c
            for c in self.tags.list_clusters()
            if c.is_eligible() and c.satisfies(criteria)
        ]

    def _first_command(
        self, cluster: Cluster, criteria: FrozenSet[str]
    ) -> Optional[Command]:
        for command in self.tags.commands_for_cluster(cluster.id):
            if command.is_eligible() and command.satisfies(criteria):
                return command
        return None

    def match(
        self,
        clusterCriterias: Iterable[Iterable[str]],
        commandCriteria: Iterable[str],
    ) -> MatchResult:
        commandTags = frozenset(commandCriteria)
        for criteria in clusterCriterias:
            clusterTags = frozenset(criteria)
            clusters = self._matching_clusters(clusterTags)
            if not clusters:
                logger.debug(f"no cluster matches {sorted(clusterTags)}")
                continue
            candidates: List[MatchedPair] = []
            for cluster in clusters:
                command = self._first_command(cluster, commandTags)
                if command is not None:
                    candidates.append(MatchedPair(cluster, command))
            if len(candidates) == 1:
                return UniqueMatch(candidates[0], clusterTags)
            if len(candidates) > 1:
                return AmbiguousMatch(tuple(candidates), clusterTags)
            logger.debug(
                f"clusters {[c.id for c in clusters]} match"
                f" {sorted(clusterTags)} but offer no command"
                f" matching {sorted(commandTags)}"
            )
        return NoMatchResult()

    def select(
        self,
        clusterCriterias: Iterable[Iterable[str]],
        commandCriteria: Iterable[str],
    ) -> MatchedPair:
        result = self.match(clusterCriterias, commandCriteria)
        if isinstance(result, UniqueMatch):
            return result.pair
        if isinstance(result, AmbiguousMatch):
            return self.policy(result.candidates)
        raise NoMatch(
            "no cluster/command combination matches the job criteria"
        )

    def resolve_applications(self, command: Command) -> List[Application]:
        applications: List[Application] = []
        for applicationId in command.applications:
            application = self.tags.get_application(applicationId)
            if application is None or not application.is_eligible():
                raise NoMatch(
                    f"command {command.id} requires application"
                    f" {applicationId}, which is unavailable"
                )
            applications.append(application)
        return applications
