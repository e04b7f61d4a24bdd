"""
SLA Configuration Resolver
===========================

Picks the configuration that applies to an entity.

Selection order:
1. The entity's explicitly assigned configuration, if active
2. The lowest `priority_order` active non-default configuration accepted by
   the domain's match predicate
3. The domain's active default configuration
"""

from typing import Any, Callable, Iterable, Mapping, Optional
from uuid import UUID

from config import SlaDomain
from core import NoConfigurationFoundException
from sla.domain.value_objects import SlaConfiguration

MatchPredicate = Callable[[SlaConfiguration, Mapping[str, Any]], bool]


def criteria_predicate(
    configuration: SlaConfiguration,
    entity_attributes: Mapping[str, Any]
) -> bool:
    """
    Match `configuration.match_criteria` against the entity's attributes.

    A criterion value may be a scalar (equality) or a list (membership).
    Configurations without criteria never match here; they are only reachable
    by explicit assignment or as the default.
    """
    if not configuration.match_criteria:
        return False

    for key, expected in configuration.match_criteria.items():
        if key not in entity_attributes:
            return False
        actual = entity_attributes[key]
        if isinstance(expected, (list, tuple, set)):
            if actual not in expected:
                return False
        elif actual != expected:
            return False
    return True


class SlaConfigurationResolver:
    """
    Orders and filters configurations; the matching itself is delegated to
    per-domain predicates supplied by the caller.
    """

    def __init__(
        self,
        predicates: Optional[Mapping[str, MatchPredicate]] = None,
        default_predicate: MatchPredicate = criteria_predicate
    ):
        self._predicates = dict(predicates or {})
        self._default_predicate = default_predicate

    def predicate_for(self, domain: SlaDomain) -> MatchPredicate:
        return self._predicates.get(SlaDomain(domain).value, self._default_predicate)

    def resolve(
        self,
        domain: SlaDomain,
        configurations: Iterable[SlaConfiguration],
        entity_attributes: Optional[Mapping[str, Any]] = None,
        configuration_id: Optional[UUID] = None
    ) -> SlaConfiguration:
        """
        Resolve the configuration for an entity.

        Raises:
            NoConfigurationFoundException: Nothing explicit, matching or default
        """
        domain = SlaDomain(domain)
        attributes = entity_attributes or {}
        candidates = [
            c for c in configurations
            if c.domain == domain and c.is_active
        ]

        if configuration_id is not None:
            for configuration in candidates:
                if configuration.id == configuration_id:
                    return configuration

        predicate = self.predicate_for(domain)
        ranked = sorted(
            (c for c in candidates if not c.is_default),
            key=lambda c: (c.priority_order, c.name)
        )
        for configuration in ranked:
            if predicate(configuration, attributes):
                return configuration

        defaults = sorted(
            (c for c in candidates if c.is_default),
            key=lambda c: (c.priority_order, c.name)
        )
        if defaults:
            return defaults[0]

        raise NoConfigurationFoundException(
            domain.value,
            {
                "domain": domain.value,
                "configuration_id": str(configuration_id) if configuration_id else None,
            }
        )
