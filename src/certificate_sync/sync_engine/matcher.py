"""Match store identities against configuration rules."""
import logging
from typing import Mapping

from ..stores.base import CredentialStore
from .schema import ConfigurationItem, MatchedIdentity

logger = logging.getLogger(__name__)


class IdentityMatcher:
    """Pair every store identity with the rules that describe it."""

    def match(
        self,
        stores: Mapping[str, CredentialStore],
        rules: list[ConfigurationItem],
    ) -> list[MatchedIdentity]:
        """
        Match identities of every open store against ``rules``.

        A rule matches when its issuer equals the identity's issuer byte
        for byte and its store path equals the path the store was opened
        under. An identity matching several rules yields one pair per
        rule; an identity matching none is skipped.

        Args:
            stores: Open stores keyed by store path
            rules: Existing-identity rules from the configuration

        Returns:
            Matched (rule, identity) pairs in store, then identity, then
            rule order

        Raises:
            StoreQueryError: If a store cannot be enumerated
        """
        results = []

        for path, store in stores.items():
            identities = store.query_identities()
            logger.debug(f"Store {path} holds {len(identities)} identities")

            for identity in identities:
                issuer_rules = [rule for rule in rules if rule.issuer == identity.issuer]

                for rule in issuer_rules:
                    if rule.store_path != path:
                        continue
                    results.append(MatchedIdentity(rule=rule, identity=identity, store=store))

        logger.info(f"Matched {len(results)} identities across {len(stores)} stores")
        return results
