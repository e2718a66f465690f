"""
Domain inference for feature placement.

Precedence:
    1. explicit mappings from the override document
    2. a hint from the knowledge base (front matter `domain`, change-history heading)
    3. an existing catalog domain sharing a keyword with the reference
    4. the generic 'general' partition
"""

import logging
from typing import Iterable, List, Optional, Sequence

from scenario_engine.artifact_scanner import CROSS_DOMAIN, GENERAL_DOMAIN
from scenario_engine.config import EngineConfig
from scenario_engine.text_utils import keywords, slugify, token_matches

logger = logging.getLogger(__name__)


class DomainResolver:
    """Maps references and knowledge hints onto domain partitions."""

    def __init__(self, config: EngineConfig, known_domains: Iterable[str] = ()):
        self.mappings = config.domains
        self.known_domains = sorted(
            d for d in set(known_domains) if d not in (CROSS_DOMAIN, GENERAL_DOMAIN)
        )

    def from_mapping(self, text: str) -> Optional[str]:
        """Best explicit mapping for text, by number of keyword hits (ties: name order)."""
        words = keywords(text)
        best, best_hits = None, 0
        for domain in sorted(self.mappings):
            terms = set(self.mappings[domain]) | set(keywords(domain))
            hits = sum(1 for term in terms if any(token_matches(term, word) for word in words))
            if hits > best_hits:
                best, best_hits = domain, hits
        return best

    def resolve(self, text: str, hints: Sequence[Optional[str]] = ()) -> str:
        """
        Choose the domain for a reference.

        Args:
            text: Reference text, feature title or slug
            hints: Domain names suggested by the knowledge base, strongest first

        Returns:
            Domain slug (never empty)
        """
        mapped = self.from_mapping(text)
        if mapped:
            logger.debug("Domain '%s' from explicit mapping", mapped)
            return mapped

        for hint in hints:
            if hint:
                hinted = self.from_mapping(hint) or slugify(hint)
                if hinted:
                    logger.debug("Domain '%s' from knowledge hint '%s'", hinted, hint)
                    return hinted

        words = keywords(text)
        for domain in self.known_domains:
            if any(token_matches(part, word) for part in keywords(domain) for word in words):
                logger.debug("Domain '%s' shares a keyword with the reference", domain)
                return domain

        logger.info("No domain signal for '%s'; using '%s'", text, GENERAL_DOMAIN)
        return GENERAL_DOMAIN

    @staticmethod
    def combine(domains: List[str]) -> str:
        """Single domain when all agree, otherwise the cross-domain partition."""
        unique = sorted(set(domains))
        if len(unique) == 1:
            return unique[0]
        return CROSS_DOMAIN if unique else GENERAL_DOMAIN
