"""
Argument Resolver

Classifies a raw reference into one of three resolution paths:
    ExplicitIdentifier -> requirement identifier such as 'UC-ab12-003'
    ExistingFeature    -> name of a feature already in the features catalog
    FreeForm           -> anything else (routed to the context explorer)

Classification is pure; downstream components perform all I/O.
"""

import logging
import re

from scenario_engine.catalog import CatalogIndex
from scenario_engine.error_handling import InputAmbiguityError
from scenario_engine.schemas import ExistingFeature, ExplicitIdentifier, FreeForm, Resolution

logger = logging.getLogger(__name__)

IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z]{2,4}-[A-Za-z0-9]{3,6}-\d{3}$")


def is_identifier(text: str) -> bool:
    return IDENTIFIER_PATTERN.match(text.strip()) is not None


class ArgumentResolver:
    """
    Usage:
        resolver = ArgumentResolver(index)
        resolution = resolver.classify("user login")
    """

    def __init__(self, index: CatalogIndex):
        self.index = index

    def classify(self, raw: str) -> Resolution:
        """
        Classify a reference.

        Args:
            raw: Reference exactly as given by the caller

        Returns:
            ExplicitIdentifier, ExistingFeature or FreeForm

        Raises:
            InputAmbiguityError: If the reference is empty or blank
        """
        text = (raw or "").strip()
        if not text:
            raise InputAmbiguityError("Empty reference: clarification required")

        if is_identifier(text):
            logger.debug("'%s' classified as explicit identifier", text)
            return ExplicitIdentifier(identifier=text)

        matches = self.index.find_feature(text)
        if matches:
            if len(matches) > 1:
                logger.info(
                    "'%s' names %d features; using %s/%s (qualify as domain/name to pick another)",
                    text, len(matches), matches[0].domain, matches[0].name,
                )
            return ExistingFeature(entry=matches[0])

        logger.debug("'%s' classified as free-form description", text)
        return FreeForm(text=text)
