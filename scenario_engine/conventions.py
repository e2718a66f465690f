"""
Convention Detector

Infers the active text format and step language from the artifact tree.
Detection runs on every invocation; nothing is cached between invocations.
"""

import logging
from typing import Dict, Optional, Sequence, TypeVar

from scenario_engine.artifact_scanner import ArtifactScanner
from scenario_engine.config import EngineConfig
from scenario_engine.schemas import (
    FORMAT_PRIORITY,
    LANGUAGE_PRIORITY,
    Convention,
    StepLanguage,
    TextFormat,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def majority(counts: Dict[str, int], priority: Sequence[T]) -> Optional[T]:
    """
    Pick the value with the most files; ties go to the earlier priority entry.

    Args:
        counts: File counts keyed by enum value
        priority: Enum members in priority order

    Returns:
        Winning member, or None when every count is zero
    """
    best = None
    best_count = 0
    for member in priority:
        count = counts.get(member.value, 0)
        if count > best_count:
            best, best_count = member, count
    return best


class ConventionDetector:
    """
    Detects the active Convention of an artifact tree.

    Usage:
        detector = ConventionDetector(fs, config)
        convention = detector.detect()
        if convention.is_mixed:
            for warning in convention.warnings:
                print(warning)
    """

    def __init__(self, fs, config: EngineConfig):
        self.scanner = ArtifactScanner(fs, config.paths)
        self.default_language = config.default_step_language

    def detect(self) -> Convention:
        """
        Detect text format and step language independently.

        Returns:
            Convention with mixed-state warnings (empty when consistent)
        """
        result = self.scanner.scan()
        feature_counts = {
            fmt.value: result.by_kind[fmt.value] for fmt in TextFormat if fmt.value in result.by_kind
        }
        step_counts = {
            lang.value: result.by_kind[lang.value] for lang in StepLanguage if lang.value in result.by_kind
        }
        warnings = []

        text_format = majority(feature_counts, FORMAT_PRIORITY) or TextFormat.PLAIN
        if len(feature_counts) > 1:
            warnings.append(self._mixed_warning("feature formats", feature_counts, text_format.value))

        step_language = majority(step_counts, LANGUAGE_PRIORITY) or self.default_language
        if len(step_counts) > 1:
            warnings.append(self._mixed_warning("step languages", step_counts, step_language.value))

        for warning in warnings:
            logger.warning(warning)

        convention = Convention(
            text_format=text_format,
            step_language=step_language,
            warnings=warnings,
            feature_counts=feature_counts,
            step_counts=step_counts,
        )
        logger.debug(
            "Detected convention: format=%s language=%s",
            convention.text_format.value,
            convention.step_language.value,
        )
        return convention

    @staticmethod
    def _mixed_warning(what: str, counts: Dict[str, int], winner: str) -> str:
        detail = ", ".join(f"{name}: {count}" for name, count in sorted(counts.items()))
        return f"Mixed {what} detected ({detail}); using majority '{winner}'"
