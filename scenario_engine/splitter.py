"""
Feature Splitter

Promotes an over-large feature file into a directory of coherent sub-files.

    Unsplit --[scenario count > split_threshold]--> Split   (Split is terminal)

Scenarios are grouped by the first signal that separates them:
    1. primary classification tag
    2. shared precondition (Given) signature
    3. action verb of the first When step
    4. the scenario-name keyword that best halves the scenarios
    5. the step-text keyword that best halves the scenarios
    6. the scenario name itself
Sub-files are named after the group's subject, never by position.
"""

import logging
from collections import OrderedDict
from typing import Callable, Dict, List, Optional

from scenario_engine.artifact_scanner import format_for_path, strip_feature_extension
from scenario_engine.config import EngineConfig
from scenario_engine.generator import GenerationResult, primary_subject
from scenario_engine.gherkin import FeatureDocument, ScenarioBlock, parse_feature, render_feature
from scenario_engine.schemas import TextFormat
from scenario_engine.text_utils import keywords, quoted_values, slugify, title_from_slug

logger = logging.getLogger(__name__)

FALLBACK_SUBJECT = "core-scenarios"


def tag_subject(block: ScenarioBlock, feature_tags: List[str]) -> Optional[str]:
    tags = [tag for tag in block.tags if tag not in feature_tags]
    return primary_subject(tags) if tags else None


def setup_subject(block: ScenarioBlock, feature_tags: List[str]) -> Optional[str]:
    givens = block.givens
    if not givens:
        return None
    values = [value for step in givens for value in quoted_values(step.text)]
    words = values or [word for step in givens for word in keywords(step.text)]
    subject = slugify(" ".join(words), max_words=3)
    return f"{subject}-setup" if subject else None


def action_subject(block: ScenarioBlock, feature_tags: List[str]) -> Optional[str]:
    whens = [step for step in block.steps if step.keyword == "When"]
    if not whens:
        return None
    values = quoted_values(whens[0].text)
    # The action is the last quoted argument of a When step
    words = keywords(values[-1]) if values else keywords(whens[0].text)
    return f"{words[0]}-flows" if words else None


GROUPING_SIGNALS: List[Callable[[ScenarioBlock, List[str]], Optional[str]]] = [
    tag_subject,
    setup_subject,
    action_subject,
]


def name_words(block: ScenarioBlock) -> List[str]:
    return [word for word in keywords(block.name) if not word.isdigit()]


def step_words(block: ScenarioBlock) -> List[str]:
    text = " ".join(step.text for step in block.steps)
    return [word for word in keywords(text) if not word.isdigit()]


def partition_by_keyword(
    blocks: List[ScenarioBlock],
    words_of: Callable[[ScenarioBlock], List[str]]
) -> "OrderedDict[str, List[ScenarioBlock]]":
    """
    Split scenarios in two on the keyword that best halves them.

    The pivot is the keyword carried by closest to half of the scenarios;
    ties go to the more frequent keyword, then to alphabetical order.
    Scenarios carrying the pivot are named after it, the rest after the
    keywords they all share.

    Returns:
        Two groups, or an empty mapping when every scenario carries the same keywords
    """
    words = [words_of(block) for block in blocks]
    counts: Dict[str, int] = {}
    for block_words in words:
        for word in block_words:
            counts[word] = counts.get(word, 0) + 1
    candidates = [word for word, count in counts.items() if count < len(blocks)]
    if not candidates:
        return OrderedDict()

    half = len(blocks) / 2
    pivot = min(candidates, key=lambda word: (abs(counts[word] - half), -counts[word], word))
    rest = [block_words for block_words in words if pivot not in block_words]
    shared = [word for word in rest[0] if all(word in other for other in rest)]
    rest_subject = slugify(" ".join(shared), max_words=3) or f"without-{pivot}"

    groups: "OrderedDict[str, List[ScenarioBlock]]" = OrderedDict()
    for block, block_words in zip(blocks, words):
        groups.setdefault(pivot if pivot in block_words else rest_subject, []).append(block)
    return groups


def group_scenarios(doc: FeatureDocument) -> "OrderedDict[str, List[ScenarioBlock]]":
    """
    Group scenarios by the first signal producing two or more groups.

    Scenarios a signal cannot classify fall into the fallback group. When no
    signal separates them, the scenarios are partitioned on their name
    keywords, then on their step keywords, and finally one group per name.
    """
    for signal in GROUPING_SIGNALS:
        groups: "OrderedDict[str, List[ScenarioBlock]]" = OrderedDict()
        for block in doc.scenarios:
            subject = signal(block, doc.tags) or FALLBACK_SUBJECT
            groups.setdefault(subject, []).append(block)
        if len(groups) >= 2:
            logger.debug("Grouped by %s: %s", signal.__name__, list(groups))
            return groups

    if len(doc.scenarios) < 2:
        return OrderedDict([(FALLBACK_SUBJECT, list(doc.scenarios))])
    for words_of in (name_words, step_words):
        groups = partition_by_keyword(doc.scenarios, words_of)
        if groups:
            logger.debug("Partitioned by %s: %s", words_of.__name__, list(groups))
            return groups

    groups = OrderedDict()
    for block in doc.scenarios:
        groups.setdefault(slugify(block.name, max_words=6) or FALLBACK_SUBJECT, []).append(block)
    return groups


class FeatureSplitter:
    """
    Usage:
        splitter = FeatureSplitter(overlay, config)
        if splitter.needs_split(result):
            splitter.split(result)
    """

    def __init__(self, view, config: EngineConfig):
        self.view = view
        self.threshold = config.thresholds.split_threshold

    def needs_split(self, result: GenerationResult) -> bool:
        return not result.is_split and result.scenario_count > self.threshold

    def split(self, result: GenerationResult) -> List[str]:
        """
        Replace the feature file with a directory of grouped sub-files.

        Updates `result` in place (path becomes the directory, is_split True).

        Returns:
            Paths of the staged sub-files
        """
        path = result.feature_path
        text_format = format_for_path(path) or TextFormat.PLAIN
        doc = parse_feature(self.view.read_text(path), text_format)
        directory = strip_feature_extension(path)
        title = doc.title or result.title

        sub_files = []
        for subject, blocks in group_scenarios(doc).items():
            sub_path = f"{directory}/{subject}{text_format.extension}"
            sub_doc = FeatureDocument(
                title=f"{title}: {title_from_slug(subject)}",
                tags=list(doc.tags),
                description=list(doc.description),
                background=list(doc.background),
                scenarios=blocks,
            )
            self.view.write_text(sub_path, render_feature(sub_doc, text_format))
            sub_files.append(sub_path)

        self.view.delete(path)
        logger.warning(
            "Feature %s exceeded %d scenarios; split into %d sub-files",
            path, self.threshold, len(sub_files),
        )
        result.feature_path = directory
        result.is_split = True
        return sub_files
