"""
Scenario Generator

Turns a feature context into scenario blocks and step stubs, staged on an
overlay view of the artifact tree.

Construct selection:
    - one plain scenario per acceptance criterion and per edge case
    - one scenario outline with an examples table when two or more
      validation rules exercise the same submit-and-reject flow
    - a background block when a new file's scenarios share their setup

Every step is an instance of a built-in template; an existing catalogued
pattern is reused whenever it matches, otherwise a stub is created in the
category's step file for the active language.
"""

import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from scenario_engine.artifact_scanner import format_for_path
from scenario_engine.catalog import CatalogIndex
from scenario_engine.config import EngineConfig
from scenario_engine.error_handling import ErrorType
from scenario_engine.gherkin import (
    ExamplesTable,
    FeatureDocument,
    ScenarioBlock,
    Step,
    parse_feature,
    render_feature,
    render_scenario_block,
)
from scenario_engine.interaction import InteractionChannel
from scenario_engine.schemas import (
    CATEGORY_FILE_STEMS,
    ConstructKind,
    Convention,
    FeatureContext,
    FeatureEntry,
    Notice,
    StepDefinitionEntry,
    TextFormat,
)
from scenario_engine.step_library import (
    ACTOR_EXISTS,
    PERFORMS_ACTION,
    RECORD_EXISTS,
    REJECTED_WITH,
    SUBMITS_VALUE,
    USER_SEES,
    StepTemplate,
)
from scenario_engine.step_stubs import dialect_for, matches
from scenario_engine.text_utils import (
    first_sentence,
    lexical_overlap,
    normalize_name,
    normalize_scenario_name,
    quoted_values,
    sentence_case,
    slugify,
    title_from_slug,
)

logger = logging.getLogger(__name__)

MAX_NAME_WORDS = 12

_MODAL_PREFIX = re.compile(
    r"^(?:(?:the|a|an|each|every)\s+)?(?:[\w-]+\s+){0,2}?"
    r"(?:can|should|must|shall|will|may|is able to|are able to)\s+",
    re.IGNORECASE,
)
_CONDITIONAL = re.compile(r"^(?:when|if|after|once|given)\s+(.+?),\s*(?:then\s+)?(.+)$", re.IGNORECASE)
_CONSEQUENCE_MARKERS = (" so that ", " then ", " resulting in ", " and sees ", " and receives ")
_FIELD_STOP = re.compile(
    r"\s+(?:must|is required|are required|is mandatory|should|cannot|can't|can not|may not|has to|needs to|is)\b",
    re.IGNORECASE,
)
_VALIDATION_WORDS = ("invalid", "reject", "error", "fail", "missing", "empty", "wrong", "denied", "forbidden")
_EDGE_WORDS = ("edge", "limit", "boundary", "concurrent", "timeout", "expired", "maximum", "minimum", "duplicate")


def _clean_value(text: str) -> str:
    """Make text safe inside a quoted step argument."""
    return text.replace('"', "'").strip()


def scenario_name(text: str) -> str:
    words = sentence_case(text).split()
    return " ".join(words[:MAX_NAME_WORDS])


def split_behavior(text: str) -> Tuple[str, Optional[str]]:
    """
    Split a behavior statement into (action, consequence).

    'Customer can export orders so that totals are archived'
        -> ('export orders', 'totals are archived')
    """
    text = re.sub(r"\s+", " ", text.strip()).rstrip(".")
    conditional = _CONDITIONAL.match(text)
    if conditional:
        action, outcome = conditional.group(1), conditional.group(2)
    else:
        action, outcome = text, None
        lowered = text.lower()
        for marker in _CONSEQUENCE_MARKERS:
            cut = lowered.find(marker)
            if cut > 0:
                action, outcome = text[:cut], text[cut + len(marker):]
                break
    action = _MODAL_PREFIX.sub("", action, count=1).strip() or action.strip()
    action = action[0].lower() + action[1:] if action else action
    return _clean_value(action), _clean_value(outcome) if outcome else None


def expected_outcome(text: str, action: str, consequence: Optional[str]) -> str:
    """Exact expected value: a quoted value, else the stated consequence, else a confirmation."""
    quoted = quoted_values(text)
    if quoted:
        return _clean_value(quoted[-1])
    if consequence:
        return sentence_case(consequence)
    return f"{sentence_case(action)} confirmed"


def rule_field(rule: str) -> str:
    subject = _FIELD_STOP.split(rule, 1)[0]
    words = [w for w in re.findall(r"[A-Za-z0-9]+", subject.lower()) if w not in ("the", "a", "an", "each")]
    return " ".join(words[-3:]) if words else "value"


def invalid_sample(rule: str) -> str:
    """A concrete value violating the rule."""
    lowered = rule.lower()
    at_least = re.search(r"(?:at least|minimum of|min(?:imum)?\.?)\s+(\d+)\s+char", lowered)
    if at_least:
        return "a" * max(int(at_least.group(1)) - 1, 0)
    at_most = re.search(r"(?:at most|no more than|maximum of|max(?:imum)?\.?|up to)\s+(\d+)\s+char", lowered)
    if at_most:
        return "a" * (int(at_most.group(1)) + 1)
    if "email" in lowered:
        return "not-an-email"
    if any(word in lowered for word in ("required", "mandatory", "not be empty", "cannot be empty", "non-empty")):
        return ""
    if any(word in lowered for word in ("positive", "greater than 0", "greater than zero")):
        return "-1"
    if any(word in lowered for word in ("numeric", "number", "digit", "integer")):
        return "abc"
    if any(word in lowered for word in ("date", "iso 8601")):
        return "31/02/2020"
    if "unique" in lowered or "already" in lowered:
        return "existing-value"
    return "invalid"


def rejection_message(rule: str) -> str:
    quoted = quoted_values(rule)
    if quoted:
        return _clean_value(quoted[-1])
    return _clean_value(sentence_case(rule))


def classify_requested(name: str) -> str:
    lowered = name.lower()
    if any(word in lowered for word in _VALIDATION_WORDS):
        return "@validation"
    if any(word in lowered for word in _EDGE_WORDS):
        return "@edge-case"
    return "@happy-path"


@dataclass
class ScenarioDraft:
    """A scenario proposed for generation, before de-duplication."""
    name: str
    tags: List[str]
    steps: List[Tuple[StepTemplate, Tuple]]
    kind: ConstructKind = ConstructKind.SCENARIO
    examples: Optional[ExamplesTable] = None

    def to_block(self, skip_givens: Sequence[str] = ()) -> ScenarioBlock:
        steps = [Step(keyword=template.keyword, text=template.instantiate(*values)) for template, values in self.steps]
        if skip_givens:
            leading = [s.text for s in steps[:len(skip_givens)]]
            if leading == list(skip_givens):
                steps = steps[len(skip_givens):]
        return ScenarioBlock(name=self.name, tags=list(self.tags), kind=self.kind, steps=steps, examples=self.examples)


@dataclass
class GenerationResult:
    """Outcome of staging one generation on the overlay."""
    domain: str
    feature_name: str
    title: str
    feature_path: str
    is_split: bool
    is_new: bool
    text_format: TextFormat
    scenario_count: int = 0
    created_scenarios: List[str] = field(default_factory=list)
    created_steps: List[str] = field(default_factory=list)
    reused_steps: List[str] = field(default_factory=list)
    notices: List[Notice] = field(default_factory=list)


class ScenarioGenerator:
    """
    Stages scenario and step-stub changes for one feature.

    Usage:
        generator = ScenarioGenerator(overlay, config, convention, index, channel)
        result = generator.generate(context, requested_names=["Export with no orders"])
    """

    def __init__(
        self,
        view,
        config: EngineConfig,
        convention: Convention,
        index: CatalogIndex,
        channel: InteractionChannel
    ):
        self.view = view
        self.config = config
        self.paths = config.paths
        self.convention = convention
        self.index = index
        self.channel = channel
        self.dialect = dialect_for(convention.step_language)
        self._known_steps: List[StepDefinitionEntry] = list(index.lookup_steps(convention.step_language))

    # Drafting

    def draft(self, context: FeatureContext, requested_names: Sequence[str] = ()) -> List[ScenarioDraft]:
        """
        Propose scenarios from the context's facts and any requested names.

        Returns:
            Drafts in generation order (criteria, validation, edge cases, requested)
        """
        facts = context.facts
        actor = _clean_value(facts.actors[0].lower()) if facts.actors else "user"
        givens: List[Tuple[StepTemplate, Tuple]] = [(ACTOR_EXISTS, (actor,))]
        if facts.entities:
            givens.append((RECORD_EXISTS, (_clean_value(facts.entities[0].lower()),)))

        drafts: List[ScenarioDraft] = []

        for position, criterion in enumerate(facts.criteria):
            drafts.append(self._behavior_draft(criterion, actor, givens, ["@happy-path"] + (["@smoke"] if position == 0 else [])))

        if len(facts.rules) >= 2:
            rows = [[rule_field(rule), invalid_sample(rule), rejection_message(rule)] for rule in facts.rules]
            drafts.append(ScenarioDraft(
                name=scenario_name(f"Reject invalid {context.title.lower()} input"),
                tags=["@validation"],
                kind=ConstructKind.OUTLINE,
                steps=givens + [
                    (SUBMITS_VALUE, (actor, "<value>", "<field>")),
                    (REJECTED_WITH, ("<message>",)),
                ],
                examples=ExamplesTable(headers=["field", "value", "message"], rows=rows),
            ))
        elif facts.rules:
            rule = facts.rules[0]
            drafts.append(ScenarioDraft(
                name=scenario_name(f"Reject {rule_field(rule)} that breaks the rule"),
                tags=["@validation"],
                steps=givens + [
                    (SUBMITS_VALUE, (actor, invalid_sample(rule), rule_field(rule))),
                    (REJECTED_WITH, (rejection_message(rule),)),
                ],
            ))

        for edge_case in facts.edge_cases:
            drafts.append(self._behavior_draft(edge_case, actor, givens, ["@edge-case"]))

        for name in requested_names:
            if name.strip():
                draft = self._behavior_draft(name, actor, givens, [classify_requested(name)])
                draft.name = name.strip()
                drafts.append(draft)

        if not drafts:
            drafts.append(self._fallback_draft(context, actor, givens))
        return drafts

    def _behavior_draft(
        self,
        text: str,
        actor: str,
        givens: List[Tuple[StepTemplate, Tuple]],
        tags: List[str]
    ) -> ScenarioDraft:
        action, consequence = split_behavior(text)
        return ScenarioDraft(
            name=scenario_name(text),
            tags=tags,
            steps=givens + [
                (PERFORMS_ACTION, (actor, action)),
                (USER_SEES, (actor, expected_outcome(text, action, consequence))),
            ],
        )

    def _fallback_draft(self, context: FeatureContext, actor: str, givens) -> ScenarioDraft:
        facts = context.facts
        if facts.summary:
            basis = first_sentence(facts.summary)
        elif facts.identifiers:
            names = re.findall(r"(?:def|class|function|func|type)\s+(\w+)", facts.identifiers[0])
            basis = title_from_slug(re.sub(r"(?<!^)(?=[A-Z])", "-", names[0]).lower()) if names else context.title
        else:
            basis = context.title
        return self._behavior_draft(basis, actor, givens, ["@happy-path", "@smoke"])

    # Generation

    def generate(self, context: FeatureContext, requested_names: Sequence[str] = ()) -> GenerationResult:
        """
        Stage scenarios and stubs for a feature on the overlay view.

        Args:
            context: Resolved feature target and facts
            requested_names: Explicitly requested scenario names

        Returns:
            GenerationResult describing everything staged
        """
        entry = self._existing_entry(context)
        result = self._result_for(context, entry)
        existing = self._existing_scenarios(entry)
        result.scenario_count = len(existing)

        accepted: List[ScenarioDraft] = []
        batch: Dict[str, str] = {}
        for draft in self.draft(context, requested_names):
            if self._accept(draft, existing, batch, result):
                accepted.append(draft)
                batch[normalize_scenario_name(draft.name)] = draft.name

        if not accepted:
            logger.info("No new scenarios for %s/%s", result.domain, result.feature_name)
            return result

        if entry is None:
            self._write_new_feature(context, accepted, result)
        elif entry.is_split:
            self._append_to_split(entry, accepted, result)
        else:
            self._append_to_file(f"{self.paths.features}/{entry.path}", accepted, result)

        result.created_scenarios = [draft.name for draft in accepted]
        result.scenario_count += len(accepted)
        self._stage_steps(accepted, result)
        return result

    def _existing_entry(self, context: FeatureContext) -> Optional[FeatureEntry]:
        named = [e for e in self.index.lookup() if normalize_name(e.name) == normalize_name(context.feature_name)]
        same_domain = [e for e in named if e.domain == context.domain]
        chosen = (same_domain or named or [None])[0]
        if chosen is not None and chosen.domain != context.domain:
            logger.info("Feature '%s' already lives in domain '%s'", chosen.name, chosen.domain)
        return chosen

    def _result_for(self, context: FeatureContext, entry: Optional[FeatureEntry]) -> GenerationResult:
        if entry is None:
            text_format = self.convention.text_format
            path = f"{self.paths.features}/{context.domain}/{context.feature_name}{text_format.extension}"
            return GenerationResult(
                domain=context.domain,
                feature_name=context.feature_name,
                title=context.title,
                feature_path=path,
                is_split=False,
                is_new=True,
                text_format=text_format,
            )
        path = f"{self.paths.features}/{entry.path}".rstrip("/")
        first_file = entry.files[0] if entry.files else entry.path
        return GenerationResult(
            domain=entry.domain,
            feature_name=entry.name,
            title=entry.title or context.title,
            feature_path=path,
            is_split=entry.is_split,
            is_new=False,
            text_format=format_for_path(first_file) or self.convention.text_format,
        )

    def _existing_scenarios(self, entry: Optional[FeatureEntry]) -> Dict[str, Tuple[str, str, int]]:
        """Normalized name -> (name, file, line) for every scenario of an entry."""
        found: Dict[str, Tuple[str, str, int]] = {}
        if entry is None:
            return found
        for relative in entry.files:
            path = f"{self.paths.features}/{relative}"
            if not self.view.is_file(path):
                continue
            doc = parse_feature(self.view.read_text(path), format_for_path(path) or TextFormat.PLAIN)
            for block in doc.scenarios:
                found.setdefault(normalize_scenario_name(block.name), (block.name, path, block.line))
        return found

    def _accept(
        self,
        draft: ScenarioDraft,
        existing: Dict[str, Tuple[str, str, int]],
        batch: Dict[str, str],
        result: GenerationResult
    ) -> bool:
        key = normalize_scenario_name(draft.name)
        if key in existing:
            name, path, line = existing[key]
            message = f"Scenario '{draft.name}' already exists at {path}:{line}"
            logger.warning(message)
            result.notices.append(Notice(kind=ErrorType.DUPLICATE.value, message=message, path=f"{path}:{line}"))
            return False
        if key in batch:
            logger.debug("Dropping repeated draft '%s'", draft.name)
            return False

        threshold = self.config.thresholds.near_duplicate_threshold
        similar = [(name, path) for name, path, _ in existing.values()] + [(name, "this run") for name in batch.values()]
        for name, where in similar:
            if lexical_overlap(draft.name, name) >= threshold:
                question = f"Scenario '{draft.name}' is similar to existing '{name}' ({where}). Create it anyway?"
                if self.channel.confirm(question, default=False):
                    return True
                message = f"Scenario '{draft.name}' skipped as near-duplicate of '{name}' ({where})"
                logger.warning(message)
                result.notices.append(Notice(kind=ErrorType.DUPLICATE.value, message=message, path=where))
                return False
        return True

    # Feature files

    def _write_new_feature(self, context: FeatureContext, drafts: List[ScenarioDraft], result: GenerationResult) -> None:
        blocks = [draft.to_block() for draft in drafts]
        background: List[Step] = []
        if len(blocks) >= 2:
            background = _common_givens(blocks)
            for block in blocks:
                block.steps = block.steps[len(background):]

        summary = context.summary or (
            first_sentence(context.facts.criteria[0]) if context.facts.criteria else f"{context.title}."
        )
        doc = FeatureDocument(
            title=context.title,
            tags=[f"@{result.domain}", f"@{result.feature_name}"],
            description=[sentence_case(first_sentence(summary)) + "."],
            background=background,
            scenarios=blocks,
        )
        self.view.write_text(result.feature_path, render_feature(doc, result.text_format))
        logger.info("Staged new feature file %s (%d scenarios)", result.feature_path, len(blocks))

    def _append_to_file(self, path: str, drafts: List[ScenarioDraft], result: GenerationResult) -> None:
        text_format = format_for_path(path) or TextFormat.PLAIN
        doc = parse_feature(self.view.read_text(path), text_format)
        skip = [step.text for step in doc.background]
        content = self.view.read_text(path)
        if not content.endswith("\n"):
            content += "\n"
        for draft in drafts:
            content += render_scenario_block(draft.to_block(skip), text_format)
        self.view.write_text(path, content)
        logger.info("Staged %d scenarios appended to %s", len(drafts), path)

    def _append_to_split(self, entry: FeatureEntry, drafts: List[ScenarioDraft], result: GenerationResult) -> None:
        directory = f"{self.paths.features}/{entry.path}".rstrip("/")
        sub_files = [f"{self.paths.features}/{sub}" for sub in entry.sub_files]
        text_format = result.text_format
        by_subject = {
            _strip_extension(path.rsplit("/", 1)[-1]): path for path in sub_files
        }
        template_doc = parse_feature(self.view.read_text(sub_files[0]), text_format) if sub_files else None

        routed: Dict[str, List[ScenarioDraft]] = {}
        for draft in drafts:
            subject = primary_subject(draft.tags)
            routed.setdefault(subject, []).append(draft)

        for subject, group in routed.items():
            path = by_subject.get(subject)
            if path is not None:
                self._append_to_file(path, group, result)
                continue
            path = f"{directory}/{subject}{text_format.extension}"
            background = list(template_doc.background) if template_doc else []
            skip = [step.text for step in background]
            doc = FeatureDocument(
                title=f"{result.title}: {title_from_slug(subject)}",
                tags=list(template_doc.tags) if template_doc else [f"@{result.domain}", f"@{result.feature_name}"],
                description=list(template_doc.description) if template_doc else [],
                background=background,
                scenarios=[draft.to_block(skip) for draft in group],
            )
            self.view.write_text(path, render_feature(doc, text_format))
            logger.info("Staged new sub-file %s", path)

    # Step stubs

    def _stage_steps(self, drafts: List[ScenarioDraft], result: GenerationResult) -> None:
        support = self.dialect.support_files()
        for name, content in support.items():
            path = f"{self.paths.steps}/{name}"
            if not self.view.is_file(path):
                self.view.write_text(path, content)

        seen_texts = set()
        for draft in drafts:
            for template, values in draft.steps:
                text = template.instantiate(*values)
                if text in seen_texts:
                    continue
                seen_texts.add(text)
                match = next((s for s in self._known_steps if matches(s.pattern, text)), None)
                if match is not None:
                    if match.pattern not in result.reused_steps and match.pattern not in result.created_steps:
                        result.reused_steps.append(match.pattern)
                    continue
                self._create_stub(template, result)

    def _create_stub(self, template: StepTemplate, result: GenerationResult) -> None:
        path = self._step_file_for(template, result.domain)
        relative = path[len(self.paths.steps) + 1:]
        entry = template.to_entry(relative)
        extension = "." + path.rsplit(".", 1)[-1]
        stub = self.dialect.render_stub(entry, extension)
        if self.view.is_file(path):
            self.view.append_text(path, stub)
        else:
            self.view.write_text(path, self.dialect.file_header(extension, template.category) + stub)
        self._known_steps.append(entry)
        result.created_steps.append(entry.pattern)
        logger.debug("Staged stub '%s' in %s", entry.pattern, path)

    def _step_file_for(self, template: StepTemplate, domain: str) -> str:
        stem = CATEGORY_FILE_STEMS.get(template.category) or f"{domain.replace('-', '_')}_steps"
        language = self.convention.step_language
        existing = self.view.glob(f"{self.paths.steps}/**/*")
        for extension in language.extensions:
            candidate = f"{self.paths.steps}/{stem}{extension}"
            if candidate in existing:
                return candidate
        used = Counter(
            "." + path.rsplit(".", 1)[-1] for path in existing if self.dialect.is_step_file(path)
        )
        extension = used.most_common(1)[0][0] if used else language.extension
        return f"{self.paths.steps}/{stem}{extension}"


def _strip_extension(name: str) -> str:
    text_format = format_for_path(name)
    return name[: -len(text_format.extension)] if text_format else name


def primary_subject(tags: Sequence[str]) -> str:
    """Sub-file subject for a scenario: its first classification tag other than @smoke."""
    for tag in tags:
        if tag != "@smoke":
            return slugify(tag.lstrip("@")) or "core-scenarios"
    return "core-scenarios"


def _common_givens(blocks: List[ScenarioBlock]) -> List[Step]:
    """Longest run of identical leading Given steps shared by every block."""
    common: List[Step] = []
    for position, step in enumerate(blocks[0].steps):
        if step.keyword != "Given":
            break
        if all(
            len(block.steps) > position
            and block.steps[position].keyword == "Given"
            and block.steps[position].text == step.text
            for block in blocks
        ):
            common.append(Step(keyword=step.keyword, text=step.text))
        else:
            break
    return common
