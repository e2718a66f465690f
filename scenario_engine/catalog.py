"""
Catalog Index

In-memory model of the two catalog documents:
- FeaturesCatalog (`features/INDEX.md`): feature entries grouped by domain
- StepsCatalog (`steps/INDEX.md`): step definitions grouped by category

Catalogs are a denormalized projection of the artifact tree. They can be
derived from the tree (`from_tree`), parsed back from disk (`load`), compared
against the tree (`diff`) and rendered deterministically.
"""

import logging
import re
from itertools import groupby
from typing import Dict, List, Optional, Tuple

from scenario_engine.artifact_scanner import CROSS_DOMAIN, ArtifactScanner
from scenario_engine.config import EngineConfig
from scenario_engine.schemas import (
    CatalogDiff,
    ConstructKind,
    Convention,
    FeatureEntry,
    ScenarioRef,
    StepCategory,
    StepDefinitionEntry,
    StepLanguage,
    StepParameter,
    TextFormat,
)
from scenario_engine.text_utils import normalize_name

logger = logging.getLogger(__name__)

FEATURES_HEADING = "# Features Index"
STEPS_HEADING = "# Steps Index"
GENERATED_NOTE = "<!-- Generated by scenario-engine from the artifact tree. Edits are overwritten. -->"
NO_FEATURES = "_No features yet._"
NO_STEPS = "_No steps yet._"

_SCENARIO_META = re.compile(r"^(?P<kind>scenario|background|outline, (?P<count>\d+) examples?)(?:; (?P<rest>.*))?$")
_PARAM_CELL = re.compile(r"^(\w+) \((\w+)\)$")
_CONDENSED = re.compile(r"^- Scenarios: (\d+) \(condensed\)$")


def _escape_cell(text: str) -> str:
    return text.replace("|", "\\|").replace("\n", " ")


def _split_cells(line: str) -> List[str]:
    inner = line.strip()[1:]
    if inner.endswith("|") and not inner.endswith("\\|"):
        inner = inner[:-1]
    return [cell.strip().replace("\\|", "|") for cell in re.split(r"(?<!\\)\|", inner)]


def _domain_sort_key(domain: str):
    return (domain == CROSS_DOMAIN, domain)


def _scenario_key(ref: ScenarioRef) -> Tuple:
    return (ref.source_file, ref.name, tuple(ref.tags), ref.kind, ref.example_count)


class CatalogIndex:
    """
    The features and steps catalogs of one artifact tree.

    Usage:
        index = CatalogIndex.load(fs, config)
        diff = index.diff(fs, config)
        if diff.has_drift:
            index = CatalogIndex.from_tree(fs, config, convention)
    """

    def __init__(
        self,
        features: Optional[List[FeatureEntry]] = None,
        steps: Optional[List[StepDefinitionEntry]] = None,
        text_format: TextFormat = TextFormat.PLAIN,
        step_language: StepLanguage = StepLanguage.PYTHON,
        present: bool = True,
    ):
        self.features = sorted(features or [], key=lambda e: (_domain_sort_key(e.domain), e.name))
        self.steps = list(steps or [])
        self.text_format = text_format
        self.step_language = step_language
        self.present = present
        # Scenario counts of entries rendered in condensed form, by entry path
        self.condensed_counts: Dict[str, int] = {}

    # Construction

    @classmethod
    def from_tree(cls, fs, config: EngineConfig, convention: Convention) -> "CatalogIndex":
        """Derive both catalogs purely from the feature and step files on the view."""
        scanner = ArtifactScanner(fs, config.paths)
        return cls(
            features=scanner.feature_entries(),
            steps=scanner.step_entries(),
            text_format=convention.text_format,
            step_language=convention.step_language,
        )

    @classmethod
    def load(cls, fs, config: EngineConfig) -> "CatalogIndex":
        """
        Parse both catalog documents from disk.

        Returns:
            CatalogIndex; `present` is False when either document is missing
        """
        features_path = config.paths.features_catalog
        steps_path = config.paths.steps_catalog
        present = fs.is_file(features_path) and fs.is_file(steps_path)
        index = cls(present=present)
        if fs.is_file(features_path):
            index._parse_features(fs.read_text(features_path))
        if fs.is_file(steps_path):
            index._parse_steps(fs.read_text(steps_path))
        return index

    # Queries

    def lookup(self, domain: Optional[str] = None) -> List[FeatureEntry]:
        if domain is None:
            return list(self.features)
        return [entry for entry in self.features if entry.domain == domain]

    def lookup_steps(self, language: Optional[StepLanguage] = None) -> List[StepDefinitionEntry]:
        if language is None:
            return list(self.steps)
        return [step for step in self.steps if step.source_file.endswith(language.extensions)]

    def find_feature(self, reference: str) -> List[FeatureEntry]:
        """
        Find entries whose name equals the normalized reference.

        `domain/name` references match only inside that domain.
        """
        key = normalize_name(reference)
        domain = None
        if "/" in key:
            domain, key = key.rsplit("/", 1)
        return [
            entry for entry in self.features
            if normalize_name(entry.name) == key and (domain is None or entry.domain == domain)
        ]

    @property
    def domains(self) -> List[str]:
        return sorted({entry.domain for entry in self.features}, key=_domain_sort_key)

    # Drift

    def diff(self, fs, config: EngineConfig) -> CatalogDiff:
        """
        Compare catalog entries against the artifact tree.

        Stale entries reference files that no longer exist; missing entries
        are files (or step registrations) with no catalog entry. For features
        present on both sides, scenario names, tags, kinds and example counts
        are compared as well.
        """
        scanner = ArtifactScanner(fs, config.paths)
        features_prefix = config.paths.features + "/"
        on_disk = {path[len(features_prefix):] for path in scanner.feature_files()}
        catalogued = {path for entry in self.features for path in entry.files}

        stale = [f"feature:{path}" for path in sorted(catalogued - on_disk)]
        missing = [f"feature:{path}" for path in sorted(on_disk - catalogued)]

        scenario_stale, scenario_missing = self._diff_scenarios(scanner.feature_entries())
        stale.extend(scenario_stale)
        missing.extend(scenario_missing)

        disk_steps = {(step.source_file, step.pattern) for step in scanner.step_entries()}
        catalogued_steps = {(step.source_file, step.pattern) for step in self.steps}
        stale.extend(f"step:{src}:{pattern}" for src, pattern in sorted(catalogued_steps - disk_steps))
        missing.extend(f"step:{src}:{pattern}" for src, pattern in sorted(disk_steps - catalogued_steps))

        if not self.present and (on_disk or disk_steps or fs.exists(config.paths.artifact_root)):
            missing.insert(0, "catalog:missing")

        return CatalogDiff(stale_entries=stale, missing_entries=missing)

    def _diff_scenarios(self, disk_entries: List[FeatureEntry]) -> Tuple[List[str], List[str]]:
        """Scenario-level mismatches of entries catalogued at the same path they have on disk."""
        by_path = {entry.path: entry for entry in disk_entries}
        stale: List[str] = []
        missing: List[str] = []
        for entry in self.features:
            actual = by_path.get(entry.path)
            if actual is None or actual.sub_files != entry.sub_files:
                continue
            if entry.path in self.condensed_counts:
                count = self.condensed_counts[entry.path]
                if count != actual.scenario_count:
                    stale.append(f"scenario:{entry.path}:{count} scenarios")
                    missing.append(f"scenario:{entry.path}:{actual.scenario_count} scenarios")
                continue
            listed = {_scenario_key(ref): ref.name for ref in entry.scenarios}
            found = {_scenario_key(ref): ref.name for ref in actual.scenarios}
            stale.extend(f"scenario:{entry.path}:{listed[key]}" for key in sorted(listed.keys() - found.keys(), key=str))
            missing.extend(f"scenario:{entry.path}:{found[key]}" for key in sorted(found.keys() - listed.keys(), key=str))
        return stale, missing

    # Rendering

    def render_features(self, max_lines: int = 500) -> str:
        """
        Render the features catalog.

        Falls back to a condensed form (scenario counts only) when the full
        document would exceed max_lines.
        """
        full = self._render_features(condensed=False)
        if full.count("\n") <= max_lines:
            return full
        logger.warning(
            "Features catalog exceeds %d lines; writing condensed form", max_lines
        )
        return self._render_features(condensed=True)

    def _render_features(self, condensed: bool) -> str:
        lines = [FEATURES_HEADING, "", GENERATED_NOTE, "", f"Text format: {self.text_format.value}"]
        if not self.features:
            lines.extend(["", NO_FEATURES])
        for domain, entries in groupby(self.features, key=lambda e: e.domain):
            lines.extend(["", f"## {domain}"])
            for entry in entries:
                lines.extend(["", f"### {entry.name}", ""])
                lines.append(f"- Title: {entry.title}")
                if entry.is_split:
                    lines.append(f"- Directory: `{entry.path}`")
                    lines.append("- Sub-files:")
                    lines.extend(f"  - `{sub}`" for sub in entry.sub_files)
                else:
                    lines.append(f"- File: `{entry.path}`")
                lines.append(f"- Summary: {entry.summary or '-'}")
                if condensed:
                    lines.append(f"- Scenarios: {entry.scenario_count} (condensed)")
                    continue
                lines.append("- Scenarios:")
                for ref in entry.scenarios:
                    meta = f"{ref.description}; {' '.join(ref.tags)}"
                    if ref.source_file:
                        meta += f"; {ref.source_file}"
                    lines.append(f"  - {ref.name} ({meta})")
        return "\n".join(lines) + "\n"

    def render_steps(self) -> str:
        lines = [STEPS_HEADING, "", GENERATED_NOTE, "", f"Language: {self.step_language.value}"]
        for category in StepCategory:
            lines.extend(["", f"## {category.heading}", ""])
            entries = sorted(
                (step for step in self.steps if step.category is category),
                key=lambda s: (s.source_file, s.pattern),
            )
            if not entries:
                lines.append(NO_STEPS)
                continue
            lines.append("| Pattern | Description | Parameters | Source |")
            lines.append("| --- | --- | --- | --- |")
            for step in entries:
                params = ", ".join(f"{p.name} ({p.type})" for p in step.parameters) or "none"
                lines.append(
                    f"| `{_escape_cell(step.pattern)}` | {_escape_cell(step.description) or '-'} "
                    f"| {params} | {step.source_file} |"
                )
        return "\n".join(lines) + "\n"

    # Parsing

    def _parse_features(self, text: str) -> None:
        domain = None
        current = None
        section = None
        entries = []

        def flush():
            if current is not None and current.get("path"):
                entries.append(FeatureEntry(**current))

        for raw in text.splitlines():
            line = raw.rstrip()
            if line.startswith("Text format: "):
                value = line[len("Text format: "):].strip()
                if value in {fmt.value for fmt in TextFormat}:
                    self.text_format = TextFormat(value)
            elif line.startswith("## "):
                flush()
                current = None
                domain = line[3:].strip()
            elif line.startswith("### ") and domain:
                flush()
                current = {"domain": domain, "name": line[4:].strip(), "scenarios": [], "sub_files": []}
                section = None
            elif current is None:
                continue
            elif line.startswith("- Title: "):
                current["title"] = line[len("- Title: "):]
            elif line.startswith("- File: "):
                current["path"] = line[len("- File: "):].strip("` ")
            elif line.startswith("- Directory: "):
                current["path"] = line[len("- Directory: "):].strip("` ")
            elif line.startswith("- Sub-files:"):
                section = "sub_files"
            elif line.startswith("- Summary: "):
                summary = line[len("- Summary: "):]
                current["summary"] = "" if summary == "-" else summary
                section = None
            elif line.startswith("- Scenarios:"):
                condensed = _CONDENSED.match(line)
                if condensed:
                    self.condensed_counts[current.get("path", "")] = int(condensed.group(1))
                section = None if condensed else "scenarios"
            elif line.startswith("  - ") and section == "sub_files":
                current["sub_files"].append(line[4:].strip("` "))
            elif line.startswith("  - ") and section == "scenarios":
                ref = self._parse_scenario_line(line[4:])
                if ref is not None:
                    current["scenarios"].append(ref)
        flush()
        self.features = sorted(entries, key=lambda e: (_domain_sort_key(e.domain), e.name))

    @staticmethod
    def _parse_scenario_line(text: str) -> Optional[ScenarioRef]:
        cut = text.rfind(" (")
        if cut < 0 or not text.endswith(")"):
            return None
        name, meta = text[:cut], text[cut + 2:-1]
        match = _SCENARIO_META.match(meta)
        if not match:
            return None
        kind_text = match.group("kind")
        if kind_text.startswith("outline"):
            kind = ConstructKind.OUTLINE
        else:
            kind = ConstructKind(kind_text)
        rest = (match.group("rest") or "").split("; ")
        tags = rest[0].split() if rest and rest[0] else ["@untagged"]
        return ScenarioRef(
            name=name,
            tags=tags,
            kind=kind,
            example_count=int(match.group("count") or 0),
            source_file=rest[1] if len(rest) > 1 else "",
        )

    def _parse_steps(self, text: str) -> None:
        headings = {category.heading: category for category in StepCategory}
        category = None
        steps = []
        for raw in text.splitlines():
            line = raw.strip()
            if line.startswith("Language: "):
                value = line[len("Language: "):].strip()
                if value in {lang.value for lang in StepLanguage}:
                    self.step_language = StepLanguage(value)
            elif line.startswith("## "):
                category = headings.get(line[3:].strip())
            elif line.startswith("| `") and category is not None:
                cells = _split_cells(line)
                if len(cells) < 4:
                    continue
                params = []
                for cell in cells[2].split(", "):
                    match = _PARAM_CELL.match(cell.strip())
                    if match:
                        params.append(StepParameter(name=match.group(1), type=match.group(2)))
                steps.append(StepDefinitionEntry(
                    pattern=cells[0].strip("`"),
                    description="" if cells[1] == "-" else cells[1],
                    parameters=params,
                    source_file=cells[3],
                    category=category,
                ))
        self.steps = steps
