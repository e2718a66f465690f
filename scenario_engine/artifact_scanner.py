"""
Artifact Scanner Module

Encapsulates the scanning of the artifact tree: feature files in either text
format and step files in any supported language. Everything the catalogs say
is re-derived from what this scanner reads, so it is the single source of
truth for rebuilds, drift checks and convention detection.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from scenario_engine.config import PathsConfig
from scenario_engine.error_handling import ArtifactIOError
from scenario_engine.gherkin import FeatureDocument, parse_feature
from scenario_engine.schemas import (
    FORMAT_PRIORITY,
    FeatureEntry,
    StepDefinitionEntry,
    StepLanguage,
    TextFormat,
)
from scenario_engine.step_stubs import language_for_path, dialect_for
from scenario_engine.text_utils import title_from_slug

logger = logging.getLogger(__name__)

GENERAL_DOMAIN = "general"
CROSS_DOMAIN = "cross-domain"


@dataclass
class ArtifactInfo:
    """Information about a discovered artifact."""
    path: str
    relative_path: str
    kind: str
    text_format: Optional[TextFormat] = None
    language: Optional[StepLanguage] = None


@dataclass
class ScanResult:
    """Result of an artifact scan."""
    artifacts: List[ArtifactInfo] = field(default_factory=list)
    by_kind: Dict[str, int] = field(default_factory=dict)
    scanned_at: datetime = field(default_factory=datetime.now)

    @property
    def total_count(self) -> int:
        return len(self.artifacts)

    @property
    def features(self) -> List[ArtifactInfo]:
        return [a for a in self.artifacts if a.kind == "feature"]

    @property
    def steps(self) -> List[ArtifactInfo]:
        return [a for a in self.artifacts if a.kind == "step"]


def format_for_path(path: str) -> Optional[TextFormat]:
    """Text format of a feature file, judged by extension."""
    for text_format in sorted(FORMAT_PRIORITY, key=lambda f: -len(f.extension)):
        if path.endswith(text_format.extension):
            return text_format
    return None


def strip_feature_extension(name: str) -> str:
    text_format = format_for_path(name)
    return name[: -len(text_format.extension)] if text_format else name


class ArtifactScanner:
    """
    Scanner for feature and step artifacts.

    Works on any file-system view (the real tree or an overlay with staged
    changes), so catalogs can be rendered for a state that is not yet on disk.

    Usage:
        scanner = ArtifactScanner(fs, config.paths)
        result = scanner.scan()
        entries = scanner.feature_entries()
    """

    def __init__(self, fs, paths: PathsConfig):
        """
        Initialize the artifact scanner.

        Args:
            fs: LocalFileSystem or OverlayFileSystem
            paths: Artifact tree locations
        """
        self.fs = fs
        self.paths = paths

    def feature_files(self) -> List[str]:
        """Feature files relative to the project root, sorted."""
        return [
            path for path in self.fs.glob(f"{self.paths.features}/**/*")
            if format_for_path(path) is not None
        ]

    def step_files(self, language: Optional[StepLanguage] = None) -> List[str]:
        """Step files relative to the project root, optionally for one language."""
        files = []
        for path in self.fs.glob(f"{self.paths.steps}/**/*"):
            file_language = language_for_path(path)
            if file_language is None:
                continue
            if language is None or file_language is language:
                files.append(path)
        return files

    def scan(self) -> ScanResult:
        """
        Scan the artifact tree.

        Returns:
            ScanResult with one ArtifactInfo per feature and step file, and
            counts keyed by text format / step language value
        """
        result = ScanResult()
        for path in self.feature_files():
            text_format = format_for_path(path)
            result.artifacts.append(ArtifactInfo(
                path=path,
                relative_path=self._relative(path, self.paths.features),
                kind="feature",
                text_format=text_format,
            ))
            result.by_kind[text_format.value] = result.by_kind.get(text_format.value, 0) + 1

        for path in self.step_files():
            language = language_for_path(path)
            result.artifacts.append(ArtifactInfo(
                path=path,
                relative_path=self._relative(path, self.paths.steps),
                kind="step",
                language=language,
            ))
            result.by_kind[language.value] = result.by_kind.get(language.value, 0) + 1

        logger.debug("Scanned %d artifacts: %s", result.total_count, result.by_kind)
        return result

    def parse_feature_file(self, path: str) -> FeatureDocument:
        return parse_feature(self._read(path), format_for_path(path) or TextFormat.PLAIN)

    def feature_entries(self) -> List[FeatureEntry]:
        """
        Derive feature entries from the feature files on the view.

        Layout rules (relative to the feature area):
            <name><ext>                    -> domain 'general'
            <domain>/<name><ext>           -> unsplit feature
            <domain>/<name>/<subject><ext> -> split feature, one entry per directory

        Returns:
            Entries sorted by domain then name
        """
        unsplit: List[Tuple[str, str, str]] = []
        split: Dict[Tuple[str, str], List[str]] = {}

        for path in self.feature_files():
            relative = self._relative(path, self.paths.features)
            parts = relative.split("/")
            if len(parts) == 1:
                unsplit.append((GENERAL_DOMAIN, strip_feature_extension(parts[0]), relative))
            elif len(parts) == 2:
                unsplit.append((parts[0], strip_feature_extension(parts[1]), relative))
            else:
                split.setdefault((parts[0], parts[1]), []).append(relative)

        entries = []
        for domain, name, relative in unsplit:
            doc = self.parse_feature_file(f"{self.paths.features}/{relative}")
            entries.append(FeatureEntry(
                domain=domain,
                name=name,
                path=relative,
                title=doc.title or title_from_slug(name),
                summary=doc.summary,
                scenarios=[block.to_ref() for block in doc.scenarios],
            ))

        for (domain, name), sub_files in split.items():
            sub_files = sorted(sub_files)
            scenarios = []
            title, summary = "", ""
            for relative in sub_files:
                doc = self.parse_feature_file(f"{self.paths.features}/{relative}")
                if not title and doc.title:
                    title = doc.title.split(":", 1)[0].strip()
                summary = summary or doc.summary
                scenarios.extend(block.to_ref(relative.rsplit("/", 1)[-1]) for block in doc.scenarios)
            entries.append(FeatureEntry(
                domain=domain,
                name=name,
                path=f"{domain}/{name}/",
                title=title or title_from_slug(name),
                summary=summary,
                scenarios=scenarios,
                sub_files=sub_files,
            ))

        entries.sort(key=lambda e: (e.domain == CROSS_DOMAIN, e.domain, e.name))
        return entries

    def step_entries(self, language: Optional[StepLanguage] = None) -> List[StepDefinitionEntry]:
        """
        Derive step definition entries from the step files on the view.

        Args:
            language: Restrict to one language (default: all languages present)

        Returns:
            Entries in file path order, then registration order
        """
        entries = []
        for path in self.step_files(language):
            file_language = language_for_path(path)
            relative = self._relative(path, self.paths.steps)
            entries.extend(dialect_for(file_language).parse(self._read(path), relative))
        return entries

    def _read(self, path: str) -> str:
        try:
            return self.fs.read_text(path)
        except (OSError, UnicodeDecodeError) as e:
            raise ArtifactIOError(
                f"Cannot read artifact {path}: {e}",
                context={"path": path},
                original_error=e,
            ) from e

    @staticmethod
    def _relative(path: str, base: str) -> str:
        prefix = base.rstrip("/") + "/"
        return path[len(prefix):] if path.startswith(prefix) else path
