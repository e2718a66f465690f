"""
Project Knowledge Base Reader

Read-only access to the project's domain knowledge:
- change history (`prd/changelog.md`), where `##` headings name domains
- per-feature requirement and specification documents (`prd/specs/<slug>/`)
- module-level README documents
- source identifiers (function/type definitions, route declarations)

Extracted facts (actors, entities, validation rules, edge cases, acceptance
criteria) feed the scenario generator.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import yaml

from scenario_engine.config import EngineConfig
from scenario_engine.filesystem import SearchHit
from scenario_engine.schemas import FeatureFacts, KnowledgeDocument
from scenario_engine.text_utils import first_sentence, sentence_case, title_from_slug

logger = logging.getLogger(__name__)

IDENTIFIER_RE = re.compile(r"\b([A-Za-z]{2,4}-[A-Za-z0-9]{3,6}-\d{3})\b")

FEATURE_DOCUMENTS = ("requirements.md", "spec.md")

# Checked in order; the first alias contained in a heading wins
SECTION_ALIASES = (
    ("edge_cases", ("edge case", "edge-case", "corner case", "error case", "failure mode", "exception")),
    ("rules", ("validation", "business rule", "rules", "constraint")),
    ("criteria", ("acceptance", "criteria", "user stor", "functional requirement", "behavio")),
    ("entities", ("entit", "data model", "domain model")),
    ("actors", ("actor", "role", "persona", "user type", "stakeholder")),
)

CODE_EXTENSIONS = (".py", ".ts", ".tsx", ".js", ".mjs", ".go", ".java", ".kt", ".rb", ".rs", ".cs", ".php")

_LIST_ITEM = re.compile(r"^\s*(?:[-*+]|\d+[.)])\s+(?:\[[ xX]\]\s+)?(.*)$")
_HEADING = re.compile(r"^(#{1,6})\s+(.*?)\s*#*$")
_NAME_SEPARATOR = re.compile(r"\s+[-–—]\s+|:\s+|\s+\(")


@dataclass
class ChangelogEntry:
    """One change note, under the domain heading it was filed in."""
    domain: str
    text: str
    line: int


@dataclass
class SpecFeature:
    """A per-feature directory of requirement/specification documents."""
    slug: str
    directory: str
    documents: List[str] = field(default_factory=list)
    front_matter: Dict[str, Any] = field(default_factory=dict)
    facts: FeatureFacts = field(default_factory=FeatureFacts)
    identifier: Optional[str] = None

    @property
    def domain_hint(self) -> Optional[str]:
        value = self.front_matter.get("domain")
        return str(value) if value else None

    def to_documents(self) -> List[KnowledgeDocument]:
        return [
            KnowledgeDocument(
                path=path,
                kind=path.rsplit("/", 1)[-1].split(".", 1)[0],
                excerpt=self.facts.summary,
            )
            for path in self.documents
        ]


def split_front_matter(text: str, source: str = "") -> Tuple[Dict[str, Any], str]:
    """
    Separate YAML front matter from a Markdown document.

    Returns:
        (front matter dict, remaining body); malformed front matter is ignored
    """
    if not text.startswith("---"):
        return {}, text
    lines = text.splitlines()
    for end in range(1, len(lines)):
        if lines[end].strip() == "---":
            try:
                data = yaml.safe_load("\n".join(lines[1:end])) or {}
            except yaml.YAMLError as e:
                logger.warning("Ignoring malformed front matter in %s: %s", source, e)
                data = {}
            if not isinstance(data, dict):
                data = {}
            return data, "\n".join(lines[end + 1:])
    return {}, text


def short_name(item: str) -> str:
    """Leading name of a list item ('Customer - places orders' -> 'Customer')."""
    return _NAME_SEPARATOR.split(item, 1)[0].strip().strip("*_`").strip()


def _clean(item: str) -> str:
    return re.sub(r"[*_`]{1,2}([^*_`]+)[*_`]{1,2}", r"\1", item).strip()


def extract_facts(body: str, front_matter: Optional[Dict[str, Any]] = None) -> FeatureFacts:
    """
    Extract domain facts from a requirement/specification document body.

    Args:
        body: Markdown without front matter
        front_matter: Parsed front matter (title wins over the first heading)

    Returns:
        FeatureFacts with list sections mapped through SECTION_ALIASES
    """
    front_matter = front_matter or {}
    sections: Dict[str, List[str]] = {name: [] for name, _ in SECTION_ALIASES}
    title = str(front_matter.get("title") or "")
    summary = ""
    current = None

    for line in body.splitlines():
        heading = _HEADING.match(line)
        if heading:
            text = heading.group(2).strip()
            current = None
            if len(heading.group(1)) == 1:
                title = title or IDENTIFIER_RE.sub("", text).strip(" :-–—")
                continue
            lowered = text.lower()
            for name, aliases in SECTION_ALIASES:
                if any(alias in lowered for alias in aliases):
                    current = name
                    break
            continue
        item = _LIST_ITEM.match(line)
        if item and current:
            value = _clean(item.group(1))
            if current in ("actors", "entities"):
                value = short_name(value)
            if value:
                sections[current].append(value)
            continue
        stripped = line.strip()
        if stripped and not summary and current is None and not item and not stripped.startswith(("|", ">", "<")):
            summary = first_sentence(stripped)

    return FeatureFacts(
        title=title,
        summary=str(front_matter.get("summary") or summary),
        actors=sections["actors"],
        entities=sections["entities"],
        rules=sections["rules"],
        edge_cases=sections["edge_cases"],
        criteria=sections["criteria"],
    )


class KnowledgeBase:
    """
    Read-only view of the project knowledge base.

    Usage:
        kb = KnowledgeBase(fs, config)
        feature = kb.find_identifier("UC-ab12-003")
        if feature:
            print(feature.facts.criteria)
    """

    def __init__(self, fs, config: EngineConfig):
        self.fs = fs
        self.config = config
        self.paths = config.paths

    def changelog_entries(self) -> List[ChangelogEntry]:
        """
        Parse the change history into domain-grouped entries.

        Returns:
            Entries in document order (empty when the document is absent)
        """
        path = self.paths.changelog_path
        if not self.fs.is_file(path):
            logger.debug("No change history at %s", path)
            return []
        entries = []
        domain = None
        for number, line in enumerate(self.fs.read_text(path).splitlines(), 1):
            heading = _HEADING.match(line)
            if heading and len(heading.group(1)) == 2:
                domain = heading.group(2).strip()
                continue
            item = _LIST_ITEM.match(line)
            if item and domain:
                entries.append(ChangelogEntry(domain=domain, text=_clean(item.group(1)), line=number))
        return entries

    def spec_features(self) -> List[SpecFeature]:
        """Every per-feature directory under the specs area, sorted by slug."""
        base = self.paths.specs
        directories = sorted({
            path[len(base) + 1:].split("/", 1)[0]
            for path in self.fs.glob(f"{base}/*/*.md")
        })
        return [self.read_spec_feature(slug) for slug in directories]

    def read_spec_feature(self, slug: str) -> SpecFeature:
        """
        Read one feature directory's requirement and specification documents.

        Facts from requirements.md come first; spec.md adds to them.
        """
        directory = f"{self.paths.specs}/{slug}"
        feature = SpecFeature(slug=slug, directory=directory)
        facts = FeatureFacts()
        for name in FEATURE_DOCUMENTS:
            path = f"{directory}/{name}"
            if not self.fs.is_file(path):
                continue
            text = self._read_document(path)
            if text is None:
                continue
            front_matter, body = split_front_matter(text, path)
            feature.documents.append(path)
            for key, value in front_matter.items():
                feature.front_matter.setdefault(key, value)
            facts = facts.merged(extract_facts(body, front_matter))

        if not facts.title:
            facts = facts.model_copy(update={"title": title_from_slug(IDENTIFIER_RE.sub("", slug).strip("-"))})
        feature.facts = facts

        candidates = [str(feature.front_matter.get("id") or ""), facts.title, slug]
        for text in candidates:
            match = IDENTIFIER_RE.search(text)
            if match:
                feature.identifier = match.group(1)
                break
        return feature

    def find_identifier(self, identifier: str) -> Optional[SpecFeature]:
        """
        Find the feature documents carrying an identifier.

        Args:
            identifier: Requirement identifier, e.g. 'UC-ab12-003'

        Returns:
            Matching SpecFeature, or None
        """
        wanted = identifier.casefold()
        for feature in self.spec_features():
            if feature.identifier and feature.identifier.casefold() == wanted:
                return feature
        return None

    def readmes(self) -> List[str]:
        """Module README paths outside the artifact and knowledge roots."""
        excluded = (self.paths.artifact_root + "/", self.paths.knowledge_root + "/")
        return [
            path for path in self.fs.glob("**/README.md")
            if "/" in path and not path.startswith(excluded)
        ]

    def read_readme(self, path: str) -> KnowledgeDocument:
        _, body = split_front_matter(self._read_document(path) or "", path)
        summary = ""
        for line in body.splitlines():
            stripped = line.strip()
            if stripped and not stripped.startswith(("#", "!", "[", "<", "|")):
                summary = sentence_case(first_sentence(stripped))
                break
        return KnowledgeDocument(path=path, kind="readme", excerpt=summary)

    def search_source(self, search_keywords: Sequence[str], limit: int) -> List[SearchHit]:
        """
        Find function/type definitions and route declarations naming a keyword.

        Args:
            search_keywords: Keywords to look for in identifiers
            limit: Maximum number of hits

        Returns:
            At most `limit` hits
        """
        if not search_keywords:
            return []
        alternation = "|".join(re.escape(kw) for kw in search_keywords)
        pattern = (
            rf"(?:\b(?:def|class|function|func|type|interface|struct)\s+\w*(?:{alternation})\w*)"
            rf"|(?:\b(?:route|get|post|put|patch|delete)\s*\(\s*['\"][^'\"]*(?:{alternation}))"
        )
        excluded = (self.paths.artifact_root + "/", self.paths.knowledge_root + "/")
        hits: List[SearchHit] = []
        for extension in CODE_EXTENSIONS:
            remaining = limit - len(hits)
            if remaining <= 0:
                break
            found = self.fs.search(pattern, f"**/*{extension}", limit=None)
            hits.extend(hit for hit in found if not hit.path.startswith(excluded))
            hits = hits[:limit]
        return hits

    def _read_document(self, path: str) -> Optional[str]:
        """Read one knowledge document; an unreadable document is skipped with a warning."""
        try:
            return self.fs.read_text(path)
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Skipping unreadable knowledge document %s: %s", path, e)
            return None
