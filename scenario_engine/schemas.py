"""
Data Models for the Scenario Engine

Pydantic models for catalog entries, conventions, reference resolutions,
exploration results and generation reports.

Catalog-facing models are immutable (frozen=True); they are rebuilt from the
artifact tree rather than mutated in place. Custom validators enforce the
catalog invariants (non-empty domains, non-empty tag sets, relative paths).
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class TextFormat(str, Enum):
    """Feature file rendering conventions."""
    PLAIN = "plain"
    ANNOTATED = "annotated"

    @property
    def extension(self) -> str:
        return ".feature" if self is TextFormat.PLAIN else ".feature.md"


class StepLanguage(str, Enum):
    """Step stub implementation languages, in priority order."""
    PYTHON = "python"
    TYPESCRIPT = "typescript"
    GO = "go"

    @property
    def extensions(self) -> Tuple[str, ...]:
        return LANGUAGE_EXTENSIONS[self]

    @property
    def extension(self) -> str:
        """Extension used for newly written step files."""
        return LANGUAGE_EXTENSIONS[self][0]


LANGUAGE_EXTENSIONS: Dict[StepLanguage, Tuple[str, ...]] = {
    StepLanguage.PYTHON: (".py",),
    StepLanguage.TYPESCRIPT: (".ts", ".js", ".mjs"),
    StepLanguage.GO: (".go",),
}

LANGUAGE_PRIORITY: Tuple[StepLanguage, ...] = (
    StepLanguage.PYTHON,
    StepLanguage.TYPESCRIPT,
    StepLanguage.GO,
)

FORMAT_PRIORITY: Tuple[TextFormat, ...] = (TextFormat.PLAIN, TextFormat.ANNOTATED)


class ConstructKind(str, Enum):
    """Gherkin construct chosen for a scenario."""
    SCENARIO = "scenario"
    OUTLINE = "outline"
    BACKGROUND = "background"


class StepCategory(str, Enum):
    """Step catalog sections; each maps to one step file stem."""
    SHARED = "shared"
    EXTERNAL_CALL = "external-call"
    PERSISTENCE = "persistence"
    DOMAIN = "domain-specific"

    @property
    def heading(self) -> str:
        return CATEGORY_HEADINGS[self]


CATEGORY_HEADINGS: Dict[StepCategory, str] = {
    StepCategory.SHARED: "Shared",
    StepCategory.EXTERNAL_CALL: "External calls",
    StepCategory.PERSISTENCE: "Persistence",
    StepCategory.DOMAIN: "Domain-specific",
}

CATEGORY_FILE_STEMS: Dict[StepCategory, str] = {
    StepCategory.SHARED: "common_steps",
    StepCategory.EXTERNAL_CALL: "api_steps",
    StepCategory.PERSISTENCE: "db_steps",
}


def category_for_stem(stem: str) -> StepCategory:
    """Map a step file stem back to its catalog category."""
    for category, file_stem in CATEGORY_FILE_STEMS.items():
        if stem == file_stem:
            return category
    return StepCategory.DOMAIN


class ScenarioRef(BaseModel):
    """One named scenario inside a feature entry."""
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Scenario name, unique within its feature")
    tags: List[str] = Field(..., description="Classification tags, at least one")
    kind: ConstructKind = Field(ConstructKind.SCENARIO, description="Construct kind")
    example_count: int = Field(0, description="Example rows for outlines", ge=0)
    source_file: str = Field("", description="File holding the scenario, relative to the feature area")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Scenario name cannot be empty")
        return v.strip()

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, v: List[str]) -> List[str]:
        if not v:
            raise ValueError("Scenario must carry at least one tag")
        return [tag if tag.startswith("@") else f"@{tag}" for tag in v]

    @property
    def description(self) -> str:
        """Short description shown in the features catalog."""
        if self.kind is ConstructKind.OUTLINE:
            plural = "example" if self.example_count == 1 else "examples"
            return f"outline, {self.example_count} {plural}"
        return self.kind.value


class FeatureEntry(BaseModel):
    """
    One behavior-specification unit tracked by the features catalog.

    `path` is relative to the feature area. Unsplit entries point at a single
    feature file; split entries point at a directory (trailing slash) and list
    their sub-files.
    """
    model_config = ConfigDict(frozen=True)

    domain: str = Field(..., description="Domain partition name")
    name: str = Field(..., description="Feature name (slug), unique within domain")
    path: str = Field(..., description="Feature file or directory, relative to the feature area")
    title: str = Field("", description="Human-readable feature title")
    summary: str = Field("", description="One-sentence summary")
    scenarios: List[ScenarioRef] = Field(default_factory=list)
    sub_files: List[str] = Field(default_factory=list)

    @field_validator("domain", "name")
    @classmethod
    def validate_non_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Field cannot be empty")
        return v

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        if ".." in v.split("/") or v.startswith("/"):
            raise ValueError("Feature path must be relative to the feature area")
        return v

    @property
    def is_split(self) -> bool:
        return self.path.endswith("/")

    @property
    def scenario_count(self) -> int:
        return len(self.scenarios)

    @property
    def files(self) -> List[str]:
        """Every on-disk file this entry stands for."""
        return list(self.sub_files) if self.is_split else [self.path]


class StepParameter(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    type: str = Field("string", description="Semantic placeholder type (string, int, float, word)")
    description: str = ""


class StepDefinitionEntry(BaseModel):
    """One step stub registration."""
    model_config = ConfigDict(frozen=True)

    pattern: str = Field(..., description="Cucumber-expression pattern text")
    description: str = Field("", description="Human description")
    parameters: List[StepParameter] = Field(default_factory=list)
    source_file: str = Field(..., description="Step file, relative to the step area")
    keyword: str = Field("Given", description="Registration keyword")
    category: StepCategory = Field(StepCategory.DOMAIN)

    @field_validator("pattern")
    @classmethod
    def validate_pattern(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Step pattern cannot be empty")
        return v


class Convention(BaseModel):
    """Active text format and step language for the whole artifact tree."""
    model_config = ConfigDict(frozen=True)

    text_format: TextFormat = TextFormat.PLAIN
    step_language: StepLanguage = StepLanguage.PYTHON
    warnings: List[str] = Field(default_factory=list)
    feature_counts: Dict[str, int] = Field(default_factory=dict)
    step_counts: Dict[str, int] = Field(default_factory=dict)

    @property
    def is_mixed(self) -> bool:
        return bool(self.warnings)


class CatalogDiff(BaseModel):
    """Asymmetries between the catalogs and the artifact tree."""
    model_config = ConfigDict(frozen=True)

    stale_entries: List[str] = Field(default_factory=list, description="Catalog entries whose file is missing")
    missing_entries: List[str] = Field(default_factory=list, description="Files with no catalog entry")

    @property
    def has_drift(self) -> bool:
        return bool(self.stale_entries or self.missing_entries)


# Reference resolutions (Argument Resolver output)


class ExplicitIdentifier(BaseModel):
    model_config = ConfigDict(frozen=True)

    identifier: str


class ExistingFeature(BaseModel):
    model_config = ConfigDict(frozen=True)

    entry: FeatureEntry


class FreeForm(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str


Resolution = Union[ExplicitIdentifier, ExistingFeature, FreeForm]


# Knowledge gathering (Context Explorer output)


class KnowledgeDocument(BaseModel):
    model_config = ConfigDict(frozen=True)

    path: str
    kind: str = Field(..., description="changelog, requirements, spec, readme or source")
    excerpt: str = ""


class FeatureFacts(BaseModel):
    """Concrete domain facts extracted from knowledge documents."""

    title: str = ""
    summary: str = ""
    actors: List[str] = Field(default_factory=list)
    entities: List[str] = Field(default_factory=list)
    rules: List[str] = Field(default_factory=list)
    edge_cases: List[str] = Field(default_factory=list)
    criteria: List[str] = Field(default_factory=list)
    identifiers: List[str] = Field(default_factory=list)

    def merged(self, other: "FeatureFacts") -> "FeatureFacts":
        """Union of two fact sets; this instance wins on title and summary."""
        def union(first: List[str], second: List[str]) -> List[str]:
            seen = {item.casefold() for item in first}
            return list(first) + [item for item in second if item.casefold() not in seen]

        return FeatureFacts(
            title=self.title or other.title,
            summary=self.summary or other.summary,
            actors=union(self.actors, other.actors),
            entities=union(self.entities, other.entities),
            rules=union(self.rules, other.rules),
            edge_cases=union(self.edge_cases, other.edge_cases),
            criteria=union(self.criteria, other.criteria),
            identifiers=union(self.identifiers, other.identifiers),
        )

    @property
    def has_behaviors(self) -> bool:
        return bool(self.criteria or self.rules or self.edge_cases)


class Candidate(BaseModel):
    """One ranked exploration hit."""

    domain: str
    feature_slug: Optional[str] = None
    documents: List[KnowledgeDocument] = Field(default_factory=list)
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    source: str = Field(..., description="Knowledge source that produced the hit")
    facts: FeatureFacts = Field(default_factory=FeatureFacts)

    @property
    def key(self) -> str:
        """Identity of the underlying feature this candidate describes."""
        return f"feature:{self.feature_slug}" if self.feature_slug else f"domain:{self.domain}"

    @property
    def label(self) -> str:
        subject = self.facts.title or self.feature_slug or self.domain
        paths = ", ".join(doc.path for doc in self.documents[:3])
        return f"{subject} [{self.domain}] ({paths})"


class FeatureContext(BaseModel):
    """Resolved generation target plus the domain knowledge behind it."""

    domain: str
    feature_name: str
    title: str
    summary: str = ""
    facts: FeatureFacts = Field(default_factory=FeatureFacts)
    documents: List[KnowledgeDocument] = Field(default_factory=list)
    identifier: Optional[str] = None


# Reporting


class Notice(BaseModel):
    """A recoverable condition surfaced to the caller."""
    model_config = ConfigDict(frozen=True)

    kind: str
    message: str
    path: Optional[str] = None


class GenerationReport(BaseModel):
    """Outcome of one generate invocation."""

    reference: str = ""
    resolution: str = ""
    feature: Optional[FeatureEntry] = None
    created_scenarios: List[str] = Field(default_factory=list)
    created_steps: List[str] = Field(default_factory=list)
    reused_steps: List[str] = Field(default_factory=list)
    notices: List[Notice] = Field(default_factory=list)
    written_files: List[str] = Field(default_factory=list)
    deleted_files: List[str] = Field(default_factory=list)
    split: bool = False
    convention: Optional[Convention] = None
    dry_run: bool = False
    evidence: Dict[str, Dict[str, Any]] = Field(default_factory=dict, description="Per-step evidence")

    def notices_of(self, kind: str) -> List[Notice]:
        return [notice for notice in self.notices if notice.kind == kind]
