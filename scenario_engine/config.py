"""
Engine configuration.

Loads the optional project-local override document (`.scenario-engine.yaml`)
and validates it into frozen pydantic models. A missing document yields the
defaults; the document never overrides a convention derived from existing
artifacts.

Example override document:

    paths:
      artifact_root: bdd
      knowledge_root: prd
    domains:
      auth: [login, password, session]
      billing: [invoice, payment]
    thresholds:
      split_threshold: 15
      near_duplicate_threshold: 0.8
    default_step_language: python
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from scenario_engine.error_handling import ConfigurationError
from scenario_engine.schemas import StepLanguage
from scenario_engine.text_utils import slugify

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = ".scenario-engine.yaml"

# Directories never scanned for knowledge or artifacts
DEFAULT_SKIP_DIRS = frozenset({
    "node_modules",
    "venv",
    ".venv",
    "env",
    "__pycache__",
    ".git",
    ".svn",
    ".hg",
    "dist",
    "build",
    "target",
    ".idea",
    ".vscode",
    "coverage",
    "htmlcov",
    ".pytest_cache",
    ".mypy_cache",
    ".ruff_cache",
    ".scenario-engine",
})


class PathsConfig(BaseModel):
    """Locations of the artifact tree and the knowledge base, relative to the project root."""
    model_config = ConfigDict(frozen=True)

    artifact_root: str = "bdd"
    features_dir: str = "features"
    steps_dir: str = "steps"
    catalog_name: str = "INDEX.md"
    knowledge_root: str = "prd"
    changelog: str = "changelog.md"
    specs_dir: str = "specs"

    @field_validator("artifact_root", "knowledge_root", "features_dir", "steps_dir", "specs_dir")
    @classmethod
    def validate_relative(cls, v: str) -> str:
        v = v.strip().strip("/")
        if not v or ".." in v.split("/"):
            raise ValueError("Paths must be non-empty and relative to the project root")
        return v

    @property
    def features(self) -> str:
        return f"{self.artifact_root}/{self.features_dir}"

    @property
    def steps(self) -> str:
        return f"{self.artifact_root}/{self.steps_dir}"

    @property
    def features_catalog(self) -> str:
        return f"{self.features}/{self.catalog_name}"

    @property
    def steps_catalog(self) -> str:
        return f"{self.steps}/{self.catalog_name}"

    @property
    def lock_file(self) -> str:
        return f"{self.artifact_root}/.scenario-engine.lock"

    @property
    def changelog_path(self) -> str:
        return f"{self.knowledge_root}/{self.changelog}"

    @property
    def specs(self) -> str:
        return f"{self.knowledge_root}/{self.specs_dir}"


class ThresholdsConfig(BaseModel):
    """Tunable constants for splitting, de-duplication and exploration."""
    model_config = ConfigDict(frozen=True)

    split_threshold: int = Field(15, ge=1)
    near_duplicate_threshold: float = Field(0.8, gt=0.0, le=1.0)
    adequate_confidence: float = Field(0.6, gt=0.0, le=1.0)
    min_candidate_score: float = Field(0.5, gt=0.0, le=1.0)
    max_code_hits: int = Field(10, ge=1)
    max_catalog_lines: int = Field(500, ge=50)


class EngineConfig(BaseModel):
    """Top-level engine configuration."""
    model_config = ConfigDict(frozen=True)

    paths: PathsConfig = Field(default_factory=PathsConfig)
    thresholds: ThresholdsConfig = Field(default_factory=ThresholdsConfig)
    domains: Dict[str, List[str]] = Field(
        default_factory=dict,
        description="Explicit domain mappings: domain name -> keywords",
    )
    default_step_language: StepLanguage = StepLanguage.PYTHON
    skip_dirs: List[str] = Field(default_factory=lambda: sorted(DEFAULT_SKIP_DIRS))

    @field_validator("domains", mode="before")
    @classmethod
    def validate_domains(cls, v):
        if v is None:
            return {}
        if not isinstance(v, dict):
            raise ValueError("'domains' must map domain names to keyword lists")
        normalized = {}
        for name, words in v.items():
            slug = slugify(str(name))
            if not slug:
                raise ValueError(f"Invalid domain name: {name!r}")
            if isinstance(words, str):
                words = [words]
            normalized[slug] = [str(word).lower() for word in words or []]
        return normalized


def load_config(
    project_root: Union[str, Path],
    config_path: Optional[Union[str, Path]] = None
) -> EngineConfig:
    """
    Load engine configuration from the override document.

    Args:
        project_root: Project root directory
        config_path: Explicit document path (default: <root>/.scenario-engine.yaml)

    Returns:
        Validated EngineConfig (defaults when the document does not exist)

    Raises:
        ConfigurationError: If the document is not valid YAML or fails validation
    """
    root = Path(project_root)
    path = Path(config_path) if config_path else root / DEFAULT_CONFIG_FILE
    if not path.is_absolute():
        path = root / path

    if not path.exists():
        if config_path:
            raise ConfigurationError(
                f"Config not found: {path}",
                context={"config_path": str(path)},
            )
        logger.debug("No override document at %s, using defaults", path)
        return EngineConfig()

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Invalid YAML in config {path}: {e}",
            context={"config_path": str(path)},
            original_error=e,
        ) from e
    except OSError as e:
        raise ConfigurationError(
            f"Config not readable: {path}: {e}",
            context={"config_path": str(path)},
            original_error=e,
        ) from e

    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Invalid config {path}: top level must be a mapping",
            context={"config_path": str(path)},
        )

    try:
        config = EngineConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid config {path}: {e}",
            context={"config_path": str(path)},
            original_error=e,
        ) from e

    logger.debug("Loaded override document %s (%d domain mappings)", path, len(config.domains))
    return config
