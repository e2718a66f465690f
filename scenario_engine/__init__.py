"""
Scenario Engine - BDD scenario generation and catalog synchronization.

Usage:
    from scenario_engine import ScenarioGenerationWorkflow, load_config

    config = load_config("/path/to/project")
    workflow = ScenarioGenerationWorkflow("UC-ab12-003", "/path/to/project", config)
    report = workflow.generate()
    for notice in report.notices:
        print(notice.message)
"""

__version__ = "0.1.0"

from scenario_engine.catalog import CatalogIndex
from scenario_engine.config import EngineConfig, load_config
from scenario_engine.error_handling import (
    ArtifactIOError,
    ConfigurationError,
    ErrorType,
    InputAmbiguityError,
    NoMatchError,
    WorkflowError,
)
from scenario_engine.interaction import ConsoleChannel, InteractionChannel, NonInteractiveChannel
from scenario_engine.schemas import (
    CatalogDiff,
    Convention,
    FeatureEntry,
    GenerationReport,
    Notice,
    ScenarioRef,
    StepDefinitionEntry,
    StepLanguage,
    TextFormat,
)
from scenario_engine.workflow import (
    ScenarioGenerationWorkflow,
    check_catalogs,
    detect_conventions,
    rebuild_catalogs,
)

__all__ = [
    "ArtifactIOError",
    "CatalogDiff",
    "CatalogIndex",
    "ConfigurationError",
    "ConsoleChannel",
    "Convention",
    "EngineConfig",
    "ErrorType",
    "FeatureEntry",
    "GenerationReport",
    "InputAmbiguityError",
    "InteractionChannel",
    "NoMatchError",
    "NonInteractiveChannel",
    "Notice",
    "ScenarioGenerationWorkflow",
    "ScenarioRef",
    "StepDefinitionEntry",
    "StepLanguage",
    "TextFormat",
    "WorkflowError",
    "check_catalogs",
    "detect_conventions",
    "load_config",
    "rebuild_catalogs",
]
