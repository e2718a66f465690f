"""
Scenario Generation Workflow

Pipeline (one step per component):
    1. Resolve reference    - clarify empty input, classify the reference
    2. Explore context      - gather domain knowledge for the target
    3. Detect conventions   - text format and step language of the tree
    4. Check catalogs       - rebuild on drift before anything else
    5. Generate scenarios   - stage scenarios and stubs on an overlay
    6. Split feature        - promote an over-large feature to a directory
    7. Synchronize          - apply files and both catalogs atomically

Nothing touches the artifact tree before step 4, and generated content
reaches it only in step 7.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from scenario_engine.base import ExecutionMode, PipelineStep, WorkflowOrchestrator
from scenario_engine.catalog import CatalogIndex
from scenario_engine.config import EngineConfig
from scenario_engine.conventions import ConventionDetector
from scenario_engine.domains import DomainResolver
from scenario_engine.error_handling import ErrorType, InputAmbiguityError
from scenario_engine.explorer import ContextExplorer
from scenario_engine.filesystem import ChangeSet, LocalFileSystem, OverlayFileSystem
from scenario_engine.generator import GenerationResult, ScenarioGenerator
from scenario_engine.interaction import InteractionChannel, NonInteractiveChannel
from scenario_engine.knowledge import KnowledgeBase
from scenario_engine.progress import print_info, print_status, print_success, print_warning
from scenario_engine.resolver import ArgumentResolver
from scenario_engine.schemas import (
    CatalogDiff,
    Convention,
    ExistingFeature,
    ExplicitIdentifier,
    FeatureContext,
    FreeForm,
    GenerationReport,
    Notice,
    Resolution,
)
from scenario_engine.splitter import FeatureSplitter
from scenario_engine.synchronizer import IndexSynchronizer

logger = logging.getLogger(__name__)

CLARIFY_QUESTION = (
    "Which feature should scenarios be generated for? "
    "(requirement identifier, existing feature name, or a short description)"
)


def open_project(project_root: Union[str, Path], config: EngineConfig) -> LocalFileSystem:
    return LocalFileSystem(project_root, skip_dirs=set(config.skip_dirs))


class ScenarioGenerationWorkflow(WorkflowOrchestrator):
    """
    Full generate pipeline for one reference.

    Usage:
        workflow = ScenarioGenerationWorkflow("UC-ab12-003", "/path/to/project", config, channel)
        report = workflow.generate()
    """

    def __init__(
        self,
        reference: Optional[str],
        project_root: Union[str, Path],
        config: EngineConfig,
        channel: Optional[InteractionChannel] = None,
        requested_scenarios: Sequence[str] = (),
        dry_run: bool = False,
        audit: bool = False,
        quiet_mode: bool = True
    ):
        """
        Initialize the generate workflow.

        Args:
            reference: Raw reference (None or blank triggers clarification)
            project_root: Project containing the artifact tree and knowledge base
            config: Engine configuration
            channel: Interaction channel (default: non-interactive)
            requested_scenarios: Scenario names requested explicitly
            dry_run: Stage everything but write nothing
            audit: Write a JSON audit record
            quiet_mode: Suppress step headers and banners
        """
        self.channel = channel or NonInteractiveChannel()
        super().__init__(
            workflow_name="generate",
            workflow_id=(reference or "").strip(),
            project_root=project_root,
            mode=ExecutionMode.INTERACTIVE if self.channel.interactive else ExecutionMode.NON_INTERACTIVE,
            audit=audit,
            quiet_mode=quiet_mode,
        )
        self.reference = reference or ""
        self.config = config
        self.requested_scenarios = [name for name in requested_scenarios if name.strip()]
        self.dry_run = dry_run

        self.fs = open_project(project_root, config)
        self.synchronizer = IndexSynchronizer(self.fs, config)
        self.changes = ChangeSet()
        self.overlay = OverlayFileSystem(self.fs, self.changes)

        self.resolution: Optional[Resolution] = None
        self.context: Optional[FeatureContext] = None
        self.convention: Optional[Convention] = None
        self.index: Optional[CatalogIndex] = None
        self.result: Optional[GenerationResult] = None
        self.notices: List[Notice] = []
        self.applied: List[str] = []
        self.report: Optional[GenerationReport] = None

    def _define_steps(self) -> List[PipelineStep]:
        return [
            PipelineStep("1-resolve", "Resolve Reference"),
            PipelineStep("2-explore", "Explore Context"),
            PipelineStep("3-conventions", "Detect Conventions"),
            PipelineStep("4-catalog", "Check Catalogs"),
            PipelineStep("5-generate", "Generate Scenarios"),
            PipelineStep("6-split", "Split Feature"),
            PipelineStep("7-synchronize", "Synchronize Catalogs"),
        ]

    def _execute_step(self, step: PipelineStep, prior_evidence: Dict[str, Dict[str, Any]]) -> Dict[str, Any]:
        handlers = {
            "1-resolve": self._resolve,
            "2-explore": self._explore,
            "3-conventions": self._detect_conventions,
            "4-catalog": self._check_catalogs,
            "5-generate": self._generate,
            "6-split": self._split,
            "7-synchronize": self._synchronize,
        }
        if step.id not in handlers:
            raise ValueError(f"Unknown step: {step.id}")
        return handlers[step.id]()

    def generate(self) -> GenerationReport:
        """
        Run the pipeline and return its report.

        Raises:
            InputAmbiguityError: Empty reference not clarified, or no candidate selected
            NoMatchError: Nothing in the knowledge base matches
            ArtifactIOError: Writing the artifact tree failed (rolled back)
        """
        self.run()
        return self.report

    def run(self) -> None:
        super().run()
        self.report.evidence = dict(self.step_evidence)

    # Step 1

    def _resolve(self) -> Dict[str, Any]:
        reference = self.reference.strip()
        if not reference:
            logger.info("Empty reference; requesting clarification")
            try:
                reference = (self.channel.clarify(CLARIFY_QUESTION) or "").strip()
            except InputAmbiguityError:
                self.audit = False
                raise
            if not reference:
                self.audit = False
                raise InputAmbiguityError("Empty reference: clarification required")
            self.reference = reference
            self.workflow_id = reference

        self.resolution = ArgumentResolver(self._reference_index()).classify(reference)
        kind = type(self.resolution).__name__
        logger.info("Reference '%s' resolved as %s", reference, kind)
        return {"reference": reference, "resolution": kind}

    def _reference_index(self) -> CatalogIndex:
        """Catalog used for classification; re-derived read-only when drifted."""
        index = CatalogIndex.load(self.fs, self.config)
        if index.diff(self.fs, self.config).has_drift:
            convention = ConventionDetector(self.fs, self.config).detect()
            return CatalogIndex.from_tree(self.fs, self.config, convention)
        return index

    # Step 2

    def _explore(self) -> Dict[str, Any]:
        kb = KnowledgeBase(self.fs, self.config)
        known = CatalogIndex.load(self.fs, self.config).domains
        explorer = ContextExplorer(
            self.fs,
            self.config,
            self.channel,
            DomainResolver(self.config, known_domains=known),
        )

        resolution = self.resolution
        if isinstance(resolution, ExplicitIdentifier):
            feature = kb.find_identifier(resolution.identifier)
            if feature is not None:
                self.context = explorer.context_for_identifier(feature)
            else:
                message = (
                    f"No requirement document carries '{resolution.identifier}'; "
                    f"treating it as a free-form description"
                )
                logger.warning(message)
                self.notices.append(Notice(kind=ErrorType.IDENTIFIER_NOT_FOUND.value, message=message))
                self.resolution = FreeForm(text=resolution.identifier)
                self.context = explorer.explore(resolution.identifier)
        elif isinstance(resolution, ExistingFeature):
            self.context = explorer.context_for_feature(resolution.entry)
        else:
            self.context = explorer.explore(resolution.text)

        for source in explorer.skipped_sources:
            if not self.quiet_mode:
                print_warning(f"Knowledge source '{source}' unavailable, treated as empty")

        return {
            "domain": self.context.domain,
            "feature_name": self.context.feature_name,
            "title": self.context.title,
            "identifier": self.context.identifier,
            "documents": [doc.path for doc in self.context.documents],
            "skipped_sources": list(explorer.skipped_sources),
        }

    # Step 3

    def _detect_conventions(self) -> Dict[str, Any]:
        self.convention = ConventionDetector(self.fs, self.config).detect()
        for warning in self.convention.warnings:
            self.notices.append(Notice(kind=ErrorType.CONVENTION_CONFLICT.value, message=warning))
            if not self.quiet_mode:
                print_warning(warning)
        return {
            "text_format": self.convention.text_format.value,
            "step_language": self.convention.step_language.value,
            "warnings": list(self.convention.warnings),
        }

    # Step 4

    def _check_catalogs(self) -> Dict[str, Any]:
        self.index, notice = self.synchronizer.ensure_consistent(self.convention, write=not self.dry_run)
        if notice is not None:
            self.notices.append(notice)
            if not self.quiet_mode:
                print_warning(notice.message)
        return {
            "drift": notice is not None,
            "features": len(self.index.features),
            "steps": len(self.index.steps),
        }

    # Step 5

    def _generate(self) -> Dict[str, Any]:
        generator = ScenarioGenerator(self.overlay, self.config, self.convention, self.index, self.channel)
        self.result = generator.generate(self.context, self.requested_scenarios)
        self.notices.extend(self.result.notices)
        if not self.quiet_mode:
            for notice in self.result.notices:
                print_warning(notice.message)
        return {
            "feature_path": self.result.feature_path,
            "is_new": self.result.is_new,
            "created_scenarios": list(self.result.created_scenarios),
            "created_steps": list(self.result.created_steps),
            "reused_steps": list(self.result.reused_steps),
        }

    # Step 6

    def _split(self) -> Dict[str, Any]:
        splitter = FeatureSplitter(self.overlay, self.config)
        if not splitter.needs_split(self.result):
            return {"split": False, "scenario_count": self.result.scenario_count}
        sub_files = splitter.split(self.result)
        if not self.quiet_mode:
            print_info(f"Feature split into {len(sub_files)} sub-files under {self.result.feature_path}/")
        return {"split": True, "scenario_count": self.result.scenario_count, "sub_files": sub_files}

    # Step 7

    def _synchronize(self) -> Dict[str, Any]:
        if self.changes.is_empty():
            logger.info("Nothing to write")
            self.applied = []
        elif self.dry_run:
            self.synchronizer.stage_catalogs(self.changes, self.convention)
            self.applied = self.changes.touched
            if not self.quiet_mode:
                for path in self.applied:
                    print_status(f"would write {path}")
        else:
            self.applied = self.synchronizer.apply_atomically(self.changes, self.convention)
            if not self.quiet_mode:
                print_success(f"Wrote {len(self.applied)} files")

        self.report = self._build_report()
        return {"written": len(self.report.written_files), "deleted": len(self.report.deleted_files)}

    def _build_report(self) -> GenerationReport:
        result = self.result
        features_prefix = self.config.paths.features + "/"
        relative = result.feature_path[len(features_prefix):] if result.feature_path.startswith(features_prefix) else result.feature_path
        entries = CatalogIndex.from_tree(self.overlay, self.config, self.convention).lookup(result.domain)
        feature = next(
            (e for e in entries if e.path.rstrip("/") == relative.rstrip("/")),
            next((e for e in entries if e.name == result.feature_name), None),
        )
        return GenerationReport(
            reference=self.reference,
            resolution=type(self.resolution).__name__,
            feature=feature,
            created_scenarios=list(result.created_scenarios),
            created_steps=list(result.created_steps),
            reused_steps=list(result.reused_steps),
            notices=list(self.notices),
            written_files=[p for p in self.applied if p not in self.changes.deletions],
            deleted_files=[p for p in self.applied if p in self.changes.deletions],
            split=result.is_split,
            convention=self.convention,
            dry_run=self.dry_run,
        )


# Maintenance operations


def detect_conventions(project_root: Union[str, Path], config: EngineConfig) -> Convention:
    """Detect the active convention of a project's artifact tree."""
    return ConventionDetector(open_project(project_root, config), config).detect()


def rebuild_catalogs(project_root: Union[str, Path], config: EngineConfig) -> CatalogIndex:
    """
    Re-derive both catalogs from the feature and step files and write them.

    Returns:
        The rebuilt index
    """
    fs = open_project(project_root, config)
    convention = ConventionDetector(fs, config).detect()
    return IndexSynchronizer(fs, config).rebuild(convention)


def check_catalogs(project_root: Union[str, Path], config: EngineConfig) -> CatalogDiff:
    """Compare the catalogs with the artifact tree without writing anything."""
    fs = open_project(project_root, config)
    return CatalogIndex.load(fs, config).diff(fs, config)
