"""
Error Handling for the Scenario Engine.

Provides:
- Error classification covering every recoverable and fatal condition
- Structured troubleshooting guidance per error type
- Typed exceptions raised by the pipeline

Usage:
    from scenario_engine.error_handling import (
        format_error_with_guidance,
        ErrorClassifier,
        WorkflowError
    )

    try:
        report = workflow.run()
    except WorkflowError as e:
        print(e.format(workflow_name="generate"))
"""
import re
from typing import Dict, Any, Optional, List
from dataclasses import dataclass
from enum import Enum


class ErrorType(Enum):
    """Every condition the engine reports, recoverable or fatal."""
    INPUT_AMBIGUITY = "input_ambiguity"            # Empty reference, unresolved candidates
    NO_MATCH = "no_match"                          # Nothing in the knowledge base
    CONVENTION_CONFLICT = "convention_conflict"    # Mixed formats or languages
    DUPLICATE = "duplicate"                        # Scenario name already present
    DRIFT = "drift"                                # Catalog disagrees with the tree
    IDENTIFIER_NOT_FOUND = "identifier_not_found"  # No requirement document for an ID
    IO_FAILURE = "io_failure"                      # Artifact tree unreadable/unwritable
    CONFIGURATION = "configuration"                # Override document invalid
    UNKNOWN = "unknown"


@dataclass
class ErrorGuidance:
    """What happened, what to check, and how to recover."""
    error_type: ErrorType
    what_happened: str
    troubleshooting: List[str]
    recovery: str
    can_retry: bool = False


class ErrorClassifier:
    """Maps exceptions onto ErrorType."""

    # Untyped errors are matched by message, first type wins
    PATTERNS = {
        ErrorType.INPUT_AMBIGUITY: [
            r"empty reference",
            r"ambiguous",
            r"no selection",
            r"clarification.*required",
        ],
        ErrorType.NO_MATCH: [
            r"no match",
            r"nothing.*found.*knowledge base",
        ],
        ErrorType.IO_FAILURE: [
            r"permission.*denied",
            r"read-only file system",
            r"no space left",
            r"lock.*held",
            r"errno",
        ],
        ErrorType.CONFIGURATION: [
            r"config.*not.*found",
            r"invalid.*config",
            r"yaml",
            r"validation error",
        ],
    }

    @classmethod
    def classify(cls, error: Exception) -> ErrorType:
        """Typed errors keep their own type; OSError is an I/O failure; the rest match by message."""
        if isinstance(error, WorkflowError):
            return error.error_type
        if isinstance(error, OSError):
            return ErrorType.IO_FAILURE
        text = str(error)
        for error_type, patterns in cls.PATTERNS.items():
            if any(re.search(pattern, text, re.IGNORECASE) for pattern in patterns):
                return error_type
        return ErrorType.UNKNOWN


class TroubleshootingGuide:
    """Guidance text per ErrorType."""

    GUIDES = {
        ErrorType.INPUT_AMBIGUITY: {
            "what_happened": "The feature reference could not be resolved without your input.",
            "troubleshooting": [
                "Pass a non-empty reference (identifier, feature name, or description)",
                "Run without --no-interactive so candidates can be presented",
                "Use a requirement identifier such as UC-ab12-003 to skip disambiguation",
            ],
            "recovery": "Nothing was written - re-run with a more specific reference",
            "can_retry": True,
        },
        ErrorType.NO_MATCH: {
            "what_happened": "The knowledge base has nothing matching the reference.",
            "troubleshooting": [
                "Check the spelling of the feature description",
                "Add a requirements document under the knowledge root (prd/specs/<slug>/)",
                "Mention the feature in the change history (prd/changelog.md)",
            ],
            "recovery": "Nothing was written - re-run with more specific input",
            "can_retry": True,
        },
        ErrorType.CONVENTION_CONFLICT: {
            "what_happened": "The artifact tree mixes text formats or step languages.",
            "troubleshooting": [
                "Run: scenario-engine conventions",
                "Convert minority files to the majority convention",
            ],
            "recovery": "Generation continues with the majority convention",
            "can_retry": False,
        },
        ErrorType.DUPLICATE: {
            "what_happened": "A scenario with the same name already exists.",
            "troubleshooting": [
                "Open the reported file to review the existing scenario",
                "Request a differently named scenario with --scenario",
            ],
            "recovery": "The duplicate was skipped; other scenarios were processed",
            "can_retry": False,
        },
        ErrorType.DRIFT: {
            "what_happened": "The catalogs disagreed with the artifact tree.",
            "troubleshooting": [
                "Run: scenario-engine check",
                "Avoid editing INDEX.md files by hand",
            ],
            "recovery": "Catalogs were rebuilt from the feature and step files",
            "can_retry": False,
        },
        ErrorType.IDENTIFIER_NOT_FOUND: {
            "what_happened": "No requirement document carries the given identifier.",
            "troubleshooting": [
                "Check the identifier against prd/specs/",
                "Add an 'id:' entry to the requirement document front matter",
            ],
            "recovery": "The reference was treated as a free-form description",
            "can_retry": False,
        },
        ErrorType.IO_FAILURE: {
            "what_happened": "The artifact tree could not be read or written.",
            "troubleshooting": [
                "Check file permissions under the artifact root",
                "Remove a stale .scenario-engine.lock if no other run is active",
                "Verify there is free disk space",
            ],
            "recovery": "All writes of this invocation were rolled back - safe to retry",
            "can_retry": True,
        },
        ErrorType.CONFIGURATION: {
            "what_happened": "Configuration is missing or invalid.",
            "troubleshooting": [
                "Verify .scenario-engine.yaml is valid YAML",
                "Check threshold values are within range",
                "Check 'domains' maps names to lists of keywords",
            ],
            "recovery": "Fix configuration, then retry",
            "can_retry": False,
        },
        ErrorType.UNKNOWN: {
            "what_happened": "An unexpected error occurred.",
            "troubleshooting": [
                "Review the full error message for details",
                "Re-run with --verbose for debug logging",
            ],
            "recovery": "Investigate error, then retry",
            "can_retry": False,
        },
    }

    @classmethod
    def get_guidance(cls, error_type: ErrorType) -> ErrorGuidance:
        """Guidance for an error type (UNKNOWN's when the type has none)."""
        guide = cls.GUIDES.get(error_type, cls.GUIDES[ErrorType.UNKNOWN])
        return ErrorGuidance(error_type=error_type, **guide)


def _section(title: str) -> List[str]:
    rule = "=" * 70
    return ["", rule, f"{title}:", rule, ""]


def format_error_with_guidance(
    error: Exception,
    context: Optional[Dict[str, Any]] = None,
    workflow_name: str = "",
    step_name: str = ""
) -> str:
    """
    Render an error as plain text with what happened, what to check and how to recover.

    Args:
        error: The exception that occurred
        context: Extra key/value facts (paths, candidates, config document)
        workflow_name: Command that failed
        step_name: Pipeline step that failed

    Returns:
        Multi-line text (no markup)
    """
    guidance = TroubleshootingGuide.get_guidance(ErrorClassifier.classify(error))

    lines = _section("WHAT HAPPENED")
    lines += [guidance.what_happened, "", f"Error: {error}"]
    if workflow_name:
        lines.append(f"Workflow: {workflow_name}")
    if step_name:
        lines.append(f"Step: {step_name}")
    lines += [f"{key}: {value}" for key, value in (context or {}).items()]

    lines += _section("TROUBLESHOOTING")
    lines += [f"{number}. {hint}" for number, hint in enumerate(guidance.troubleshooting, 1)]

    lines += _section("RECOVERY")
    lines.append(guidance.recovery)
    if guidance.can_retry:
        lines.append("Safe to retry.")
    return "\n".join(lines)


class WorkflowError(Exception):
    """
    Typed engine failure carrying its classification and context.

    Subclasses fix the classification; `context` holds the facts shown
    under the error in guidance output.

    Usage:
        raise NoMatchError(
            "No match for 'order export' in the knowledge base",
            context={"keywords": "order, export"},
        )
    """

    error_type_default = ErrorType.UNKNOWN

    def __init__(
        self,
        message: str,
        error_type: Optional[ErrorType] = None,
        context: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(message)
        self.error_type = error_type or self.error_type_default
        self.context = context or {}
        self.original_error = original_error

    def get_guidance(self) -> ErrorGuidance:
        return TroubleshootingGuide.get_guidance(self.error_type)

    def format(self, workflow_name: str = "", step_name: str = "") -> str:
        return format_error_with_guidance(self, self.context, workflow_name, step_name)


class InputAmbiguityError(WorkflowError):
    """Reference is empty, or candidates were not narrowed to a selection."""
    error_type_default = ErrorType.INPUT_AMBIGUITY


class NoMatchError(WorkflowError):
    """Free-form reference produced zero exploration hits."""
    error_type_default = ErrorType.NO_MATCH


class ArtifactIOError(WorkflowError):
    """Unrecoverable read/write failure on the artifact tree."""
    error_type_default = ErrorType.IO_FAILURE


class ConfigurationError(WorkflowError):
    """Override document could not be loaded or validated."""
    error_type_default = ErrorType.CONFIGURATION
