"""
scenario-engine command line interface.

Commands:
    generate [REFERENCE]   Generate scenarios and step stubs for a feature
    rebuild                Re-derive both catalogs from the artifact tree
    check                  Report catalog drift without writing (exit 1 on drift)
    conventions            Show the detected text format and step language

Exit codes:
    0 success
    1 recoverable condition that produced no artifact (no match, unresolved
      ambiguity, drift found by check)
    2 usage or configuration error
    3 unrecoverable artifact I/O failure (all writes rolled back)
"""

import logging
import sys
from typing import List, Optional

from scenario_engine.argument_config import EngineArgumentParser, StandardArguments
from scenario_engine.config import EngineConfig, load_config
from scenario_engine.console import console
from scenario_engine.error_handling import (
    ArtifactIOError,
    ConfigurationError,
    WorkflowError,
    format_error_with_guidance,
)
from scenario_engine.interaction import ConsoleChannel, NonInteractiveChannel
from scenario_engine.output_formatter import OutputFormatter
from scenario_engine.progress import print_error, print_warning
from scenario_engine.workflow import (
    ScenarioGenerationWorkflow,
    check_catalogs,
    detect_conventions,
    rebuild_catalogs,
)

EXIT_OK = 0
EXIT_NO_ARTIFACT = 1
EXIT_USAGE = 2
EXIT_IO = 3

_HANDLER_NAME = "scenario-engine-cli"


def configure_logging(verbose: bool) -> None:
    """Attach a stream handler to the package logger (WARNING, DEBUG with --verbose)."""
    level = logging.DEBUG if verbose else logging.WARNING
    package_logger = logging.getLogger("scenario_engine")
    package_logger.setLevel(level)
    for handler in package_logger.handlers:
        if handler.get_name() == _HANDLER_NAME:
            handler.setLevel(level)
            return
    handler = logging.StreamHandler()
    handler.set_name(_HANDLER_NAME)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
    package_logger.addHandler(handler)


def build_parser() -> EngineArgumentParser:
    common = [StandardArguments.ROOT, StandardArguments.CONFIG, StandardArguments.VERBOSE]
    parser = EngineArgumentParser(description="Generate BDD scenarios and keep their catalogs in sync")

    generate = parser.add_command(
        "generate",
        help="Generate scenarios and step stubs for a feature reference",
        standard_args=common + [
            StandardArguments.NO_INTERACTIVE,
            StandardArguments.DRY_RUN,
            StandardArguments.AUDIT,
            StandardArguments.SCENARIO,
        ],
    )
    generate.add_argument(
        "reference",
        nargs="?",
        default="",
        help="Requirement identifier (e.g. UC-ab12-003), existing feature name, or description",
    )
    parser.add_command("rebuild", help="Rebuild both catalogs from the artifact tree", standard_args=common)
    parser.add_command("check", help="Report catalog drift without writing", standard_args=common)
    parser.add_command("conventions", help="Show the detected conventions", standard_args=common)
    return parser


def exit_code_for(error: Optional[BaseException]) -> int:
    if isinstance(error, ArtifactIOError):
        return EXIT_IO
    if isinstance(error, ConfigurationError):
        return EXIT_USAGE
    if isinstance(error, OSError):
        return EXIT_IO
    return EXIT_NO_ARTIFACT


def _report_error(error: Exception, command: str) -> None:
    print_error(str(error))
    console.print(
        format_error_with_guidance(error, context=getattr(error, "context", None), workflow_name=command),
        style="secondary",
        markup=False,
    )


def run_generate(args, config: EngineConfig) -> int:
    channel = NonInteractiveChannel() if args.no_interactive else ConsoleChannel()
    workflow = ScenarioGenerationWorkflow(
        reference=args.reference,
        project_root=args.root,
        config=config,
        channel=channel,
        requested_scenarios=args.scenarios,
        dry_run=args.dry_run,
        audit=args.audit,
        quiet_mode=not args.verbose,
    )
    if not workflow.execute():
        return exit_code_for(workflow.last_error)
    console.print(OutputFormatter.generation_report(workflow.report))
    return EXIT_OK


def run_rebuild(args, config: EngineConfig) -> int:
    index = rebuild_catalogs(args.root, config)
    console.print(OutputFormatter.catalog_summary(index))
    return EXIT_OK


def run_check(args, config: EngineConfig) -> int:
    diff = check_catalogs(args.root, config)
    console.print(OutputFormatter.catalog_diff(diff))
    if diff.has_drift:
        print_warning("Catalogs have drifted; run: scenario-engine rebuild")
        return EXIT_NO_ARTIFACT
    return EXIT_OK


def run_conventions(args, config: EngineConfig) -> int:
    convention = detect_conventions(args.root, config)
    console.print(OutputFormatter.convention(convention))
    return EXIT_OK


COMMANDS = {
    "generate": run_generate,
    "rebuild": run_rebuild,
    "check": run_check,
    "conventions": run_conventions,
}


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse(argv)
    configure_logging(args.verbose)

    try:
        config = load_config(args.root, args.config)
    except ConfigurationError as e:
        _report_error(e, args.command)
        return EXIT_USAGE

    try:
        return COMMANDS[args.command](args, config)
    except KeyboardInterrupt:
        print_warning("Interrupted by user")
        return 130
    except (WorkflowError, OSError) as e:
        _report_error(e, args.command)
        return exit_code_for(e)


if __name__ == "__main__":
    sys.exit(main())
