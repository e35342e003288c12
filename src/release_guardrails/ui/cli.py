"""Command-line interface router for release-guardrails."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import Any, Final

from release_guardrails.audit import AuditSettings, BaselineStore, VulnerabilityScanner
from release_guardrails.changesets import (
    ChangesetSettings,
    ChangesetStore,
    ChangesetValidator,
    DuplicateDetector,
    DuplicateSettings,
    GitReader,
    WorkspaceInspector,
)
from release_guardrails.config import (
    ConfigLoadError,
    ConfigValidationError,
    dump_effective_config,
    load_config,
    parse_set_assignments,
)
from release_guardrails.domain.models import (
    REPORT_VERSION,
    CheckResult,
    GuardrailReport,
    format_timestamp,
    utc_now,
)
from release_guardrails.domain.options import CiPolicyError, RunOptions, is_ci_environment
from release_guardrails.execution import CommandExecutor, LocalSubprocessExecutor
from release_guardrails.guardrails import (
    BuiltinHandler,
    CatalogSettings,
    CheckRunner,
    ContentHasher,
    ConventionalCommitsCheck,
    FileCache,
    Orchestrator,
    apply_fixes,
    build_catalog,
    calculate_quality_score,
    collect_git_info,
    write_report,
)
from release_guardrails.guardrails.fixes import FixOutcome
from release_guardrails.observability import configure_logging
from release_guardrails.ui.render import ReportRenderer, create_renderer

COMMANDS: Final[tuple[str, ...]] = (
    "run",
    "validate-changesets",
    "security-scan",
    "update-baseline",
    "config",
)
DEFAULT_COMMAND: Final[str] = "run"

EXIT_SUCCESS: Final[int] = 0
EXIT_BLOCKED: Final[int] = 1
EXIT_CONFIG_ERROR: Final[int] = 2


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = 1

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True, slots=True)
class GuardrailServices:
    """Collaborators for one invocation, built from the effective config."""

    root: Path
    config: Mapping[str, Any]
    executor: CommandExecutor
    git: GitReader
    workspace: WorkspaceInspector
    validator: ChangesetValidator
    scanner: VulnerabilityScanner
    commits: ConventionalCommitsCheck

    def handlers(self, options: RunOptions) -> dict[str, Callable[[], Awaitable[CheckResult]]]:
        def security_scan() -> Awaitable[CheckResult]:
            if options.update_baseline:
                return self.scanner.update_baseline()
            return self.scanner.audit(quick=options.quick)

        return {
            BuiltinHandler.CHANGESET_VALIDATION: self.validator.validate,
            BuiltinHandler.SECURITY_SCAN: security_scan,
            BuiltinHandler.CONVENTIONAL_COMMITS: self.commits.run,
        }


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router for all supported CLI workflows."""

    parser = argparse.ArgumentParser(
        prog="release-guardrails",
        description=(
            "release-guardrails — pre-release validation pipeline.\n\n"
            "Common workflows:\n"
            "  release-guardrails                     Run every guardrail\n"
            "  release-guardrails --quick             Fast local run\n"
            "  release-guardrails --json              Machine-readable report for CI\n"
            "  release-guardrails update-baseline     Accept current vulnerabilities\n"
            "  release-guardrails config --set cache.enabled=false\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to guardrails TOML config (default: ./guardrails.toml if present).",
    )
    common.add_argument(
        "--set",
        dest="overrides",
        action="append",
        default=[],
        metavar="SECTION.KEY=VALUE",
        help="Override one config value (repeatable; beats env and file).",
    )
    common.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=False,
        help="Show detailed output.",
    )
    common.add_argument(
        "--no-color",
        action="store_true",
        default=False,
        help="Disable colored output (also respects NO_COLOR env var).",
    )
    common.add_argument(
        "--json",
        "-j",
        dest="json_output",
        action="store_true",
        default=False,
        help="Print JSON instead of the console summary.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # run -----------------------------------------------------------------
    run_parser = subparsers.add_parser(
        "run",
        parents=[common],
        help="Run all guardrails (default command)",
    )
    run_parser.add_argument(
        "--quick", "-q", action="store_true", help="Shorter timeouts; skips slow checks locally."
    )
    run_parser.add_argument(
        "--warn-only",
        "-w",
        action="store_true",
        help="Downgrade dependent-check failures to warnings (critical checks still block).",
    )
    run_parser.add_argument(
        "--fix", "-f", action="store_true", help="Attempt automatic fixes after the run."
    )
    run_parser.add_argument("--no-cache", action="store_true", help="Ignore cached results.")
    run_parser.add_argument(
        "--skip-security", action="store_true", help="Skip the security scan (not in CI)."
    )
    run_parser.add_argument(
        "--skip-export-maps", action="store_true", help="Skip export map linting."
    )
    run_parser.add_argument(
        "--skip-changesets", action="store_true", help="Skip changeset validation."
    )
    run_parser.add_argument(
        "--update-baseline",
        action="store_true",
        help="Refresh the vulnerability baseline instead of gating on it.",
    )
    run_parser.add_argument(
        "--no-diagnostics",
        action="store_true",
        help="Do not run dependent checks after a critical failure.",
    )
    run_parser.set_defaults(handler=_cmd_run)

    # validate-changesets -------------------------------------------------
    changesets_parser = subparsers.add_parser(
        "validate-changesets",
        parents=[common],
        help="Run changeset validation only",
    )
    changesets_parser.set_defaults(handler=_cmd_validate_changesets)

    # security-scan -------------------------------------------------------
    scan_parser = subparsers.add_parser(
        "security-scan",
        parents=[common],
        help="Run the vulnerability audit only",
    )
    scan_parser.add_argument("--quick", "-q", action="store_true", help="Quick local audit.")
    scan_parser.set_defaults(handler=_cmd_security_scan)

    # update-baseline -----------------------------------------------------
    baseline_parser = subparsers.add_parser(
        "update-baseline",
        parents=[common],
        help="Record current vulnerability counts as the accepted baseline",
    )
    baseline_parser.set_defaults(handler=_cmd_update_baseline)

    # config --------------------------------------------------------------
    config_parser = subparsers.add_parser(
        "config",
        parents=[common],
        help="Show the effective configuration after defaults, file, env, and --set",
    )
    config_parser.set_defaults(handler=_cmd_config)

    return parser


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    raw = list(sys.argv[1:] if argv is None else argv)
    namespace = parser.parse_args(with_default_command(raw))
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return EXIT_CONFIG_ERROR

    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    return int(result)


def with_default_command(argv: Sequence[str]) -> list[str]:
    """Insert ``run`` unless argv already names a command or asks for top-level help."""

    items = list(argv)
    if items and (items[0] in COMMANDS or items[0] in ("-h", "--help")):
        return items
    return [DEFAULT_COMMAND, *items]


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_run(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    options = run_options_from_args(args, config)
    services = build_services(config, ci=options.ci)
    renderer = _get_renderer(args)

    try:
        report, outcomes = asyncio.run(_execute_run(services, options))
    except CiPolicyError as exc:
        if options.json_output:
            _emit_json(error_report(str(exc)))
        else:
            renderer.error(str(exc), exc.hints)
        return EXIT_BLOCKED
    except Exception as exc:
        if options.json_output:
            _emit_json(error_report(str(exc)))
        raise

    if options.json_output:
        if options.fix:
            _emit_json({**report.to_dict(), "fixes": [item.to_dict() for item in outcomes]})
        else:
            print(report.to_json())
        write_report(services.root / str(config["report"]["path"]), report)
    else:
        renderer.report(report)
        if options.fix:
            renderer.fixes(outcomes)
    return EXIT_BLOCKED if report.blocked else EXIT_SUCCESS


def _cmd_validate_changesets(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    services = build_services(config, ci=is_ci_environment())
    return _emit_single(args, asyncio.run(services.validator.validate()))


def _cmd_security_scan(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    services = build_services(config, ci=is_ci_environment())
    return _emit_single(args, asyncio.run(services.scanner.audit(quick=bool(args.quick))))


def _cmd_update_baseline(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    services = build_services(config, ci=is_ci_environment())
    return _emit_single(args, asyncio.run(services.scanner.update_baseline()))


def _cmd_config(args: argparse.Namespace) -> int:
    print(dump_effective_config(_load_effective_config(args)))
    return EXIT_SUCCESS


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


def run_options_from_args(args: argparse.Namespace, config: Mapping[str, Any]) -> RunOptions:
    return RunOptions(
        quick=bool(args.quick),
        verbose=bool(args.verbose),
        warn_only=bool(args.warn_only),
        json_output=bool(args.json_output),
        fix=bool(args.fix),
        no_cache=bool(args.no_cache),
        skip_security=bool(args.skip_security),
        skip_export_maps=bool(args.skip_export_maps),
        skip_changesets=bool(args.skip_changesets),
        update_baseline=bool(args.update_baseline),
        diagnostics=bool(config["orchestrator"]["diagnostics"]) and not args.no_diagnostics,
        ci=is_ci_environment(),
    )


def build_services(
    config: Mapping[str, Any],
    *,
    ci: bool,
    executor: CommandExecutor | None = None,
    environ: Mapping[str, str] | None = None,
) -> GuardrailServices:
    root = Path(str(config["workspace"]["root"]))
    changesets = config["changesets"]
    resolved_executor = executor if executor is not None else LocalSubprocessExecutor()

    git = GitReader(root, base_branches=tuple(changesets["base_branches"]), environ=environ)
    workspace = WorkspaceInspector(root, git)
    store = ChangesetStore(
        root / str(changesets["directory"]), timestamp_source=git.last_commit_time
    )
    validator = ChangesetValidator(
        store,
        git,
        workspace,
        DuplicateDetector(DuplicateSettings.from_config(config["duplicates"])),
        settings=ChangesetSettings.from_config(changesets),
    )
    scanner = VulnerabilityScanner(
        resolved_executor,
        BaselineStore(root / str(config["audit"]["baseline_path"])),
        settings=AuditSettings.from_config(config["audit"]),
        cwd=root,
        ci=ci,
    )
    commits = ConventionalCommitsCheck(
        git,
        changeset_dir=root / str(changesets["directory"]),
        package_dirs=tuple(changesets["package_dirs"]),
    )
    return GuardrailServices(
        root=root,
        config=config,
        executor=resolved_executor,
        git=git,
        workspace=workspace,
        validator=validator,
        scanner=scanner,
        commits=commits,
    )


def build_orchestrator(services: GuardrailServices, options: RunOptions) -> Orchestrator:
    config = services.config
    orchestrator_section = config["orchestrator"]
    cache_section = config["cache"]

    runner = CheckRunner(
        services.executor,
        services.handlers(options),
        root=services.root,
        script_dirs=tuple(orchestrator_section["script_dirs"]),
        verbose=options.verbose,
    )
    cache = None
    hasher = None
    if cache_section["enabled"]:
        cache = FileCache(
            services.root / str(cache_section["path"]),
            ttl_seconds=float(cache_section["ttl_seconds"]),
            ci=options.ci,
        )
        hasher = ContentHasher(
            services.root,
            lockfile=str(cache_section["lockfile"]),
            manifest_dirs=tuple(cache_section["manifest_dirs"]),
        )
    package_dirs = tuple(config["changesets"]["package_dirs"])
    return Orchestrator(
        runner,
        catalog_builder=partial(
            build_catalog, settings=CatalogSettings.from_config(orchestrator_section)
        ),
        cache=cache,
        hasher=hasher,
        max_parallel=int(orchestrator_section["max_parallel"]),
        git_info_provider=partial(collect_git_info, services.git),
        quality_provider=partial(calculate_quality_score, services.workspace, package_dirs),
    )


async def _execute_run(
    services: GuardrailServices, options: RunOptions
) -> tuple[GuardrailReport, list[FixOutcome]]:
    report = await build_orchestrator(services, options).run(options)
    outcomes: list[FixOutcome] = []
    if options.fix:
        outcomes = await apply_fixes(report.results, services.executor, cwd=services.root)
    return report, outcomes


def error_report(message: str) -> dict[str, object]:
    return {
        "timestamp": format_timestamp(utc_now()),
        "version": REPORT_VERSION,
        "error": message,
        "summary": {"passed": 0, "warned": 0, "failed": 1, "skipped": 0, "totalDuration": 0},
        "results": [],
    }


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _emit_single(args: argparse.Namespace, result: CheckResult) -> int:
    if args.json_output:
        _emit_json(result.to_dict())
    else:
        _get_renderer(args).result(result)
    return EXIT_BLOCKED if result.failed else EXIT_SUCCESS


def _emit_json(payload: Mapping[str, object]) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False))


def _get_renderer(args: argparse.Namespace) -> ReportRenderer:
    return create_renderer(
        no_color=bool(getattr(args, "no_color", False)),
        verbose=bool(getattr(args, "verbose", False)),
    )


def _load_effective_config(args: argparse.Namespace) -> dict[str, Any]:
    try:
        config = load_config(
            getattr(args, "config_path", None),
            cli_overrides=parse_set_assignments(getattr(args, "overrides", None) or ()),
        )
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=EXIT_CONFIG_ERROR) from exc

    observability = config["observability"]
    level = "INFO" if getattr(args, "verbose", False) else str(observability["log_level"])
    configure_logging(level, str(observability["log_format"]))
    return config


__all__ = [
    "CLIError",
    "GuardrailServices",
    "build_orchestrator",
    "build_parser",
    "build_services",
    "error_report",
    "run_cli",
    "run_options_from_args",
    "with_default_command",
]
