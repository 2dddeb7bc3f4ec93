"""Command-line interface router for workledger."""

from __future__ import annotations

import argparse
import asyncio
import json
import signal
import sys
from collections.abc import Awaitable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TypeVar

from workledger.config import (
    ConfigLoadError,
    ConfigValidationError,
    executor_settings,
    load_config,
    logging_config,
    optimistic_policy,
)
from workledger.control_plane import (
    completion_percent,
    select_next,
    select_next_with_gating,
    status_counts,
)
from workledger.domain.models import Record, Verdict
from workledger.main import ExitCode
from workledger.observability import setup_logging
from workledger.persistence import RecordStore, create_empty, stats
from workledger.persistence.frontmatter import build_metadata
from workledger.utils import CancellationToken
from workledger.verification_plane import (
    AgentResponse,
    Capabilities,
    ConsoleInput,
    E2ECapability,
    NonInteractiveInput,
    StaticCapabilities,
    VerificationArtifactStore,
    build_default_registry,
    verify_record,
)
from workledger.verification_plane.artifacts import run_metadata

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = 1

    def __str__(self) -> str:
        return self.message


class UnavailableAgent:
    """Agent invoker used when no agent is wired in; every call fails without retry."""

    async def call(
        self,
        prompt: str,
        *,
        timeout_ms: int,
        cwd: Path,
        model: str | None = None,
    ) -> AgentResponse:
        return AgentResponse(success=False, error="no AI agent is configured for this session")


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router for all supported CLI workflows."""

    parser = argparse.ArgumentParser(
        prog="workledger",
        description=(
            "workledger: file-backed work items with pluggable verification.\n\n"
            "Common workflows:\n"
            "  workledger next             Show the next actionable record\n"
            "  workledger sync             Reconcile the manifest with record files\n"
            "  workledger show ID          Print one record\n"
            "  workledger verify ID        Run the record's verification strategies\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--root",
        default=".",
        help="Project root directory (default: current working directory).",
    )
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to a TOML config (default: <root>/workledger.toml if present).",
    )
    common.add_argument(
        "--set",
        dest="overrides",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Override a config value by dotted key; VALUE is parsed as JSON when possible.",
    )
    common.add_argument("--json", action="store_true", help="Emit deterministic JSON output")

    subparsers = parser.add_subparsers(dest="command", required=True)

    next_parser = subparsers.add_parser(
        "next", parents=[common], help="Select the next actionable record."
    )
    next_parser.add_argument(
        "--no-gating",
        action="store_true",
        help="Ignore decomposition records and select by status and priority only.",
    )
    next_parser.set_defaults(handler=_cmd_next)

    sync_parser = subparsers.add_parser(
        "sync", parents=[common], help="Reconcile the manifest with the record files on disk."
    )
    sync_parser.set_defaults(handler=_cmd_sync)

    show_parser = subparsers.add_parser("show", parents=[common], help="Print one record.")
    show_parser.add_argument("record_id", help="Dotted record identifier")
    show_parser.set_defaults(handler=_cmd_show)

    verify_parser = subparsers.add_parser(
        "verify", parents=[common], help="Verify a record and persist the verdict."
    )
    verify_parser.add_argument("record_id", help="Dotted record identifier")
    verify_parser.add_argument("--commit", default=None, help="Commit hash to record with the run")
    verify_parser.add_argument(
        "--test-command", default=None, help="Project test command used by 'test' strategies"
    )
    verify_parser.add_argument(
        "--e2e-command", default=None, help="End-to-end runner command used by 'e2e' strategies"
    )
    verify_parser.add_argument(
        "--interactive",
        action="store_true",
        help="Prompt on the terminal for manual verification steps.",
    )
    verify_parser.set_defaults(handler=_cmd_verify)

    return parser


# ---------------------------------------------------------------------------
# Entrypoints
# ---------------------------------------------------------------------------


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return int(ExitCode.CONFIG_ERROR)

    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    return int(result)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_next(args: argparse.Namespace) -> int:
    root, config = _prepare(args)
    records = _store(root, config).list_records()

    blocked_by = None
    if args.no_gating:
        record = select_next(records)
    else:
        selection = select_next_with_gating(records)
        record, blocked_by = selection.record, selection.blocked_by

    if args.json:
        _emit_json(
            {
                "command": "next",
                "record": _record_payload(record) if record is not None else None,
                "blockedBy": (
                    {
                        "count": blocked_by.count,
                        "ids": list(blocked_by.ids),
                        "waiting": blocked_by.waiting,
                    }
                    if blocked_by is not None
                    else None
                ),
            }
        )
        return int(ExitCode.SUCCESS)

    if record is None:
        print("No actionable records.")
        return int(ExitCode.SUCCESS)
    print(f"{record.id} [{record.status.value}] p{record.priority}: {record.description}")
    if blocked_by is not None:
        print(
            f"{blocked_by.waiting} record(s) wait on {blocked_by.count} breakdown record(s): "
            + ", ".join(blocked_by.ids)
        )
    return int(ExitCode.SUCCESS)


def _cmd_sync(args: argparse.Namespace) -> int:
    root, config = _prepare(args)
    store = _store(root, config)
    records = store.list_records()

    manifest = store.manifest.load()
    created = manifest is None
    if manifest is None:
        manifest = create_empty()
    changed = store.manifest.sync(records, manifest)
    if created and not changed:
        store.manifest.save(manifest)

    counts = stats(manifest)
    percent = completion_percent(records)
    if args.json:
        _emit_json(
            {
                "command": "sync",
                "changed": changed or created,
                "records": len(manifest.records),
                "counts": {status.value: count for status, count in counts.items()},
                "completionPercent": percent,
            }
        )
        return int(ExitCode.SUCCESS)

    print(f"Manifest {'updated' if changed or created else 'already in sync'}: {store.manifest.path}")
    for status, count in status_counts(records).items():
        print(f"  {status.value}: {count}")
    print(f"Completion: {percent}%")
    return int(ExitCode.SUCCESS)


def _cmd_show(args: argparse.Namespace) -> int:
    root, config = _prepare(args)
    record = _store(root, config).require(args.record_id)
    latest = _artifacts(root, config).latest(record.id)

    if args.json:
        _emit_json({"command": "show", "record": _record_payload(record), "latestRun": latest})
        return int(ExitCode.SUCCESS)

    print(f"{record.id}  (v{record.version}, {record.status.value}, priority {record.priority})")
    print(f"Module: {record.module}")
    if record.file_path:
        print(f"File: {record.file_path}")
    print("")
    print(record.description or "(no description)")
    if record.acceptance:
        print("")
        print("Acceptance criteria:")
        for item in record.acceptance:
            print(f"  - {item}")
    if record.verification is not None:
        summary = record.verification
        print("")
        print(f"Last verification: {summary.verdict.value} at {summary.verified_at} by {summary.verified_by}")
        if summary.summary:
            print(f"  {summary.summary}")
    return int(ExitCode.SUCCESS)


def _cmd_verify(args: argparse.Namespace) -> int:
    root, config = _prepare(args)
    store = _store(root, config)

    e2e = E2ECapability(command=args.e2e_command) if args.e2e_command else None
    registry = build_default_registry(
        capabilities=StaticCapabilities(Capabilities(test_command=args.test_command, e2e=e2e)),
        agent=UnavailableAgent(),
        user_input=ConsoleInput() if args.interactive else NonInteractiveInput(),
        settings=executor_settings(config),
    )
    token = CancellationToken()
    try:
        run = asyncio.run(
            _interruptible(
                verify_record(
                    store,
                    registry,
                    args.record_id,
                    artifacts=_artifacts(root, config),
                    commit_hash=args.commit,
                    max_concurrency=config["verification"]["max_concurrency"],
                    optimistic_policy=optimistic_policy(config),
                    cancel_token=token,
                ),
                token,
            )
        )
    except asyncio.CancelledError as exc:
        raise CLIError(
            f"verification of {args.record_id} was interrupted; nothing was recorded",
            exit_code=int(ExitCode.INTERNAL_ERROR),
        ) from exc

    if args.json:
        _emit_json({"command": "verify", "run": run_metadata(run, run.run_number or 0)})
    else:
        print(f"{run.record_id}: {run.verdict.value.upper()} -> {run.status.value} (v{run.version})")
        print(run.summary)
        for outcome in run.outcomes:
            state = "skipped" if outcome.skipped else ("ok" if outcome.result.success else "failed")
            print(f"  - {outcome.check.label}: {state}")
    if run.verdict is Verdict.FAIL:
        return int(ExitCode.VERIFICATION_REJECTED)
    return int(ExitCode.SUCCESS)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _interruptible(operation: Awaitable[T], token: CancellationToken) -> T:
    """Await ``operation`` with SIGINT cancelling ``token`` instead of killing the loop."""

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, token.cancel)
    except (NotImplementedError, RuntimeError):
        return await operation
    try:
        return await operation
    finally:
        loop.remove_signal_handler(signal.SIGINT)


def _prepare(args: argparse.Namespace) -> tuple[Path, dict[str, Any]]:
    root = _project_root(args)
    config = _load_effective_config(args, root)
    setup_logging(logging_config(config))
    return root, config


def _project_root(args: argparse.Namespace) -> Path:
    candidate = Path(args.root).expanduser().resolve()
    if not candidate.is_dir():
        raise CLIError(f"project root is not a directory: {candidate}", exit_code=2)
    return candidate


def _load_effective_config(args: argparse.Namespace, root: Path) -> dict[str, Any]:
    try:
        return load_config(
            args.config_path,
            root=root,
            cli_overrides=parse_overrides(args.overrides),
        )
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=int(ExitCode.CONFIG_ERROR)) from exc


def parse_overrides(items: Sequence[str]) -> dict[str, object]:
    """Turn ``KEY=VALUE`` pairs into dotted-key overrides; JSON values are decoded."""

    overrides: dict[str, object] = {}
    for item in items:
        key, sep, raw = item.partition("=")
        if not sep or not key.strip():
            raise CLIError(f"invalid override {item!r}; expected KEY=VALUE", exit_code=2)
        try:
            value: object = json.loads(raw)
        except json.JSONDecodeError:
            value = raw
        overrides[key.strip()] = value
    return overrides


def _store(root: Path, config: Mapping[str, Any]) -> RecordStore:
    return RecordStore(root, tasks_dir=config["paths"]["tasks_dir"])


def _artifacts(root: Path, config: Mapping[str, Any]) -> VerificationArtifactStore:
    return VerificationArtifactStore(root, verification_dir=config["paths"]["verification_dir"])


def _record_payload(record: Record) -> dict[str, object]:
    payload = dict(build_metadata(record))
    payload["description"] = record.description
    payload["acceptance"] = list(record.acceptance)
    payload["filePath"] = record.file_path
    return payload


def _emit_json(payload: Mapping[str, object]) -> None:
    """Emit a JSON payload to stdout with deterministic formatting."""

    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str))


__all__ = ["CLIError", "UnavailableAgent", "build_parser", "parse_overrides", "run_cli"]
