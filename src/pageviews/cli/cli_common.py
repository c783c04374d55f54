"""Common CLI utilities: JSON output, stable exit codes, and audit logging."""

from __future__ import annotations

import functools
import json
import traceback
import uuid
from enum import IntEnum
from pathlib import Path
from typing import Any

import click

from ..config.settings import ConfigError
from ..core.models import ValidationError
from ..core.time import format_utc_iso8601, get_current_utc
from ..dashboard.metrics import DataUnavailableError
from ..maintenance.retention import RetentionError
from ..observability import get_logger
from ..storage.base import StoreUnavailableError

__all__ = [
    "AuditLogger",
    "CLIContext",
    "ExitCode",
    "cli_command",
    "exit_code_for",
    "finish",
    "handle_cli_error",
    "handle_cli_success",
]

logger = get_logger("cli")


class ExitCode(IntEnum):
    """Stable exit codes for CLI commands."""

    SUCCESS = 0  # Successful execution (including "nothing to clean up")
    VALIDATION_ERROR = 2  # Rejected input
    RETENTION_ERROR = 3  # Retention cycle aborted or left raw events behind
    STORE_UNAVAILABLE = 5  # Store could not be read or written
    CONFIG_ERROR = 6  # Configuration error
    UNKNOWN_ERROR = 7  # Unknown/unexpected error


class AuditLogger:
    """Audit trail of command executions, one JSONL file per UTC day."""

    def __init__(self, audit_dir: Path):
        self.audit_dir = audit_dir
        self.audit_dir.mkdir(parents=True, exist_ok=True)

    def log(self, trace_id: str, cmd: str, args: dict[str, Any], result: dict[str, Any]) -> None:
        """Append one command execution to today's audit file.

        Parameters
        ----------
        trace_id
            Trace ID for correlation
        cmd
            Command name (e.g., "retention.run")
        args
            Command arguments
        result
            Command result with status, data, error, etc.
        """
        now = get_current_utc()
        log_file = self.audit_dir / f"audit-{now:%Y-%m-%d}.jsonl"

        audit_entry = {
            "trace_id": trace_id,
            "timestamp": format_utc_iso8601(now),
            "command": cmd,
            "args": args,
            "result": result,
        }

        with open(log_file, "a", encoding="utf-8") as f:
            f.write(json.dumps(audit_entry, ensure_ascii=False, default=str) + "\n")


class CLIContext:
    """Per-command output mode, trace ID and audit trail."""

    def __init__(
        self,
        json_output: bool = False,
        trace_id: str | None = None,
        verbose: bool = False,
    ):
        self.json_output = json_output
        self.trace_id = trace_id or f"trace-{uuid.uuid4().hex[:12]}"
        self.verbose = verbose
        self.audit_logger: AuditLogger | None = None

    def enable_audit(self, log_dir: Path | None) -> None:
        """Write the audit trail under ``log_dir/audit`` (no-op without a log dir)."""
        if log_dir is not None:
            self.audit_logger = AuditLogger(log_dir / "audit")

    def output(
        self, data: Any, status: str = "success", error: str | None = None, meta: dict[str, Any] | None = None
    ) -> None:
        """Output result in appropriate format.

        Parameters
        ----------
        data
            Result data
        status
            "success", "error" or "warning"
        error
            Error message if status is error
        meta
            Additional metadata
        """
        if self.json_output:
            # JSON mode: stdout carries only the JSON document
            result: dict[str, Any] = {"status": status, "trace_id": self.trace_id}

            if error:
                result["error"] = error
            else:
                result["data"] = data

            if meta:
                result["meta"] = meta

            click.echo(json.dumps(result, ensure_ascii=False, indent=2, default=str))
            return

        if status == "error":
            click.echo(f"Error: {error}")
        elif status == "warning":
            click.echo(f"Warning: {data}")
        elif isinstance(data, dict):
            for key, value in data.items():
                click.echo(f"{key}: {value}")
        elif isinstance(data, list):
            for item in data:
                click.echo(f"  - {item}")
        else:
            click.echo(data)

    def log_audit(self, cmd: str, args: dict[str, Any], result: dict[str, Any]) -> None:
        if self.audit_logger is not None:
            self.audit_logger.log(self.trace_id, cmd, args, result)


def cli_command(func):
    """Decorator adding --json, --trace-id and --verbose to a command.

    The wrapped function receives a CLIContext as its first argument.
    """

    @click.option("--json", "json_output", is_flag=True, help="Output as JSON (machine-readable)")
    @click.option("--trace-id", type=str, help="Trace ID for correlation")
    @click.option("--verbose", "-v", is_flag=True, help="Verbose output")
    @functools.wraps(func)
    def wrapper(json_output: bool, trace_id: str | None, verbose: bool, *args: Any, **kwargs: Any) -> Any:
        ctx = CLIContext(json_output=json_output, trace_id=trace_id, verbose=verbose)
        return func(ctx, *args, **kwargs)

    return wrapper


def exit_code_for(exc: Exception) -> ExitCode:
    """Map an exception to its stable exit code."""
    if isinstance(exc, ValidationError | click.BadParameter):
        return ExitCode.VALIDATION_ERROR
    if isinstance(exc, RetentionError):
        return ExitCode.RETENTION_ERROR
    if isinstance(exc, StoreUnavailableError | DataUnavailableError):
        return ExitCode.STORE_UNAVAILABLE
    if isinstance(exc, ConfigError):
        return ExitCode.CONFIG_ERROR
    return ExitCode.UNKNOWN_ERROR


def handle_cli_error(ctx: CLIContext, exc: Exception, cmd: str, args: dict[str, Any]) -> int:
    """Report a failed command and return its exit code."""
    exit_code = exit_code_for(exc)
    error_msg = str(exc)

    result: dict[str, Any] = {
        "status": "error",
        "error": error_msg,
        "error_type": type(exc).__name__,
        "exit_code": int(exit_code),
    }
    meta: dict[str, Any] = {"exit_code": int(exit_code), "error_type": type(exc).__name__}

    if isinstance(exc, RetentionError):
        meta["step"] = exc.step
        result["step"] = exc.step

    if ctx.verbose:
        result["traceback"] = traceback.format_exc()

    if exit_code == ExitCode.UNKNOWN_ERROR:
        logger.exception("Command failed unexpectedly", command=cmd)

    ctx.log_audit(cmd, args, result)
    ctx.output(None, status="error", error=error_msg, meta=meta)

    if ctx.verbose and not ctx.json_output:
        click.echo("\nTraceback:", err=True)
        click.echo(traceback.format_exc(), err=True)

    return int(exit_code)


def handle_cli_success(
    ctx: CLIContext, data: Any, cmd: str, args: dict[str, Any], meta: dict[str, Any] | None = None
) -> int:
    """Report a successful command and return 0."""
    result: dict[str, Any] = {"status": "success", "data": data, "exit_code": 0}

    if meta:
        result["meta"] = meta

    ctx.log_audit(cmd, args, result)
    ctx.output(data, status="success", meta=meta)

    return int(ExitCode.SUCCESS)


def finish(exit_code: int) -> None:
    """Exit the current click command with ``exit_code``."""
    click.get_current_context().exit(int(exit_code))
