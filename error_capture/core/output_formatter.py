"""
Output Formatter
================
Renders captured errors and store statistics for the terminal.

DETERMINISM CONTRACT:
  - Pure string building: this module never writes to stdout/stderr,
    never logs and never reads environment variables.
  - Colour is a parameter. With colorize=False every escape sequence is
    replaced by the empty string (NO_COLOR palette) so output is safe for
    files, pipes and non-TTY logs.
  - The only environment-dependent piece is the local wall-clock rendering
    of the ISO-8601 timestamp.

Renderers:
    format_error_for_cli     — multi-line block for one error
    format_error_compact     — one-line summary for one error
    format_error_summary     — errors grouped by component
    format_error_statistics  — ErrorStore.get_statistics() as text
    format_error_as_json     — payload as JSON for log shippers
"""
import json
from dataclasses import dataclass, fields
from datetime import datetime

from error_capture.models.error_payload import ErrorDiagnosticPayload, ErrorStatistics
from error_capture.models.stack_frame import StackFrame
from error_capture.parser.stack_trace_parser import ANONYMOUS, filter_local_frames


# ---------------------------------------------------------------------------
# Glyphs
# ---------------------------------------------------------------------------
CROSS = "✖"
WARNING_SIGN = "⚠"
CHECK = "✓"
BULLET = "•"
SEPARATOR = "─" * 80

# Maximum compact lines shown per component in a summary
SUMMARY_ERRORS_PER_COMPONENT = 3


# ---------------------------------------------------------------------------
# Colour Palettes
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class ColorPalette:
    reset: str = "\x1b[0m"
    bright: str = "\x1b[1m"
    dim: str = "\x1b[2m"
    red: str = "\x1b[31m"
    green: str = "\x1b[32m"
    yellow: str = "\x1b[33m"
    blue: str = "\x1b[34m"
    magenta: str = "\x1b[35m"
    cyan: str = "\x1b[36m"
    white: str = "\x1b[37m"
    gray: str = "\x1b[90m"
    bg_red: str = "\x1b[41m"
    bg_yellow: str = "\x1b[43m"


COLORS = ColorPalette()
NO_COLOR = ColorPalette(**{f.name: "" for f in fields(ColorPalette)})


def palette_for(colorize: bool) -> ColorPalette:
    return COLORS if colorize else NO_COLOR


# ---------------------------------------------------------------------------
# Small Helpers
# ---------------------------------------------------------------------------
def _local_time(timestamp: str) -> str:
    """HH:MM:SS in local time; the raw value if it is not ISO-8601."""
    try:
        parsed = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        return timestamp
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone()
    return parsed.strftime("%H:%M:%S")


def _severity_badge(severity: str, c: ColorPalette) -> str:
    if severity == "fatal":
        return f"{c.bg_red}{c.white} FATAL {c.reset}"
    if severity == "error":
        return f"{c.red}{CROSS}{c.reset}"
    if severity == "warning":
        return f"{c.yellow}{WARNING_SIGN}{c.reset}"
    return BULLET


def _format_frame(frame: StackFrame, index: int, c: ColorPalette) -> str:
    function_name = frame.function_name or ANONYMOUS
    location = f"{frame.file_name}:{frame.line_number}:{frame.column_number}"
    if frame.is_local_source:
        return f"  {c.gray}{index}.{c.reset} {c.bright}{function_name}{c.reset} {c.dim}({location}){c.reset}"
    return f"  {c.gray}{index}. {function_name} ({location}){c.reset}"


# ---------------------------------------------------------------------------
# Single Error
# ---------------------------------------------------------------------------
def format_error_for_cli(
    payload: ErrorDiagnosticPayload,
    show_full_stack: bool = False,
    colorize: bool = True,
    compact: bool = False,
) -> str:
    """
    Render one error as a multi-line terminal block.

    Layout:
        <badge> <ErrorName> [HH:MM:SS]
        <message>
        Component / Lifecycle      (when a component name is known)
        Location                   (when a source file is known)
        Stack Trace                (omitted when compact=True)
        occurrence footer          (when occurrence_count > 1)
        separator

    Parameters
    ----------
    payload : ErrorDiagnosticPayload
        The error to render.
    show_full_stack : bool
        Include framework/library frames. By default only local frames are
        listed and the hidden ones are counted.
    colorize : bool
        Emit ANSI colour codes.
    compact : bool
        Skip the stack trace section.
    """
    c = palette_for(colorize)
    error = payload.error
    lines: list[str] = []

    lines.append("")
    lines.append(
        f"{_severity_badge(payload.metadata.severity, c)} {c.bright}{error.name}{c.reset} "
        f"{c.gray}[{_local_time(payload.timestamp)}]{c.reset}"
    )
    lines.append(f"{c.red}{error.message}{c.reset}")
    lines.append("")

    if payload.component.name:
        lines.append(f"{c.cyan}Component:{c.reset} {c.bright}{payload.component.name}{c.reset}")
        if payload.component.lifecycle:
            lines.append(f"{c.cyan}Lifecycle:{c.reset} {payload.component.lifecycle}")
        lines.append("")

    source = payload.source
    if source.file_name:
        location = f"{source.file_name}:{source.line_number or 0}:{source.column_number or 0}"
        lines.append(f"{c.cyan}Location:{c.reset} {location}")
        lines.append("")

    if not compact:
        all_frames = error.sanitized_stack
        frames = all_frames if show_full_stack else filter_local_frames(all_frames)

        if frames:
            lines.append(f"{c.cyan}Stack Trace:{c.reset}")
            for index, frame in enumerate(frames, start=1):
                lines.append(_format_frame(frame, index, c))

            hidden = len(all_frames) - len(frames)
            if not show_full_stack and hidden > 0:
                lines.append(f"{c.gray}  ... {hidden} more frames (framework/library code){c.reset}")
            lines.append("")

    count = payload.metadata.occurrence_count
    if count > 1:
        lines.append(
            f"{c.yellow}{WARNING_SIGN}{c.reset}  {c.gray}This error occurred "
            f"{c.bright}{count}{c.reset}{c.gray} times{c.reset}"
        )
        lines.append("")

    lines.append(f"{c.gray}{SEPARATOR}{c.reset}")
    return "\n".join(lines)


def format_error_compact(payload: ErrorDiagnosticPayload, colorize: bool = True) -> str:
    """One line: ``✖ Name: message (component @ file:line) [HH:MM:SS]``."""
    c = palette_for(colorize)
    component = payload.component.name or "unknown"
    if payload.source.file_name:
        location = f"{payload.source.file_name}:{payload.source.line_number or 0}"
    else:
        location = "unknown"

    return (
        f"{c.red}{CROSS}{c.reset} {c.bright}{payload.error.name}{c.reset}: {payload.error.message} "
        f"{c.gray}({component} @ {location}) [{_local_time(payload.timestamp)}]{c.reset}"
    )


def format_error_as_json(payload: ErrorDiagnosticPayload, pretty: bool = False) -> str:
    if pretty:
        return json.dumps(payload.to_wire(), indent=2)
    return json.dumps(payload.to_wire(), separators=(",", ":"))


# ---------------------------------------------------------------------------
# Collections
# ---------------------------------------------------------------------------
def format_error_summary(payloads: list[ErrorDiagnosticPayload], colorize: bool = True) -> str:
    """
    Group errors by component and show up to three compact lines per group.

    An empty list renders a single "No errors captured" line.
    """
    c = palette_for(colorize)

    if not payloads:
        return f"{c.green}{CHECK}{c.reset} No errors captured"

    lines: list[str] = [
        "",
        f"{c.bright}Error Summary{c.reset} {c.gray}({len(payloads)} total){c.reset}",
        f"{c.gray}{SEPARATOR}{c.reset}",
        "",
    ]

    # dict preserves first-seen component order
    by_component: dict[str, list[ErrorDiagnosticPayload]] = {}
    for payload in payloads:
        by_component.setdefault(payload.component.name or "unknown", []).append(payload)

    for component, errors in by_component.items():
        lines.append(f"{c.cyan}{component}{c.reset} {c.gray}({len(errors)} errors){c.reset}")
        for payload in errors[:SUMMARY_ERRORS_PER_COMPONENT]:
            lines.append(f"  {format_error_compact(payload, colorize)}")
        overflow = len(errors) - SUMMARY_ERRORS_PER_COMPONENT
        if overflow > 0:
            lines.append(f"  {c.gray}... {overflow} more errors{c.reset}")
        lines.append("")

    return "\n".join(lines)


def format_error_statistics(stats: ErrorStatistics, colorize: bool = True) -> str:
    """Render the shape returned by ErrorStore.get_statistics()."""
    c = palette_for(colorize)
    by_severity = stats.by_severity

    lines: list[str] = [
        "",
        f"{c.bright}Error Statistics{c.reset}",
        f"{c.gray}{SEPARATOR}{c.reset}",
        "",
        f"Total Errors: {c.bright}{stats.total_errors}{c.reset}",
        f"Total Occurrences: {c.bright}{stats.total_occurrences}{c.reset}",
        "",
        f"{c.cyan}By Severity:{c.reset}",
        f"  Fatal: {c.red}{by_severity.get('fatal', 0)}{c.reset}",
        f"  Error: {c.yellow}{by_severity.get('error', 0)}{c.reset}",
        f"  Warning: {c.yellow}{by_severity.get('warning', 0)}{c.reset}",
        "",
    ]

    if stats.by_component:
        lines.append(f"{c.cyan}By Component:{c.reset}")
        for component, count in stats.by_component.items():
            lines.append(f"  {component}: {c.bright}{count}{c.reset}")
        lines.append("")

    return "\n".join(lines)


def format_console_banner(payload: ErrorDiagnosticPayload, colorize: bool = True) -> str:
    """Heading printed above a freshly captured error on the dev console."""
    c = palette_for(colorize)
    return f"\n{c.red}[ErrorCapture]{c.reset} Runtime error detected: {c.bright}{payload.error_id}{c.reset}\n"
