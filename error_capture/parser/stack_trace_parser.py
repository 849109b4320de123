"""
Stack Trace Parser
==================
Converts raw, engine-specific stack-trace strings into ordered StackFrame
objects and classifies each frame as local project source or foreign code.

Pipeline:
    1. Split the trace into lines
    2. Try each line against the frame matchers, in priority order
    3. Sanitize the file name (bundler prefixes, query strings, URL schemes)
    4. Classify the frame as local source or dependency/native/remote code

Supported line shapes (first match wins):
    A. "at fn (file:line:col)" or "at file:line:col"
    B. "fn@file:line:col"
    C. "fn@[native code]" or "fn@<location ending in file:line:col>"
    D. "file:line:col"

Contract:
    - Pure string processing, no filesystem or network access.
    - Tolerant: lines matching no shape are dropped, never raised on.
    - sanitize_file_name is idempotent.
"""
import os
import re
from dataclasses import dataclass
from typing import Callable, Optional
from urllib.parse import urlparse

from error_capture.core.constants import DEPENDENCY_MARKERS, LIFECYCLE_HOOKS
from error_capture.models.stack_frame import StackFrame

NATIVE_CODE = "[native code]"
ANONYMOUS = "<anonymous>"


# ---------------------------------------------------------------------------
# Frame Matchers
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class _FrameParts:
    """Internal: the pieces of a frame before sanitization."""
    function_name: Optional[str]
    file_name: str
    line_number: int
    column_number: int


def _function_or_none(name: Optional[str]) -> Optional[str]:
    if name is None:
        return None
    return name.strip() or None


_AT_FORMAT = re.compile(r"^\s*at\s+(?:(.+?)\s+\()?(.+?):(\d+):(\d+)\)?$")
_AT_SIGN_FORMAT = re.compile(r"^(.+?)@(.+?):(\d+):(\d+)$")
_AT_SIGN_LOCATION = re.compile(r"^(.+?)@(.+?)$")
_LOCATION_SUFFIX = re.compile(r"(.+?):(\d+):(\d+)$")
_BARE_LOCATION = re.compile(r"^(.+?):(\d+):(\d+)$")


def _match_at_format(line: str) -> Optional[_FrameParts]:
    m = _AT_FORMAT.match(line)
    if not m:
        return None
    return _FrameParts(_function_or_none(m.group(1)), m.group(2), int(m.group(3)), int(m.group(4)))


def _match_at_sign_format(line: str) -> Optional[_FrameParts]:
    m = _AT_SIGN_FORMAT.match(line)
    if not m:
        return None
    return _FrameParts(_function_or_none(m.group(1)), m.group(2), int(m.group(3)), int(m.group(4)))


def _match_at_sign_location(line: str) -> Optional[_FrameParts]:
    m = _AT_SIGN_LOCATION.match(line)
    if not m:
        return None
    function_name = _function_or_none(m.group(1))
    location = m.group(2)

    if location == NATIVE_CODE:
        return _FrameParts(function_name, NATIVE_CODE, 0, 0)

    loc = _LOCATION_SUFFIX.search(location)
    if not loc:
        return None
    return _FrameParts(function_name, loc.group(1), int(loc.group(2)), int(loc.group(3)))


def _match_bare_location(line: str) -> Optional[_FrameParts]:
    m = _BARE_LOCATION.match(line)
    if not m:
        return None
    return _FrameParts(None, m.group(1), int(m.group(2)), int(m.group(3)))


@dataclass(frozen=True)
class FrameMatcher:
    """A named line shape. ``match`` returns None when the line does not fit."""
    name: str
    match: Callable[[str], Optional[_FrameParts]]


# Priority order matters: the first matcher that accepts a line wins.
FRAME_MATCHERS: tuple[FrameMatcher, ...] = (
    FrameMatcher("at", _match_at_format),
    FrameMatcher("at_sign", _match_at_sign_format),
    FrameMatcher("at_sign_location", _match_at_sign_location),
    FrameMatcher("bare_location", _match_bare_location),
)


# ---------------------------------------------------------------------------
# File Name Sanitization
# ---------------------------------------------------------------------------
_BUNDLER_PREFIXES = ("webpack:///", "webpack-internal:///")


def _sanitize_once(file_name: str) -> str:
    sanitized = file_name
    for prefix in _BUNDLER_PREFIXES:
        sanitized = sanitized.replace(prefix, "")

    sanitized = sanitized.split("?", 1)[0]
    sanitized = sanitized.split("#", 1)[0]

    if sanitized.startswith("file://"):
        try:
            sanitized = urlparse(sanitized).path
        except ValueError:
            sanitized = sanitized[len("file://"):]

    if sanitized.startswith(("http://", "https://")):
        try:
            sanitized = urlparse(sanitized).path
        except ValueError:
            # Malformed URL (e.g. broken IPv6 host): keep it as reported
            pass

    return sanitized


def sanitize_file_name(file_name: str) -> str:
    """
    Remove bundler artifacts from a stack-frame file name.

    Steps:
        1. Strip webpack:/// and webpack-internal:/// prefixes
        2. Cut at the first "?" (query string) and "#" (fragment)
        3. Reduce file:// URLs to their filesystem path
        4. Reduce http(s):// URLs to their path component

    Every step only shortens the string, so the transform is repeated until
    nothing changes; the result is therefore a fixed point and applying the
    function again returns the same value.
    """
    if not file_name:
        return file_name

    current = file_name
    while True:
        cleaned = _sanitize_once(current)
        if cleaned == current:
            return cleaned
        current = cleaned


# ---------------------------------------------------------------------------
# Local Source Classification
# ---------------------------------------------------------------------------
def _is_within(path: str, root: str) -> bool:
    """Containment via relative path, so /root-extra is not inside /root."""
    try:
        relative = os.path.relpath(path, root)
    except ValueError:
        # Different drives on Windows
        return False
    return relative != os.pardir and not relative.startswith(os.pardir + os.sep)


def is_local_source(file_name: str, project_root: Optional[str] = None) -> bool:
    """
    Decide whether a frame's file belongs to the project.

    Returns False for dependency directories, native/anonymous/eval frames
    and remote URLs. With ``project_root`` the sanitized path must resolve
    inside it; without one, anything that does not look external counts as
    local.
    """
    if not file_name:
        return False

    sanitized = sanitize_file_name(file_name)

    if any(marker in sanitized for marker in DEPENDENCY_MARKERS):
        return False

    if NATIVE_CODE in sanitized or sanitized.startswith(ANONYMOUS) or sanitized.startswith("eval at"):
        return False

    if sanitized.startswith(("http://", "https://")):
        return False

    if project_root:
        root = os.path.abspath(project_root)
        if os.path.isabs(sanitized):
            absolute = os.path.normpath(sanitized)
        else:
            absolute = os.path.normpath(os.path.join(root, sanitized))
        return _is_within(absolute, root)

    return not sanitized.startswith("http") and not sanitized.startswith("[")


# ---------------------------------------------------------------------------
# Public API: Parsing
# ---------------------------------------------------------------------------
def parse_stack_frame(line: str, project_root: Optional[str] = None) -> Optional[StackFrame]:
    """
    Parse a single stack-trace line.

    Returns None when no known shape matches; callers treat that as
    "not a frame" rather than an error.
    """
    trimmed = line.strip()
    if not trimmed:
        return None

    for matcher in FRAME_MATCHERS:
        parts = matcher.match(trimmed)
        if parts is None:
            continue
        return StackFrame(
            function_name=parts.function_name,
            file_name=sanitize_file_name(parts.file_name),
            line_number=parts.line_number,
            column_number=parts.column_number,
            is_local_source=is_local_source(parts.file_name, project_root),
            raw=trimmed,
        )

    return None


def parse_stack_trace(stack: str, project_root: Optional[str] = None) -> list[StackFrame]:
    """
    Parse a full stack trace into frames, preserving input order.

    Header lines such as "TypeError: boom" and anything else that is not a
    frame are skipped, so a partially garbled trace still yields the frames
    that could be read.
    """
    if not stack:
        return []

    frames: list[StackFrame] = []
    for line in stack.splitlines():
        frame = parse_stack_frame(line, project_root)
        if frame is not None:
            frames.append(frame)
    return frames


# ---------------------------------------------------------------------------
# Frame Inspection Helpers
# ---------------------------------------------------------------------------
_COMPONENT_IN_FILE = re.compile(r"([a-z]+-[a-z-]+)\.js", re.IGNORECASE)
_COMPONENT_IN_FUNCTION = re.compile(r"([a-z]+-[a-z-]+)", re.IGNORECASE)


def extract_component_name_from_stack(frames: list[StackFrame]) -> Optional[str]:
    """Return the first "namespace-component-name" found in file or function names."""
    for frame in frames:
        file_match = _COMPONENT_IN_FILE.search(frame.file_name)
        if file_match:
            return file_match.group(1)

        if frame.function_name:
            func_match = _COMPONENT_IN_FUNCTION.search(frame.function_name)
            if func_match:
                return func_match.group(1)

    return None


def extract_lifecycle_hook_from_stack(frames: list[StackFrame]) -> Optional[str]:
    """Return the first lifecycle hook whose name appears in a frame's function name."""
    for frame in frames:
        if not frame.function_name:
            continue
        lowered = frame.function_name.lower()
        for hook in LIFECYCLE_HOOKS:
            if hook.lower() in lowered:
                return hook
    return None


def filter_local_frames(frames: list[StackFrame]) -> list[StackFrame]:
    return [frame for frame in frames if frame.is_local_source]


def format_stack_frame(frame: StackFrame) -> str:
    function_name = frame.function_name or ANONYMOUS
    return f"{function_name} ({frame.file_name}:{frame.line_number}:{frame.column_number})"


def format_stack_trace(frames: list[StackFrame]) -> str:
    return "\n".join(
        f"  {index}. {format_stack_frame(frame)}" for index, frame in enumerate(frames, start=1)
    )
