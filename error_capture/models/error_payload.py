"""
Error Diagnostic Payload Model
==============================
Pydantic models for one captured runtime error occurrence.
This is the contract between the browser reporter, the store and every
downstream consumer (HTTP queries, CLI rendering, JSON export).

Sections:
    error      — message, name, raw stack, parsed frames, optional code
    component  — which UI component produced the error (all nullable)
    runtime    — user agent, viewport, page URL, framework version, dev flag
    state      — depth-bounded snapshot of public component properties
    source     — the single most relevant location
    metadata   — severity, handled flag, occurrence count, tags

Only errorId, timestamp, error.message, error.name and error.sanitizedStack
are required. Every other field falls back to its default when it is
missing or does not validate (null user agent, unknown severity, a frame
without a file name), so that a loosely-typed report is still stored and
queried. Non-object entries in sanitizedStack are dropped.

occurrence_count is owned by ErrorStore: submitted values below 1 are
normalized to 1 and the store is the only writer afterwards.
"""
from typing import Any, Dict, List, Literal, Optional

from pydantic import AliasChoices, Field, StrictStr, field_validator

from error_capture.core.constants import MAX_STATE_DEPTH
from error_capture.models.base import TolerantWireModel, WireModel
from error_capture.models.stack_frame import StackFrame

Severity = Literal["error", "warning", "fatal"]

_MAX_DEPTH_MARKER = "[MaxDepth]"


def _bound_depth(value: Any, depth: int) -> Any:
    """Replace containers nested deeper than ``depth`` with a marker string."""
    if isinstance(value, dict):
        if depth <= 0:
            return _MAX_DEPTH_MARKER
        return {str(k): _bound_depth(v, depth - 1) for k, v in value.items()}
    if isinstance(value, list):
        if depth <= 0:
            return _MAX_DEPTH_MARKER
        return [_bound_depth(v, depth - 1) for v in value]
    return value


class ErrorDetails(TolerantWireModel):
    message: StrictStr
    name: StrictStr
    stack: str = ""
    sanitized_stack: List[StackFrame]
    code: Optional[str] = None

    @field_validator("sanitized_stack", mode="before")
    @classmethod
    def _drop_non_object_frames(cls, v: Any) -> Any:
        if isinstance(v, list):
            return [frame for frame in v if isinstance(frame, (dict, StackFrame))]
        return v


class ComponentContext(TolerantWireModel):
    name: Optional[str] = None
    namespace: Optional[str] = None
    tag_name: Optional[str] = None
    lifecycle: Optional[str] = None
    file_path: Optional[str] = None


class Viewport(TolerantWireModel):
    width: int = 0
    height: int = 0


class RuntimeContext(TolerantWireModel):
    user_agent: str = ""
    viewport: Viewport = Field(default_factory=Viewport)
    url: str = ""
    framework_version: Optional[str] = Field(
        default=None,
        alias="frameworkVersion",
        validation_alias=AliasChoices("frameworkVersion", "lwcVersion", "framework_version"),
    )
    is_development: bool = True


class StateSnapshot(TolerantWireModel):
    props: Optional[Dict[str, Any]] = None
    public_properties: List[str] = []
    is_connected: bool = False

    @field_validator("props", mode="after")
    @classmethod
    def _limit_depth(cls, v: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        if v is None:
            return None
        return _bound_depth(v, MAX_STATE_DEPTH)


class SourceLocation(TolerantWireModel):
    file_name: Optional[str] = None
    line_number: Optional[int] = None
    column_number: Optional[int] = None


class ErrorMetadata(TolerantWireModel):
    severity: Severity = "error"
    was_handled: bool = False
    occurrence_count: int = 1
    tags: List[str] = []

    @field_validator("occurrence_count", mode="after")
    @classmethod
    def _at_least_one(cls, v: int) -> int:
        return max(v, 1)


class ErrorDiagnosticPayload(TolerantWireModel):
    error_id: StrictStr
    timestamp: StrictStr
    error: ErrorDetails
    component: ComponentContext = Field(default_factory=ComponentContext)
    runtime: RuntimeContext = Field(default_factory=RuntimeContext)
    state: StateSnapshot = Field(default_factory=StateSnapshot)
    source: SourceLocation = Field(default_factory=SourceLocation)
    metadata: ErrorMetadata = Field(default_factory=ErrorMetadata)


class ErrorStatistics(WireModel):
    total_errors: int = 0
    total_occurrences: int = 0
    by_component: Dict[str, int] = {}
    by_severity: Dict[str, int] = {}


class ErrorCaptureConfig(WireModel):
    """Settings handed to the browser-side reporter."""
    enabled: bool = True
    server_url: str
    log_to_console: bool = True
    max_stack_depth: int = 50
    max_stored_errors: int = 1000
    debounce_time: int = 100
