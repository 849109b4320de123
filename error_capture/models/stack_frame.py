"""
Stack Frame Model
=================
One entry of a parsed call stack.

Fields:
    function_name    — None when the frame is anonymous
    file_name        — sanitized path (bundler prefixes, query strings and
                       URL schemes removed); empty when the reporter sent none
    line_number      — as reported by the engine
    column_number    — as reported by the engine
    is_local_source  — True when the frame points at project code rather than
                       dependency, native or remote code
    raw              — the original unparsed line
"""
from typing import Optional

from error_capture.models.base import TolerantWireModel


class StackFrame(TolerantWireModel):
    function_name: Optional[str] = None
    file_name: str = ""
    line_number: int = 0
    column_number: int = 0
    is_local_source: bool = False
    raw: Optional[str] = None
