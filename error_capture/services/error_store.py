"""
Error Store
===========
Bounded, deduplicating, insertion-ordered in-memory store for captured
runtime errors.

Identity:
    Entries are keyed by errorId. Two payloads are the *same logical error*
    when their signatures match:
        message|componentName|fileName|lineNumber
    ("unknown" replaces a missing component or file name, 0 a missing line).

Deduplication:
    - A payload whose signature is already stored is merged, not inserted:
      occurrence_count += 1 and timestamp is refreshed to the newest value.
    - The first occurrence's message and stack are kept.

Eviction:
    - Capacity is fixed at construction (default 1000).
    - Inserting a new signature into a full store evicts exactly one entry,
      the oldest by insertion (FIFO, not LRU).

Ownership:
    - The store owns every payload it accepts; callers must not mutate a
      payload after add_error().
    - In-memory only; nothing survives the process.

Sharing:
    There is no module-level instance. Build one store at startup and pass it
    to every consumer (middleware, health route, CLI rendering). A lock guards
    all reads and writes because the store may be shared with code on other
    threads; the capture server itself serves on the caller's event loop.
"""
import json
import logging
import threading
from typing import Optional

from error_capture.core.constants import DEFAULT_MAX_STORED_ERRORS
from error_capture.models.error_payload import ErrorDiagnosticPayload, ErrorStatistics
from error_capture.parser.payload_validator import decode_error_payload

logger = logging.getLogger(__name__)


def get_error_signature(payload: ErrorDiagnosticPayload) -> str:
    """
    Derive the deduplication key for a payload.

    Returns
    -------
    str
        ``message|componentName|fileName|lineNumber``.
    """
    component_name = payload.component.name if payload.component.name is not None else "unknown"
    file_name = payload.source.file_name if payload.source.file_name is not None else "unknown"
    line_number = payload.source.line_number if payload.source.line_number is not None else 0
    return f"{payload.error.message}|{component_name}|{file_name}|{line_number}"


class ErrorStore:
    """
    In-memory store of captured errors.

    Usage:
        store = ErrorStore(max_size=500)
        store.add_error(payload)
        store.get_recent_errors(10)
    """

    def __init__(self, max_size: int = DEFAULT_MAX_STORED_ERRORS) -> None:
        if max_size < 1:
            raise ValueError(f"max_size must be >= 1, got {max_size}")
        self.max_size = max_size
        # errorId → payload, in insertion order
        self._errors: dict[str, ErrorDiagnosticPayload] = {}
        # signature → errorId of the live entry carrying it
        self._signatures: dict[str, str] = {}
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------
    def add_error(self, payload: ErrorDiagnosticPayload) -> None:
        """
        Add a payload, merging it into an existing entry with the same signature.

        Parameters
        ----------
        payload : ErrorDiagnosticPayload
            The captured error. Ownership passes to the store.
        """
        signature = get_error_signature(payload)

        with self._lock:
            existing_id = self._signatures.get(signature)
            if existing_id is not None:
                existing = self._errors[existing_id]
                existing.metadata.occurrence_count += 1
                existing.timestamp = payload.timestamp
                return

            replaced = self._errors.get(payload.error_id)
            if replaced is not None:
                # Same errorId, new signature: replace in place
                self._signatures.pop(get_error_signature(replaced), None)
            elif len(self._errors) >= self.max_size:
                self._evict_oldest()

            self._errors[payload.error_id] = payload
            self._signatures[signature] = payload.error_id

    def _evict_oldest(self) -> None:
        oldest_id = next(iter(self._errors), None)
        if oldest_id is None:
            return
        evicted = self._errors.pop(oldest_id)
        self._signatures.pop(get_error_signature(evicted), None)
        logger.debug("Evicted oldest error %s (capacity %d reached)", oldest_id, self.max_size)

    def clear_errors(self) -> int:
        """Drop every stored error and return how many were removed."""
        with self._lock:
            count = len(self._errors)
            self._errors.clear()
            self._signatures.clear()
            return count

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get_error(self, error_id: str) -> Optional[ErrorDiagnosticPayload]:
        with self._lock:
            return self._errors.get(error_id)

    def get_errors(self) -> list[ErrorDiagnosticPayload]:
        """Snapshot of all errors in insertion order."""
        with self._lock:
            return list(self._errors.values())

    def get_errors_by_component(self, component_name: str) -> list[ErrorDiagnosticPayload]:
        return [e for e in self.get_errors() if e.component.name == component_name]

    def get_errors_by_severity(self, severity: str) -> list[ErrorDiagnosticPayload]:
        return [e for e in self.get_errors() if e.metadata.severity == severity]

    def get_recent_errors(self, count: int) -> list[ErrorDiagnosticPayload]:
        """
        The last ``count`` errors by insertion order (not by timestamp).

        Returns an empty list when ``count`` is zero or negative.
        """
        if count <= 0:
            return []
        return self.get_errors()[-count:]

    def get_error_count(self) -> int:
        with self._lock:
            return len(self._errors)

    def get_statistics(self) -> ErrorStatistics:
        """
        Aggregate counts over the stored errors.

        Returns
        -------
        ErrorStatistics
            total_errors       — number of unique entries
            total_occurrences  — sum of occurrence_count
            by_component       — entries per component ("unknown" for None)
            by_severity        — entries per severity
        """
        stats = ErrorStatistics()
        for error in self.get_errors():
            stats.total_errors += 1
            stats.total_occurrences += error.metadata.occurrence_count

            component_name = error.component.name if error.component.name is not None else "unknown"
            stats.by_component[component_name] = stats.by_component.get(component_name, 0) + 1

            severity = error.metadata.severity
            stats.by_severity[severity] = stats.by_severity.get(severity, 0) + 1
        return stats

    # ------------------------------------------------------------------
    # JSON round trip
    # ------------------------------------------------------------------
    def export_as_json(self) -> str:
        """Serialize all errors as a pretty-printed JSON array (camelCase keys)."""
        return json.dumps([e.to_wire() for e in self.get_errors()], indent=2)

    def import_from_json(self, text: str) -> int:
        """
        Feed a JSON array of payloads back through add_error().

        Imported entries follow the same dedup and eviction rules as live
        ingestion. Elements that fail payload decoding are skipped.

        Returns
        -------
        int
            Number of array elements attempted (not the number retained).
            0 when the text is not valid JSON or not an array.
        """
        try:
            items = json.loads(text)
        except (TypeError, ValueError) as e:
            logger.warning("Ignoring error import: invalid JSON (%s)", e)
            return 0

        if not isinstance(items, list):
            logger.warning("Ignoring error import: expected a JSON array, got %s", type(items).__name__)
            return 0

        for index, item in enumerate(items):
            result = decode_error_payload(item)
            if not result.ok:
                logger.warning("Skipping imported error #%d: %s", index, "; ".join(result.errors))
                continue
            self.add_error(result.payload)

        return len(items)

    def __len__(self) -> int:
        return self.get_error_count()
