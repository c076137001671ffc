import logging
import threading
from collections import OrderedDict

from jsontree import (
    JsonKind,
    JsonPath,
    MarkedSet,
    drop_at,
    get_at,
    kind_of,
    outline,
    remove_marked,
    replace_at,
    serialize,
    sort_by_name,
    with_new_item,
)
from storage import InvalidJsonError, SaveResult
from validation import ValidationResult, parse_json, validate_json

logger = logging.getLogger(__name__)


class ProtectedNodeError(Exception):
    pass


class UnsavedChangesError(Exception):
    pass


class DocumentSession:
    """One open file: raw text, parsed value, dirty flag and pending deletions.

    Form edits rewrite the raw text straight away. Raw edits are only parsed
    back when the form view is requested again or on save, and only once they
    validate.
    """

    def __init__(self, filename: str, raw: str, content, protected_keys=("Content",),
                 sort_field: str = "Name", indent: int = 2):
        self.filename = filename
        self.baseline_raw = raw
        self.raw_text = raw
        self.structured = content
        self.dirty = False
        self.marked = MarkedSet()
        self.validation_error: ValidationResult | None = None
        self.protected_keys = tuple(protected_keys)
        self.sort_field = sort_field
        self.indent = indent

    @classmethod
    def open(cls, storage, filename: str, **options) -> "DocumentSession":
        loaded = storage.load_file(filename)
        logger.info("Opened %s", filename)
        return cls(loaded["filename"], loaded["raw"], loaded["content"], **options)

    # ----------------------------
    # form edits
    # ----------------------------

    def edit_structured(self, value):
        kind_of(value)
        self.structured = value
        self.raw_text = serialize(value, self.indent)
        self.dirty = True
        self.validation_error = None

    def set_value(self, path: JsonPath, value):
        self.edit_structured(replace_at(self.structured, path, value))

    def add_item(self, path: JsonPath):
        container = get_at(self.structured, path)
        self.edit_structured(replace_at(self.structured, path, with_new_item(container)))

    def remove_field(self, path: JsonPath):
        self.edit_structured(drop_at(self.structured, path))

    # ----------------------------
    # raw edits
    # ----------------------------

    def edit_raw(self, text: str):
        self.raw_text = text
        self.dirty = True
        self.validation_error = None

    def sync_structured(self) -> ValidationResult:
        result = validate_json(self.raw_text)
        if not result.valid:
            self.validation_error = result
            return result
        self.structured = parse_json(self.raw_text)
        self.validation_error = None
        return result

    # ----------------------------
    # marking
    # ----------------------------

    def is_protected(self, path: JsonPath, value=None) -> bool:
        if value is None:
            value = get_at(self.structured, path)
        if kind_of(value) is not JsonKind.ARRAY:
            return False
        return path.is_root() or path.last in self.protected_keys

    def toggle_mark(self, path: JsonPath) -> bool:
        value = get_at(self.structured, path)
        if self.is_protected(path, value):
            logger.warning("Refused to mark protected array %s in %s", path, self.filename)
            raise ProtectedNodeError(f"Cannot delete protected array {path or 'Root Array'}")
        return self.marked.toggle(path)

    # ----------------------------
    # save
    # ----------------------------

    def prepare_save(self) -> str:
        result = validate_json(self.raw_text)
        if not result.valid:
            raise InvalidJsonError(result, self.filename)
        value = parse_json(self.raw_text)
        if self.marked:
            value = remove_marked(value, self.marked)
        return serialize(sort_by_name(value, self.sort_field), self.indent)

    def save(self, storage) -> SaveResult:
        try:
            text = self.prepare_save()
        except InvalidJsonError as e:
            self.validation_error = e.result
            logger.info("Save of %s blocked: %s", self.filename, e.result.error)
            raise
        result = storage.save_file(self.filename, text)
        removed = len(self.marked)
        self.baseline_raw = text
        self.raw_text = text
        self.structured = parse_json(text)
        self.dirty = False
        self.validation_error = None
        self.marked.clear()
        logger.info("Saved %s, %d node(s) removed", self.filename, removed)
        return result

    # ----------------------------
    # browser view
    # ----------------------------

    def to_dict(self, hidden_keys=()) -> dict:
        return {
            "filename": self.filename,
            "raw": self.raw_text,
            "dirty": self.dirty,
            "marked": self.marked.display(),
            "validation": self.validation_error.to_dict() if self.validation_error else None,
            "outline": outline(self.structured, self.marked, self.is_protected, hidden_keys),
        }


class EditorSessions:
    """Open documents keyed by browser session id.

    Requests may arrive on several threads, so every access takes the lock.
    Only the newest max_sessions ids are kept; opening one more drops the
    least recently used.
    """

    def __init__(self, max_sessions: int = 64, **options):
        self._sessions: OrderedDict[str, DocumentSession] = OrderedDict()
        self._lock = threading.Lock()
        self.max_sessions = max(1, int(max_sessions))
        self._options = options

    def get(self, sid: str) -> DocumentSession | None:
        with self._lock:
            session = self._sessions.get(sid)
            if session is not None:
                self._sessions.move_to_end(sid)
            return session

    def open(self, sid: str, storage, filename: str, discard: bool = False) -> DocumentSession:
        with self._lock:
            current = self._sessions.get(sid)
            if current is not None and current.dirty and not discard:
                raise UnsavedChangesError(f"{current.filename} has unsaved changes")
            # a failed load leaves the current session in place
            session = DocumentSession.open(storage, filename, **self._options)
            if current is not None and current.dirty:
                logger.info("Discarded unsaved changes to %s", current.filename)
            self._sessions[sid] = session
            self._sessions.move_to_end(sid)
            while len(self._sessions) > self.max_sessions:
                _, dropped = self._sessions.popitem(last=False)
                logger.info("Dropped idle session for %s%s", dropped.filename,
                            " (unsaved changes lost)" if dropped.dirty else "")
            return session

    def close(self, sid: str):
        with self._lock:
            self._sessions.pop(sid, None)

    def __contains__(self, sid):
        with self._lock:
            return sid in self._sessions

    def __len__(self):
        with self._lock:
            return len(self._sessions)
