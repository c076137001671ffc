import logging
import os
import re
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from urllib.parse import urlparse

from werkzeug.utils import secure_filename

from jsontree import serialize
from validation import ValidationResult, parse_json, validate_json

logger = logging.getLogger(__name__)

_STAMP_FORMAT = "%Y-%m-%dT%H-%M-%S"
_BACKUP_NAME_RE = re.compile(
    r"^(?P<stem>.+?)_(?:pre-restore_)?(?P<stamp>\d{4}-\d{2}-\d{2}T\d{2}-\d{2}-\d{2})(?:_(?P<n>\d+))?\.json$"
)


class StorageError(Exception):
    pass


class FileNotFoundInStorage(StorageError):
    pass


class InvalidFilename(StorageError):
    pass


class InvalidJsonError(StorageError):

    def __init__(self, result: ValidationResult, filename: str | None = None):
        self.result = result
        self.filename = filename
        where = f" in {filename}" if filename else ""
        super().__init__(f"Invalid JSON{where}: {result.error}")


class InvalidSettings(StorageError):
    pass


class UnencodableText(StorageError):
    pass


@dataclass(frozen=True)
class FileInfo:
    name: str
    size: int
    last_modified: str
    display_name: str | None = None
    url: str | None = None

    def to_dict(self) -> dict:
        out = {"name": self.name, "size": self.size, "lastModified": self.last_modified}
        if self.display_name is not None:
            out["displayName"] = self.display_name
        if self.url is not None:
            out["url"] = self.url
        return out


@dataclass(frozen=True)
class BackupInfo:
    name: str
    original_file: str
    size: int
    created_at: str

    def to_dict(self) -> dict:
        return {"name": self.name, "originalFile": self.original_file,
                "path": f"backup/{self.name}", "size": self.size, "createdAt": self.created_at}


@dataclass(frozen=True)
class SaveResult:
    filename: str
    backup_path: str | None
    success: bool = True

    def to_dict(self) -> dict:
        return {"success": self.success, "filename": self.filename, "backupPath": self.backup_path}


@dataclass(frozen=True)
class SettingsEntry:
    filename: str
    title: str | None = None
    url: str | None = None

    def to_dict(self) -> dict:
        out = {"filename": self.filename}
        if self.title:
            out["title"] = self.title
        if self.url:
            out["url"] = self.url
        return out


def _iso(ts: datetime) -> str:
    return ts.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


def atomic_write_text(path: Path, text: str):
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=path.name + ".", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, str(path))
    finally:
        if os.path.exists(tmp):
            os.remove(tmp)


def _clean_text(value) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidSettings("title and url must be strings")
    return value.strip() or None


def _valid_url(url: str) -> bool:
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


class JsonStorage:
    """JSON documents in one directory, with timestamped backups beside them."""

    def __init__(self, data_dir, backup_dir: str = "backup", settings_file: str = "settings.json",
                 clock=None):
        self.data_dir = Path(data_dir).resolve()
        self.backup_dir = self.data_dir / backup_dir
        self.settings_path = self.data_dir / settings_file
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def ensure_directories(self):
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.backup_dir.mkdir(parents=True, exist_ok=True)

    def _checked_name(self, filename: str) -> str:
        if not isinstance(filename, str) or not filename:
            raise InvalidFilename("Filename is required")
        clean = secure_filename(filename)
        if clean != filename or not clean.lower().endswith(".json"):
            raise InvalidFilename(f"Invalid filename: {filename}")
        if clean == self.settings_path.name:
            raise InvalidFilename(f"{filename} is reserved")
        return clean

    def _file_path(self, filename: str) -> Path:
        candidate = (self.data_dir / self._checked_name(filename)).resolve()
        try:
            candidate.relative_to(self.data_dir)
        except ValueError:
            raise InvalidFilename(f"Invalid filename: {filename}") from None
        return candidate

    def _backup_file_path(self, filename: str, backup_name: str) -> Path:
        stem = Path(self._checked_name(filename)).stem
        m = _BACKUP_NAME_RE.match(backup_name or "")
        if secure_filename(backup_name or "") != backup_name or not m or m.group("stem") != stem:
            raise InvalidFilename(f"Invalid backup name: {backup_name}")
        path = self.backup_dir / backup_name
        if not path.is_file():
            raise FileNotFoundInStorage(f"Backup not found: {backup_name}")
        return path

    # ----------------------------
    # documents
    # ----------------------------

    def list_files(self) -> list[FileInfo]:
        self.ensure_directories()
        files = []
        for entry in self.data_dir.iterdir():
            if not entry.is_file() or not entry.name.endswith(".json"):
                continue
            if entry.name == self.settings_path.name:
                continue
            if secure_filename(entry.name) != entry.name:
                logger.debug("Skipping %s: unsafe filename", entry.name)
                continue
            try:
                st = entry.stat()
            except OSError as e:
                logger.warning("Could not stat %s: %s", entry.name, e)
                continue
            files.append((st.st_mtime, FileInfo(
                name=entry.name,
                size=st.st_size,
                last_modified=_iso(datetime.fromtimestamp(st.st_mtime, timezone.utc)),
            )))
        files.sort(key=lambda pair: (-pair[0], pair[1].name))
        return [info for _, info in files]

    def list_files_with_settings(self) -> list[FileInfo]:
        entries = {e.filename: e for e in self.get_settings()}
        out = []
        for info in self.list_files():
            entry = entries.get(info.name)
            out.append(FileInfo(
                name=info.name,
                size=info.size,
                last_modified=info.last_modified,
                display_name=(entry.title if entry and entry.title else info.name),
                url=entry.url if entry else None,
            ))
        return out

    def read_raw(self, filename: str) -> str:
        path = self._file_path(filename)
        if not path.is_file():
            raise FileNotFoundInStorage(f"File not found: {filename}")
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.error("Failed to read %s: %s", filename, e)
            raise StorageError(f"Failed to load file {filename}: {e}") from e

    def load_file(self, filename: str) -> dict:
        raw = self.read_raw(filename)
        result = validate_json(raw)
        if not result.valid:
            raise InvalidJsonError(result, filename)
        return {"filename": filename, "content": parse_json(raw), "raw": raw}

    def save_file(self, filename: str, content: str) -> SaveResult:
        self.ensure_directories()
        path = self._file_path(filename)
        result = validate_json(content)
        if not result.valid:
            raise InvalidJsonError(result, filename)
        try:
            content.encode("utf-8")
        except UnicodeEncodeError as e:
            raise UnencodableText(f"Cannot save {filename}: text is not valid UTF-8 ({e.reason})") from e
        backup = self._backup(path)
        try:
            atomic_write_text(path, content)
        except (OSError, UnicodeEncodeError) as e:
            logger.error("Failed to save %s: %s", filename, e)
            raise StorageError(f"Failed to save file {filename}: {e}") from e
        logger.info("Saved %s (backup: %s)", filename, backup.name if backup else "none")
        return SaveResult(filename, f"backup/{backup.name}" if backup else None)

    # ----------------------------
    # backups
    # ----------------------------

    def _backup(self, path: Path, label: str = "") -> Path | None:
        if not path.is_file():
            return None
        self.ensure_directories()
        stamp = self._clock().strftime(_STAMP_FORMAT)
        base = f"{path.stem}_{label}{stamp}"
        target = self.backup_dir / f"{base}.json"
        counter = 1
        while target.exists():
            target = self.backup_dir / f"{base}_{counter}.json"
            counter += 1
        try:
            target.write_bytes(path.read_bytes())
        except OSError as e:
            logger.error("Backup of %s failed: %s", path.name, e)
            raise StorageError(f"Failed to back up {path.name}: {e}") from e
        return target

    def _backup_sort_key(self, path: Path):
        m = _BACKUP_NAME_RE.match(path.name)
        try:
            mtime = path.stat().st_mtime_ns
        except OSError:
            mtime = 0
        return m.group("stamp"), int(m.group("n") or 0), mtime

    def list_backups(self, filename: str) -> list[BackupInfo]:
        self.ensure_directories()
        stem = Path(self._checked_name(filename)).stem
        found = []
        for entry in self.backup_dir.iterdir():
            m = _BACKUP_NAME_RE.match(entry.name)
            if not entry.is_file() or not m or m.group("stem") != stem:
                continue
            found.append(entry)
        found.sort(key=self._backup_sort_key, reverse=True)
        out = []
        for entry in found:
            stamp = _BACKUP_NAME_RE.match(entry.name).group("stamp")
            created = datetime.strptime(stamp, _STAMP_FORMAT).replace(tzinfo=timezone.utc)
            out.append(BackupInfo(entry.name, filename, entry.stat().st_size, _iso(created)))
        return out

    def backup_preview(self, filename: str, backup_name: str) -> dict:
        path = self._backup_file_path(filename, backup_name)
        raw = path.read_text(encoding="utf-8")
        result = validate_json(raw)
        info = next((b for b in self.list_backups(filename) if b.name == backup_name), None)
        return {
            "name": backup_name,
            "raw": raw,
            "content": parse_json(raw) if result.valid else None,
            "valid": result.valid,
            "size": path.stat().st_size,
            "createdAt": info.created_at if info else None,
        }

    def restore_backup(self, filename: str, backup_name: str) -> SaveResult:
        source = self._backup_file_path(filename, backup_name)
        path = self._file_path(filename)
        pre_restore = self._backup(path, label="pre-restore_")
        try:
            atomic_write_text(path, source.read_text(encoding="utf-8"))
        except OSError as e:
            logger.error("Failed to restore %s from %s: %s", filename, backup_name, e)
            raise StorageError(f"Failed to restore {filename}: {e}") from e
        logger.info("Restored %s from %s", filename, backup_name)
        return SaveResult(filename, f"backup/{pre_restore.name}" if pre_restore else None)

    # ----------------------------
    # settings
    # ----------------------------

    def get_settings(self) -> list[SettingsEntry]:
        if not self.settings_path.is_file():
            return []
        try:
            data = parse_json(self.settings_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("Could not read %s: %s", self.settings_path.name, e)
            return []
        entries = data.get("entries", []) if isinstance(data, dict) else []
        out = []
        for entry in entries:
            if isinstance(entry, dict) and isinstance(entry.get("filename"), str):
                out.append(SettingsEntry(entry["filename"], entry.get("title"), entry.get("url")))
        return out

    def save_settings(self, entries) -> list[SettingsEntry]:
        if not isinstance(entries, list):
            raise InvalidSettings("entries must be a list")
        clean = []
        for entry in entries:
            if not isinstance(entry, dict) or not isinstance(entry.get("filename"), str):
                raise InvalidSettings("every entry needs a filename")
            title = _clean_text(entry.get("title"))
            url = _clean_text(entry.get("url"))
            if url and not _valid_url(url):
                raise InvalidSettings(f"Please enter a valid URL for {entry['filename']}")
            if title or url:
                clean.append(SettingsEntry(entry["filename"], title, url))
        self.ensure_directories()
        body = {"entries": [e.to_dict() for e in clean]}
        atomic_write_text(self.settings_path, serialize(body))
        logger.info("Saved settings for %d file(s)", len(clean))
        return clean
