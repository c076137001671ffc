import json as _json
import logging
import secrets
from pathlib import Path

from flask import Flask, jsonify, render_template_string, abort, request, make_response

from jsontree import JsonPath
from session import EditorSessions, ProtectedNodeError, UnsavedChangesError
from storage import (
    FileNotFoundInStorage,
    InvalidFilename,
    InvalidJsonError,
    InvalidSettings,
    JsonStorage,
    StorageError,
    UnencodableText,
)
from validation import validate_json

app = Flask(__name__)
# documents keep their key order on the way out
app.json.sort_keys = False

APP_DIR = Path(__file__).resolve().parent

_CONFIG_PATH = APP_DIR / "basalt.config.json"
_DEFAULTS = {
    "port": 5000,
    "host": "127.0.0.1",
    "data_dir": "data",
    "backup_dir": "backup",
    "settings_file": "settings.json",
    "protected_keys": ["Content"],
    "hidden_keys": ["JSONTitle", "Location"],
    "sort_field": "Name",
    "indent": 2,
    "log_level": "INFO",
    "max_sessions": 64,
}


def _load_config() -> dict:
    cfg = dict(_DEFAULTS)
    if _CONFIG_PATH.is_file():
        try:
            with open(_CONFIG_PATH) as f:
                user = _json.load(f)
            cfg.update(user)
        except (OSError, ValueError) as e:
            app.logger.warning("could not load %s: %s", _CONFIG_PATH.name, e)
    return cfg


_cfg = _load_config()

PORT = int(_cfg["port"])
HOST = _cfg["host"]
DATA_DIR = (APP_DIR / _cfg["data_dir"]).resolve()
PROTECTED_KEYS = list(_cfg["protected_keys"])
HIDDEN_KEYS = list(_cfg["hidden_keys"])
SORT_FIELD = _cfg["sort_field"]
INDENT = max(0, int(_cfg["indent"]))
LOG_LEVEL = str(_cfg["log_level"]).upper()

storage = JsonStorage(DATA_DIR, backup_dir=_cfg["backup_dir"], settings_file=_cfg["settings_file"])
sessions = EditorSessions(max_sessions=int(_cfg["max_sessions"]), protected_keys=PROTECTED_KEYS,
                          sort_field=SORT_FIELD, indent=INDENT)
_SESSION_COOKIE = "basalt_sid"


def _get_or_create_sid() -> tuple[str, bool]:

    sid = request.cookies.get(_SESSION_COOKIE)
    if sid and sid in sessions:
        return sid, False
    return secrets.token_urlsafe(32), True


def _current_session():
    sid = request.cookies.get(_SESSION_COOKIE, "")
    current = sessions.get(sid)
    if current is None:
        abort(make_response(jsonify({"ok": False, "error": "No file is open"}), 404))
    return current


def _body() -> dict:
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


def _required_str(body: dict, name: str) -> str:
    value = body.get(name)
    if not isinstance(value, str):
        abort(make_response(jsonify({"ok": False, "error": f"{name} is required"}), 400))
    return value


def _body_path(body: dict) -> JsonPath:
    try:
        return JsonPath.from_segments(body.get("path", []))
    except ValueError as e:
        abort(make_response(jsonify({"ok": False, "error": str(e)}), 400))


def _session_state(current):
    return jsonify(current.to_dict(HIDDEN_KEYS))


@app.errorhandler(FileNotFoundInStorage)
def _not_found(e):
    return jsonify({"ok": False, "error": str(e)}), 404


@app.errorhandler(InvalidFilename)
@app.errorhandler(InvalidSettings)
@app.errorhandler(UnencodableText)
def _bad_request(e):
    return jsonify({"ok": False, "error": str(e)}), 400


@app.errorhandler(InvalidJsonError)
def _invalid_json(e):
    return jsonify({"ok": False, "error": str(e), "validation": e.result.to_dict()}), 400


@app.errorhandler(StorageError)
def _storage_failed(e):
    app.logger.error("storage error: %s", e)
    return jsonify({"ok": False, "error": str(e)}), 500


@app.errorhandler(ProtectedNodeError)
def _protected(e):
    return jsonify({"ok": False, "error": str(e)}), 403


@app.errorhandler(UnsavedChangesError)
def _unsaved(e):
    return jsonify({"ok": False, "error": str(e), "dirty": True}), 409


@app.route("/")
def index():
    return render_template_string(MAIN_TEMPLATE)


@app.route("/api/config")
def api_config():
    return jsonify({
        "hiddenKeys": HIDDEN_KEYS,
        "protectedKeys": PROTECTED_KEYS,
        "indent": INDENT,
    })


@app.route("/api/files")
def api_files():
    files = storage.list_files_with_settings()
    return jsonify({"files": [f.to_dict() for f in files]})


@app.route("/api/files/load", methods=["POST"])
def api_files_load():
    filename = _required_str(_body(), "filename")
    return jsonify(storage.load_file(filename))


@app.route("/api/files/save", methods=["POST"])
def api_files_save():
    body = _body()
    filename = _required_str(body, "filename")
    content = _required_str(body, "content")
    result = storage.save_file(filename, content)
    app.logger.info("saved %s via api", filename)
    return jsonify(result.to_dict())


@app.route("/api/validate", methods=["POST"])
def api_validate():
    content = _required_str(_body(), "content")
    return jsonify(validate_json(content).to_dict())


@app.route("/api/backups/<filename>")
def api_backups(filename):
    return jsonify({"backups": [b.to_dict() for b in storage.list_backups(filename)]})


@app.route("/api/backups/restore", methods=["POST"])
def api_backups_restore():
    body = _body()
    filename = _required_str(body, "filename")
    backup_name = _required_str(body, "backupFilename")
    result = storage.restore_backup(filename, backup_name)
    sid = request.cookies.get(_SESSION_COOKIE, "")
    current = sessions.get(sid)
    if current is not None and current.filename == filename and not current.dirty:
        sessions.open(sid, storage, filename)
    return jsonify(result.to_dict())


@app.route("/api/backups/<filename>/<backup_name>/preview")
def api_backup_preview(filename, backup_name):
    return jsonify(storage.backup_preview(filename, backup_name))


@app.route("/api/settings", methods=["GET", "POST"])
def api_settings():
    if request.method == "POST":
        settings = _body().get("settings")
        entries = settings.get("entries") if isinstance(settings, dict) else None
        saved = storage.save_settings(entries)
        return jsonify({"success": True, "settings": {"entries": [e.to_dict() for e in saved]}})
    return jsonify({"settings": {"entries": [e.to_dict() for e in storage.get_settings()]}})


@app.route("/api/session")
def api_session():
    return _session_state(_current_session())


@app.route("/api/session/open", methods=["POST"])
def api_session_open():
    body = _body()
    filename = _required_str(body, "filename")
    sid, needs_set = _get_or_create_sid()
    current = sessions.open(sid, storage, filename, discard=bool(body.get("discard")))
    resp = make_response(_session_state(current))
    if needs_set:
        resp.set_cookie(_SESSION_COOKIE, sid, samesite="Lax", httponly=True)
    return resp


@app.route("/api/session/raw", methods=["PUT"])
def api_session_raw():
    current = _current_session()
    current.edit_raw(_required_str(_body(), "raw"))
    return jsonify({"dirty": current.dirty})


@app.route("/api/session/value", methods=["PUT"])
def api_session_value():
    current = _current_session()
    body = _body()
    path = _body_path(body)
    if "value" not in body:
        return jsonify({"ok": False, "error": "value is required"}), 400
    try:
        current.set_value(path, body["value"])
    except KeyError:
        return jsonify({"ok": False, "error": f"No node at {path}"}), 404
    return _session_state(current)


@app.route("/api/session/add", methods=["POST"])
def api_session_add():
    current = _current_session()
    path = _body_path(_body())
    try:
        current.add_item(path)
    except KeyError:
        return jsonify({"ok": False, "error": f"No node at {path}"}), 404
    except TypeError as e:
        return jsonify({"ok": False, "error": str(e)}), 400
    return _session_state(current)


@app.route("/api/session/remove", methods=["POST"])
def api_session_remove():
    current = _current_session()
    path = _body_path(_body())
    try:
        current.remove_field(path)
    except KeyError:
        return jsonify({"ok": False, "error": f"No node at {path}"}), 404
    return _session_state(current)


@app.route("/api/session/mark", methods=["POST"])
def api_session_mark():
    current = _current_session()
    path = _body_path(_body())
    try:
        current.toggle_mark(path)
    except KeyError:
        return jsonify({"ok": False, "error": f"No node at {path}"}), 404
    return _session_state(current)


@app.route("/api/session/sync", methods=["POST"])
def api_session_sync():
    current = _current_session()
    result = current.sync_structured()
    if not result.valid:
        return jsonify({"ok": False, "error": result.error, "validation": result.to_dict()}), 400
    return _session_state(current)


@app.route("/api/session/save", methods=["POST"])
def api_session_save():
    current = _current_session()
    raw = _body().get("raw")
    if isinstance(raw, str) and raw != current.raw_text:
        current.edit_raw(raw)
    result = current.save(storage)
    return jsonify({"save": result.to_dict(), "session": current.to_dict(HIDDEN_KEYS)})


MAIN_TEMPLATE = r"""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<title>Basalt</title>
<style>

*, *::before, *::after { box-sizing: border-box; margin: 0; padding: 0; }

:root {
  --bg-primary: #1a1a2e;
  --bg-secondary: #16162a;
  --bg-tertiary: #1f1f3a;
  --bg-hover: rgba(134,112,255,.08);
  --bg-active: rgba(134,112,255,.15);
  --text: #e0def4;
  --text-muted: #908caa;
  --text-faint: #6e6a86;
  --accent: #8673ff;
  --accent-dim: rgba(134,112,255,.35);
  --danger: #eb6f92;
  --danger-dim: rgba(235,111,146,.12);
  --ok: #9ccfd8;
  --warn: #f6c177;
  --border: rgba(255,255,255,.06);
  --border-strong: rgba(255,255,255,.1);
  --sidebar-width: 280px;
  --font: -apple-system, BlinkMacSystemFont, 'Segoe UI', 'Inter', Roboto, Oxygen, Ubuntu, sans-serif;
  --font-mono: 'Fira Code', 'JetBrains Mono', 'Source Code Pro', 'Consolas', monospace;
  --radius: 4px;
}

html, body { height: 100%; background: var(--bg-primary); color: var(--text); font-family: var(--font); font-size: 15px; line-height: 1.5; }
::selection { background: var(--accent-dim); }

.app { display: flex; height: 100vh; overflow: hidden; }

.sidebar {
  width: var(--sidebar-width);
  background: var(--bg-secondary);
  display: flex;
  flex-direction: column;
  overflow: hidden;
}
.sidebar-header {
  padding: 10px 14px;
  font-size: 12px;
  font-weight: 700;
  color: var(--text-faint);
  text-transform: uppercase;
  letter-spacing: .08em;
  border-bottom: 1px solid var(--border);
  display: flex;
  align-items: center;
  gap: 8px;
}
.sidebar-header .spacer { margin-left: auto; }
.file-list { flex: 1; overflow-y: auto; padding: 6px 0; }
.file-item { padding: 6px 14px; cursor: pointer; border-left: 2px solid transparent; }
.file-item:hover { background: var(--bg-hover); }
.file-item.active { background: var(--bg-active); border-left-color: var(--accent); }
.file-item .file-name { font-size: 14px; }
.file-item .file-meta { font-size: 11px; color: var(--text-faint); }

.main { flex: 1; display: flex; flex-direction: column; overflow: hidden; }
.topbar {
  display: flex;
  align-items: center;
  gap: 12px;
  padding: 8px 16px;
  border-bottom: 1px solid var(--border);
  background: var(--bg-secondary);
  min-height: 44px;
}
.topbar h2 { font-size: 15px; font-weight: 600; }
.topbar .spacer { margin-left: auto; }
.badge { font-size: 11px; padding: 1px 8px; border-radius: 10px; background: var(--bg-tertiary); color: var(--text-muted); }
.badge.dirty { color: var(--warn); }
.badge.marked { color: var(--danger); background: var(--danger-dim); }
.status-ok { color: var(--ok); font-size: 13px; }
.status-bad { color: var(--danger); font-size: 13px; }

button, .btn {
  background: var(--bg-tertiary);
  color: var(--text);
  border: 1px solid var(--border-strong);
  border-radius: var(--radius);
  padding: 3px 10px;
  font-size: 13px;
  cursor: pointer;
}
button:hover { border-color: var(--accent); }
button:disabled { opacity: .4; cursor: not-allowed; }
button.primary { background: var(--accent); border-color: var(--accent); color: #fff; }
button.danger { color: var(--danger); }
button.on { background: var(--bg-active); border-color: var(--accent); }

.content { flex: 1; overflow-y: auto; padding: 20px 24px; }
.empty { color: var(--text-faint); text-align: center; margin-top: 80px; }
.live-link { margin-bottom: 14px; font-size: 13px; color: var(--text-muted); }
.live-link a { color: var(--accent); }

.block { border: 1px solid var(--border-strong); border-radius: 6px; margin: 10px 0; background: var(--bg-secondary); }
.block.marked { border-color: var(--danger); background: var(--danger-dim); }
.block.marked > .block-head .block-name { text-decoration: line-through; color: var(--danger); }
.block-head { display: flex; align-items: center; gap: 8px; padding: 6px 10px; }
.block-name { font-weight: 600; cursor: pointer; }
.block-head .spacer { margin-left: auto; }
.block-body { padding: 4px 12px 10px 12px; }
.block.collapsed > .block-body { display: none; }

.field { display: grid; grid-template-columns: 180px 1fr auto; gap: 8px; align-items: center; margin: 4px 0; }
.field label { color: var(--text-muted); font-size: 13px; font-family: var(--font-mono); overflow: hidden; text-overflow: ellipsis; }
.field input[type=text], .field input[type=number], .field textarea {
  background: var(--bg-primary);
  color: var(--text);
  border: 1px solid var(--border-strong);
  border-radius: var(--radius);
  padding: 3px 6px;
  font-family: var(--font-mono);
  font-size: 13px;
  width: 100%;
}
.field textarea { min-height: 60px; resize: vertical; }
.null { color: var(--text-faint); font-style: italic; font-size: 13px; }

.raw-editor {
  width: 100%;
  height: calc(100vh - 140px);
  background: var(--bg-primary);
  color: var(--text);
  border: 1px solid var(--border-strong);
  border-radius: 6px;
  padding: 12px;
  font-family: var(--font-mono);
  font-size: 13px;
  line-height: 1.5;
  resize: none;
  tab-size: 2;
}
.raw-error { color: var(--danger); font-size: 13px; margin-bottom: 8px; min-height: 18px; }

.modal-backdrop { position: fixed; inset: 0; background: rgba(0,0,0,.55); display: none; align-items: center; justify-content: center; z-index: 50; }
.modal-backdrop.open { display: flex; }
.modal { background: var(--bg-secondary); border: 1px solid var(--border-strong); border-radius: 8px; width: min(720px, 92vw); max-height: 80vh; display: flex; flex-direction: column; }
.modal-head { padding: 12px 16px; border-bottom: 1px solid var(--border); display: flex; align-items: center; }
.modal-head .spacer { margin-left: auto; }
.modal-body { padding: 12px 16px; overflow-y: auto; }
.backup-row { display: flex; align-items: center; gap: 10px; padding: 8px 0; border-bottom: 1px solid var(--border); }
.backup-row .meta { font-size: 12px; color: var(--text-faint); font-family: var(--font-mono); }
.backup-row .spacer { margin-left: auto; }
.preview { white-space: pre; font-family: var(--font-mono); font-size: 12px; background: var(--bg-primary); padding: 10px; border-radius: 6px; max-height: 240px; overflow: auto; margin: 6px 0; }
.settings-row { display: grid; grid-template-columns: 180px 1fr 1fr; gap: 8px; margin: 6px 0; align-items: center; }
.settings-row input { background: var(--bg-primary); color: var(--text); border: 1px solid var(--border-strong); border-radius: var(--radius); padding: 3px 6px; }

.toast { position: fixed; right: 16px; bottom: 16px; background: var(--bg-tertiary); border: 1px solid var(--border-strong); border-radius: 6px; padding: 10px 14px; font-size: 13px; display: none; max-width: 420px; z-index: 60; }
.toast.show { display: block; }
.toast.error { border-color: var(--danger); color: var(--danger); }
</style>
</head>
<body>
<div class="app">
  <aside class="sidebar">
    <div class="sidebar-header">Files<span class="spacer"></span><button id="settingsBtn">Settings</button></div>
    <div class="file-list" id="fileList"></div>
  </aside>
  <main class="main">
    <div class="topbar">
      <h2 id="docTitle">No file</h2>
      <span class="badge dirty" id="dirtyBadge" hidden>Unsaved changes</span>
      <span class="badge marked" id="markedBadge" hidden></span>
      <span class="spacer"></span>
      <button id="visualBtn" class="on">Visual</button>
      <button id="rawBtn">Raw JSON</button>
      <span id="validity" class="status-ok"></span>
      <button id="backupsBtn" disabled>Backups</button>
      <button id="saveBtn" class="primary" disabled>Save</button>
    </div>
    <div class="content" id="content"><div class="empty">Select a JSON file to edit</div></div>
  </main>
</div>

<div class="modal-backdrop" id="backupModal">
  <div class="modal">
    <div class="modal-head"><strong id="backupTitle">Backups</strong><span class="spacer"></span><button data-close>Close</button></div>
    <div class="modal-body" id="backupBody"></div>
  </div>
</div>

<div class="modal-backdrop" id="settingsModal">
  <div class="modal">
    <div class="modal-head"><strong>File Settings</strong><span class="spacer"></span><button id="settingsSave" class="primary">Save</button>&nbsp;<button data-close>Close</button></div>
    <div class="modal-body" id="settingsBody"></div>
  </div>
</div>

<div class="toast" id="toast"></div>

<script>
const fileList = document.getElementById('fileList');
const contentArea = document.getElementById('content');
const docTitle = document.getElementById('docTitle');
const dirtyBadge = document.getElementById('dirtyBadge');
const markedBadge = document.getElementById('markedBadge');
const validity = document.getElementById('validity');
const saveBtn = document.getElementById('saveBtn');
const backupsBtn = document.getElementById('backupsBtn');
const visualBtn = document.getElementById('visualBtn');
const rawBtn = document.getElementById('rawBtn');

let files = [];
let state = null;
let rawMode = false;
let rawTimer = null;
let collapsed = new Set();

function esc(s) {
  return String(s).replace(/[&<>"']/g, c => ({'&': '&amp;', '<': '&lt;', '>': '&gt;', '"': '&quot;', "'": '&#39;'}[c]));
}

function toast(msg, isError = false) {
  const t = document.getElementById('toast');
  t.textContent = msg;
  t.classList.toggle('error', isError);
  t.classList.add('show');
  clearTimeout(t._timer);
  t._timer = setTimeout(() => t.classList.remove('show'), 4000);
}

async function api(method, url, body) {
  const opts = {method, headers: {}};
  if (body !== undefined) {
    opts.headers['Content-Type'] = 'application/json';
    opts.body = JSON.stringify(body);
  }
  const res = await fetch(url, opts);
  const data = await res.json().catch(() => ({}));
  if (!res.ok) {
    const err = new Error(data.error || ('Request failed: ' + res.status));
    err.status = res.status;
    err.data = data;
    throw err;
  }
  return data;
}

function formatSize(bytes) {
  if (bytes < 1024) return bytes + ' B';
  if (bytes < 1024 * 1024) return (bytes / 1024).toFixed(1) + ' KB';
  return (bytes / (1024 * 1024)).toFixed(1) + ' MB';
}

async function loadFiles() {
  try {
    files = (await api('GET', '/api/files')).files;
  } catch (e) {
    toast(e.message, true);
    return;
  }
  fileList.innerHTML = '';
  files.forEach(f => {
    const el = document.createElement('div');
    el.className = 'file-item' + (state && state.filename === f.name ? ' active' : '');
    el.innerHTML = '<div class="file-name">' + esc(f.displayName || f.name) + '</div>' +
      '<div class="file-meta">' + esc(f.name) + ' &middot; ' + formatSize(f.size) + ' &middot; ' +
      esc(new Date(f.lastModified).toLocaleString()) + '</div>';
    el.addEventListener('click', () => openFile(f.name));
    fileList.appendChild(el);
  });
}

async function openFile(name, discard = false) {
  try {
    setState(await api('POST', '/api/session/open', {filename: name, discard}));
    rawMode = false;
    collapsed = new Set();
    render();
    loadFiles();
  } catch (e) {
    if (e.status === 409 && confirm('You have unsaved changes. Continue?')) {
      return openFile(name, true);
    }
    if (e.status !== 409) toast(e.message, true);
  }
}

function setState(s) {
  state = s;
  docTitle.textContent = s.filename;
  dirtyBadge.hidden = !s.dirty;
  markedBadge.hidden = s.marked.length === 0;
  markedBadge.textContent = s.marked.length + ' marked for deletion';
  saveBtn.disabled = false;
  backupsBtn.disabled = false;
  showValidation(s.validation);
}

function showValidation(v) {
  if (v && !v.valid) {
    validity.className = 'status-bad';
    validity.textContent = 'Invalid JSON';
  } else {
    validity.className = 'status-ok';
    validity.textContent = 'Valid JSON';
  }
  const box = document.getElementById('rawError');
  if (box) box.textContent = v && !v.valid ? v.error + ' (column ' + v.column + ')' : '';
}

function render() {
  visualBtn.classList.toggle('on', !rawMode);
  rawBtn.classList.toggle('on', rawMode);
  if (!state) return;
  if (rawMode) {
    contentArea.innerHTML = '<div class="raw-error" id="rawError"></div><textarea class="raw-editor" id="rawEditor" spellcheck="false"></textarea>';
    const ta = document.getElementById('rawEditor');
    ta.value = state.raw;
    ta.addEventListener('input', () => {
      state.raw = ta.value;
      state.dirty = true;
      dirtyBadge.hidden = false;
      clearTimeout(rawTimer);
      rawTimer = setTimeout(pushRaw, 300);
    });
    showValidation(state.validation);
    return;
  }
  contentArea.innerHTML = '';
  const file = files.find(f => f.name === state.filename);
  if (file && file.url) {
    const link = document.createElement('div');
    link.className = 'live-link';
    link.innerHTML = 'Live page: <a href="' + esc(file.url) + '" target="_blank" rel="noopener noreferrer">' + esc(file.url) + '</a>';
    contentArea.appendChild(link);
  }
  const root = state.outline;
  if (root.kind === 'object') {
    root.children.forEach(child => contentArea.appendChild(renderNode(child)));
  } else if (root.kind === 'array') {
    contentArea.appendChild(renderNode(root));
  } else {
    contentArea.innerHTML += '<div class="block"><div class="block-body"><pre>' + esc(JSON.stringify(root.value)) + '</pre></div></div>';
  }
}

async function pushRaw() {
  try {
    await api('PUT', '/api/session/raw', {raw: state.raw});
    const v = await api('POST', '/api/validate', {content: state.raw});
    state.validation = v.valid ? null : v;
    showValidation(v);
  } catch (e) {
    toast(e.message, true);
  }
}

function renderNode(node) {
  if (node.kind === 'object' || node.kind === 'array') return renderBlock(node);
  return renderField(node);
}

function renderBlock(node) {
  const key = node.display;
  const block = document.createElement('div');
  block.className = 'block' + (node.marked ? ' marked' : '');
  const isCollapsed = collapsed.has(key) || (!node.protected && node.path.length > 1 && !collapsed.has('open:' + key));
  if (isCollapsed) block.classList.add('collapsed');
  const head = document.createElement('div');
  head.className = 'block-head';
  head.innerHTML = '<span class="block-name">' + esc(node.name) + '</span><span class="badge">' +
    (node.kind === 'array' ? 'Array' : 'Object') + '</span><span class="spacer"></span>';
  head.querySelector('.block-name').addEventListener('click', () => {
    if (block.classList.toggle('collapsed')) { collapsed.add(key); collapsed.delete('open:' + key); }
    else { collapsed.delete(key); collapsed.add('open:' + key); }
  });
  const add = document.createElement('button');
  add.textContent = node.kind === 'array' ? 'Add Item' : 'Add Field';
  add.addEventListener('click', () => mutate('POST', '/api/session/add', {path: node.path}));
  head.appendChild(add);
  const mark = document.createElement('button');
  mark.className = 'danger';
  mark.textContent = node.marked ? 'Unmark' : 'Delete';
  mark.disabled = node.protected || node.path.length === 0;
  mark.title = node.protected ? 'Cannot delete protected arrays' : (node.marked ? 'Unmark for deletion' : 'Mark for deletion');
  mark.addEventListener('click', () => mutate('POST', '/api/session/mark', {path: node.path}));
  head.appendChild(mark);
  block.appendChild(head);
  const body = document.createElement('div');
  body.className = 'block-body';
  if (node.children.length === 0) body.innerHTML = '<div class="null">empty</div>';
  node.children.filter(c => !c.children).forEach(c => body.appendChild(renderField(c)));
  node.children.filter(c => c.children).forEach(c => body.appendChild(renderBlock(c)));
  block.appendChild(body);
  return block;
}

function renderField(node) {
  const row = document.createElement('div');
  row.className = 'field';
  const label = document.createElement('label');
  label.textContent = node.name;
  label.title = node.display;
  row.appendChild(label);
  let input;
  if (node.kind === 'boolean') {
    input = document.createElement('input');
    input.type = 'checkbox';
    input.checked = node.value;
    input.addEventListener('change', () => setValue(node.path, input.checked));
  } else if (node.kind === 'number') {
    input = document.createElement('input');
    input.type = 'number';
    input.step = 'any';
    input.value = node.value;
    input.addEventListener('change', () => {
      const n = Number(input.value);
      if (input.value.trim() !== '' && Number.isFinite(n)) setValue(node.path, n);
    });
  } else if (node.kind === 'null') {
    input = document.createElement('span');
    input.className = 'null';
    input.textContent = 'null';
  } else {
    input = document.createElement(node.value.length > 50 ? 'textarea' : 'input');
    if (input.tagName === 'INPUT') input.type = 'text';
    input.value = node.value;
    input.addEventListener('change', () => setValue(node.path, input.value));
  }
  row.appendChild(input);
  const remove = document.createElement('button');
  remove.className = 'danger';
  remove.textContent = 'Remove';
  remove.addEventListener('click', () => mutate('POST', '/api/session/remove', {path: node.path}));
  row.appendChild(remove);
  return row;
}

function setValue(path, value) {
  return mutate('PUT', '/api/session/value', {path, value});
}

async function mutate(method, url, body) {
  try {
    setState(await api(method, url, body));
    render();
  } catch (e) {
    toast(e.message, true);
  }
}

async function switchMode(toRaw) {
  if (!state || toRaw === rawMode) return;
  if (!toRaw) {
    clearTimeout(rawTimer);
    try {
      await api('PUT', '/api/session/raw', {raw: state.raw});
      setState(await api('POST', '/api/session/sync'));
    } catch (e) {
      if (e.data && e.data.validation) {
        state.validation = e.data.validation;
        showValidation(e.data.validation);
      }
      toast('Cannot switch to visual mode: ' + e.message, true);
      return;
    }
  }
  rawMode = toRaw;
  render();
}

async function save() {
  if (!state) return;
  if (state.marked.length > 0 &&
      !confirm("Are you sure you'd like to delete " + state.marked.length + " object(s)? This is irreversible.")) {
    return;
  }
  clearTimeout(rawTimer);
  saveBtn.disabled = true;
  try {
    const data = await api('POST', '/api/session/save', {raw: state.raw});
    setState(data.session);
    render();
    toast('File saved. Backup: ' + (data.save.backupPath || 'none (new file)'));
    loadFiles();
  } catch (e) {
    if (e.data && e.data.validation) {
      state.validation = e.data.validation;
      showValidation(e.data.validation);
      toast('Cannot save file: ' + e.data.validation.error, true);
    } else {
      toast('Save failed: ' + e.message, true);
    }
  } finally {
    saveBtn.disabled = false;
  }
}

async function openBackups() {
  if (!state) return;
  const modal = document.getElementById('backupModal');
  const body = document.getElementById('backupBody');
  document.getElementById('backupTitle').textContent = 'Backups for ' + state.filename;
  body.innerHTML = 'Loading...';
  modal.classList.add('open');
  let backups;
  try {
    backups = (await api('GET', '/api/backups/' + encodeURIComponent(state.filename))).backups;
  } catch (e) {
    body.textContent = e.message;
    return;
  }
  if (backups.length === 0) {
    body.innerHTML = '<div class="empty">No backups found for this file</div>';
    return;
  }
  body.innerHTML = '';
  backups.forEach((b, i) => {
    const row = document.createElement('div');
    row.innerHTML = '<div class="backup-row"><div><div>' + esc(new Date(b.createdAt).toLocaleString()) +
      (i === 0 ? ' <span class="badge">Latest</span>' : '') + '</div><div class="meta">' + esc(b.name) +
      ' &middot; ' + formatSize(b.size) + '</div></div><span class="spacer"></span>' +
      '<button data-preview>Preview</button><button data-restore>Restore</button></div>';
    row.querySelector('[data-preview]').addEventListener('click', async () => {
      const existing = row.querySelector('.preview');
      if (existing) { existing.remove(); return; }
      try {
        const p = await api('GET', '/api/backups/' + encodeURIComponent(state.filename) + '/' + encodeURIComponent(b.name) + '/preview');
        const pre = document.createElement('div');
        pre.className = 'preview';
        pre.textContent = p.raw;
        row.appendChild(pre);
      } catch (e) { toast(e.message, true); }
    });
    row.querySelector('[data-restore]').addEventListener('click', () => restoreBackup(b.name));
    body.appendChild(row);
  });
}

async function restoreBackup(name) {
  if (state.dirty && !confirm('You have unsaved changes. Restoring will discard them. Continue?')) return;
  try {
    await api('POST', '/api/backups/restore', {filename: state.filename, backupFilename: name});
    document.getElementById('backupModal').classList.remove('open');
    toast('Backup restored');
    await openFile(state.filename, true);
  } catch (e) {
    toast('Restore failed: ' + e.message, true);
  }
}

async function openSettings() {
  const modal = document.getElementById('settingsModal');
  const body = document.getElementById('settingsBody');
  modal.classList.add('open');
  let entries = [];
  try {
    entries = (await api('GET', '/api/settings')).settings.entries;
  } catch (e) {
    body.textContent = 'Failed to load settings: ' + e.message;
    return;
  }
  const byName = {};
  entries.forEach(e => { byName[e.filename] = e; });
  body.innerHTML = '';
  files.forEach(f => {
    const e = byName[f.name] || {};
    const row = document.createElement('div');
    row.className = 'settings-row';
    row.dataset.filename = f.name;
    row.innerHTML = '<span>' + esc(f.name) + '</span><input data-title placeholder="Title" value="' + esc(e.title || '') +
      '"><input data-url placeholder="https://example.com" value="' + esc(e.url || '') + '">';
    body.appendChild(row);
  });
}

async function saveSettings() {
  const entries = [...document.querySelectorAll('#settingsBody .settings-row')].map(row => ({
    filename: row.dataset.filename,
    title: row.querySelector('[data-title]').value,
    url: row.querySelector('[data-url]').value,
  }));
  try {
    await api('POST', '/api/settings', {settings: {entries}});
    document.getElementById('settingsModal').classList.remove('open');
    toast('Settings saved');
    await loadFiles();
    render();
  } catch (e) {
    toast('Save failed: ' + e.message, true);
  }
}

document.querySelectorAll('[data-close]').forEach(b =>
  b.addEventListener('click', () => b.closest('.modal-backdrop').classList.remove('open')));
visualBtn.addEventListener('click', () => switchMode(false));
rawBtn.addEventListener('click', () => switchMode(true));
saveBtn.addEventListener('click', save);
backupsBtn.addEventListener('click', openBackups);
document.getElementById('settingsBtn').addEventListener('click', openSettings);
document.getElementById('settingsSave').addEventListener('click', saveSettings);
document.addEventListener('keydown', e => {
  if ((e.ctrlKey || e.metaKey) && e.key === 's') { e.preventDefault(); save(); }
});
window.addEventListener('beforeunload', e => {
  if (state && state.dirty) { e.preventDefault(); e.returnValue = ''; }
});

loadFiles();
</script>
</body>
</html>
"""


def main():
    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    storage.ensure_directories()
    print(f"Serving JSON files from: {DATA_DIR}")
    print(f"Open http://{HOST}:{PORT}")
    app.run(host=HOST, port=PORT)


if __name__ == "__main__":
    main()
