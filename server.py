"""Nimbus Notes server: the cloud note store, the markdown preview and the editor page."""

import html as _html
import json as _json
import logging
import os
import re
import threading
from pathlib import Path

from flask import Flask, Response, abort, jsonify, render_template_string, request
import markdown
from markdown.extensions import Extension
from markdown.treeprocessors import Treeprocessor

from cloud_client import CloudClient
from device_bridge import DeviceBridge
from editor_shell import EditorShell
from editor_state import DecodeError, decode_event

log = logging.getLogger(__name__)

HOME = Path(os.environ.get("NIMBUS_HOME", os.getcwd())).resolve()

_CONFIG_PATH = HOME / "nimbus.config.json"
_DEFAULTS = {
    "port": 8000,
    "host": "127.0.0.1",
    "store_dir": "cloud",
    "device_dir": "notes",
    "preferences_file": "nimbus.prefs.json",
    "cloud_url": None,
    "request_timeout": 10.0,
    "log_level": "INFO",
}


def load_config(path: Path = _CONFIG_PATH) -> dict:
    cfg = dict(_DEFAULTS)
    if path.is_file():
        try:
            with open(path) as f:
                user = _json.load(f)
            cfg.update(user)
        except (OSError, ValueError) as e:
            log.warning("could not load %s: %s", path.name, e)
    return cfg


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logging.getLogger("werkzeug").setLevel(logging.WARNING)


def _resolve_dir(raw) -> Path:
    p = Path(raw)
    return p if p.is_absolute() else HOME / p


# ------------------------------------------------------------------ store

def _walk_store(root: Path):

    stack = [root]
    while stack:
        d = stack.pop()
        try:
            entries = sorted(os.scandir(d), key=lambda e: e.name)
        except OSError:
            continue
        for entry in entries:
            if entry.is_dir(follow_symlinks=False):
                stack.append(Path(entry.path))
            elif entry.is_file(follow_symlinks=False):
                yield Path(entry.path).relative_to(root).as_posix()


def _safe_store_path(root: Path, key: str) -> Path | None:

    if not key:
        return None
    parts = key.split("/")
    if any(p in ("", ".", "..") for p in parts):
        return None
    root = root.resolve()
    try:
        candidate = (root / Path(*parts)).resolve()
        candidate.relative_to(root)
    except (ValueError, OSError):
        return None
    return candidate


# ------------------------------------------------------------------ markdown

def auto_link_urls(text: str) -> str:
    return re.sub(
        r'(?<!\]\()(?<!\()(?<!<)(https?://[^\s<>\)\]]+)',
        lambda m: f'[{m.group(1)}]({m.group(1)})',
        text,
    )


_SAFE_SCHEMES = ("http", "https", "mailto")
_SCHEME_RE = re.compile(r'^([a-z][a-z0-9+.\-]*):')
_URL_JUNK_RE = re.compile(r'[\x00-\x20\x7f]+')


def is_safe_url(url: str) -> bool:
    # browsers drop whitespace and control characters inside a scheme
    cleaned = _URL_JUNK_RE.sub("", _html.unescape(url)).lower()
    m = _SCHEME_RE.match(cleaned)
    return m is None or m.group(1) in _SAFE_SCHEMES


class SafeLinkTreeprocessor(Treeprocessor):
    def run(self, root):
        for el in root.iter():
            for attr in ("href", "src"):
                value = el.get(attr)
                if value is not None and not is_safe_url(value):
                    del el.attrib[attr]
        return root


class SafeLinkExtension(Extension):
    def extendMarkdown(self, md):
        # after inline links and images exist
        md.treeprocessors.register(SafeLinkTreeprocessor(md), "safelinks", 1)


def render_markdown(text: str) -> str:
    text = auto_link_urls(text)
    extensions = ["fenced_code", "tables", "toc", "sane_lists", "nl2br"]
    try:
        import pygments  # noqa: F401
        extensions.append("codehilite")
    except ImportError:
        pass
    md = markdown.Markdown(extensions=[*extensions, SafeLinkExtension()])
    # raw HTML in a note is shown as text, never passed through
    md.preprocessors.deregister("html_block")
    md.inlinePatterns.deregister("html")
    html = md.convert(text)
    html = re.sub(
        r'<a href="(https?://[^"]+)"',
        r'<a href="\1" target="_blank" rel="noopener noreferrer"',
        html,
    )
    return html


# ------------------------------------------------------------------ app

def build_shell(cfg: dict) -> EditorShell:
    bridge = DeviceBridge(
        _resolve_dir(cfg["device_dir"]),
        _resolve_dir(cfg["preferences_file"]),
    )
    cloud_url = cfg.get("cloud_url") or f"http://{cfg['host']}:{cfg['port']}"
    cloud = CloudClient(cloud_url, timeout=float(cfg["request_timeout"]))
    return EditorShell(bridge, cloud, render=render_markdown)


def create_app(cfg: dict | None = None, shell: EditorShell | None = None) -> Flask:
    if cfg is None:
        cfg = load_config()
    store_root = _resolve_dir(cfg["store_dir"])
    if shell is None:
        shell = build_shell(cfg)
    shell_lock = threading.Lock()

    app = Flask(__name__)
    app.config["NIMBUS"] = cfg
    app.extensions["nimbus_shell"] = shell

    def view_response():
        return jsonify({"view": shell.view().to_dict(), "outbox": shell.take_outbox()})

    @app.route("/files")
    def files_list():
        if not store_root.is_dir():
            return jsonify([])
        return jsonify(sorted(_walk_store(store_root.resolve())))

    @app.route("/files/<path:key>", methods=["GET", "POST"])
    def files_item(key):
        fpath = _safe_store_path(store_root, key)
        if fpath is None:
            abort(400)
        if request.method == "POST":
            text = request.get_data(as_text=True)
            try:
                fpath.parent.mkdir(parents=True, exist_ok=True)
                fpath.write_text(text, encoding="utf-8")
            except OSError as e:
                # key clashes with a folder, or a parent segment is a file
                log.warning("could not store %s: %s", key, e)
                abort(409)
            log.info("stored %s (%d chars)", key, len(text))
            return Response(text, mimetype="text/plain")
        if not fpath.is_file():
            abort(404)
        return Response(fpath.read_text(encoding="utf-8", errors="replace"), mimetype="text/plain")

    @app.route("/")
    def index():
        return render_template_string(MAIN_TEMPLATE)

    @app.route("/api/view")
    def api_view():
        with shell_lock:
            return view_response()

    @app.route("/api/event", methods=["POST"])
    def api_event():
        try:
            event = decode_event(request.get_data())
        except DecodeError as e:
            return jsonify({"error": str(e)}), 400
        with shell_lock:
            shell.dispatch(event)
            return view_response()

    def _dialog_path():
        body = request.get_json(silent=True) or {}
        path = body.get("path", "")
        if not isinstance(path, str) or not path.strip():
            abort(400)
        return path.strip()

    @app.route("/api/bridge/open", methods=["POST"])
    def api_bridge_open():
        path = _dialog_path()
        with shell_lock:
            shell.open_device_path(path)
            return view_response()

    @app.route("/api/bridge/save-as", methods=["POST"])
    def api_bridge_save_as():
        path = _dialog_path()
        if not path.endswith((".md", ".txt")):
            path += ".md"
        with shell_lock:
            shell.save_device_path(path)
            return view_response()

    @app.route("/api/bridge/files")
    def api_bridge_files():
        return jsonify(shell.bridge.list_files())

    @app.route("/api/preview", methods=["POST"])
    def api_preview():
        body = request.get_json(silent=True) or {}
        text = body.get("text", "")
        if not isinstance(text, str):
            abort(400)
        return jsonify({"html": render_markdown(text)})

    return app


MAIN_TEMPLATE = r"""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<title>Nimbus Notes</title>
<style>

*, *::before, *::after { box-sizing: border-box; margin: 0; padding: 0; }

:root {
  --font: -apple-system, BlinkMacSystemFont, 'Segoe UI', 'Inter', Roboto, Oxygen, Ubuntu, sans-serif;
  --font-mono: 'Fira Code', 'JetBrains Mono', 'Source Code Pro', 'Consolas', monospace;
  --radius: 4px;
  --topbar-height: 38px;
}

.theme-white {
  --bg-primary: #ffffff;
  --bg-secondary: #f4f4f7;
  --bg-hover: rgba(134,112,255,.08);
  --text: #24243a;
  --text-muted: #6e6a86;
  --accent: #6a55e8;
  --border: rgba(0,0,0,.08);
}
.theme-dark {
  --bg-primary: #1a1a2e;
  --bg-secondary: #16162a;
  --bg-hover: rgba(134,112,255,.08);
  --text: #e0def4;
  --text-muted: #908caa;
  --accent: #8673ff;
  --border: rgba(255,255,255,.06);
}

html, body { height: 100%; }
body { background: var(--bg-primary); color: var(--text); font-family: var(--font); font-size: 16px; line-height: 1.6; }

.topbar {
  height: var(--topbar-height);
  display: flex;
  align-items: center;
  gap: 4px;
  padding: 0 10px;
  background: var(--bg-secondary);
  border-bottom: 1px solid var(--border);
}
.topbar .title { margin-left: auto; color: var(--text-muted); font-size: 13px; }

.menu, .menu ul { list-style: none; }
.menu { display: flex; gap: 2px; }
.menu li { position: relative; }
.menu span {
  display: block;
  padding: 4px 10px;
  font-size: 13px;
  cursor: pointer;
  border-radius: var(--radius);
  white-space: nowrap;
}
.menu span:hover { background: var(--bg-hover); color: var(--accent); }
.menu ul {
  display: none;
  position: absolute;
  top: 100%;
  left: 0;
  min-width: 140px;
  background: var(--bg-secondary);
  border: 1px solid var(--border);
  border-radius: var(--radius);
  z-index: 20;
}
.menu ul ul { top: 0; left: 100%; }
.menu li:hover > ul { display: block; }

.workspace { display: flex; height: calc(100vh - var(--topbar-height)); }
.editor, .preview { flex: 1; overflow: auto; }
.editor textarea {
  width: 100%;
  height: 100%;
  padding: 24px;
  border: none;
  resize: none;
  outline: none;
  background: var(--bg-primary);
  color: var(--text);
  font-family: var(--font-mono);
  font-size: 14px;
}
.layout-write .editor { border-right: 1px solid var(--border); }
.preview { padding: 24px 32px; }
.preview pre { background: var(--bg-secondary); padding: 12px; border-radius: var(--radius); overflow-x: auto; }
.preview code { font-family: var(--font-mono); font-size: 13px; }
.preview a { color: var(--accent); }

.toggle {
  position: fixed;
  right: 18px;
  bottom: 18px;
  padding: 6px 14px;
  border: 1px solid var(--border);
  border-radius: var(--radius);
  background: var(--bg-secondary);
  color: var(--text);
  cursor: pointer;
}

.dialog {
  position: fixed;
  inset: 0;
  display: none;
  align-items: center;
  justify-content: center;
  background: rgba(0,0,0,.35);
  z-index: 50;
}
.dialog.open { display: flex; }
.dialog-box {
  min-width: 320px;
  max-height: 70vh;
  overflow: auto;
  padding: 16px;
  background: var(--bg-primary);
  border: 1px solid var(--border);
  border-radius: var(--radius);
}
.dialog-box li { list-style: none; padding: 4px 6px; cursor: pointer; border-radius: var(--radius); }
.dialog-box li:hover { background: var(--bg-hover); color: var(--accent); }
</style>
</head>
<body>
<div id="app">
  <div class="topbar">
    <ul class="menu" id="menu"></ul>
    <span class="title" id="title"></span>
  </div>
  <div class="workspace">
    <div class="editor" id="editor"><textarea id="source" spellcheck="false"></textarea></div>
    <div class="preview" id="preview"></div>
  </div>
  <button class="toggle" id="toggle"></button>
</div>
<div class="dialog" id="open-dialog">
  <div class="dialog-box">
    <ul id="open-list"></ul>
  </div>
</div>
<script>
let editTimer = null;

async function post(url, body) {
  const res = await fetch(url, {
    method: 'POST',
    headers: {'Content-Type': 'application/json'},
    body: JSON.stringify(body),
  });
  if (res.ok) apply(await res.json());
}

function sendEvent(ev) { return post('/api/event', ev); }

function buildMenu(items) {
  const frag = document.createDocumentFragment();
  for (const item of items) {
    const li = document.createElement('li');
    const label = document.createElement('span');
    label.textContent = item.label;
    li.appendChild(label);
    if (item.children) {
      const ul = document.createElement('ul');
      ul.appendChild(buildMenu(item.children));
      li.appendChild(ul);
    } else {
      label.addEventListener('click', () => sendEvent(item.action));
    }
    frag.appendChild(li);
  }
  return frag;
}

function apply(data) {
  const view = data.view;
  document.getElementById('app').className = view.themeClass + ' ' + view.layoutClass;
  document.body.className = view.themeClass;
  const menu = document.getElementById('menu');
  menu.replaceChildren(buildMenu(view.menu));
  document.getElementById('title').textContent = view.title;

  const editor = document.getElementById('editor');
  const source = document.getElementById('source');
  editor.style.display = view.editor === null ? 'none' : '';
  if (view.editor !== null && document.activeElement !== source) source.value = view.editor;

  const preview = document.getElementById('preview');
  preview.style.display = view.preview === null ? 'none' : '';
  if (view.preview !== null) preview.innerHTML = view.preview;

  const toggle = document.getElementById('toggle');
  toggle.style.display = view.toggle === null ? 'none' : '';
  toggle.textContent = view.toggle || '';

  for (const msg of data.outbox) handleMessage(msg);
}

function handleMessage(msg) {
  if (msg.kind === 'propagate-title') {
    document.title = msg.text + ' - Nimbus Notes';
  } else if (msg.kind === 'open-file') {
    const list = document.getElementById('open-list');
    list.replaceChildren();
    for (const path of msg.files) {
      const li = document.createElement('li');
      li.textContent = path;
      li.addEventListener('click', () => {
        document.getElementById('open-dialog').classList.remove('open');
        post('/api/bridge/open', {path});
      });
      list.appendChild(li);
    }
    document.getElementById('open-dialog').classList.add('open');
  } else if (msg.kind === 'save-file-as') {
    const path = prompt('Save as', msg.suggested || '');
    if (path) post('/api/bridge/save-as', {path});
  }
}

document.getElementById('source').addEventListener('input', (e) => {
  clearTimeout(editTimer);
  const body = e.target.value;
  editTimer = setTimeout(() => sendEvent({type: 'EditText', body}), 250);
});

document.getElementById('toggle').addEventListener('click', () => sendEvent({type: 'ToggleReadPreview'}));

document.getElementById('open-dialog').addEventListener('click', (e) => {
  if (e.target.id === 'open-dialog') e.target.classList.remove('open');
});

fetch('/api/view').then(r => r.json()).then(apply);
</script>
</body>
</html>
"""


def main():
    cfg = load_config()
    setup_logging(cfg["log_level"])
    app = create_app(cfg)
    log.info("store: %s", _resolve_dir(cfg["store_dir"]))
    log.info("device notes: %s", _resolve_dir(cfg["device_dir"]))
    log.info("open http://%s:%s", cfg["host"], cfg["port"])
    app.run(host=cfg["host"], port=cfg["port"], threaded=True)


if __name__ == "__main__":
    main()
