"""Development server: locale-aware request routing, file watching, live reload."""

from __future__ import annotations

import asyncio
import queue
import re
import threading
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from urllib.parse import unquote, urlsplit

import websockets
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from localegen.config import BuildMode, SiteConfig
from localegen.logger import get_logger
from localegen.models.routes import RouteTable, route_to_file_path
from localegen.services.builder import SiteBuilder
from localegen.services.incremental import IncrementalRebuilder

logger = get_logger("dev_server")

LEGACY_LOCALE_PATH = re.compile(r"^/([a-z]{2})/(.*)$")
RELOAD_SCRIPT = (
    "<script>(function(){{var ws=new WebSocket('ws://'+location.hostname+':{port}');"
    "ws.onmessage=function(e){{if(e.data==='reload')window.location.reload();}};"
    "ws.onclose=function(){{setTimeout(function(){{window.location.reload();}},2000);}};}})();</script>"
)


class DevRequestRouter:
    """Maps request URLs onto files of the output tree.

    Precedence: shared assets, root redirect, route table entries of every
    locale, then the legacy ``/<locale>/<rest>`` layout. ``None`` means the
    request is passed through untouched.
    """

    def __init__(self, config: SiteConfig):
        self.config = config

    def _existing(self, rel_path: str) -> Path | None:
        output = self.config.output_path
        candidate = (output / rel_path).resolve()
        try:
            candidate.relative_to(output)
        except ValueError:
            return None
        return candidate if candidate.is_file() else None

    def resolve(self, url: str) -> Path | None:
        path = unquote(urlsplit(url).path) or "/"

        if path.startswith(self.config.assets_prefix):
            return self._existing(path.lstrip("/"))

        if path in ("/", "/index.html"):
            return self._existing("index.html")

        routes = RouteTable.load(self.config.routes_path, self.config.locales)
        entry = routes.match_url(path)
        if entry is not None:
            return self._existing(route_to_file_path(entry.path, self.config.locales))

        match = LEGACY_LOCALE_PATH.match(path)
        if match and match.group(1) in self.config.locales:
            locale, rest = match.groups()
            rest = rest.strip("/")
            if not rest:
                return self._existing(f"{locale}/index.html")
            for candidate in (f"{locale}/{rest}", f"{locale}/{rest}.html", f"{locale}/{rest}/index.html"):
                found = self._existing(candidate)
                if found is not None:
                    return found
        return None


class LiveReloadHub:
    """Websocket endpoint that tells connected browsers to reload."""

    def __init__(self, host: str = "localhost", port: int = 8001):
        self.host = host
        self.port = port
        self.clients = set()
        self.loop: asyncio.AbstractEventLoop | None = None

    async def _handler(self, websocket):
        self.clients.add(websocket)
        logger.debug("Live reload client connected (total: %d)", len(self.clients))
        try:
            await websocket.wait_closed()
        finally:
            self.clients.discard(websocket)

    async def _serve(self):
        await websockets.serve(self._handler, self.host, self.port)
        logger.info("Live reload listening on ws://%s:%d", self.host, self.port)

    async def _broadcast(self):
        await asyncio.gather(
            *[client.send("reload") for client in self.clients.copy()],
            return_exceptions=True,
        )

    def start(self) -> threading.Thread:
        def run():
            self.loop = asyncio.new_event_loop()
            asyncio.set_event_loop(self.loop)
            self.loop.run_until_complete(self._serve())
            self.loop.run_forever()

        thread = threading.Thread(target=run, name="live-reload", daemon=True)
        thread.start()
        return thread

    def notify_reload(self) -> None:
        if self.loop is None or not self.clients:
            return
        asyncio.run_coroutine_threadsafe(self._broadcast(), self.loop)
        logger.info("Browser reload triggered")


class LiveReloadHandler(SimpleHTTPRequestHandler):
    router: DevRequestRouter
    reload_port: int

    def __init__(self, *args, **kwargs):
        super().__init__(*args, directory=str(self.router.config.output_path), **kwargs)

    def do_GET(self):
        resolved = self.router.resolve(self.path)
        if resolved is None or resolved.suffix != ".html":
            super().do_GET()
            return

        content = resolved.read_bytes()
        if b"</body>" in content:
            script = RELOAD_SCRIPT.format(port=self.reload_port).encode("utf-8")
            content = content.replace(b"</body>", script + b"</body>", 1)

        self.send_response(200)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(content)))
        self.end_headers()
        self.wfile.write(content)

    def log_message(self, format, *args):
        logger.debug("%s - %s", self.address_string(), format % args)


def make_handler(router: DevRequestRouter, reload_port: int):
    return type("BoundLiveReloadHandler", (LiveReloadHandler,), {"router": router, "reload_port": reload_port})


class SourceWatcher(FileSystemEventHandler):
    """Queues watchdog events so a single consumer handles them in order."""

    def __init__(self, events: queue.Queue):
        self.events = events

    def on_modified(self, event):
        if not event.is_directory:
            self.events.put(("change", event.src_path))

    def on_created(self, event):
        if not event.is_directory:
            self.events.put(("add", event.src_path))

    def on_deleted(self, event):
        if not event.is_directory:
            self.events.put(("delete", event.src_path))

    def on_moved(self, event):
        if not event.is_directory:
            self.events.put(("delete", event.src_path))
            self.events.put(("add", event.dest_path))


def dispatch(rebuilder: IncrementalRebuilder, kind: str, path: str):
    if kind == "add":
        return rebuilder.on_add(path)
    if kind == "delete":
        return rebuilder.on_delete(path)
    return rebuilder.on_change(path)


def watch_roots(config: SiteConfig) -> list[Path]:
    """Directories to watch, without nesting duplicates."""
    candidates = [
        config.src_path,
        config.pages_path,
        config.layouts_path,
        config.partials_path,
        config.data_path,
        config.routes_path.parent,
    ]
    candidates += [(config.root / rel).resolve().parent for rel in config.assets.values()]

    roots: list[Path] = []
    for candidate in sorted({c for c in candidates if c.is_dir()}, key=lambda p: len(p.parts)):
        if candidate == config.output_path or any(candidate.is_relative_to(r) for r in roots):
            continue
        roots.append(candidate)
    return roots


def watch(config: SiteConfig, mode: BuildMode, hub: LiveReloadHub | None = None, stop: threading.Event | None = None):
    """Block, rebuilding on every source change until *stop* is set or Ctrl+C."""
    builder = SiteBuilder(config, mode)
    rebuilder = IncrementalRebuilder(builder, notify_reload=hub.notify_reload if hub else None)
    roots = watch_roots(config)
    primed = rebuilder.ledger.prime(roots)
    logger.debug("Tracking %d source file(s)", primed)

    events: queue.Queue = queue.Queue()
    observer = Observer()
    handler = SourceWatcher(events)
    for root in roots:
        observer.schedule(handler, str(root), recursive=True)
        logger.info("Watching %s for changes...", root)
    observer.start()

    stop = stop or threading.Event()
    try:
        while not stop.is_set():
            try:
                kind, path = events.get(timeout=0.5)
            except queue.Empty:
                continue
            if Path(path).resolve().is_relative_to(config.output_path):
                continue
            try:
                dispatch(rebuilder, kind, path)
            except Exception as e:
                logger.exception("Error rebuilding site after %s of %s: %s", kind, path, e)
    except KeyboardInterrupt:
        logger.info("Stopping file watcher...")
    finally:
        observer.stop()
        observer.join()


def serve(config: SiteConfig, port: int = 8000, host: str = "localhost"):
    """Build once, then serve the output with live reload while watching sources."""
    mode = BuildMode.DEVELOPMENT
    SiteBuilder(config, mode).build_all()

    hub = LiveReloadHub(host, port + 1)
    hub.start()

    httpd = ThreadingHTTPServer((host, port), make_handler(DevRequestRouter(config), port + 1))
    server_thread = threading.Thread(target=httpd.serve_forever, name="http", daemon=True)
    server_thread.start()
    logger.info("Development server running at http://%s:%d/", host, port)

    try:
        watch(config, mode, hub)
    finally:
        httpd.shutdown()
        httpd.server_close()
        logger.info("Server stopped.")
