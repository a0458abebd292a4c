"""Tiny server that serves the fan site and its cached content."""

import json
import functools
import logging
import threading
import time
import urllib.parse
from http.server import HTTPServer, SimpleHTTPRequestHandler

import config
from freshness import DEFAULT_POLICY, FreshnessPolicy
from generator import TextGenerator
from main import configure_logging, build_generator, build_store, run_forever, run_updates
from search import search
from store import ContentStore

logger = logging.getLogger(__name__)

# Never serve configuration, secrets or source files from the site root.
DENIED_PATTERNS = (".env", ".py", ".toml", ".cfg", ".git", ".md", "package.json")


def is_denied(path: str) -> bool:
    decoded = urllib.parse.unquote(path).lower()
    return any(pattern in decoded for pattern in DENIED_PATTERNS)


class SiteHandler(SimpleHTTPRequestHandler):
    def __init__(self, *args, store: ContentStore, directory: str = config.SITE_DIR, **kwargs):
        self.store = store
        super().__init__(*args, directory=directory, **kwargs)

    def end_headers(self):
        # Prevent aggressive caching so refreshed content is seen immediately
        self.send_header("Cache-Control", "no-cache, max-age=0")
        super().end_headers()

    def log_message(self, format, *args):
        logger.debug("%s - %s", self.address_string(), format % args)

    def _send_json(self, payload, status: int = 200):
        body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def do_GET(self):
        parsed = urllib.parse.urlsplit(self.path)
        route = parsed.path

        if is_denied(route):
            self.send_error(403, "Access denied.")
            return

        # Health check
        if route == "/health":
            self._send_json({"status": "ok"})
            return

        # Live cache; /data.json shadows the bundled snapshot on disk
        if route in ("/api/data", "/data.json"):
            self._send_json(self.store.load())
            return

        if route == "/api/search":
            query = urllib.parse.parse_qs(parsed.query).get("q", [""])[0]
            results = search(self.store.load(), query)
            if results is None:
                self._send_json({"error": "missing query parameter 'q'"}, status=400)
                return
            self._send_json(results)
            return

        super().do_GET()

    def do_HEAD(self):
        if is_denied(urllib.parse.urlsplit(self.path).path):
            self.send_error(403, "Access denied.")
            return
        super().do_HEAD()

    def list_directory(self, path):
        self.send_error(403, "Directory listing is disabled.")
        return None


def make_server(store: ContentStore, port: int = config.PORT,
                directory: str = config.SITE_DIR, host: str = "0.0.0.0") -> HTTPServer:
    handler = functools.partial(SiteHandler, store=store, directory=directory)
    return HTTPServer((host, port), handler)


def start_refresh_thread(store: ContentStore, generator: TextGenerator, interval: float,
                         policy: FreshnessPolicy = DEFAULT_POLICY) -> threading.Thread:
    """Refresh the cache in the background every ``interval`` seconds."""
    def _loop():
        time.sleep(interval)
        run_forever(store, generator, policy, interval=interval)

    thread = threading.Thread(target=_loop, name="content-refresh", daemon=True)
    thread.start()
    return thread


def serve(store: ContentStore, generator: TextGenerator, port: int = config.PORT,
          update_on_start: bool = True, refresh_interval: float = config.REFRESH_INTERVAL,
          directory: str = config.SITE_DIR, policy: FreshnessPolicy = DEFAULT_POLICY) -> None:
    if update_on_start:
        print("  Updating content before serving...")
        try:
            run_updates(store, generator, policy, delay=config.UPDATE_DELAY)
        except Exception:
            logger.exception("Startup content update failed, serving cached content")

    if refresh_interval:
        start_refresh_thread(store, generator, refresh_interval, policy)

    server = make_server(store, port=port, directory=directory)
    print(f"Serving fan site on port {port}")
    print(f"  /            → site")
    print(f"  /api/data    → cached content")
    print(f"  /api/search  → content search (?q=)")
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        server.server_close()


if __name__ == "__main__":
    configure_logging()
    serve(build_store(), build_generator())
