"""
Development server: serves the destination tree and pushes live-reload events.
"""

import os
import json
import queue
import logging
import mimetypes
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

from .paths import sanitize_url_path, is_path_within_base
from .watcher import FileWatcher

LIVERELOAD_PATH = '/__livereload'
KEEPALIVE_SECONDS = 15

MIME_TYPES = {
    '.html': 'text/html; charset=utf-8',
    '.htm': 'text/html; charset=utf-8',
    '.css': 'text/css; charset=utf-8',
    '.js': 'application/javascript; charset=utf-8',
    '.json': 'application/json; charset=utf-8',
    '.xml': 'application/xml; charset=utf-8',
    '.txt': 'text/plain; charset=utf-8',
    '.svg': 'image/svg+xml',
    '.png': 'image/png',
    '.jpg': 'image/jpeg',
    '.jpeg': 'image/jpeg',
    '.gif': 'image/gif',
    '.webp': 'image/webp',
    '.ico': 'image/x-icon',
    '.woff': 'font/woff',
    '.woff2': 'font/woff2',
    '.pdf': 'application/pdf',
}

LIVERELOAD_SCRIPT = f'''<script>
(function () {{
  var source = new EventSource("{LIVERELOAD_PATH}");
  source.onmessage = function (event) {{
    var message = JSON.parse(event.data);
    if (message.type === "reload") {{ window.location.reload(); }}
  }};
}})();
</script>
'''

NOT_FOUND_PAGE = '<!DOCTYPE html><html><head><title>404 Not Found</title></head>' \
                 '<body><h1>404 Not Found</h1></body></html>'


def format_sse(data, event_type=None):
    """Format one Server-Sent Events message."""
    message = f"data: {json.dumps(data)}\n\n"
    if event_type:
        message = f"event: {event_type}\n" + message
    return message


def guess_mime_type(path):
    ext = os.path.splitext(path)[1].lower()
    if ext in MIME_TYPES:
        return MIME_TYPES[ext]
    guessed, _ = mimetypes.guess_type(path)
    return guessed or 'application/octet-stream'


def resolve_request_path(root, url_path):
    """
    Map a request path to a file under root, or None.

    Traversal segments are dropped, the result is checked to still be inside
    root, and directories resolve to their index.html.
    """
    root = os.path.abspath(root)
    relative = sanitize_url_path(url_path)
    target = os.path.normpath(os.path.join(root, relative))
    if not is_path_within_base(target, root):
        return None
    if os.path.isdir(target):
        target = os.path.join(target, 'index.html')
    elif not os.path.exists(target) and not os.path.splitext(target)[1]:
        # Extensionless URL for a page written as name.html
        if os.path.isfile(target + '.html'):
            target = target + '.html'
    if not os.path.isfile(target):
        return None
    return target


def inject_livereload(html_bytes):
    marker = b'</body>'
    script = LIVERELOAD_SCRIPT.encode('utf-8')
    index = html_bytes.lower().rfind(marker)
    if index == -1:
        return html_bytes + script
    return html_bytes[:index] + script + html_bytes[index:]


class LiveReloadHub:
    """Connected live-reload clients, one queue per client."""

    def __init__(self):
        self._clients = set()
        self._lock = threading.Lock()

    def register(self):
        client = queue.Queue()
        with self._lock:
            self._clients.add(client)
        return client

    def unregister(self, client):
        with self._lock:
            self._clients.discard(client)

    @property
    def client_count(self):
        with self._lock:
            return len(self._clients)

    def broadcast(self, message):
        """Send to every connected client; returns how many received it."""
        with self._lock:
            clients = list(self._clients)
        for client in clients:
            client.put(message)
        return len(clients)

    def close(self):
        self.broadcast(None)


class DevRequestHandler(BaseHTTPRequestHandler):
    server_version = 'sitewright'
    root = None
    hub = None
    livereload = True
    logger = logging.getLogger('DevServer')

    def log_message(self, format, *args):
        self.logger.debug("%s - %s" % (self.address_string(), format % args))

    def do_GET(self):
        if self.livereload and self.path.split('?', 1)[0] == LIVERELOAD_PATH:
            self._stream_events()
            return
        self._serve_file(include_body=True)

    def do_HEAD(self):
        self._serve_file(include_body=False)

    def _send_not_found(self, include_body):
        body = NOT_FOUND_PAGE.encode('utf-8')
        custom = os.path.join(self.root, '404.html')
        if os.path.isfile(custom):
            try:
                with open(custom, 'rb') as f:
                    body = f.read()
            except (IOError, OSError) as e:
                self.logger.warning(f"Failed to read 404 page: {e}")
        self.send_response(404)
        self.send_header('Content-Type', 'text/html; charset=utf-8')
        self.send_header('Content-Length', str(len(body)))
        self.end_headers()
        if include_body:
            self.wfile.write(body)

    def _serve_file(self, include_body):
        path = resolve_request_path(self.root, self.path)
        if path is None:
            self._send_not_found(include_body)
            return
        try:
            with open(path, 'rb') as f:
                body = f.read()
        except (IOError, OSError, PermissionError) as e:
            self.logger.warning(f"Failed to read {path}: {e}")
            self._send_not_found(include_body)
            return

        content_type = guess_mime_type(path)
        if self.livereload and content_type.startswith('text/html'):
            body = inject_livereload(body)

        self.send_response(200)
        self.send_header('Content-Type', content_type)
        self.send_header('Content-Length', str(len(body)))
        self.send_header('Cache-Control', 'no-cache')
        self.end_headers()
        if include_body:
            self.wfile.write(body)

    def _stream_events(self):
        self.send_response(200)
        self.send_header('Content-Type', 'text/event-stream')
        self.send_header('Cache-Control', 'no-cache')
        self.send_header('Connection', 'keep-alive')
        self.end_headers()

        client = self.hub.register()
        try:
            self.wfile.write(b': connected\n\n')
            self.wfile.flush()
            while True:
                try:
                    message = client.get(timeout=KEEPALIVE_SECONDS)
                except queue.Empty:
                    self.wfile.write(b': ping\n\n')
                    self.wfile.flush()
                    continue
                if message is None:
                    break
                self.wfile.write(format_sse(message).encode('utf-8'))
                self.wfile.flush()
        except (BrokenPipeError, ConnectionResetError):
            self.logger.debug("Live-reload client disconnected")
        finally:
            self.hub.unregister(client)


class DevServer:
    """Serves a built site, optionally watching the source and rebuilding."""

    def __init__(self, destination, builder=None, host='localhost', port=4000, livereload=True,
                 watch=True, interval=0.5):
        self.destination = os.path.abspath(destination)
        self.builder = builder
        self.host = host
        self.port = port
        self.livereload = livereload
        self.logger = logging.getLogger('DevServer')
        self.hub = LiveReloadHub()
        self.httpd = None
        self._thread = None
        self.watcher = None

        if watch and builder is not None:
            self.watcher = FileWatcher(
                builder.site.source,
                rebuild=builder.build,
                destination=self.destination,
                on_rebuilt=self.notify_reload,
                interval=interval,
            )

    def notify_reload(self):
        count = self.hub.broadcast({'type': 'reload'})
        self.logger.debug(f"Sent reload to {count} client(s)")
        return count

    def _handler_class(self):
        return type('BoundDevRequestHandler', (DevRequestHandler,), {
            'root': self.destination,
            'hub': self.hub,
            'livereload': self.livereload,
        })

    @property
    def address(self):
        if self.httpd is None:
            return (self.host, self.port)
        return self.httpd.server_address[:2]

    def start(self):
        self.httpd = ThreadingHTTPServer((self.host, self.port), self._handler_class())
        self.httpd.daemon_threads = True
        self._thread = threading.Thread(target=self.httpd.serve_forever, name='sitewright-server', daemon=True)
        self._thread.start()
        if self.watcher is not None:
            self.watcher.start()
        host, port = self.address
        self.logger.info(f"Server running at http://{host}:{port}/")

    def stop(self):
        if self.watcher is not None:
            self.watcher.stop()
        self.hub.close()
        if self.httpd is not None:
            self.httpd.shutdown()
            self.httpd.server_close()
            self.httpd = None
        if self._thread is not None:
            self._thread.join()
            self._thread = None

    def serve_forever(self):
        self.start()
        try:
            while self._thread is not None and self._thread.is_alive():
                self._thread.join(0.5)
        except KeyboardInterrupt:
            self.logger.info("Shutting down server")
        finally:
            self.stop()
