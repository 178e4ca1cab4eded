"""HTTP control surface for a running session.

Endpoints:
  GET  /health                 -> uptime ok
  GET  /status                 -> mode, touched flag, alert state, example counts
  GET  /config                 -> current config JSON
  POST /train/<label>          -> collect examples (query ?count=N); 202 if still running at the timeout
  POST /clear/<label>          -> drop every example of a label
  POST /control/start|stop     -> start / stop inference
"""

from __future__ import annotations
import asyncio
import concurrent.futures
import json
import threading
import time
from dataclasses import asdict
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Optional
from urllib.parse import urlparse, parse_qs

from .errors import EmptyStoreError, ModeConflictError, TouchGuardError
from .logging_utils import log
from .models import Label
from .session import Session

REQUEST_TIMEOUT = 120.0


class SharedState:
    def __init__(self, session: Session, loop: asyncio.AbstractEventLoop, *, request_timeout: float = REQUEST_TIMEOUT):
        self.session = session
        self.loop = loop
        self.request_timeout = request_timeout
        self.start_time = time.time()

    def call(self, coro):
        """Run ``coro`` on the session's event loop and wait for its result.

        Raises concurrent.futures.TimeoutError after ``request_timeout``; the
        coroutine keeps running on the loop.
        """
        return asyncio.run_coroutine_threadsafe(coro, self.loop).result(self.request_timeout)


class GuardHTTPHandler(BaseHTTPRequestHandler):
    protocol_version = 'HTTP/1.1'
    shared: SharedState = None  # type: ignore

    # ---------- helpers ----------
    def log_message(self, format, *args):  # silence
        return

    def _send_bytes(self, code: int, body: bytes, content_type: str = 'text/plain'):
        self.send_response(code)
        self.send_header('Content-Type', content_type)
        self.send_header('Content-Length', str(len(body)))
        self.send_header('Cache-Control', 'no-store')
        self.send_header('Access-Control-Allow-Origin', '*')
        self.end_headers()
        try:
            self.wfile.write(body)
        except BrokenPipeError:
            pass

    def _send_json(self, obj, code: int = 200):
        self._send_bytes(code, json.dumps(obj).encode(), 'application/json')

    @property
    def _log_level(self) -> str:
        return self.shared.session.cfg.log_level

    # ---------- verbs ----------
    def do_GET(self):  # noqa: N802
        path = urlparse(self.path).path
        if path == '/health':
            self._send_json({'ok': True, 'uptime': time.time() - self.shared.start_time}); return
        if path == '/status':
            self._send_json(self.shared.session.status()); return
        if path == '/config':
            self._send_json(asdict(self.shared.session.cfg)); return
        self._send_bytes(404, b'not found')

    def do_POST(self):  # noqa: N802
        parsed = urlparse(self.path)
        path = parsed.path
        qs = parse_qs(parsed.query)
        session = self.shared.session
        try:
            if path.startswith('/train/') or path.startswith('/clear/'):
                action, _, name = path.strip('/').partition('/')
                try:
                    label = Label.parse(name)
                except ValueError as e:
                    self._send_json({'error': str(e)}, 400); return
                if action == 'clear':
                    removed = self.shared.call(self._clear(session, label))
                    self._send_json({'label': label.name, 'removed': removed}); return
                count: Optional[int] = None
                if 'count' in qs:
                    count = int(qs['count'][0])
                    if count <= 0 or count > 5000:
                        self._send_json({'error': 'count out of range'}, 400); return
                added = self.shared.call(session.request_training(label, count))
                self._send_json({'label': label.name, 'added': added, 'examples': session.status()['examples']}); return
            if path == '/control/start':
                self.shared.call(self._start(session))
                self._send_json({'mode': session.mode}); return
            if path == '/control/stop':
                self.shared.call(session.stop_inference())
                self._send_json({'mode': session.mode}); return
        except concurrent.futures.TimeoutError:
            self._send_json({'mode': session.mode, 'pending': True}, 202); return
        except ModeConflictError as e:
            self._send_json({'error': str(e)}, 409); return
        except EmptyStoreError as e:
            self._send_json({'error': str(e)}, 503); return
        except ValueError as e:
            self._send_json({'error': str(e)}, 400); return
        except TouchGuardError as e:
            log(f'HTTP POST {path} failed: {e}', 'error', cfg_level=self._log_level)
            self._send_json({'error': str(e)}, 500); return
        self._send_bytes(404, b'not found')

    @staticmethod
    async def _start(session: Session):
        session.request_inference_start()

    @staticmethod
    async def _clear(session: Session, label: Label) -> int:
        return session.clear_label(label)


def start_http_server(host: str, port: int, shared: SharedState) -> Optional[ThreadingHTTPServer]:
    level = shared.session.cfg.log_level
    try:
        GuardHTTPHandler.shared = shared
        server = ThreadingHTTPServer((host, port), GuardHTTPHandler)
    except OSError as e:
        log(f'HTTP bind failed: {e}', 'error', cfg_level=level); return None
    log(f'HTTP on http://{host}:{port} (endpoints: /health /status /config /train/<label> /clear/<label> /control/start /control/stop)', cfg_level=level)
    threading.Thread(target=server.serve_forever, name='touch-guard-http', daemon=True).start()
    return server
