"""
Offline worker: request interception at the transport boundary.

Mounted on a requests.Session through InterceptingAdapter, the worker sees
every outgoing GET and answers it with one of three strategies:

  - API requests (/api/...): network first, then the API response cache, then
    a synthesized placeholder body flagged with "__stale"
  - documents (Accept: text/html): network first, then the cached app shell
  - everything else: cache first, then network, then a per-type fallback

It works independently of the data access layer and keeps its own caches in
CacheStorage.
"""
import json
import logging
from http import HTTPStatus
from urllib.parse import urljoin, urlparse

import requests
from requests.adapters import HTTPAdapter
from requests.structures import CaseInsensitiveDict

from .cache_storage import CacheStorage
from .connectivity import ConnectivityMonitor
from .core import APP_ORIGIN, sprite_url
from .exceptions import CacheStoreError
from .text_utils import placeholder_name

logger = logging.getLogger(__name__)

SHELL_CACHE = 'pokedex-shell-v2'
API_CACHE = 'pokedex-api-v1'
RECOGNIZED_CACHES = {SHELL_CACHE, API_CACHE}

ASSETS_TO_CACHE = [
    '/',
    '/index.html',
    '/faviconP.ico',
    '/manifest.json',
    '/assets/pikachuError.jpg',
    '/assets/pokemon.jpg',
    '/assets/video1.mp4',
    '/assets/video2.mp4',
]
ROOT_DOCUMENT = '/index.html'
PLACEHOLDER_IMAGE = '/assets/pikachuError.jpg'

API_PREFIX = '/api/'
DEV_TOOLING_MARKERS = ('__', 'hot-update', 'sockjs-node')
IMAGE_EXTENSIONS = ('.jpg', '.jpeg', '.png', '.gif', '.webp', '.svg', '.ico')

OFFLINE_HTML = '<h1>Pokédex Offline</h1>'
INERT_SCRIPT = 'console.log("Resource unavailable offline");'
NOT_AVAILABLE_TEXT = 'Resource unavailable offline'
STALE_MARKER = '__stale'

DEFAULT_NOTIFICATION = {
    'title': 'Pokédex',
    'body': 'New Pokémon data is available.',
    'icon': '/faviconP.ico',
}


def build_response(request, status: int, body, content_type: str) -> requests.Response:
    """Response object for a body produced without touching the network."""
    resp = requests.Response()
    resp.status_code = status
    resp._content = body if isinstance(body, bytes) else str(body).encode('utf-8')
    resp.headers = CaseInsensitiveDict({'Content-Type': content_type})
    resp.url = request.url
    resp.request = request
    resp.encoding = 'utf-8'
    try:
        resp.reason = HTTPStatus(status).phrase
    except ValueError:
        resp.reason = ''
    return resp


def json_response(request, data, status: int = 200) -> requests.Response:
    return build_response(request, status, json.dumps(data, ensure_ascii=False), 'application/json')


def from_cached(request, cached) -> requests.Response:
    content_type = (cached.headers or {}).get('Content-Type') or 'application/octet-stream'
    return build_response(request, cached.status, cached.body, content_type)


def normalize_api_body(data):
    """Give nameless records a display name. Returns (data, changed)."""
    if isinstance(data, dict) and not data.get('name') and data.get('id') is not None:
        data = {**data, 'name': placeholder_name(data['id'])}
        return data, True
    return data, False


def log_notification(notification: dict):
    logger.info(f"Notification: {notification['title']} - {notification['body']}")


class OfflineWorker:
    """Interception layer state: caches, lifecycle and the fetch strategies."""

    def __init__(self, storage: CacheStorage, connectivity: ConnectivityMonitor, origin: str = APP_ORIGIN,
                 network=None, notifier=None, assets=None, timeout: int = 12):
        self.storage = storage
        self.connectivity = connectivity
        self.origin = origin.rstrip('/') + '/'
        self.network = network or HTTPAdapter()
        self.notifier = notifier or log_notification
        self.assets = list(ASSETS_TO_CACHE if assets is None else assets)
        self.timeout = timeout
        self.state = 'parsed'
        self.controlling = False

    # --- lifecycle ---
    def install(self) -> dict:
        """Precache the asset manifest. A missing asset does not stop the others."""
        self.state = 'installing'
        shell = self.storage.open(SHELL_CACHE)
        cached, failed = [], []
        for path in self.assets:
            url = urljoin(self.origin, path)
            try:
                response = self.network.send(requests.Request('GET', url).prepare(), timeout=self.timeout)
                if not response.ok:
                    raise requests.HTTPError(f"{response.status_code} for {url}", response=response)
                self._store(shell, url, response)
                cached.append(path)
            except (requests.RequestException, CacheStoreError) as e:
                logger.warning(f"Could not precache {path}: {e}")
                failed.append(path)
        self.state = 'installed'
        logger.info(f"Precached {len(cached)} assets ({len(failed)} failed)")
        return {'cached': cached, 'failed': failed}

    def activate(self):
        """Drop caches from older versions and take control of clients."""
        self.state = 'activating'
        for name in self.storage.keys():
            if name not in RECOGNIZED_CACHES:
                logger.info(f"Deleting old cache: {name}")
                self.storage.delete(name)
        self.state = 'activated'
        self.claim_clients()
        logger.info("Offline worker activated")

    def claim_clients(self):
        self.controlling = True

    def skip_waiting(self):
        if self.state == 'installed':
            self.activate()

    def start(self):
        self.install()
        self.skip_waiting()

    # --- fetch routing ---
    def handle_fetch(self, request, **kwargs) -> requests.Response:
        if not self.controlling or request.method != 'GET':
            return self.network.send(request, **kwargs)
        path = urlparse(request.url).path
        if any(marker in path for marker in DEV_TOOLING_MARKERS):
            return self.network.send(request, **kwargs)
        if path.startswith(API_PREFIX):
            return self.handle_api_request(request, **kwargs)
        if 'text/html' in (request.headers.get('Accept') or ''):
            return self.handle_document_request(request, **kwargs)
        return self.handle_static_request(request, **kwargs)

    def _match(self, url, cache=None):
        try:
            if cache is not None:
                return self.storage.open(cache).match(url)
            return self.storage.match(url)
        except CacheStoreError as e:
            logger.warning(f"Cache lookup failed for {url}: {e}")
            return None

    def _store(self, cache, url, response):
        headers = {'Content-Type': response.headers.get('Content-Type', '')}
        cache.put(url, response.status_code, headers, response.content)

    def _fallback_body(self, url) -> dict:
        segment = urlparse(url).path.rstrip('/').split('/')[-1]
        pid = int(segment) if segment.isdigit() else segment
        return {
            'id': pid,
            'name': placeholder_name(pid),
            'sprite': sprite_url(pid),
            'types': [],
            'stats': [],
            'abilities': [],
            STALE_MARKER: True,
        }

    def _cache_api_response(self, url, response):
        try:
            data, _ = normalize_api_body(response.json())
            body = json.dumps(data, ensure_ascii=False).encode('utf-8')
            self.storage.open(API_CACHE).put(url, response.status_code, {'Content-Type': 'application/json'}, body)
        except (ValueError, CacheStoreError) as e:
            logger.warning(f"Could not cache API response for {url}: {e}")

    # --- strategies ---
    def handle_api_request(self, request, **kwargs) -> requests.Response:
        """Network first; cached copy next; placeholder body last."""
        try:
            if self.connectivity.is_online():
                try:
                    response = self.network.send(request, **kwargs)
                except requests.RequestException as e:
                    logger.warning(f"API request failed, trying cache: {e}")
                    response = None
                if response is not None:
                    if response.ok:
                        self._cache_api_response(request.url, response)
                        return response
                    if response.status_code < 500:
                        # client errors (404) are answers, not outages
                        return response

            cached = self._match(request.url, API_CACHE)
            if cached is not None:
                try:
                    data, changed = normalize_api_body(json.loads(cached.body))
                except ValueError:
                    return from_cached(request, cached)
                if changed:
                    return json_response(request, data, status=cached.status)
                return from_cached(request, cached)

            return json_response(request, self._fallback_body(request.url))
        except Exception:
            logger.exception("Error handling API request")
            return json_response(request, {'error': 'server_error', 'message': 'Server error'}, status=500)

    def handle_document_request(self, request, **kwargs) -> requests.Response:
        """Network first, with the cached app shell as fallback."""
        root = urljoin(self.origin, ROOT_DOCUMENT)
        try:
            response = self.network.send(request, **kwargs)
        except requests.RequestException as e:
            logger.info(f"Network error, serving cached app shell: {e}")
            cached = self._match(root)
            if cached is not None:
                return from_cached(request, cached)
            return build_response(request, 200, OFFLINE_HTML, 'text/html')

        if response.ok:
            try:
                self._store(self.storage.open(SHELL_CACHE), request.url, response)
            except CacheStoreError as e:
                logger.warning(f"Could not cache document {request.url}: {e}")
            return response
        cached = self._match(root)
        if cached is not None:
            return from_cached(request, cached)
        return response

    def handle_static_request(self, request, **kwargs) -> requests.Response:
        """Cache first; network next; type-specific fallback when both fail."""
        cached = self._match(request.url)
        if cached is not None:
            return from_cached(request, cached)
        try:
            response = self.network.send(request, **kwargs)
        except requests.RequestException as e:
            logger.info(f"Error loading static resource {request.url}: {e}")
            return self._static_fallback(request)
        if response.ok:
            try:
                self._store(self.storage.open(SHELL_CACHE), request.url, response)
            except CacheStoreError as e:
                logger.warning(f"Could not cache {request.url}: {e}")
        return response

    def _static_fallback(self, request) -> requests.Response:
        path = urlparse(request.url).path.lower()
        accept = request.headers.get('Accept') or ''
        if path.endswith(IMAGE_EXTENSIONS) or accept.startswith('image/'):
            cached = self._match(urljoin(self.origin, PLACEHOLDER_IMAGE))
            if cached is not None:
                return from_cached(request, cached)
        elif path.endswith('.css'):
            return build_response(request, 200, '', 'text/css')
        elif path.endswith('.js'):
            return build_response(request, 200, INERT_SCRIPT, 'application/javascript')
        return build_response(request, 404, NOT_AVAILABLE_TEXT, 'text/plain')

    # --- messages and push ---
    def refresh_api_cache(self) -> dict:
        """Re-fetch every cached API response, keeping the old copy on failure."""
        if not self.connectivity.is_online():
            logger.info("Offline, skipping API cache refresh")
            return {'refreshed': 0, 'failed': 0}
        try:
            urls = self.storage.open(API_CACHE).keys()
        except CacheStoreError as e:
            logger.warning(f"Could not list API cache: {e}")
            return {'refreshed': 0, 'failed': 0}
        refreshed = failed = 0
        for url in urls:
            try:
                response = self.network.send(requests.Request('GET', url).prepare(), timeout=self.timeout)
            except requests.RequestException as e:
                logger.warning(f"Could not refresh {url}: {e}")
                failed += 1
                continue
            if response.ok:
                self._cache_api_response(url, response)
                refreshed += 1
            else:
                failed += 1
        logger.info(f"Refreshed {refreshed} API responses ({failed} failed)")
        return {'refreshed': refreshed, 'failed': failed}

    def handle_message(self, data) -> dict:
        kind = data.get('type') if isinstance(data, dict) else None
        if kind == 'SKIP_WAITING':
            self.skip_waiting()
            return {'state': self.state}
        if kind == 'REFRESH_CACHE':
            return self.refresh_api_cache()
        if kind == 'NETWORK_STATUS':
            self.connectivity.set_online(data.get('status') == 'online')
            return {'online': self.connectivity.is_online()}
        logger.debug(f"Ignoring worker message: {data!r}")
        return {}

    def handle_push(self, payload) -> dict:
        """Show a push payload as a notification, filling gaps with defaults."""
        if isinstance(payload, (bytes, bytearray)):
            payload = payload.decode('utf-8', 'replace')
        data = {}
        if isinstance(payload, dict):
            data = payload
        elif isinstance(payload, str) and payload.strip():
            try:
                parsed = json.loads(payload)
            except ValueError:
                parsed = None
            data = parsed if isinstance(parsed, dict) else {'body': payload}
        notification = {k: data.get(k) or default for k, default in DEFAULT_NOTIFICATION.items()}
        self.notifier(notification)
        return notification

    def session(self) -> requests.Session:
        """A session whose requests all pass through this worker."""
        s = requests.Session()
        adapter = InterceptingAdapter(self)
        s.mount('http://', adapter)
        s.mount('https://', adapter)
        return s


class InterceptingAdapter(HTTPAdapter):
    def __init__(self, worker: OfflineWorker, **kwargs):
        super().__init__(**kwargs)
        self.worker = worker

    def send(self, request, **kwargs):
        return self.worker.handle_fetch(request, **kwargs)
