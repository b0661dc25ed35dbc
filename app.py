import logging
import sys

from flask import Flask
from flask_cors import CORS

from routes.pokedex import bp as pokedex_bp
from routes.pokemon import bp as pokemon_bp
from services import core
from services.api_client import PokedexApiClient
from services.cache import CacheManager
from services.cache_storage import CacheStorage
from services.connectivity import ConnectivityMonitor
from services.exceptions import register_exception_handlers
from services.favorites import FavoritesService
from services.offline import OfflineWorker
from services.pokedex import PokedexService
from services.store import PersistentStore, make_engine

logger = logging.getLogger('pokedex')


def configure_logging(level=core.LOG_LEVEL):
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(
        '[%(asctime)s.%(msecs)03d] %(levelname)s (%(module)s) %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    ))
    logging.basicConfig(level=level, handlers=[handler])
    logging.getLogger('werkzeug').setLevel(logging.WARNING)
    logging.getLogger('urllib3').setLevel(logging.WARNING)


class PokedexContext:
    """Everything one application instance shares: stores, caches, worker and services."""

    def __init__(self, config):
        engine = make_engine(config['CACHE_DB_URL'])
        self.store = PersistentStore(engine)
        self.cache = CacheManager(self.store, freshness_window=config['CACHE_FRESHNESS_SECONDS'])
        self.connectivity = ConnectivityMonitor(online=config['START_ONLINE'])
        self.worker = OfflineWorker(
            CacheStorage(engine),
            self.connectivity,
            origin=config['APP_ORIGIN'],
            network=config.get('OFFLINE_NETWORK'),
        )
        self.client = PokedexApiClient(self.worker.session(), api_url=config['POKEDEX_API_URL'])
        self.pokedex = PokedexService(self.cache, self.client, self.connectivity)
        self.favorites = FavoritesService(self.store, self.pokedex)
        self.worker_scheduled = False


def create_app(overrides=None):
    app = Flask(__name__)
    app.json.sort_keys = False
    app.config.update(
        CACHE_DB_URL=core.CACHE_DB_URL,
        CACHE_FRESHNESS_SECONDS=core.CACHE_FRESHNESS_HOURS * 3600,
        POKEDEX_API_URL=core.POKEDEX_API_URL,
        APP_ORIGIN=core.APP_ORIGIN,
        OFFLINE_PRECACHE=core.OFFLINE_PRECACHE,
        START_ONLINE=True,
    )
    if overrides:
        app.config.update(overrides)

    CORS(app)
    register_exception_handlers(app)

    ctx = PokedexContext(app.config)
    app.extensions['pokedex'] = ctx

    app.register_blueprint(pokemon_bp)
    app.register_blueprint(pokedex_bp)

    @app.route('/')
    def index():
        return 'Welcome to the Pokémon API'

    def _start_worker():
        try:
            ctx.worker.start()
        except Exception:
            logger.exception("Offline worker failed to start")

    # Install the offline worker once, off the request path, on the first incoming request
    @app.before_request
    def _schedule_worker_install():
        if app.config['OFFLINE_PRECACHE'] and not ctx.worker_scheduled:
            ctx.worker_scheduled = True
            core.EXECUTOR.submit(_start_worker)

    return app


if __name__ == '__main__':
    configure_logging()
    app = create_app()
    logger.info(f"Server running on http://localhost:{core.PORT}")
    app.run(host='0.0.0.0', port=core.PORT, debug=True)
