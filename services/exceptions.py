"""
Pokédex - Custom Exceptions and Exception Handlers
"""
import logging

from flask import jsonify
from werkzeug.exceptions import HTTPException

logger = logging.getLogger(__name__)


class PokedexException(Exception):
    """Base exception for the Pokédex proxy"""
    status_code = 500

    def __init__(self, message: str, code: str = "POKEDEX_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)

    def to_dict(self):
        return {
            'error': True,
            'code': self.code,
            'message': self.message
        }


class PokemonNotFound(PokedexException):
    """Upstream reports that the Pokémon does not exist"""
    status_code = 404

    def __init__(self, key: str):
        super().__init__(f"Pokémon not found: {key}", code="NOT_FOUND")
        self.key = key


class NetworkUnavailable(PokedexException):
    """Offline, or the request failed before a usable response arrived"""
    status_code = 503

    def __init__(self, message: str = "Network unavailable"):
        super().__init__(message, code="NETWORK_UNAVAILABLE")


class UpstreamError(PokedexException):
    """Upstream answered with an unusable response"""
    status_code = 502

    def __init__(self, message: str, status: int = None):
        super().__init__(message, code="UPSTREAM_ERROR")
        self.status = status
        logger.error(f"Upstream error: {message}")


class CacheStoreError(PokedexException):
    """A persistent store partition could not be read, written or cleared"""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message, code="CACHE_STORE_ERROR")
        logger.error(f"Cache store error: {message}")


def register_exception_handlers(app):
    """Register exception handlers with Flask app"""

    @app.errorhandler(HTTPException)
    def handle_http_exception(e):
        return jsonify({
            'error': True,
            'code': e.name.upper().replace(' ', '_'),
            'message': e.description
        }), e.code

    @app.errorhandler(PokedexException)
    def handle_pokedex_exception(e):
        return jsonify(e.to_dict()), e.status_code
