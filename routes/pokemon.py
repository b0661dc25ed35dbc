import logging

import requests
from flask import Blueprint, jsonify, request

from services.pokemon import fetch_pokemon, fetch_pokemon_abilities, fetch_pokemon_page

logger = logging.getLogger(__name__)

bp = Blueprint('pokemon', __name__, url_prefix='/api/pokemon')


def _upstream_error(e, not_found_message):
    status = getattr(getattr(e, 'response', None), 'status_code', None)
    if status == 404:
        return jsonify({"error": not_found_message}), 404
    logger.error(f"Upstream request failed: {e}")
    return jsonify({"error": "Error contacting the Pokémon API"}), 502


@bp.route('/<name>')
def get_pokemon(name):
    try:
        return jsonify(fetch_pokemon(name))
    except requests.RequestException as e:
        return _upstream_error(e, "Pokémon not found")


@bp.route('')
def get_pokemon_list():
    try:
        limit = int(request.args.get('limit', '10'))
        offset = int(request.args.get('offset', '0'))
    except ValueError:
        return jsonify({"error": "limit and offset must be integers"}), 400
    if limit <= 0:
        limit = 10
    if offset < 0:
        offset = 0
    try:
        return jsonify(fetch_pokemon_page(limit, offset))
    except requests.RequestException as e:
        logger.error(f"Error fetching Pokémon list: {e}")
        return jsonify({"error": "Error fetching Pokémon list"}), 500


@bp.route('/<name>/abilities')
def get_pokemon_abilities(name):
    try:
        return jsonify(fetch_pokemon_abilities(name))
    except requests.RequestException as e:
        return _upstream_error(e, "Pokémon not found")
