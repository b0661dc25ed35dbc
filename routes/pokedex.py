from flask import Blueprint, current_app, jsonify, request

bp = Blueprint('pokedex', __name__, url_prefix='/pokedex/api')


def _ctx():
    return current_app.extensions['pokedex']


@bp.route('/pokemon/<key>')
def pokemon_detail(key):
    return jsonify(_ctx().pokedex.get_pokemon(key))


@bp.route('/list')
def pokemon_list():
    try:
        limit = int(request.args.get('limit', '10'))
        offset = int(request.args.get('offset', '0'))
    except ValueError:
        return jsonify({"error": "limit and offset must be integers"}), 400
    return jsonify(_ctx().pokedex.list_pokemon(limit, offset))


@bp.route('/search')
def search():
    q = request.args.get('q') or ''
    return jsonify(_ctx().pokedex.search(q))


@bp.route('/compare')
def compare():
    first = (request.args.get('first') or '').strip()
    second = (request.args.get('second') or '').strip()
    if not first or not second:
        return jsonify({"error": "Two Pokémon are required"}), 400
    return jsonify(_ctx().pokedex.compare(first, second))


@bp.route('/favorites')
def favorites():
    favs = _ctx().favorites
    return jsonify({'ids': favs.ids(), 'pokemon': favs.list()})


@bp.route('/favorites/<pokemon_id>', methods=['POST'])
def toggle_favorite(pokemon_id):
    favs = _ctx().favorites
    try:
        added = favs.toggle(pokemon_id)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({'favorite': added, 'ids': favs.ids()})


@bp.route('/favorites/<pokemon_id>', methods=['DELETE'])
def remove_favorite(pokemon_id):
    return jsonify({'ids': _ctx().favorites.remove(pokemon_id)})


@bp.route('/cache/clear', methods=['POST'])
def clear_cache():
    _ctx().pokedex.clear_cache()
    return jsonify({'cleared': True})


@bp.route('/cache/stats')
def cache_stats():
    return jsonify(_ctx().cache.stats())


@bp.route('/connectivity', methods=['GET', 'POST'])
def connectivity():
    monitor = _ctx().connectivity
    if request.method == 'POST':
        data = request.get_json(silent=True) or {}
        if 'online' in data:
            monitor.set_online(bool(data['online']))
        else:
            monitor.check(current_app.config['APP_ORIGIN'])
    return jsonify({'online': monitor.is_online()})


@bp.route('/worker/message', methods=['POST'])
def worker_message():
    data = request.get_json(silent=True) or {}
    return jsonify(_ctx().worker.handle_message(data))


@bp.route('/worker/push', methods=['POST'])
def worker_push():
    payload = request.get_json(silent=True)
    if payload is None:
        payload = request.get_data(as_text=True)
    return jsonify(_ctx().worker.handle_push(payload))
