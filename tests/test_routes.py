"""
Tests for the HTTP endpoints
"""
import json
from unittest.mock import MagicMock, patch

import pytest
import requests

from app import create_app
from conftest import API_URL

UPSTREAM_PIKACHU = {
    'id': 25,
    'name': 'pikachu',
    'height': 4,
    'weight': 60,
    'types': [{'slot': 1, 'type': {'name': 'electric'}}],
    'abilities': [
        {'ability': {'name': 'static'}, 'is_hidden': False},
        {'ability': {'name': 'lightning-rod'}, 'is_hidden': True},
    ],
    'stats': [{'stat': {'name': 'hp'}, 'base_stat': 35}, {'stat': {'name': 'speed'}, 'base_stat': 90}],
    'sprites': {'front_default': 'https://sprites.test/25.png'},
}


def _upstream(body=None, status=200):
    resp = MagicMock()
    resp.status_code = status
    resp.json.return_value = body
    if status >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(f"{status} Error", response=resp)
    return resp


@pytest.fixture
def app(network):
    return create_app({
        'TESTING': True,
        'CACHE_DB_URL': 'sqlite://',
        'OFFLINE_PRECACHE': False,
        'POKEDEX_API_URL': API_URL,
        'OFFLINE_NETWORK': network,
    })


@pytest.fixture
def client(app):
    return app.test_client()


class TestForwardingRoutes:
    """Tests for /api/pokemon, forwarding to PokeAPI"""

    def test_index(self, client):
        response = client.get('/')

        assert response.status_code == 200
        assert 'Pokémon' in response.get_data(as_text=True)

    @patch('services.pokemon.requests.get')
    def test_get_pokemon_is_flattened(self, mock_get, client):
        mock_get.return_value = _upstream(UPSTREAM_PIKACHU)

        response = client.get('/api/pokemon/Pikachu')
        data = json.loads(response.data)

        assert response.status_code == 200
        assert data == {
            'id': 25,
            'name': 'pikachu',
            'height': 4,
            'weight': 60,
            'types': ['electric'],
            'sprite': 'https://sprites.test/25.png',
            'abilities': ['static', 'lightning-rod'],
            'stats': [{'name': 'hp', 'base': 35}, {'name': 'speed', 'base': 90}],
        }
        assert mock_get.call_args[0][0].endswith('/pokemon/pikachu')

    @patch('services.pokemon.requests.get')
    def test_get_pokemon_not_found(self, mock_get, client):
        mock_get.return_value = _upstream({}, status=404)

        response = client.get('/api/pokemon/missingno')

        assert response.status_code == 404
        assert response.get_json() == {'error': 'Pokémon not found'}

    @patch('services.pokemon.requests.get')
    def test_get_pokemon_upstream_failure(self, mock_get, client):
        mock_get.side_effect = requests.ConnectionError('unreachable')

        response = client.get('/api/pokemon/pikachu')

        assert response.status_code == 502
        assert 'error' in response.get_json()

    @patch('services.pokemon.requests.get')
    def test_list_derives_ids_from_urls(self, mock_get, client):
        mock_get.return_value = _upstream({
            'count': 1302,
            'results': [
                {'name': 'bulbasaur', 'url': 'https://pokeapi.co/api/v2/pokemon/1/'},
                {'name': 'ivysaur', 'url': 'https://pokeapi.co/api/v2/pokemon/2/'},
            ],
        })

        response = client.get('/api/pokemon?limit=2&offset=0')
        data = response.get_json()

        assert response.status_code == 200
        assert data['count'] == 1302
        assert [(p['id'], p['name']) for p in data['pokemon']] == [(1, 'bulbasaur'), (2, 'ivysaur')]
        assert mock_get.call_args[1]['params'] == {'limit': 2, 'offset': 0}

    @patch('services.pokemon.requests.get')
    def test_list_uses_defaults(self, mock_get, client):
        mock_get.return_value = _upstream({'count': 0, 'results': []})

        client.get('/api/pokemon')

        assert mock_get.call_args[1]['params'] == {'limit': 10, 'offset': 0}

    def test_list_rejects_non_numeric_paging(self, client):
        response = client.get('/api/pokemon?limit=ten')

        assert response.status_code == 400

    @patch('services.pokemon.requests.get')
    def test_list_failure(self, mock_get, client):
        mock_get.side_effect = requests.Timeout('slow')

        response = client.get('/api/pokemon')

        assert response.status_code == 500
        assert response.get_json() == {'error': 'Error fetching Pokémon list'}

    @patch('services.pokemon.requests.get')
    def test_abilities(self, mock_get, client):
        mock_get.return_value = _upstream(UPSTREAM_PIKACHU)

        response = client.get('/api/pokemon/pikachu/abilities')

        assert response.get_json() == {'name': 'pikachu', 'abilities': ['static', 'lightning-rod']}

    @patch('services.pokemon.requests.get')
    def test_abilities_not_found(self, mock_get, client):
        mock_get.return_value = _upstream({}, status=404)

        response = client.get('/api/pokemon/missingno/abilities')

        assert response.status_code == 404

    def test_unknown_route_is_json(self, client):
        response = client.get('/api/nothing-here')

        assert response.status_code == 404
        assert response.get_json()['code'] == 'NOT_FOUND'


class TestPokedexRoutes:
    """Tests for /pokedex/api, served from the cached data layer"""

    def test_pokemon_detail(self, client, api_routes):
        response = client.get('/pokedex/api/pokemon/pikachu')
        data = response.get_json()

        assert response.status_code == 200
        assert data['id'] == 25
        assert data['url'] == f'{API_URL}/25'

    def test_pokemon_detail_offline_placeholder(self, client):
        client.post('/pokedex/api/connectivity', json={'online': False})

        data = client.get('/pokedex/api/pokemon/pikachu').get_json()

        assert data['id'] == 0
        assert data['name'] == 'Pokémon pikachu'

    def test_upstream_error_is_reported(self, client, network):
        network.add(f'{API_URL}/pikachu', {'error': 'boom'}, status=500)

        response = client.get('/pokedex/api/pokemon/pikachu')

        assert response.status_code == 502
        assert response.get_json()['code'] == 'UPSTREAM_ERROR'

    def test_list(self, client, network):
        page = {'count': 1, 'pokemon': [{'id': 1, 'name': 'bulbasaur', 'url': ''}]}
        network.add(f'{API_URL}?limit=1&offset=0', page)

        assert client.get('/pokedex/api/list?limit=1').get_json() == page

    def test_list_unavailable(self, client):
        response = client.get('/pokedex/api/list')

        assert response.status_code == 503
        assert response.get_json()['code'] == 'NETWORK_UNAVAILABLE'

    def test_list_rejects_non_numeric_paging(self, client):
        assert client.get('/pokedex/api/list?offset=x').status_code == 400

    def test_search(self, client, api_routes):
        data = client.get('/pokedex/api/search?q=char').get_json()

        assert [p['name'] for p in data] == ['charizard', 'charmander', 'pikachar']

    def test_search_without_query(self, client):
        assert client.get('/pokedex/api/search').get_json() == []

    def test_compare(self, client, api_routes):
        data = client.get('/pokedex/api/compare?first=pikachu&second=bulbasaur').get_json()

        assert data['differences']['hp'] == 24

    def test_compare_requires_two(self, client):
        response = client.get('/pokedex/api/compare?first=pikachu')

        assert response.status_code == 400

    def test_favorites(self, client, network, sample_pokemon):
        network.add(f'{API_URL}/25', sample_pokemon['pikachu'])

        added = client.post('/pokedex/api/favorites/25').get_json()
        assert added == {'favorite': True, 'ids': [25]}

        data = client.get('/pokedex/api/favorites').get_json()
        assert data['ids'] == [25]
        assert [p['name'] for p in data['pokemon']] == ['pikachu']

        removed = client.post('/pokedex/api/favorites/25').get_json()
        assert removed == {'favorite': False, 'ids': []}

    def test_favorite_delete(self, client):
        client.post('/pokedex/api/favorites/7')
        client.post('/pokedex/api/favorites/9')

        assert client.delete('/pokedex/api/favorites/7').get_json() == {'ids': [9]}

    def test_favorite_rejects_invalid_id(self, client):
        assert client.post('/pokedex/api/favorites/pikachu').status_code == 400

    def test_cache_clear_and_stats(self, client, api_routes):
        client.get('/pokedex/api/pokemon/pikachu')
        assert client.get('/pokedex/api/cache/stats').get_json()['pokemon'] == 1

        assert client.post('/pokedex/api/cache/clear').get_json() == {'cleared': True}
        assert client.get('/pokedex/api/cache/stats').get_json()['pokemon'] == 0

    def test_connectivity(self, client):
        assert client.get('/pokedex/api/connectivity').get_json() == {'online': True}
        assert client.post('/pokedex/api/connectivity', json={'online': False}).get_json() == {'online': False}

    @patch('services.connectivity.requests.head')
    def test_connectivity_without_state_probes_origin(self, mock_head, client, app):
        mock_head.side_effect = requests.ConnectionError('refused')

        assert client.post('/pokedex/api/connectivity').get_json() == {'online': False}
        assert mock_head.call_args[0][0] == app.config['APP_ORIGIN']

        mock_head.side_effect = None
        assert client.post('/pokedex/api/connectivity', json={}).get_json() == {'online': True}

    def test_worker_message(self, client, app):
        response = client.post('/pokedex/api/worker/message', json={'type': 'NETWORK_STATUS', 'status': 'offline'})

        assert response.get_json() == {'online': False}
        assert app.extensions['pokedex'].connectivity.is_online() is False

    def test_worker_push(self, client):
        data = client.post('/pokedex/api/worker/push', data='Hello trainer').get_json()

        assert data['body'] == 'Hello trainer'
        assert data['title'] == 'Pokédex'
