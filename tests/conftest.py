import threading
from typing import Dict, List, Optional

import fakeredis
import pytest
import requests
from fastapi.testclient import TestClient

from auth import issue_token
from catalog import CatalogAggregator, UpstreamNotFound
from database import BoxStore
from main import app, get_box_store, get_catalog


def pokemon_record(name: str, poke_id: int, moves: Optional[List[str]] = None, types=("grass",), stats=None, sprites=None) -> Dict:
    if stats is None:
        stats = {"hp": 45, "attack": 49, "defense": 49, "special-attack": 65, "special-defense": 65, "speed": 45}
    if sprites is None:
        sprites = {
            "front_default": f"https://img/{poke_id}.png",
            "back_default": None,
            "front_shiny": f"https://img/shiny/{poke_id}.png",
            "back_shiny": None,
        }
    return {
        "id": poke_id,
        "name": name,
        "types": [{"slot": i + 1, "type": {"name": t}} for i, t in enumerate(types)],
        "moves": [{"move": {"name": m}} for m in (moves or [])],
        "stats": [{"base_stat": v, "stat": {"name": k}} for k, v in stats.items()],
        "sprites": sprites,
    }


def species_record(display_name: Optional[str] = None, flavor: Optional[str] = None) -> Dict:
    names = [{"name": "Bisasam", "language": {"name": "de"}}]
    if display_name:
        names.append({"name": display_name, "language": {"name": "en"}})
    flavor_entries = [{"flavor_text": "Texte en francais", "language": {"name": "fr"}}]
    if flavor:
        flavor_entries.append({"flavor_text": flavor, "language": {"name": "en"}})
    return {"names": names, "flavor_text_entries": flavor_entries}


def move_record(name: str, display_name: Optional[str] = None, power: Optional[int] = None, move_type: str = "normal") -> Dict:
    names = [{"name": display_name, "language": {"name": "en"}}] if display_name else []
    return {"name": name, "names": names, "power": power, "type": {"name": move_type}}


class FakePokeApi:
    """In-memory stand-in for PokeApiClient."""

    def __init__(self):
        self.pokemon: Dict[str, Dict] = {}
        self.species: Dict[str, Dict] = {}
        self.moves: Dict[str, object] = {}
        self.names: List[str] = []
        self.failures: Dict[str, Exception] = {}
        self.move_calls: List[str] = []
        self._lock = threading.Lock()

    def add(self, name, poke_id, moves=None, display_name=None, flavor=None, **kwargs):
        self.pokemon[name] = pokemon_record(name, poke_id, moves=moves, **kwargs)
        self.species[name] = species_record(display_name, flavor)
        self.names.append(name)

    def _lookup(self, table, name):
        if name in self.failures:
            raise self.failures[name]
        if name not in table:
            raise UpstreamNotFound(name)
        return table[name]

    def get_pokemon(self, name):
        return self._lookup(self.pokemon, name)

    def get_species(self, name):
        return self._lookup(self.species, name)

    def get_move(self, name):
        with self._lock:
            self.move_calls.append(name)
        move = self.moves.get(name)
        if isinstance(move, Exception):
            raise move
        if move is None:
            raise UpstreamNotFound(name)
        return move

    def list_pokemon(self, offset, limit):
        if "__list__" in self.failures:
            raise self.failures["__list__"]
        return self.names[offset:offset + limit]


@pytest.fixture
def fake_api() -> FakePokeApi:
    api = FakePokeApi()
    api.moves["tackle"] = move_record("tackle", "Tackle", power=40)
    api.moves["growl"] = move_record("growl", "Growl", power=None)
    api.moves["vine-whip"] = move_record("vine-whip", "Vine Whip", power=45, move_type="grass")
    api.add(
        "bulbasaur",
        1,
        moves=["tackle", "growl", "vine-whip"],
        display_name="Bulbasaur",
        flavor="A strange seed was\nplanted on its\fback at birth.",
        types=("grass", "poison"),
    )
    return api


@pytest.fixture
def aggregator(fake_api) -> CatalogAggregator:
    return CatalogAggregator(fake_api)


@pytest.fixture
def redis_client():
    client = fakeredis.FakeRedis(decode_responses=True)
    yield client
    client.flushall()


@pytest.fixture
def store(redis_client) -> BoxStore:
    return BoxStore(redis_client)


@pytest.fixture
def client(aggregator, store):
    app.dependency_overrides[get_catalog] = lambda: aggregator
    app.dependency_overrides[get_box_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> Dict[str, str]:
    return {"Authorization": f"Bearer {issue_token('ash')}"}


@pytest.fixture
def valid_entry() -> Dict:
    return {
        "createdAt": "2024-05-01T12:30:00Z",
        "level": 12,
        "location": "Viridian Forest",
        "notes": "caught with a Poké Ball",
        "pokemonId": 1,
    }


def transport_error(message: str = "connection reset") -> Exception:
    return requests.ConnectionError(message)
