"""
PokeAPI access and the aggregation of its records into the simplified
Pokemon shape served to the UI.

A single Pokemon is built from the base record, the species record and up to
ten move records. The base and species calls run concurrently and so do the
move calls; a move that cannot be fetched is dropped instead of failing the
whole request. Nothing is cached and nothing is retried.
"""

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional

import requests

from errors import ApiError, InternalFailure, NotFound
from schemas import Pokemon, PokemonMove, Sprites, Stats
from type_colors import make_type

logger = logging.getLogger(__name__)

POKEAPI_BASE = os.getenv("POKEAPI_BASE", "https://pokeapi.co/api/v2")

MAX_MOVES = 10
NO_DESCRIPTION = "No description available"
SPRITE_KEYS = ("front_default", "back_default", "front_shiny", "back_shiny")
STAT_KEYS = {
    "hp": "hp",
    "speed": "speed",
    "attack": "attack",
    "defense": "defense",
    "special-attack": "specialAttack",
    "special-defense": "specialDefense",
}


class UpstreamNotFound(Exception):
    """PokeAPI answered 404 for the requested resource."""


class PokeApiClient:
    def __init__(self, base_url: str = POKEAPI_BASE, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        r = self.session.get(f"{self.base_url}/{path}", params=params)
        if r.status_code == 404:
            raise UpstreamNotFound(path)
        r.raise_for_status()
        return r.json()

    def get_pokemon(self, name: str) -> Dict[str, Any]:
        return self._get(f"pokemon/{name}")

    def get_species(self, name: str) -> Dict[str, Any]:
        return self._get(f"pokemon-species/{name}")

    def get_move(self, name: str) -> Dict[str, Any]:
        return self._get(f"move/{name}")

    def list_pokemon(self, offset: int, limit: int) -> List[str]:
        page = self._get("pokemon", params={"limit": limit, "offset": offset})
        return [item["name"] for item in page.get("results", [])]

    def close(self) -> None:
        self.session.close()


def _ref_name(entry: Any, key: str) -> Optional[str]:
    # e.g. {"move": {"name": "tackle", "url": ...}}
    if not isinstance(entry, dict):
        return None
    ref = entry.get(key)
    if not isinstance(ref, dict):
        return None
    return ref.get("name") or None


def _english(entries: Optional[List[Dict[str, Any]]]) -> Optional[Dict[str, Any]]:
    for entry in entries or []:
        if (entry.get("language") or {}).get("name") == "en":
            return entry
    return None


def _description(species: Dict[str, Any]) -> str:
    entry = _english(species.get("flavor_text_entries"))
    if entry is None:
        return NO_DESCRIPTION
    return entry["flavor_text"].replace("\f", " ").replace("\n", " ")


def _display_name(record: Dict[str, Any], fallback: str) -> str:
    entry = _english(record.get("names"))
    return entry["name"] if entry else fallback


def _stats(raw_stats: Optional[List[Dict[str, Any]]]) -> Stats:
    found = {}
    for s in raw_stats or []:
        stat_name = (s.get("stat") or {}).get("name")
        if stat_name in STAT_KEYS and STAT_KEYS[stat_name] not in found:
            found[STAT_KEYS[stat_name]] = s.get("base_stat") or 0
    return Stats(**{key: found.get(key, 0) for key in STAT_KEYS.values()})


def _sprites(raw_sprites: Optional[Dict[str, Any]]) -> Sprites:
    raw_sprites = raw_sprites or {}
    return Sprites(**{key: raw_sprites.get(key) or None for key in SPRITE_KEYS})


class CatalogAggregator:
    def __init__(self, client: PokeApiClient, max_workers: int = MAX_MOVES):
        self.client = client
        self.max_workers = max_workers

    def _fetch_move(self, move_name: str) -> PokemonMove:
        move_data = self.client.get_move(move_name)
        fields = {
            "name": _display_name(move_data, move_data["name"]),
            "type": make_type(move_data["type"]["name"]),
        }
        power = move_data.get("power")
        if isinstance(power, int) and not isinstance(power, bool) and power > 0:
            fields["power"] = power
        return PokemonMove(**fields)

    def _fetch_moves(self, move_names: List[str]) -> List[PokemonMove]:
        if not move_names:
            return []
        moves = []
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = [executor.submit(self._fetch_move, name) for name in move_names]
            for name, fut in zip(move_names, futures):
                try:
                    moves.append(fut.result())
                except Exception as exc:
                    logger.warning("Dropping move %s: %s", name, exc)
        return moves

    def fetch_pokemon(self, name: str) -> Pokemon:
        """Build the composite Pokemon record for a canonical name.

        Raises NotFound when PokeAPI has no such Pokémon (or species) and
        InternalFailure for any other upstream problem.
        """
        try:
            with ThreadPoolExecutor(max_workers=2) as executor:
                base_future = executor.submit(self.client.get_pokemon, name)
                species_future = executor.submit(self.client.get_species, name)
                pokemon_data = base_future.result()
                species_data = species_future.result()
        except UpstreamNotFound:
            raise NotFound("Pokemon not found")
        except Exception as exc:
            raise InternalFailure("Failed to fetch Pokemon") from exc

        try:
            # malformed refs still count towards the first MAX_MOVES candidates
            move_names = [
                _ref_name(m, "move") for m in (pokemon_data.get("moves") or [])[:MAX_MOVES]
            ]
            return Pokemon(
                id=pokemon_data["id"],
                name=_display_name(species_data, pokemon_data["name"]),
                description=_description(species_data),
                types=[
                    make_type(n)
                    for n in (_ref_name(t, "type") for t in pokemon_data.get("types") or [])
                    if n
                ],
                moves=self._fetch_moves([n for n in move_names if n]),
                sprites=_sprites(pokemon_data.get("sprites")),
                stats=_stats(pokemon_data.get("stats")),
            )
        except (KeyError, TypeError, AttributeError, ValueError) as exc:
            logger.error("Malformed PokeAPI record for %s: %r", name, exc)
            raise InternalFailure("Failed to fetch Pokemon") from exc

    def fetch_pokemon_page(self, offset: int, limit: int) -> List[Pokemon]:
        """Fetch one page of names and aggregate every Pokémon on it.

        All or nothing: the first failing item fails the whole page.
        """
        try:
            names = self.client.list_pokemon(offset=offset, limit=limit)
        except Exception as exc:
            raise InternalFailure("Failed to fetch Pokemon list") from exc
        if not names:
            return []
        try:
            with ThreadPoolExecutor(max_workers=len(names)) as executor:
                return list(executor.map(self.fetch_pokemon, names))
        except ApiError as exc:
            raise InternalFailure("Failed to fetch Pokemon list") from exc
