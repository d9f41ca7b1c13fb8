"""
API Schemas

Pydantic models for the Pokémon records served to the UI and for the box
entries kept per user in Redis. Box entries are validated on every write:
inserts against InsertBoxEntry, partial updates against UpdateBoxEntry and
the merged result of an update against BoxEntry.
"""

import re
from datetime import datetime
from typing import Annotated, Any, Dict, List, Optional, Type, TypeVar

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    StrictInt,
    StrictStr,
    ValidationError,
    field_validator,
)

from errors import ValidationFailed

# ---------------------------------------------------------------------------
# Pokémon (read-only, rebuilt from PokeAPI on every request)
# ---------------------------------------------------------------------------


class PokemonType(BaseModel):
    name: str
    color: str


class PokemonMove(BaseModel):
    name: str
    power: Optional[int] = None
    type: PokemonType


class Sprites(BaseModel):
    front_default: Optional[str] = None
    back_default: Optional[str] = None
    front_shiny: Optional[str] = None
    back_shiny: Optional[str] = None


class Stats(BaseModel):
    hp: int = 0
    speed: int = 0
    attack: int = 0
    defense: int = 0
    specialAttack: int = 0
    specialDefense: int = 0


class Pokemon(BaseModel):
    id: int = Field(..., description="National Pokédex number")
    name: str
    description: str
    types: List[PokemonType]
    moves: List[PokemonMove]
    sprites: Sprites
    stats: Stats


# ---------------------------------------------------------------------------
# Box entries
# ---------------------------------------------------------------------------


_ISO_DATETIME = re.compile(
    r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(?:\.\d+)?(?:Z|[+-](?:[01]\d|2[0-3]):[0-5]\d)",
    re.ASCII,
)


def _check_iso_datetime(value: str) -> str:
    # full date and time to the second, then "Z" or a +HH:MM offset
    if not _ISO_DATETIME.fullmatch(value):
        raise ValueError("Invalid datetime")
    try:
        datetime.strptime(value[:19], "%Y-%m-%dT%H:%M:%S")
    except ValueError:
        raise ValueError("Invalid datetime")
    return value


IsoDatetime = Annotated[StrictStr, AfterValidator(_check_iso_datetime)]
Level = Annotated[StrictInt, Field(ge=1, le=100)]
Location = Annotated[StrictStr, Field(min_length=1)]
PokemonId = Annotated[StrictInt, Field(gt=0)]


class _BoxEntryPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    @field_validator("*", mode="before")
    @classmethod
    def _reject_null(cls, value: Any) -> Any:
        if value is None:
            raise ValueError("Field may not be null")
        return value


class InsertBoxEntry(_BoxEntryPayload):
    """Body of a create request; the server assigns the id."""

    createdAt: IsoDatetime
    level: Level
    location: Location
    notes: Optional[StrictStr] = None
    pokemonId: PokemonId


class UpdateBoxEntry(_BoxEntryPayload):
    """Body of an update request. Every field is optional, ``{}`` is a no-op."""

    createdAt: Optional[IsoDatetime] = None
    level: Optional[Level] = None
    location: Optional[Location] = None
    notes: Optional[StrictStr] = None
    pokemonId: Optional[PokemonId] = None


class BoxEntry(InsertBoxEntry):
    """A stored entry, as persisted under ``{identity}:pokedex:{id}``."""

    id: StrictStr


class TokenRequest(BaseModel):
    pennkey: Optional[str] = None


ModelT = TypeVar("ModelT", bound=BaseModel)


def field_errors(errors: List[Dict[str, Any]]) -> List[Dict[str, str]]:
    return [
        {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
        for err in errors
    ]


def validate_payload(model: Type[ModelT], payload: Any) -> ModelT:
    """Validate ``payload`` against ``model``.

    Raises ValidationFailed with one ``{field, message}`` pair per problem.
    """
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise ValidationFailed(field_errors(exc.errors())) from exc


def entry_to_dict(entry: BaseModel) -> Dict[str, Any]:
    # fields the client never sent (e.g. notes) stay absent
    return entry.model_dump(exclude_unset=True)
