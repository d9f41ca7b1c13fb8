import logging
import os
from contextlib import asynccontextmanager, contextmanager
from typing import Any, Optional

from fastapi import Body, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

import database
from auth import issue_token, require_pennkey
from catalog import CatalogAggregator, PokeApiClient
from database import BoxStore
from errors import ApiError, BadInput, InternalFailure, ValidationFailed
from schemas import TokenRequest, field_errors

logger = logging.getLogger(__name__)
if not logging.getLogger().handlers:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO"),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.redis = database.connect()
    app.state.pokeapi = PokeApiClient()
    app.state.catalog = CatalogAggregator(app.state.pokeapi)
    try:
        yield
    finally:
        app.state.pokeapi.close()
        database.disconnect(app.state.redis)


app = FastAPI(title="Pixel PokéDex API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ApiError)
async def handle_api_error(request: Request, exc: ApiError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(RequestValidationError)
async def handle_request_validation(request: Request, exc: RequestValidationError):
    return await handle_api_error(request, ValidationFailed(field_errors(exc.errors())))


@contextmanager
def failing_with(message: str):
    """Turn anything that is not already an ApiError into an InternalFailure."""
    try:
        yield
    except ApiError:
        raise
    except Exception as exc:
        logger.exception(message)
        raise InternalFailure(message) from exc


def get_catalog(request: Request) -> CatalogAggregator:
    return request.app.state.catalog


def get_box_store(request: Request) -> BoxStore:
    return BoxStore(request.app.state.redis)


def _parse_bound(value: Optional[str]) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise BadInput("Invalid limit or offset parameters")


@app.get("/")
def read_root():
    return {"message": "Pixel PokéDex API running"}


@app.get("/health")
def health(request: Request):
    response = {
        "backend": "✅ Running",
        "redis": "❌ Not Available",
        "redis_url": "✅ Set" if os.getenv("REDIS_URL") else "❌ Not Set",
        "connection_status": "Not Connected",
    }
    try:
        client = getattr(request.app.state, "redis", None)
        if client is not None and client.ping():
            response["redis"] = "✅ Available"
            response["connection_status"] = "Connected"
    except Exception as e:
        response["redis"] = f"⚠️ Error: {str(e)[:80]}"
    return response


@app.post("/token")
def create_token(body: Optional[TokenRequest] = None):
    if body is None or not body.pennkey:
        raise BadInput("pennkey is required")
    return {"token": issue_token(body.pennkey)}


# Pokémon catalog

@app.get("/pokemon/")
def list_pokemon(
    limit: Optional[str] = None,
    offset: Optional[str] = None,
    catalog: CatalogAggregator = Depends(get_catalog),
):
    limit_value = _parse_bound(limit)
    offset_value = _parse_bound(offset)
    if limit_value <= 0 or offset_value < 0:
        raise BadInput("Invalid limit or offset parameters")

    with failing_with("Failed to fetch Pokemon list"):
        pokemon = catalog.fetch_pokemon_page(offset=offset_value, limit=limit_value)
    return [p.model_dump(exclude_unset=True) for p in pokemon]


@app.get("/pokemon/{name}")
def get_pokemon(name: str, catalog: CatalogAggregator = Depends(get_catalog)):
    if not name.strip():
        raise BadInput("Pokemon name is required")
    with failing_with("Failed to fetch Pokemon"):
        pokemon = catalog.fetch_pokemon(name.lower())
    return pokemon.model_dump(exclude_unset=True)


# Box

@app.get("/box/")
def list_box(pennkey: str = Depends(require_pennkey), store: BoxStore = Depends(get_box_store)):
    with failing_with("Failed to list Box entries"):
        return store.list_ids(pennkey)


@app.post("/box/", status_code=201)
def create_box_entry(
    payload: Any = Body(None),
    pennkey: str = Depends(require_pennkey),
    store: BoxStore = Depends(get_box_store),
):
    with failing_with("Failed to create Box entry"):
        return store.create(pennkey, payload)


@app.get("/box/{entry_id}")
def get_box_entry(
    entry_id: str,
    pennkey: str = Depends(require_pennkey),
    store: BoxStore = Depends(get_box_store),
):
    with failing_with("Failed to fetch Box entry"):
        return store.get(pennkey, entry_id)


@app.put("/box/{entry_id}")
def update_box_entry(
    entry_id: str,
    payload: Any = Body(None),
    pennkey: str = Depends(require_pennkey),
    store: BoxStore = Depends(get_box_store),
):
    with failing_with("Failed to update Box entry"):
        return store.update(pennkey, entry_id, payload)


@app.delete("/box/{entry_id}", status_code=204)
def delete_box_entry(
    entry_id: str,
    pennkey: str = Depends(require_pennkey),
    store: BoxStore = Depends(get_box_store),
):
    with failing_with("Failed to delete Box entry"):
        store.delete(pennkey, entry_id)
    return Response(status_code=204)


@app.delete("/box/", status_code=204)
def clear_box(pennkey: str = Depends(require_pennkey), store: BoxStore = Depends(get_box_store)):
    with failing_with("Failed to clear Box entries"):
        store.clear(pennkey)
    return Response(status_code=204)


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
