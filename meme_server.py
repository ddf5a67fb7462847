#!/usr/bin/env python3
"""
Meme Server - serves meme images as JSON with base64 data URLs.

Usage:
  python meme_server.py

Features:
- Serves image files (jpg, jpeg, png, gif) from `MEMES_DIR`.
- `/generate` and `/random/{count}` return random memes as data URLs.
- `/meme/{filename}` returns one meme; filenames are checked against path traversal.
- `/stats` and `/search?q=` summarise and filter the collection.
- `/favorite` toggles a meme in the favorites file, `/favorites` lists them.

Configuration is read from the environment (and `.env`):
  MEME_SERVER_HOST, MEME_SERVER_PORT, MEMES_DIR, FAVORITES_FILE,
  LOGS_DIR, LOG_LEVEL, MAX_BODY_BYTES

Note: every image is sent inline as base64, so large collections make for large responses.
"""

import asyncio
import logging
import os
import random
from datetime import datetime, timezone
from pathlib import Path

from aiohttp import web
from dotenv import load_dotenv

from utils.favorites import FavoritesStore
from utils.image_data import InvalidFilenameError, MemeLoadError, load_meme, resolve_meme_path
from utils.meme_files import (
    MAX_RANDOM_COUNT,
    MemeDirectoryError,
    compute_stats,
    list_template_names,
    pick_many,
    pick_random,
    scan_templates,
    search_templates,
)

load_dotenv(".env")


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


HOST = os.getenv("MEME_SERVER_HOST", "0.0.0.0")
PORT = _int_env("MEME_SERVER_PORT", 8080)
MEMES_DIR = Path(os.getenv("MEMES_DIR", os.path.join("..", "assets", "memes")))
FAVORITES_FILE = Path(os.getenv("FAVORITES_FILE", os.path.join("..", "assets", "favorites.json")))
LOGS_DIR = os.getenv("LOGS_DIR", "logs")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
MAX_BODY_BYTES = _int_env("MAX_BODY_BYTES", 10 * 1024 * 1024)

ENDPOINTS = [
    ("GET ", "/health", "server status check"),
    ("GET ", "/list", "list all available memes"),
    ("GET ", "/generate", "generate single random meme"),
    ("GET ", "/meme/{filename}", "get specific meme by filename"),
    ("GET ", "/random/{count}", f"generate multiple random memes (1-{MAX_RANDOM_COUNT})"),
    ("GET ", "/stats", "get meme collection statistics"),
    ("GET ", "/search?q={term}", "search memes by filename"),
    ("POST", "/favorite", "toggle meme as favorite"),
    ("GET ", "/favorites", "get all favorite memes"),
]

MEMES_DIR_KEY = web.AppKey("memes_dir", Path)
FAVORITES_KEY = web.AppKey("favorites", FavoritesStore)
RNG_KEY = web.AppKey("rng", object)

logger = logging.getLogger("meme_server")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def json_error(status: int, error: str, details: str) -> web.Response:
    return web.json_response({"error": error, "details": details}, status=status)


# --- Middleware ---

@web.middleware
async def cors_middleware(request, handler):
    if request.method == "OPTIONS":
        response = web.Response(status=204)
        response.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
        response.headers["Access-Control-Allow-Headers"] = "Content-Type, Authorization, Accept, Origin"
        response.headers["Access-Control-Max-Age"] = "3600"
    else:
        response = await handler(request)
    response.headers["Access-Control-Allow-Origin"] = "*"
    return response


@web.middleware
async def error_middleware(request, handler):
    """Turn every failure into an {error, details} JSON body."""
    try:
        return await handler(request)
    except web.HTTPException as e:
        if e.status < 400:
            # as a regular response so cors_middleware still adds its header
            return web.Response(status=e.status, headers=e.headers, text=e.text)
        return json_error(e.status, e.reason, f"{request.method} {request.path}: {e.text}")
    except InvalidFilenameError as e:
        return json_error(400, "Invalid filename", str(e))
    except MemeDirectoryError as e:
        logger.error("%s", e)
        return json_error(500, "Cannot read memes directory", str(e))
    except MemeLoadError as e:
        logger.error("Error loading template: %s", e)
        return json_error(500, "Cannot load meme", str(e))
    except Exception as e:
        logger.exception("Unhandled error in %s %s", request.method, request.path)
        return json_error(500, "Internal server error", str(e))


# --- Handlers ---

async def health_check(request):
    return web.json_response({
        "status": "OK",
        "message": "Meme server is running properly",
        "timestamp": _now(),
    })


async def list_templates(request):
    templates = await asyncio.to_thread(scan_templates, request.app[MEMES_DIR_KEY])
    return web.json_response({"templates": templates, "total_count": len(templates)})


def _no_memes() -> web.Response:
    return json_error(404, "No memes found", "No image memes found in memes directory")


async def generate_random_meme(request):
    memes_dir = request.app[MEMES_DIR_KEY]
    names = await asyncio.to_thread(list_template_names, memes_dir)
    if not names:
        return _no_memes()

    name = pick_random(names, request.app[RNG_KEY])
    meme = await asyncio.to_thread(load_meme, memes_dir / name, name)
    return web.json_response(meme)


async def get_specific_meme(request):
    filename = request.match_info["filename"]
    path = resolve_meme_path(request.app[MEMES_DIR_KEY], filename)

    if not await asyncio.to_thread(path.is_file):
        return json_error(404, "Meme not found", f"Meme '{filename}' does not exist")

    meme = await asyncio.to_thread(load_meme, path, filename)
    meme["requested_at"] = meme["generated_at"]
    return web.json_response(meme)


def _load_many(memes_dir: Path, names):
    memes = []
    for name in names:
        try:
            memes.append(load_meme(memes_dir / name, name))
        except MemeLoadError as e:
            logger.warning("Dropping %s from batch: %s", name, e)
    return memes


async def generate_multiple_memes(request):
    raw = request.match_info["count"]
    # plain ASCII digits only; int() would also take "1_0" or "+5"
    count = int(raw) if raw.isascii() and raw.isdigit() else 0
    if not 1 <= count <= MAX_RANDOM_COUNT:
        return json_error(400, "Invalid count", f"Count must be between 1 and {MAX_RANDOM_COUNT}")

    memes_dir = request.app[MEMES_DIR_KEY]
    names = await asyncio.to_thread(list_template_names, memes_dir)
    if not names:
        return _no_memes()

    picks = pick_many(names, count, request.app[RNG_KEY])
    memes = await asyncio.to_thread(_load_many, memes_dir, picks)
    return web.json_response({"memes": memes, "count": len(memes), "generated_at": _now()})


async def get_meme_stats(request):
    stats = await asyncio.to_thread(compute_stats, request.app[MEMES_DIR_KEY])
    return web.json_response(stats)


async def search_memes(request):
    term = request.query.get("q")
    if term is None:
        return json_error(400, "Missing query", "Query parameter 'q' is required")

    query, results = await asyncio.to_thread(search_templates, request.app[MEMES_DIR_KEY], term)
    return web.json_response({"query": query, "results": results, "count": len(results)})


async def toggle_favorite(request):
    try:
        body = await request.json()
    except ValueError as e:
        return json_error(400, "Invalid request body", f"Body must be JSON: {e}")

    meme_name = body.get("meme_name") if isinstance(body, dict) else None
    if not isinstance(meme_name, str):
        return json_error(400, "Missing meme_name", "Body must contain a string 'meme_name'")
    resolve_meme_path(request.app[MEMES_DIR_KEY], meme_name)

    store = request.app[FAVORITES_KEY]
    try:
        is_favorite = await asyncio.to_thread(store.toggle, meme_name)
    except OSError as e:
        logger.error("Failed to save favorites to %s: %s", store.path, e)
        return json_error(500, "Cannot save favorites", f"Cannot write {store.path}: {e}")

    return web.json_response({
        "meme_name": meme_name,
        "is_favorite": is_favorite,
        "message": "Added to favorites" if is_favorite else "Removed from favorites",
    })


async def get_favorites(request):
    favorites = await asyncio.to_thread(request.app[FAVORITES_KEY].read)
    return web.json_response({"favorites": favorites, "count": len(favorites)})


# --- App setup ---

def create_app(memes_dir=None, favorites_file=None, rng=None,
               client_max_size: int = MAX_BODY_BYTES) -> web.Application:
    app = web.Application(middlewares=[cors_middleware, error_middleware],
                          client_max_size=client_max_size)
    app[MEMES_DIR_KEY] = Path(memes_dir if memes_dir is not None else MEMES_DIR)
    app[FAVORITES_KEY] = FavoritesStore(favorites_file if favorites_file is not None else FAVORITES_FILE)
    app[RNG_KEY] = rng if rng is not None else random

    app.router.add_get("/health", health_check)
    app.router.add_get("/list", list_templates)
    app.router.add_get("/generate", generate_random_meme)
    app.router.add_get("/meme/{filename}", get_specific_meme)
    app.router.add_get("/random/{count}", generate_multiple_memes)
    app.router.add_get("/stats", get_meme_stats)
    app.router.add_get("/search", search_memes)
    app.router.add_post("/favorite", toggle_favorite)
    app.router.add_get("/favorites", get_favorites)
    return app


def setup_logging(logs_dir: str = LOGS_DIR, level: str = LOG_LEVEL):
    os.makedirs(logs_dir, exist_ok=True)
    logging.basicConfig(
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        level=getattr(logging, level, logging.INFO),
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(os.path.join(logs_dir, "meme_server.log"), encoding="utf-8"),
        ],
    )


def print_banner():
    print('=' * 60)
    print('🖼️  MEME SERVER')
    print('=' * 60)
    print(f'🌐 Server running at: http://{HOST}:{PORT}')
    print(f'Serving memes from: {MEMES_DIR}')
    print(f'Favorites file: {FAVORITES_FILE}')
    print()
    print('📍 Available endpoints:')
    for method, path, desc in ENDPOINTS:
        print(f'  - {method} {path:<20} - {desc}')
    print('Press Ctrl+C to stop')
    print('=' * 60)


def main():
    setup_logging()

    if not MEMES_DIR.exists():
        print(f'Memes directory not found at {MEMES_DIR}. Creating...')
        MEMES_DIR.mkdir(parents=True, exist_ok=True)

    app = create_app()
    print_banner()
    web.run_app(app, host=HOST, port=PORT, print=None)


if __name__ == '__main__':
    main()
