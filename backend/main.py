"""Run the WanderNest API locally: ``python backend/main.py``."""

import os
from importlib.metadata import PackageNotFoundError, version

from dotenv import load_dotenv
from fastapi.openapi.utils import get_openapi

# Settings are read at import time, so .env has to be loaded first
load_dotenv()

from wandernest.core.config import settings  # noqa: E402
from wandernest.main import app  # noqa: E402

OPENAPI_TAGS = [
    {"name": "Tourist Requests", "description": "Trip requests, matches and shortlists."},
    {"name": "Guide Requests", "description": "A guide's shortlist entries: list, accept, reject."},
    {"name": "Guides", "description": "Guide sign-up and profiles."},
    {"name": "Reviews", "description": "Post-trip reviews and guide reliability metrics."},
    {"name": "Admin", "description": "Token-gated moderation and manual assignment."},
]


def _api_version() -> str:
    try:
        return version("wandernest")
    except PackageNotFoundError:
        return "0.0.0+local"


def custom_openapi() -> dict:
    """Build the schema once, with tag descriptions and the API prefix as server."""
    if app.openapi_schema:
        return app.openapi_schema
    schema = get_openapi(
        title="WanderNest API",
        version=_api_version(),
        description="Match tourists with local student guides and book them.",
        routes=app.routes,
        tags=OPENAPI_TAGS,
    )
    schema["info"]["x-api-prefix"] = settings.API_V1_STR
    app.openapi_schema = schema
    return app.openapi_schema


app.openapi = custom_openapi

if __name__ == "__main__":
    import uvicorn

    workers = int(os.getenv("UVICORN_WORKERS", "1"))
    uvicorn.run(
        "wandernest.main:app",
        host=os.getenv("UVICORN_HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "8000")),
        # uvicorn cannot reload with more than one worker
        reload=workers == 1 and os.getenv("UVICORN_RELOAD", "1") == "1",
        workers=workers,
        timeout_keep_alive=int(os.getenv("UVICORN_KEEPALIVE", "65")),
    )
