from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .config import ConfigStore
from .routers import gateway, health

# API metadata for OpenAPI documentation
description = """
## Email Form Gateway

Receives contact-form posts from a web page, validates every configured field
and answers with a verdict. Accepted forms produce two emails: a confirmation
to the submitter and a notification to the site owner.

### Validation

* **email:** address syntax check
* **textRestricted:** letters, spaces and punctuation only
* **textUnrestricted:** anything except control characters

Every value is trimmed, stripped of mail-header tokens and `<script>` blocks,
and HTML-escaped before it is judged.
"""


def create_app(config_store: ConfigStore) -> FastAPI:
    config = config_store.get()

    app = FastAPI(
        title="Email Form Gateway",
        description=description,
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_tags=[
            {
                "name": "health",
                "description": "Service status",
            },
            {
                "name": "form",
                "description": "Contact-form validation and email dispatch",
            },
        ],
    )
    app.state.config_store = config_store

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.server.allowed_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router, prefix="/health", tags=["health"])
    app.include_router(gateway.build_router(config.server.path), tags=["form"])
    return app
