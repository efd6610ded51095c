from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .core.config import Settings, get_settings
from .core.logging import configure_logging
from .api.routes_enrichment import router as enrichment_router

settings = get_settings()
configure_logging(settings.LOG_LEVEL)


def _split_origins(value: str | None) -> list[str]:
    return [o.strip() for o in (value or "").split(",") if o.strip()]


def cors_origins(settings: Settings) -> list[str]:
    """
    Allowed CORS origins.

    - prod: FRONTEND_ORIGIN is required; never "*".
    - otherwise: "*" when CORS_ALLOW_ALL_ORIGINS is set or no origin is configured.
    """
    origins = _split_origins(settings.FRONTEND_ORIGIN)
    if settings.ENV.lower() == "prod":
        if not origins:
            raise RuntimeError(
                "FRONTEND_ORIGIN must be set in production – refusing to start with wide-open CORS."
            )
        return origins
    if settings.CORS_ALLOW_ALL_ORIGINS or not origins:
        return ["*"]
    return origins


app = FastAPI(title="Lead Intel Enrichment API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins(settings),
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
    allow_credentials=False,
)

app.include_router(enrichment_router, prefix=settings.API_PREFIX)


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}
