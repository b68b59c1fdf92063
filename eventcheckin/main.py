"""
Point d'entrée principal de l'API d'inscription et de check-in.
Démarrage : uvicorn eventcheckin.main:app --reload
"""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import eventcheckin.models  # noqa: F401 — enregistre tous les modèles dans Base.metadata avant les routers
from eventcheckin.routers import check_ins, registrations

logger = logging.getLogger(__name__)

app = FastAPI(
    title="EventCheckin API",
    description="Inscription aux événements et check-in par QR code",
    version="0.1.0",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
)

# CORS — autorise tous les ports localhost en développement (à restreindre en production).
app.add_middleware(
    CORSMiddleware,
    allow_origins=[],
    allow_origin_regex=r"https?://(localhost|127\.0\.0\.1)(:\d+)?",
    allow_credentials=False,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "Accept"],
)


app.include_router(registrations.router)
app.include_router(check_ins.router)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Intercepte toutes les exceptions non gérées pour que la réponse 500
    passe par CORSMiddleware (sinon le navigateur ne voit qu'un "Failed to fetch").
    """
    logger.error("Exception non gérée : %s", exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Une erreur interne est survenue."},
    )


@app.get("/api/health", tags=["Santé"])
def health_check():
    """Vérifie que l'API est opérationnelle."""
    return {"status": "ok", "service": "EventCheckin API", "version": "0.1.0"}
