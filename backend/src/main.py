"""
Module principal de l'application FastAPI du moteur de devis CRM.

Ce module configure et initialise l'instance FastAPI, ajoute le middleware CORS
et inclut les routeurs (authentification, devis, produits, deals).
"""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.config import settings
from src.database import import_table_models

# --- Importer les routeurs ---
from src.auth.router import auth_router
from src.products.router import product_router
from src.quotes.router import quote_router
from src.deals.router import deal_router

# Configurer le logging
logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

# Enregistrer toutes les tables dans SQLModel.metadata (clés étrangères croisées)
import_table_models()

app = FastAPI(
    title=settings.APP_NAME,
    description="API de gestion des devis: calcul des montants, cycle de vie, révisions et conversion en deal.",
    version=settings.APP_VERSION,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Range"],
)

# ======================================================
# Inclure les routeurs
# ======================================================
app.include_router(auth_router, prefix=f"{settings.API_V1_PREFIX}/auth", tags=["Authentification"])
app.include_router(quote_router, prefix=f"{settings.API_V1_PREFIX}/quotes", tags=["Quotes"])
app.include_router(product_router, prefix=f"{settings.API_V1_PREFIX}/products", tags=["Produits"])
app.include_router(deal_router, prefix=f"{settings.API_V1_PREFIX}/deals", tags=["Deals"])


@app.get("/health", tags=["Santé"])
async def health_check():
    return {"status": "ok", "version": settings.APP_VERSION}

logger.info(f"Application {settings.APP_NAME} {settings.APP_VERSION} initialisée.")
