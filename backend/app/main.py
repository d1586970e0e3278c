import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from app.config import get_settings
from app.models.base import init_db
from app.api import dashboard, documents, products, public, rfqs, tokens

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: initialize database tables
    await init_db()
    yield


app = FastAPI(
    title="Pitchivo Catalog API",
    description="Product catalog pages with tiered field access, document extraction and RFQs",
    version="0.3.0",
    lifespan=lifespan,
)

# CORS for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.public_app_url.rstrip("/")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Merchant API
app.include_router(products.router, prefix="/products", tags=["products"])
app.include_router(documents.router, prefix="/documents", tags=["documents"])
app.include_router(tokens.router, prefix="/tokens", tags=["tokens"])
app.include_router(rfqs.router, prefix="/rfqs", tags=["rfqs"])
app.include_router(dashboard.router, prefix="/dashboard", tags=["dashboard"])
# Anonymous product pages
app.include_router(public.router, prefix="/public", tags=["public"])


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


@app.get("/")
async def root():
    return {"message": "Pitchivo Catalog API", "docs": "/docs"}
