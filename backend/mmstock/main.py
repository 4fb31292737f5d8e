# backend/mmstock/main.py
import os
from typing import List

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .apps.accounts.router_public import router as accounts_public_router
from .apps.accounts.router_admin import router as accounts_admin_router
from .apps.locations.router import router as locations_router
from .apps.clients.router import router as clients_router
from .apps.products.router import router as products_router
from .apps.inventory.router import router as inventory_router
from .apps.imports.router import router as imports_router
from .apps.exports.router import router as exports_router
from .apps.audit.router import router as audit_router
from .apps.storage.router import router as storage_router


def _allowed_origins() -> List[str]:
    """
    Parse CORS_ALLOWED_ORIGINS from env.

    Accepts comma-separated origins. If unset, defaults to local dev ports.
    """
    raw = os.getenv("CORS_ALLOWED_ORIGINS", "")
    if raw:
        origins = [origin.strip() for origin in raw.split(",") if origin.strip()]
        if origins:
            return origins
    return [
        "http://127.0.0.1:5173",
        "http://localhost:5173",
        "http://localhost:8080",
    ]


app = FastAPI(title="MM Stock API", version="1.0.0")
cors_origins = _allowed_origins()
allow_credentials = "*" not in cors_origins

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition"],
)


@app.get("/", tags=["health"])
def read_root():
    return {"status": "ok", "message": "MM Stock backend is running"}


@app.get("/health", tags=["health"])
def health():
    return {"status": "ok"}


app.include_router(accounts_public_router)
app.include_router(accounts_admin_router)
app.include_router(locations_router)
app.include_router(clients_router)
app.include_router(products_router)
app.include_router(inventory_router)
app.include_router(imports_router)
app.include_router(exports_router)
app.include_router(audit_router)
app.include_router(storage_router)
