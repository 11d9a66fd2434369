from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from hoa_backend.api.v1.buildings.router import router as buildings_router
from hoa_backend.api.v1.hoa.router import router as hoa_router
from hoa_backend.api.v1.ledger.router import router as ledger_router
from hoa_backend.api.v1.payments.router import router as payments_router
from hoa_backend.api.v1.reports.router import router as reports_router
from hoa_backend.core.logging import setup_logging


def create_app() -> FastAPI:
    setup_logging()
    app = FastAPI(title="HOA Management Backend")

    # CORS: allow the resident and manager portals to call this API
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers
    app.include_router(buildings_router)
    app.include_router(hoa_router)
    app.include_router(payments_router)
    app.include_router(ledger_router)
    app.include_router(reports_router)

    return app


app = create_app()
