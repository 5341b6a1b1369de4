# app/main.py
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from shared.core.config import settings
from shared.core.database import Base, leasing_engine
from shared.helpers.exception_handler import setup_exception_handlers
from shared.wrappers.response_wrapper import JsonResponseMiddleware
from .models.leasing import (
    audit_logs, document_artifacts, lease_addendums, leases, orgs, tenants, units,
)
from .router.leasing import addendums_router, leases_router, signing_router

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# Create all tables
Base.metadata.create_all(bind=leasing_engine)

# This MUST exist for uvicorn
app = FastAPI(title=settings.APP_NAME)

origins = [o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Custom JSON response wrapper middleware
app.add_middleware(JsonResponseMiddleware)

# Register exception handlers
setup_exception_handlers(app)


# Registered ahead of /api/leases/{lease_id}
@app.get("/api/leases/health")
def health():
    return {"status": "healthy"}


# Routers: public token routes first
app.include_router(signing_router.router)
app.include_router(leases_router.router)
app.include_router(addendums_router.router)
