import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import state
from .db import engine
from .errors import ConfigurationError, MailguardError
from .repository import init_schema
from .routers import alerts, evaluate, health, policies, rules

logging.basicConfig(
    level=state.settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

if state.settings.persist_results:
    init_schema(engine)

# API metadata for OpenAPI documentation
description = """
## Mailguard Triage API

Message triage and policy decision engine for an email security gateway.

### Pipeline

* **Normalize:** raw message -> immutable signals (missing auth results fail closed)
* **Content filters:** ordered, tenant-defined regex rules (keyword, domain, attachment, url, header)
* **Risk aggregation:** ML anomaly score + authentication failures + filter/policy floors
* **Decision:** allowed | suspicious | quarantined | blocked, with reason and forcing rule
* **Alerts:** real-time alerts for blocked/quarantined messages and critical risk factors

### Quick Start

1. **Health Check:** `GET /health`
2. **Evaluate:** `POST /tenants/{tenant_id}/evaluate`
3. **Configure:** `PUT /tenants/{tenant_id}/policy`, `POST /tenants/{tenant_id}/rules`
"""

app = FastAPI(
    title="Mailguard Triage API",
    description=description,
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=[
        {"name": "health", "description": "Service health and database connectivity checks"},
        {"name": "evaluate", "description": "Message triage and disposition"},
        {"name": "policy", "description": "Tenant policy thresholds and flags"},
        {"name": "rules", "description": "Content filter rule management"},
        {"name": "alerts", "description": "Alert listing and acknowledgement"},
    ],
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
    return JSONResponse(status_code=422, content={"detail": str(exc), "error": "configuration_error"})


@app.exception_handler(MailguardError)
async def lookup_error_handler(request: Request, exc: MailguardError) -> JSONResponse:
    if isinstance(exc, LookupError):
        return JSONResponse(status_code=404, content={"detail": str(exc), "error": "not_found"})
    return JSONResponse(status_code=400, content={"detail": str(exc), "error": "bad_request"})


app.include_router(health.router, prefix="/health", tags=["health"])
app.include_router(evaluate.router, prefix="/tenants", tags=["evaluate"])
app.include_router(policies.router, prefix="/tenants", tags=["policy"])
app.include_router(rules.router, prefix="/tenants", tags=["rules"])
app.include_router(alerts.router, prefix="/tenants", tags=["alerts"])
