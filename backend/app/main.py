# This file bootstraps the FastAPI app, wires up middlewares for
# logging and metrics, and includes the commission routers.

from fastapi import APIRouter, FastAPI, Response
from fastapi.responses import JSONResponse
import os
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST

from app.core.db import Base, engine

# Middleware layers for logging and metrics
from app.core.logging import APILoggingMiddleware, RequestContextMiddleware
from app.core.metrics import MetricsMiddleware
from app.commissions.errors import CommissionError

# Routers grouped by feature area
from app.api.commissions import router as commissions_router
from app.api.partners import router as partners_router
from app.api.payout_webhooks import router as payout_webhooks_router

from app import models  # noqa: F401  registers every table on Base.metadata

API_V1_PREFIX = "/api/v1"

# Create DB tables right away so a fresh sqlite file is usable.
# Deployments that run Alembic set SKIP_MIGRATIONS=1.
if os.getenv("SKIP_MIGRATIONS") != "1":
    Base.metadata.create_all(bind=engine)

# Spin up the FastAPI app. Title shows in Swagger docs.
app = FastAPI(title="Partner Commissions")


@app.exception_handler(CommissionError)
def handle_commission_error(_request, exc: CommissionError):
    response = JSONResponse(status_code=exc.status_code, content=exc.to_payload())
    response.headers["X-Error-Code"] = exc.code
    return response


# Observability and logging layers
app.add_middleware(APILoggingMiddleware)
app.add_middleware(MetricsMiddleware)

api_v1 = APIRouter(prefix=API_V1_PREFIX)
for r in (commissions_router, partners_router, payout_webhooks_router):
    api_v1.include_router(r)

app.include_router(api_v1)

# Attach request_id early so the logging middleware can see it.
app.add_middleware(RequestContextMiddleware)


# /metrics endpoint (Prometheus scraping)
@app.get("/metrics", include_in_schema=False)
def metrics() -> Response:
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


# /ping endpoint and versioned health
@app.get("/ping")
@app.get(f"{API_V1_PREFIX}/health")
def ping():
    return {"message": "pong"}
