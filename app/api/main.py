import logging

from fastapi import FastAPI
from fastapi.responses import RedirectResponse

from app.api.logging_setup import configure_logging
from app.api.middleware.reqlog import RequestLogMiddleware
from app.api.routers import doses
import app.medtrack.db as db

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Medtrack Adherence API")

app.add_middleware(RequestLogMiddleware)
app.include_router(doses.router)


@app.get("/", include_in_schema=False)
def root():
    # send humans to docs
    return RedirectResponse(url="/docs")


@app.get("/health")
def health():
    # simple DB check
    try:
        with db.pg(db.dsn_from_env()) as conn, conn.cursor() as cur:
            cur.execute("SELECT 1")
            cur.fetchone()
        return {"ok": True}
    except Exception as e:
        logger.warning("health check failed: %s", e)
        return {"ok": False, "error": str(e)}
