import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from dotenv import load_dotenv

# Ensure .env values are loaded even if uvicorn is launched without `dotenv run`.
# Use override=True so editing `.env` (and restarting uvicorn) reliably takes effect even if
# older values exist in the environment from a previous shell/session.
# Loaded before the app imports below so module-level settings see the .env values.
load_dotenv(override=True)

from app.routes import account, admin, auth, dashboard, public  # noqa: E402
from app.routes import disputes, payments, referrals, vehicles  # noqa: E402
from core.database import init_db  # noqa: E402

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield
    vehicles.close_providers()


app = FastAPI(title="AutoAudit", lifespan=lifespan)


app.include_router(public.router)
app.include_router(auth.router)
app.include_router(dashboard.router)
app.include_router(account.router)
app.include_router(vehicles.router)
app.include_router(disputes.router)
app.include_router(payments.router)
app.include_router(referrals.router)
app.include_router(admin.router)


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "SAMEORIGIN")
    response.headers.setdefault(
        "Content-Security-Policy",
        "default-src 'self'; img-src 'self' data:; style-src 'self' 'unsafe-inline'; script-src 'self' 'unsafe-inline'; "
        "font-src 'self' data:; connect-src 'self';",
    )
    return response
