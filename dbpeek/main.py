import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from dbpeek.api.router import api_router
from dbpeek.core.config import APP_TITLE, APP_VERSION, get_settings
from dbpeek.core.database import engine
from dbpeek.core.errors import DbPeekError
from dbpeek.core.security import enforce_access_policy

logging.basicConfig(
    level=get_settings().LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


# Close the engine once everything is done and close all the sessions
@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    if settings.default_password_active:
        logging.warning("Default password is active. Set APP_PASS.")
    yield
    await engine.dispose()


app = FastAPI(
    title=APP_TITLE,
    version=APP_VERSION,
    lifespan=lifespan,
    # IP allow list and access token gate every route
    dependencies=[Depends(enforce_access_policy)],
)


@app.exception_handler(DbPeekError)
async def dbpeek_error_handler(request: Request, exc: DbPeekError):
    return JSONResponse(
        status_code=exc.status_code, content={"detail": exc.message, **exc.extra}
    )


@app.middleware("http")
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "SAMEORIGIN"
    response.headers["Referrer-Policy"] = "no-referrer"
    return response


# Include the master router containing all our endpoints
app.include_router(api_router)


@app.get("/")
async def root():
    return {"message": f"Welcome to {APP_TITLE}", "version": APP_VERSION}


def run():
    settings = get_settings()
    uvicorn.run("dbpeek.main:app", host=settings.HOST, port=settings.PORT)
