# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/clinic_authz

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from clinic_authz.api import auth, permissions, role_permissions, user_permissions
from clinic_authz.authorization.catalog import seed_catalog
from clinic_authz.config import ENVIRONMENT, SEED_PERMISSIONS
from clinic_authz.dependencies import async_session_maker
from clinic_authz.guards import GuardError, guard_error_handler
from clinic_authz.utils.logger import logger


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    logger.info(f"Starting clinic-authz ({ENVIRONMENT})...")
    if SEED_PERMISSIONS:
        async with async_session_maker() as session:
            await seed_catalog(session)
    yield
    logger.info("Shutting down clinic-authz...")


async def http_error_handler(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, StarletteHTTPException)
    return JSONResponse(status_code=exc.status_code, content={"message": exc.detail}, headers=exc.headers)


app = FastAPI(
    title="Clinic Authz",
    description="Permission resolution and enforcement for the appointment platform",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_exception_handler(GuardError, guard_error_handler)
app.add_exception_handler(StarletteHTTPException, http_error_handler)

app.include_router(auth.router)
app.include_router(permissions.router)
app.include_router(role_permissions.router)
app.include_router(user_permissions.router)


@app.get("/")
def hello_world() -> dict[str, str]:
    logger.info("Hello World!")
    return {"message": "Hello World!"}
