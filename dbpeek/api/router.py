from fastapi import APIRouter
from dbpeek.api.endpoints import auth, query, tables

api_router = APIRouter()

# Combine all sub-routers into one
api_router.include_router(auth.router)
api_router.include_router(tables.router)
api_router.include_router(query.router)
