import time
from datetime import datetime, timezone
from typing import Annotated, Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, status
from fastapi.responses import HTMLResponse

from ..database import get_store
from ..repositories.base import Store

router = APIRouter(tags=["service"])

API_VERSION = "1.0.0"
STARTED_AT = time.monotonic()

ENDPOINTS = [
    {"method": "GET", "path": "/api", "description": "API information"},
    {"method": "GET", "path": "/api/health", "description": "Health check"},
    {"method": "GET", "path": "/api/hello", "description": "Simple greeting"},
    {"method": "GET", "path": "/api/time", "description": "Current server time"},
    {"method": "POST", "path": "/api/echo", "description": "Echo back JSON data"},
    {"method": "POST", "path": "/api/auth/register", "description": "Create an account"},
    {"method": "POST", "path": "/api/auth/login", "description": "Get a bearer token"},
    {"method": "GET", "path": "/api/auth/me", "description": "Current user"},
    {"method": "GET", "path": "/api/todos", "description": "List your todos"},
    {"method": "POST", "path": "/api/todos", "description": "Create a todo"},
    {"method": "GET", "path": "/api/todos/stats", "description": "Todo counts"},
    {"method": "GET", "path": "/api/todos/{todo_id}", "description": "Get a todo"},
    {"method": "PUT", "path": "/api/todos/{todo_id}", "description": "Update a todo"},
    {"method": "DELETE", "path": "/api/todos/{todo_id}", "description": "Delete a todo"},
    {"method": "GET", "path": "/api/admin/users", "description": "All users (admin)"},
    {"method": "GET", "path": "/api/admin/todos", "description": "All todos (admin)"},
]


def _now() -> datetime:
    return datetime.now(timezone.utc)


@router.get("/", response_class=HTMLResponse, include_in_schema=False)
async def index() -> str:
    rows = "\n".join(
        f"<li><code>{e['method']} {e['path']}</code> {e['description']}</li>" for e in ENDPOINTS
    )
    return (
        "<!DOCTYPE html><html><head><title>Todo API</title></head><body>"
        "<h1>Todo API</h1>"
        f"<ul>{rows}</ul>"
        '<p>Interactive documentation: <a href="/docs">/docs</a></p>'
        "</body></html>"
    )


@router.get("/api", summary="API information")
async def api_info() -> Dict[str, Any]:
    return {
        "success": True,
        "data": {
            "message": "Welcome to the Todo API",
            "version": API_VERSION,
            "endpoints": ENDPOINTS,
            "documentation": "/docs",
            "timestamp": _now().isoformat(),
        },
    }


@router.get("/api/health", summary="Health check")
async def health(store: Annotated[Store, Depends(get_store)]) -> Dict[str, Any]:
    """
    Reports which backend is serving and whether it answers.
    """
    connected = store.ping()
    return {
        "success": True,
        "data": {
            "status": "healthy" if connected else "degraded",
            "database": store.name,
            "connected": connected,
            "service": "Todo API",
            "uptime": round(time.monotonic() - STARTED_AT, 3),
            "timestamp": _now().isoformat(),
        },
    }


@router.get("/api/hello", summary="Simple greeting")
async def hello() -> Dict[str, Any]:
    return {
        "success": True,
        "data": {
            "message": "Hello",
            "greeting": "Welcome to the API!",
            "timestamp": _now().isoformat(),
        },
    }


@router.get("/api/time", summary="Current server time")
async def server_time() -> Dict[str, Any]:
    now = _now()
    return {
        "success": True,
        "data": {
            "timestamp": now.isoformat(),
            "timezone": "UTC",
            "unix": int(now.timestamp()),
            "year": now.year,
            "month": now.month,
            "day": now.day,
            "hour": now.hour,
            "minute": now.minute,
            "second": now.second,
        },
    }


@router.post("/api/echo", summary="Echo back JSON data")
async def echo(payload: Annotated[Optional[Dict[str, Any]], Body()] = None) -> Dict[str, Any]:
    if not payload:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No data provided. Please send JSON data in the request body",
        )
    return {
        "success": True,
        "data": {
            "received": payload,
            "message": "Successfully received your data!",
            "timestamp": _now().isoformat(),
        },
    }
