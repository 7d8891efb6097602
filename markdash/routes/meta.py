"""
Service status and endpoint index.
"""

from __future__ import annotations

from fastapi import Request

from markdash.models import utc_now_iso

API_VERSION = "1.0.0"


def service_status():
    return {
        "status": "ok",
        "message": "MarkDash API is running",
        "version": API_VERSION,
        "timestamp": utc_now_iso(),
    }


def endpoint_index(request: Request):
    p = request.app.state.settings.api_prefix
    return {
        "status": "ok",
        "endpoints": {
            "auth": {
                "register": f"POST {p}/register",
                "login": f"POST {p}/login",
                "me": f"GET {p}/me",
                "logout": f"POST {p}/logout",
            },
            "boards": {
                "list": f"GET {p}/boards",
                "get": f"GET {p}/boards/:id",
                "create": f"POST {p}/boards",
                "update": f"PUT {p}/boards/:id",
                "delete": f"DELETE {p}/boards/:id",
                "public": f"GET {p}/public/:boardId",
            },
            "logs": {
                "list": f"GET {p}/logs/:boardId",
                "getByDate": f"GET {p}/logs/:boardId/:date",
                "create": f"POST {p}/logs",
                "delete": f"DELETE {p}/logs/:id",
            },
            "notifications": {
                "list": f"GET {p}/notify/:boardId",
                "create": f"POST {p}/notify",
                "dismiss": f"PATCH {p}/notify/:id/dismiss",
                "delete": f"DELETE {p}/notify/:id",
            },
            "export": {
                "markdown": f"GET {p}/export/:boardId/markdown",
                "csv": f"GET {p}/export/:boardId/csv",
                "json": f"GET {p}/export/all/json",
            },
        },
    }
