"""
HTTP routes for the MarkDash API.
"""

from fastapi import APIRouter

from markdash.routes import auth, boards, exports, logs, notifications

router = APIRouter()
router.include_router(auth.router)
router.include_router(boards.router)
router.include_router(logs.router)
router.include_router(notifications.router)
router.include_router(exports.router)
