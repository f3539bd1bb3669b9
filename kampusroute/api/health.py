"""Liveness check used by the mobile client before it connects."""
from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

router = APIRouter(tags=["health"])


@router.get("/ping", response_class=PlainTextResponse)
def ping():
    return "Handshake acknowledged."
