"""Shared FastAPI dependencies and error helpers."""

from fastapi import HTTPException, Request

from billing_core.container import BillingContainer


def get_container(request: Request) -> BillingContainer:
    """The container built by the application lifespan."""
    return request.app.state.container


def api_error(status_code: int, error: str, message: str) -> HTTPException:
    """HTTPException with the standard {"error", "message"} body."""
    return HTTPException(status_code=status_code, detail={"error": error, "message": message})
