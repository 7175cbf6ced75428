"""FastAPI dependencies shared by the routes."""

from fastapi import Request

from gateway.config import Settings
from gateway.core.session import SessionManager


def get_session_manager(request: Request) -> SessionManager:
    """The process-wide session manager, attached to app.state at build time."""
    return request.app.state.session_manager


def get_app_settings(request: Request) -> Settings:
    """Settings the application was built with."""
    return request.app.state.settings
