"""FastAPI dependencies shared by the routers."""

from starlette.requests import HTTPConnection

from plantlife.config import Settings
from plantlife.services import Services


def get_services(request: HTTPConnection) -> Services:
    """The service container built during application startup."""
    return request.app.state.services


def get_app_settings(request: HTTPConnection) -> Settings:
    """Settings the application was created with."""
    return request.app.state.settings
