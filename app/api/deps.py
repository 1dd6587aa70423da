"""
FastAPI dependencies resolving the services built at startup.
"""
from starlette.requests import HTTPConnection

from app.services.container import Services


def get_services(connection: HTTPConnection) -> Services:
    """Services wired by the application lifespan."""
    return connection.app.state.services
