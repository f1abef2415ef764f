from fastapi import Request

from ..container import ServiceContainer


def get_container(request: Request) -> ServiceContainer:
    """The container built at startup."""
    return request.app.state.container
