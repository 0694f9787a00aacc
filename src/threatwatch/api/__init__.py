from .main import create_app, start_api_server
from .routes import router, services

__all__ = ["create_app", "start_api_server", "router", "services"]
