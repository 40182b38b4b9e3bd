"""WeChat service account bridge."""
from mpbridge.app_factory import create_app

__all__ = ["create_app"]
