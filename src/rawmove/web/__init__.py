__all__ = ["create_app"]

from rawmove.web.app import create_app
