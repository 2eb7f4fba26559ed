"""HTTP control surface."""

from .main import ProfileMessages, create_app
from .server import ProfilingServer, serve

__all__ = ["create_app", "ProfileMessages", "ProfilingServer", "serve"]
