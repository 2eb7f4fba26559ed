"""Remote-controlled profiling sessions for long-running Python processes.

Typical embedding::

    from pprofsvc import AppConfig, serve

    server = serve(AppConfig.from_yaml("configs/app.yaml"))
    ...
    server.shutdown()
"""

from pprofsvc.api.server import ProfilingServer, serve
from pprofsvc.core.config import AppConfig
from pprofsvc.core.kinds import ProfileKind
from pprofsvc.session import SessionController, SessionResult

__all__ = [
    "AppConfig",
    "ProfileKind",
    "ProfilingServer",
    "SessionController",
    "SessionResult",
    "serve",
]
