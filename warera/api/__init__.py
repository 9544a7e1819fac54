"""WarEra API package.

Contains FastAPI routers for the web API.
"""

from warera.api.dependencies import CommonDependencies

__all__ = ["CommonDependencies"]
