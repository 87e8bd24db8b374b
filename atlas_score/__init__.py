"""
Atlas Score: driver performance scoring and anomaly detection.
"""

from .analytics import AtlasScoreEngine
from .config import ServiceConfig

__version__ = ServiceConfig.APP_VERSION

__all__ = ["AtlasScoreEngine", "__version__"]
