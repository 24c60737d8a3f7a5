"""
QDAO Configuration

Loads all sections of qdao.toml. Environment variables override TOML values.
"""

from .loader import (
    ChainSectionConfig,
    GovernanceSectionConfig,
    LoggingSectionConfig,
    QDAOConfig,
    TokenSectionConfig,
    TreasurySectionConfig,
    VestingSectionConfig,
    load_config,
)

__all__ = [
    "ChainSectionConfig",
    "GovernanceSectionConfig",
    "LoggingSectionConfig",
    "QDAOConfig",
    "TokenSectionConfig",
    "TreasurySectionConfig",
    "VestingSectionConfig",
    "load_config",
]
