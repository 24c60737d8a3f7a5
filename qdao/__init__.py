"""
QDAO Package

Governed treasury, quadratic voting and token vesting.

Core imports are lazily loaded. For direct module access, import from
submodules:

    from qdao.governance import GovernanceEngine
    from qdao.vesting import VestingLedger
    from qdao.system import build_system
"""

__version__ = "0.1.0"


# Lazy imports to avoid loading everything at package import
def __getattr__(name):
    """Lazy module loading."""
    if name == 'build_system':
        from .system import build_system
        return build_system
    elif name == 'DAOSystem':
        from .system import DAOSystem
        return DAOSystem
    elif name == 'load_config':
        from .config import load_config
        return load_config
    elif name == 'QDAOException':
        from .exceptions import QDAOException
        return QDAOException
    raise AttributeError(f"module 'qdao' has no attribute {name!r}")

__all__ = ['build_system', 'DAOSystem', 'load_config', 'QDAOException']
