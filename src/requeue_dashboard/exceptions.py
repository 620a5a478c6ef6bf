"""
Dashboard Exception Classes
"""


class DashboardError(Exception):
    """Base exception for dashboard operations"""
    pass


class ConfigError(DashboardError):
    """Raised when dashboard configuration is invalid"""
    pass


class EngineLoadError(DashboardError):
    """Raised when the queue engine client cannot be constructed"""
    pass


class EngineUnavailable(DashboardError):
    """Raised when an engine call is attempted in demo mode"""
    pass


class AggregationError(DashboardError):
    """Raised when system stats cannot be computed at all"""
    pass
