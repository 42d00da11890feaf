from .analytics_service import AnalyticsService

__all__ = ['AnalyticsService']
