# Middleware — request logging
from marketdash.middleware.request_logger import RequestLoggerMiddleware

__all__ = ["RequestLoggerMiddleware"]
