"""Variable request middleware."""

from variable_api.middleware.performance import RequestIDMiddleware, RequestTimingMiddleware

__all__ = ["RequestIDMiddleware", "RequestTimingMiddleware"]
