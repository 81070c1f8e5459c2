"""
Middleware Package
Request dependencies for webhook authentication and rate limiting
"""
from inbox_agent.middleware.webhook_auth import get_webhook_connection
from inbox_agent.middleware.rate_limit import webhook_rate_limit, webhook_rate_limiter, FixedWindowRateLimiter

__all__ = ['get_webhook_connection', 'webhook_rate_limit', 'webhook_rate_limiter', 'FixedWindowRateLimiter']
