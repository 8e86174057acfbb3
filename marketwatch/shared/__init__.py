"""
Shared module package.

Contains cross-cutting concerns used across layers:
- Error handling and mapping
- Rate limiting
- Logging configuration
"""
