"""Core package for shared functionality.

- **config**: Centralized configuration management with environment support
- **context**: Correlation ID management for logical operations
- **exceptions**: Structured exception hierarchy with error codes
- **error_context**: Sensitive data sanitization for safe logging
- **logging**: Structured logging built on Loguru
- **types**: Type aliases for better code clarity
"""
