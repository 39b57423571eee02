"""
PrepDeck Auth Application Layer

This package implements the web application layer for the auth service, handling HTTP requests
and responses using the aiohttp framework. It exposes the mobile client's authentication API and
the internal liveness and readiness probes.

Key Components:
- cli.py: Entry point for running the application
- server.py: Web server configuration, middleware setup and resource lifecycle
- config.py: Configuration management using Pydantic settings
- handlers/: Request handlers for the different endpoints
- tasks.py: Background tasks for session cleanup and health monitoring
- metrics.py: Vendor-agnostic metrics client
- util/: Operator utilities

The application uses two middleware layers:
- Statsd middleware for metrics collection
- Envelope middleware rendering failures and reporting unhandled errors to Sentry

It provides the following main endpoints:
- Authentication endpoints (/api/auth/*)
- Profile endpoints (/api/user/profile)
- Internal endpoints (/internal/*)
"""
