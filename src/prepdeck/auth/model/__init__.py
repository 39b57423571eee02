"""
Database Models

This package defines the database models for the PrepDeck auth service using SQLAlchemy ORM.

Key Models:
- base.py: Base SQLAlchemy model with common type definitions
- identity.py: Durable user identities keyed by unique email
- session.py: Refresh sessions mapping opaque refresh tokens to identities
- health.py: Health monitoring gauge

The data models follow these relationships:
- Identity: One row per user, optionally holding a bcrypt password hash and a Google subject
- RefreshSession: Zero or more per identity, each one a single-use refresh token with an expiry

Access tokens are never persisted; they are signed and verified statelessly.
"""
