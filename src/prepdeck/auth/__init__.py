"""
PrepDeck Auth - credential issuance and session lifecycle service

This module implements the backend that signs users of the PrepDeck mobile application in and
keeps them signed in. It turns a verified identity (email and password, or a Google ID token) into
a pair of tokens, persists and rotates the long-lived half of that pair, and validates the
short-lived half on every protected request.

Key Components:
- app: Web application layer with request handlers, configuration and background tasks
- credentials: Password hashing, token issuing and verification, Google identity bridge and the
  sign-up / sign-in / refresh / sign-out flows
- model: Database models for identities and refresh sessions
- store: Data access for identities and refresh sessions

Architecture Overview:
1. Authentication Flow:
   - Client submits email and password, or a Google ID token
   - Service verifies the credential and resolves it to a local identity
   - A signed access token and an opaque refresh token are issued together

2. Session Lifecycle:
   - Access tokens are short lived (15 minutes by default) and stateless
   - Refresh tokens are stored server side and rotated on every use
   - Sign-out deletes the refresh session

3. Maintenance:
   - A background task purges expired refresh sessions
   - Redis coordinates the purge across workers
"""
