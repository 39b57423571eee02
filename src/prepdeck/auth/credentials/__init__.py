"""
Credential Subsystem

This package turns verified identities into tokens and keeps the resulting sessions honest.

Key Components:
- errors.py: Failure taxonomy shared by every flow
- passwords.py: bcrypt hashing and the password acceptance policy
- tokens.py: HS256 access token minting and verification, refresh token issuing and rotation
- federated.py: Google ID token verification and mapping onto local identities
- service.py: Sign-up, sign-in, refresh, sign-out, federated sign-in and request authentication

Security properties:
- Wrong password and unknown account produce the same failure after the same hashing work
- Refresh tokens are single-use; rotation replaces the stored token in one statement
- Access token verification is a single HMAC with no clock leeway
"""
