"""
Data Access

Store handles over the SQLAlchemy async session factory. They are created once by the process
entry point and passed to the services that need them.

- identities.py: CredentialStore for Identity rows
- sessions.py: RefreshSessionStore for RefreshSession rows, including atomic rotation
"""
