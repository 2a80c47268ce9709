"""Authentication module (email + password, JWT bearer tokens).

Services:
    - AuthService: Registration and login.
    - TokenService: JWT issuance and verification.
    - IdentityResolver: Bearer credential → verified user identity, used by
      the HTTP dependencies and by the real-time ``signin`` event.
"""
