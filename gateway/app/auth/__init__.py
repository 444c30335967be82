"""
Authentication Package

Optional identity stage in front of the forwarding gateway.

Modules:
- utils: bearer token extraction, JWKS fetching and caching
- verifier: Firebase ID token verification producing a VerifiedPrincipal
"""
