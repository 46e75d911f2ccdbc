"""
cert_issuer — certificate request and issuance engine.

Accepts certificate requests (freshly generated key pairs or imported
signing requests), tracks them through pending → approved/rejected, signs
approved requests with an intermediate CA and serves the resulting
certificate, chain, bundle and key artifacts.

Built on the Railway-Oriented Programming (ROP) framework for
explicit, composable, functional error handling.
"""

__version__ = "0.1.0"
