"""HomeKrypto — back office API for the Home Krypto Token platform.

Accounts and cookie sessions, password reset and email verification,
the admin-gated real-estate agent approval workflow, and fractional
property listings.
"""

__version__ = "0.1.0"
