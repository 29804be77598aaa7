"""Authentication and authorization.

Learn: one authentication path. Email/password login issues a signed
session token in an httpOnly cookie; every protected request checks the
signature, then the sessions table (so logout and password reset revoke
immediately), then re-reads the user's role from the users table.
"""
