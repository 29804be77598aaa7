"""Audit event type constants.

Centralizing event types as constants prevents typos and makes it
easy to discover everything the audit log can contain.
"""

# ─── Accounts ────────────────────────────────────────────

USER_REGISTERED = "user.registered"
USER_PROFILE_UPDATED = "user.profile_updated"
USER_ROLE_CHANGED = "user.role_changed"
USER_DELETED = "user.deleted"
EMAIL_VERIFIED = "user.email_verified"
VERIFICATION_RESENT = "user.verification_resent"

# ─── Authentication ──────────────────────────────────────

LOGIN_SUCCEEDED = "auth.login_succeeded"
LOGIN_FAILED = "auth.login_failed"
ACCOUNT_LOCKED = "auth.account_locked"
SESSIONS_REVOKED = "auth.sessions_revoked"
PASSWORD_RESET_REQUESTED = "auth.password_reset_requested"
PASSWORD_RESET_COMPLETED = "auth.password_reset_completed"
PASSWORD_CHANGED = "auth.password_changed"

# ─── Agents ──────────────────────────────────────────────

AGENT_REGISTERED = "agent.registered"
AGENT_APPROVED = "agent.approved"
AGENT_DENIED = "agent.denied"
AGENT_ACTIVATION_CHANGED = "agent.activation_changed"
AGENT_DELETED = "agent.deleted"

# ─── Properties ──────────────────────────────────────────

PROPERTY_CREATED = "property.created"
PROPERTY_UPDATED = "property.updated"
PROPERTY_DEACTIVATED = "property.deactivated"
SHARES_PURCHASED = "property.shares_purchased"
