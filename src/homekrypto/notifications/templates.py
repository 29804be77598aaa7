"""Email builders. Each returns a ready-to-queue EmailMessage.

Markup is intentionally plain; branding lives with the email provider.
User-supplied values are HTML-escaped before interpolation.
"""

from html import escape
from typing import Optional

from homekrypto.config import Settings, settings as default_settings
from homekrypto.notifications.notifier import EmailMessage


def _greeting(name: Optional[str]) -> str:
    return f"<p>Hello {escape(name or 'there')},</p>"


def _button(url: str, label: str) -> str:
    safe = escape(url, quote=True)
    return (
        f'<p><a href="{safe}" style="background:#d4af37;color:#fff;'
        f'padding:12px 24px;text-decoration:none;border-radius:5px;">{escape(label)}</a></p>'
        f"<p>Or copy this link: {safe}</p>"
    )


def verification_email(
    to: str,
    token: str,
    name: Optional[str] = None,
    config: Settings = default_settings,
) -> EmailMessage:
    url = f"{config.public_base_url}/api/auth/verify-email?token={token}"
    hours = config.email_verification_expire_hours
    html = (
        "<h2>Verify your email</h2>"
        + _greeting(name)
        + "<p>Thanks for registering with Home Krypto Token. Please confirm your email address.</p>"
        + _button(url, "Verify Email")
        + f"<p>This link expires in {hours} hours.</p>"
    )
    return EmailMessage(
        to=to,
        subject="Verify Your Email - Home Krypto Token",
        html=html,
        text=f"Please verify your email by visiting: {url}",
        kind="email_verification",
    )


def password_reset_email(
    to: str,
    token: str,
    name: Optional[str] = None,
    config: Settings = default_settings,
) -> EmailMessage:
    url = f"{config.public_base_url}/reset-password?token={token}"
    minutes = config.password_reset_expire_minutes
    html = (
        "<h2>Password reset request</h2>"
        + _greeting(name)
        + "<p>We received a request to reset the password for your account.</p>"
        + _button(url, "Reset Password")
        + f"<p>This link expires in {minutes} minutes. Any earlier reset links no longer work.</p>"
        + "<p>If you didn't request this, you can ignore this email.</p>"
    )
    return EmailMessage(
        to=to,
        subject="Reset Your Password - Home Krypto Token",
        html=html,
        text=f"Reset your password: {url}",
        kind="password_reset",
    )


def password_changed_email(
    to: str,
    name: Optional[str],
    timestamp: str,
    ip_address: str,
    browser: str,
    location: str,
    config: Settings = default_settings,
) -> EmailMessage:
    html = (
        "<h2>Your password has been changed</h2>"
        + _greeting(name)
        + "<p>The password for your Home Krypto Token account was just changed.</p>"
        + "<ul>"
        + f"<li><strong>Time:</strong> {escape(timestamp)}</li>"
        + f"<li><strong>IP address:</strong> {escape(ip_address)}</li>"
        + f"<li><strong>Device:</strong> {escape(browser)}</li>"
        + f"<li><strong>Location:</strong> {escape(location)}</li>"
        + "</ul>"
        + "<p>If this was you, no action is needed. If not, reset your password "
        + f'immediately at <a href="{escape(config.public_base_url)}/forgot-password">'
        + "the password reset page</a> and contact support.</p>"
    )
    return EmailMessage(
        to=to,
        subject="Your password has been changed - Was this you?",
        html=html,
        kind="password_changed",
    )


def agent_welcome_email(to: str, first_name: Optional[str]) -> EmailMessage:
    html = (
        "<h2>Registration submitted</h2>"
        + _greeting(first_name)
        + "<p>Thank you for applying to become a HomeKrypto partner agent. "
        + "Your application will be reviewed within 1-2 business days.</p>"
        + "<p>What happens next: we verify your license and credentials, "
        + "then email you the decision. Once approved, your public profile "
        + "goes live and you receive your referral link.</p>"
    )
    return EmailMessage(
        to=to,
        subject="Welcome to HomeKrypto - Registration Submitted",
        html=html,
        kind="agent_welcome",
    )


def admin_new_agent_email(agent, config: Settings = default_settings) -> EmailMessage:
    rows = [
        ("Name", f"{agent.first_name} {agent.last_name}"),
        ("Email", agent.email),
        ("Phone", agent.phone or "Not provided"),
        ("Company", agent.company or "Not provided"),
        ("License", agent.license_number or "Not provided"),
        ("Location", f"{agent.city or 'Not provided'}, {agent.country}"),
        ("Years experience", str(agent.years_experience)),
    ]
    items = "".join(
        f"<li><strong>{escape(k)}:</strong> {escape(v)}</li>" for k, v in rows
    )
    html = (
        "<h2>New agent registration</h2>"
        + f"<ul>{items}</ul>"
        + f'<p>Review it in the <a href="{escape(config.public_base_url)}/admin/agents">admin panel</a>.</p>'
    )
    return EmailMessage(
        to=config.admin_email,
        subject=f"New Agent Registration: {agent.first_name} {agent.last_name} ({agent.email})",
        html=html,
        kind="admin_new_agent",
    )


def agent_approved_email(agent, page_url: str) -> EmailMessage:
    referral = agent.referral_link or "Available in your agent dashboard"
    html = (
        "<h2>Your HKT agent application has been approved</h2>"
        + _greeting(f"{agent.first_name} {agent.last_name}")
        + "<p>Welcome to the Home Krypto Token agent network!</p>"
        + f'<p><strong>Your public profile:</strong> <a href="{escape(page_url, quote=True)}">{escape(page_url)}</a></p>'
        + f"<p><strong>Referral link:</strong> {escape(referral)}</p>"
    )
    return EmailMessage(
        to=agent.email,
        subject="HKT Agent Application Approved - Welcome to Our Network!",
        html=html,
        kind="agent_approved",
    )


def agent_denied_email(agent, reason: Optional[str]) -> EmailMessage:
    reason_html = f"<p><strong>Reason:</strong> {escape(reason)}</p>" if reason else ""
    html = (
        "<h2>HKT agent application update</h2>"
        + _greeting(f"{agent.first_name} {agent.last_name}")
        + "<p>After careful review, we are unable to approve your application at this time.</p>"
        + reason_html
        + "<p>You are welcome to reapply in the future.</p>"
    )
    return EmailMessage(
        to=agent.email,
        subject="HKT Agent Application Status Update",
        html=html,
        kind="agent_denied",
    )


def agent_removed_email(agent) -> EmailMessage:
    html = (
        "<h2>Your HKT agent profile has been removed</h2>"
        + _greeting(f"{agent.first_name} {agent.last_name}")
        + "<p>Your agent profile and public page have been removed from the "
        + "HomeKrypto network. Contact support if you believe this is a mistake.</p>"
    )
    return EmailMessage(
        to=agent.email,
        subject="HKT Agent Profile Removed",
        html=html,
        kind="agent_removed",
    )


def admin_user_deleted_email(
    user, approved_agents: int, config: Settings = default_settings
) -> EmailMessage:
    name = " ".join(p for p in (user.first_name, user.last_name) if p) or "N/A"
    impact = (
        f"<p>This user had approved {approved_agents} agent(s); their approver "
        "field is now empty. The agents remain active.</p>"
        if approved_agents
        else ""
    )
    html = (
        "<h2>User account deleted</h2>"
        + "<ul>"
        + f"<li><strong>Email:</strong> {escape(user.email)}</li>"
        + f"<li><strong>Name:</strong> {escape(name)}</li>"
        + f"<li><strong>Role:</strong> {escape(user.role)}</li>"
        + f"<li><strong>Agents approved:</strong> {approved_agents}</li>"
        + "</ul>"
        + impact
    )
    return EmailMessage(
        to=config.admin_email,
        subject="User Account Deleted - Admin Notification",
        html=html,
        kind="admin_user_deleted",
    )
