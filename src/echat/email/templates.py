"""
Email templates for verification codes.

Each template function returns (subject, html_body, text_body).
"""

from __future__ import annotations

ACCENT = "#2563EB"
TEXT_PRIMARY = "#111827"
TEXT_SECONDARY = "#6B7280"
BORDER = "#E5E7EB"


def _base_layout(content: str, app_name: str) -> str:
    """Wrap content in the base email layout."""
    return f"""\
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <title>{app_name}</title>
</head>
<body style="margin: 0; padding: 32px 16px; background-color: #F9FAFB; font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;">
    <div style="max-width: 520px; margin: 0 auto; background-color: #FFFFFF; border: 1px solid {BORDER}; border-radius: 8px; padding: 32px;">
        <h1 style="font-size: 20px; color: {TEXT_PRIMARY}; margin: 0 0 24px;">{app_name}</h1>
        {content}
        <p style="color: {TEXT_SECONDARY}; font-size: 12px; margin-top: 32px;">
            If you didn't request this email, you can safely ignore it.
        </p>
    </div>
</body>
</html>"""


def _code_block(code: str) -> str:
    return (
        f'<p style="font-size: 32px; letter-spacing: 8px; font-weight: 700; color: {ACCENT}; '
        f'text-align: center; margin: 24px 0;">{code}</p>'
    )


def register_code(code: str, expires_minutes: int, app_name: str) -> tuple[str, str, str]:
    """Registration code email."""
    subject = f"Your {app_name} verification code"
    html_body = _base_layout(
        f"""<p style="color: {TEXT_PRIMARY};">Use this code to finish creating your account:</p>
        {_code_block(code)}
        <p style="color: {TEXT_SECONDARY};">The code expires in {expires_minutes} minutes.</p>""",
        app_name,
    )
    text_body = (
        f"Use this code to finish creating your {app_name} account: {code}\n\n"
        f"The code expires in {expires_minutes} minutes."
    )
    return subject, html_body, text_body


def reset_code(code: str, expires_minutes: int, app_name: str) -> tuple[str, str, str]:
    """Password reset code email."""
    subject = f"Reset your {app_name} password"
    html_body = _base_layout(
        f"""<p style="color: {TEXT_PRIMARY};">Use this code to reset your password:</p>
        {_code_block(code)}
        <p style="color: {TEXT_SECONDARY};">The code expires in {expires_minutes} minutes.
        If you did not ask to reset your password, no action is needed.</p>""",
        app_name,
    )
    text_body = (
        f"Use this code to reset your {app_name} password: {code}\n\n"
        f"The code expires in {expires_minutes} minutes."
    )
    return subject, html_body, text_body
