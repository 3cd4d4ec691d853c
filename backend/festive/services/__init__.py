"""Services layer - business logic and external integrations.

- repositories/: Data access layer
- auth_service: password hashing and JWT session tokens
- mfa_service: TOTP and backup codes
- login_service: the password -> 2FA -> tokens login flow
- account_service: registration, email verification, password reset
- security_audit_service: persistent audit trail
- email_service: SendGrid notifications
"""
