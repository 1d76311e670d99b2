"""Users app package.

Defines the platform user (renters, slip owners and platform admins),
email/phone login with lockout, JWT issuance and password reset codes.
Use ``apps.users.models.User`` as the AUTH_USER_MODEL throughout the
project.
"""
