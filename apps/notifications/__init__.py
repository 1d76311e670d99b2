"""Notifications app package.

In-app notifications double as the realtime event feed: every record
carries an event type (``booking.updated``, ``message.created`` ...) and
clients poll for new ones. Emails go out through Django's mail backend.
"""
