"""Bookings app: reservations of listings and their lifecycle."""
