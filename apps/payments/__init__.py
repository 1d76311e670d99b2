"""Stripe payments for bookings."""
