"""Listings app: boat slips and docks advertised by owners."""
