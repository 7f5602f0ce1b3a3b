"""Clients for remote signing authorities."""
