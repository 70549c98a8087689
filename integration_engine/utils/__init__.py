"""Crypto, logging and rate limiting helpers."""
