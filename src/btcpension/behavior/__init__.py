"""Referral composition and user base growth."""
