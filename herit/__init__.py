"""Herit onboarding and session service."""
