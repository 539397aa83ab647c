"""Service layer: persistence, tokens, onboarding, and consents."""
