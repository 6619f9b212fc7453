"""Variable onboarding API."""
