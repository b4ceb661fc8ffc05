"""CloudCast access control and organization onboarding."""
