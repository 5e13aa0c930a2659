"""onboarding.core — context and exception types shared by every service."""
