"""onboarding.services — business logic. Blueprints call in; services own commits."""
