from .env_validation import validate_environment

__all__ = ["validate_environment"]
