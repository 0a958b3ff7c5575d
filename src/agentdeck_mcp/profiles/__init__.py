"""Agent profile models and loader exports."""

from .builtin import builtin_profiles
from .loader import ProfileLoadError, ProfileLoader, load_profiles
from .models import AgentOption, AgentProfile, OptionChoice, OptionValue

__all__ = [
    "AgentOption",
    "AgentProfile",
    "OptionChoice",
    "OptionValue",
    "ProfileLoadError",
    "ProfileLoader",
    "builtin_profiles",
    "load_profiles",
]
