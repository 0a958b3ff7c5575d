"""Profile models describing how AgentDeck launches an agent CLI."""

from __future__ import annotations

from typing import Any, Literal, Mapping

from pydantic import BaseModel, Field, field_validator, model_validator

OptionValue = bool | str


class OptionChoice(BaseModel):
    """A permitted value for a string option."""

    value: str
    label: str


class AgentOption(BaseModel):
    """A single command-line option exposed by an agent profile."""

    id: str = Field(..., description="Stable identifier used as the key in selected options.")
    flag: str = Field(
        default="",
        description="Command-line flag. An empty flag makes a string option positional.",
    )
    label: str = Field(..., description="Human-friendly label used in error messages.")
    description: str = ""
    type: Literal["boolean", "string"] = "boolean"
    default: OptionValue | None = None
    choices: list[OptionChoice] = Field(default_factory=list)
    group: str | None = Field(
        default=None,
        description="Options sharing a group are mutually exclusive.",
    )

    @field_validator("id", "label")
    @classmethod
    def _require_text(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Option id and label must not be empty")
        return normalized

    def is_set(self, value: Any) -> bool:
        return value is not None and value is not False and value != ""


class AgentProfile(BaseModel):
    """Configuration describing how AgentDeck should launch an agent."""

    id: str = Field(..., description="Unique identifier for the profile.")
    name: str = Field(..., description="Display name for the agent profile.")
    description: str = ""
    kind: Literal["agent", "terminal"] = "agent"
    agent_type: str | None = Field(
        default=None,
        description="Detection and transcript strategy; defaults to the profile id.",
    )
    command: str = Field(..., description="Executable, optionally with leading arguments.")
    base_args: list[str] = Field(default_factory=list)
    options: list[AgentOption] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("id", "command")
    @classmethod
    def _normalize_required(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Agent profile id and command must not be empty")
        return normalized

    @field_validator("base_args", mode="before")
    @classmethod
    def _ensure_list(cls, value: Any):
        if value is None:
            return []
        if isinstance(value, (list, tuple)):
            return [str(item) for item in value]
        raise TypeError("base_args must be a sequence of strings")

    @model_validator(mode="after")
    def _check_options(self) -> "AgentProfile":
        seen: set[str] = set()
        for option in self.options:
            if option.id in seen:
                raise ValueError(f"Duplicate option id '{option.id}' in profile '{self.id}'")
            seen.add(option.id)
        if self.agent_type is None:
            self.agent_type = self.id if self.kind == "agent" else "terminal"
        else:
            self.agent_type = self.agent_type.strip().lower()
        return self

    def option(self, option_id: str) -> AgentOption | None:
        for option in self.options:
            if option.id == option_id:
                return option
        return None

    def resolve_options(self, selected: Mapping[str, OptionValue] | None) -> dict[str, OptionValue]:
        """Return the selected options with profile defaults filled in."""

        resolved: dict[str, OptionValue] = {}
        for option in self.options:
            if option.default is not None and option.is_set(option.default):
                resolved[option.id] = option.default
        resolved.update(selected or {})
        return resolved

    def validate_options(self, selected: Mapping[str, Any] | None) -> list[str]:
        """Return a list of human-readable problems with ``selected`` (empty if valid)."""

        errors: list[str] = []
        groups: dict[str, list[AgentOption]] = {}

        for key, value in (selected or {}).items():
            option = self.option(key)
            if option is None:
                errors.append(f"Unknown option '{key}' for agent '{self.id}'")
                continue
            if option.type == "boolean" and not isinstance(value, bool):
                errors.append(f"Option '{option.label}' expects a boolean value")
                continue
            if option.type == "string" and not isinstance(value, str):
                errors.append(f"Option '{option.label}' expects a string value")
                continue
            if option.type == "string" and option.choices and value:
                allowed = [choice.value for choice in option.choices]
                if value not in allowed:
                    errors.append(
                        f"Option '{option.label}' must be one of: {', '.join(allowed)}"
                    )
                    continue
            if option.group and option.is_set(value):
                groups.setdefault(option.group, []).append(option)

        for group, active in groups.items():
            if len(active) > 1:
                labels = ", ".join(option.label for option in active)
                errors.append(
                    f'Options "{labels}" are mutually exclusive (group: {group}). Select only one.'
                )

        return errors

    def build_args(self, selected: Mapping[str, OptionValue] | None) -> list[str]:
        """Translate selected options into command-line arguments."""

        args = list(self.base_args)
        values = selected or {}
        for option in self.options:
            value = values.get(option.id)
            if not option.is_set(value):
                continue
            if option.type == "boolean" and value is True:
                if option.flag:
                    args.append(option.flag)
            elif option.type == "string" and isinstance(value, str):
                if option.flag:
                    args.extend([option.flag, value])
                else:
                    args.append(value)
        return args


__all__ = ["AgentOption", "AgentProfile", "OptionChoice", "OptionValue"]
