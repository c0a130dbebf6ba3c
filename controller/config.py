"""
Configuration for the LPD8 → OBS controller.

Two layers:

    Mapping file    TOML or YAML, validated with pydantic, compiled into an
                    immutable :class:`~core.mappings.table.MappingTable`.
    BridgeSettings  Frozen runtime settings (OBS address, device, queues),
                    filled from CLI flags and environment variables.

Mapping file example (TOML)::

    [program_changes]
    pad1 = { action = "SetScene", name = "Camera A" }

    [[control_changes]]
    knob1 = { action = "SetVolume", name = "Mic", value = "pass" }

    [[control_changes]]
    pad1 = { on = 127, action = "EnableSceneItem", name = "Overlay" }

    [[control_changes]]
    pad1 = { on = 0, action = "DisableSceneItem", name = "Overlay" }
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from core.lpd8.inputs import Input
from core.mappings.actions import (
    PASS,
    Action,
    DisableSceneItem,
    EnableSceneItem,
    SetScene,
    SetVolume,
    ToggleInputMute,
    ToggleSceneItem,
)
from core.mappings.table import ConditionalAction, MappingTable


class ConfigError(ValueError):
    """Raised when the mapping file cannot be read, parsed or validated."""


# ---------------------------------------------------------------------------
# Mapping file schema
# ---------------------------------------------------------------------------


class _ActionSpec(BaseModel):
    """Fields shared by every action entry."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str = Field(..., min_length=1, description="OBS scene, input or scene item name.")
    on: int | None = Field(
        default=None,
        ge=0,
        le=127,
        description="Trigger value for control changes. Omit for the default action.",
    )

    @model_validator(mode="before")
    @classmethod
    def yaml_on_key(cls, data: Any) -> Any:
        """YAML 1.1 loads a bare ``on:`` key as the boolean ``True``."""
        if isinstance(data, dict) and True in data:
            return {("on" if key is True else key): value for key, value in data.items()}
        return data


class SetSceneSpec(_ActionSpec):
    action: Literal["SetScene"]

    def to_action(self) -> Action:
        return SetScene(self.name)


class SetVolumeSpec(_ActionSpec):
    action: Literal["SetVolume"]
    value: Literal["pass"] | Annotated[int, Field(ge=0, le=100)] = Field(
        ..., description='"pass" to follow the control value, or a fixed percent.'
    )

    def to_action(self) -> Action:
        return SetVolume(self.name, PASS if self.value == "pass" else self.value)


class ToggleInputMuteSpec(_ActionSpec):
    # "ToggleInput" is the name older mapping files use.
    action: Literal["ToggleInputMute", "ToggleInput"]

    def to_action(self) -> Action:
        return ToggleInputMute(self.name)


class EnableSceneItemSpec(_ActionSpec):
    action: Literal["EnableSceneItem"]

    def to_action(self) -> Action:
        return EnableSceneItem(self.name)


class DisableSceneItemSpec(_ActionSpec):
    action: Literal["DisableSceneItem"]

    def to_action(self) -> Action:
        return DisableSceneItem(self.name)


class ToggleSceneItemSpec(_ActionSpec):
    action: Literal["ToggleSceneItem"]

    def to_action(self) -> Action:
        return ToggleSceneItem(self.name)


ActionSpec = Annotated[
    SetSceneSpec
    | SetVolumeSpec
    | ToggleInputMuteSpec
    | EnableSceneItemSpec
    | DisableSceneItemSpec
    | ToggleSceneItemSpec,
    Field(discriminator="action"),
]


class MappingsFile(BaseModel):
    """Top-level mapping file."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    program_changes: dict[Input, ActionSpec] = Field(default_factory=dict)
    control_changes: list[dict[Input, ActionSpec]] = Field(default_factory=list)

    @model_validator(mode="after")
    def program_changes_have_no_trigger_value(self) -> MappingsFile:
        """Program changes carry no value, so ``on`` is meaningless there."""
        for input_, spec in self.program_changes.items():
            if spec.on is not None:
                raise ValueError(
                    f"program_changes.{input_.value}: 'on' is only valid in control_changes"
                )
        return self

    def to_table(self) -> MappingTable:
        """Compile into a :class:`MappingTable`.

        Raises:
            MappingConfigError: On duplicate triggers across control-change blocks.
        """
        return MappingTable.build(
            {input_: spec.to_action() for input_, spec in self.program_changes.items()},
            [
                {input_: ConditionalAction(spec.to_action(), spec.on) for input_, spec in block.items()}
                for block in self.control_changes
            ],
        )


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

_TOML_SUFFIXES = frozenset({".toml"})
_YAML_SUFFIXES = frozenset({".yaml", ".yml"})


class _UniqueKeyLoader(yaml.SafeLoader):
    """SafeLoader that rejects a key repeated within one mapping."""

    def construct_mapping(self, node: yaml.MappingNode, deep: bool = False) -> dict[Any, Any]:
        self.flatten_mapping(node)
        seen: set[Any] = set()
        for key_node, _ in node.value:
            key = self.construct_object(key_node, deep=deep)
            try:
                duplicate = key in seen
            except TypeError:
                continue  # unhashable, reported by SafeLoader
            if duplicate:
                raise yaml.constructor.ConstructorError(
                    "while constructing a mapping",
                    node.start_mark,
                    f"found duplicate key {key!r}",
                    key_node.start_mark,
                )
            seen.add(key)
        return super().construct_mapping(node, deep=deep)


def parse_mappings(text: str, *, fmt: Literal["toml", "yaml"], source: str = "<string>") -> MappingsFile:
    """Parse and validate mapping file content.

    Args:
        text: File content.
        fmt: "toml" or "yaml".
        source: Name used in error messages.

    Raises:
        ConfigError: On syntax or schema errors.
    """
    try:
        if fmt == "toml":
            raw: Any = tomllib.loads(text)
        else:
            raw = yaml.load(text, Loader=_UniqueKeyLoader) or {}  # noqa: S506
    except (tomllib.TOMLDecodeError, yaml.YAMLError) as exc:
        raise ConfigError(f"{source}: invalid {fmt.upper()}: {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigError(f"{source}: expected a table at the top level, got {type(raw).__name__}")

    try:
        return MappingsFile.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(f"{source}: {exc}") from exc


def load_mappings(path: str | Path) -> MappingsFile:
    """Read a ``.toml``, ``.yaml`` or ``.yml`` mapping file.

    Raises:
        ConfigError: If the file is missing, has an unknown suffix, or is invalid.
    """
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix in _TOML_SUFFIXES:
        fmt: Literal["toml", "yaml"] = "toml"
    elif suffix in _YAML_SUFFIXES:
        fmt = "yaml"
    else:
        raise ConfigError(f"{path}: unsupported mapping file type {suffix!r} (use .toml or .yaml)")

    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Cannot read mapping file {path}: {exc}") from exc

    return parse_mappings(text, fmt=fmt, source=str(path))


# ---------------------------------------------------------------------------
# Runtime settings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BridgeSettings:
    """
    Runtime settings for one controller process.

    Attributes:
        host: OBS websocket host.
        port: OBS websocket port (obs-websocket v5 default 4455).
        password: OBS websocket password, if authentication is enabled.
        mappings_path: Path to the mapping file.
        device_name: Substring matched against MIDI input port names.
        queue_size: Capacity of the LPD8 event queue.
        request_timeout: Seconds to wait for an OBS response.
        put_warn_after: Seconds a MIDI callback waits on a full queue before a warning is logged.
    """

    host: str = "localhost"
    port: int = 4455
    password: str | None = None
    mappings_path: str = "lpd8-mappings.toml"
    device_name: str = "LPD8"
    queue_size: int = 100
    request_timeout: float = 10.0
    put_warn_after: float = 1.0

    def __post_init__(self) -> None:
        """Validate configuration parameters."""
        if not self.host:
            raise ValueError("host must not be empty")
        if not 0 < self.port < 65536:
            raise ValueError(f"port must be in 1-65535, got {self.port}")
        if not self.device_name:
            raise ValueError("device_name must not be empty")
        if self.queue_size <= 0:
            raise ValueError(f"queue_size must be positive, got {self.queue_size}")
        if self.request_timeout <= 0:
            raise ValueError(f"request_timeout must be positive, got {self.request_timeout}")
        if self.put_warn_after <= 0:
            raise ValueError(f"put_warn_after must be positive, got {self.put_warn_after}")

    @property
    def ws_url(self) -> str:
        return f"ws://{self.host}:{self.port}"
