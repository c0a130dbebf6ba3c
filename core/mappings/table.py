"""core/mappings/table.py — Compiled, read-only LPD8 → action lookup.

Two sub-tables:

    program_changes   Input → Action
    control_changes   Input → ValueConditionedActions (value → Action + default)

Resolution precedence for a control change ``(input, value)``:

    1. the entry whose ``on`` equals ``value``
    2. the input's default entry (``on`` omitted)
    3. nothing

The control-change section of a mapping file is a list of blocks.  Blocks are
merged, but every ``(input, on)`` pair, the default included, may appear only
once across all of them; a repeat is a :class:`MappingConfigError`.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from core.lpd8.inputs import ControlChange, Input, Lpd8Message, ProgramChange
from core.mappings.actions import Action

# Program changes carry no value; dispatch sees this as the triggering value.
PROGRAM_CHANGE_VALUE = 0


class MappingConfigError(ValueError):
    """Raised when mapping blocks define the same trigger more than once."""


@dataclass(frozen=True)
class ConditionalAction:
    """One control-change mapping entry: fire ``action`` when the value is ``on``.

    ``on=None`` makes it the input's default.
    """

    action: Action
    on: int | None = None


@dataclass(frozen=True)
class ValueConditionedActions:
    """Actions for a single input, keyed by exact value, plus an optional default."""

    by_value: Mapping[int, Action] = field(default_factory=dict)
    default: Action | None = None

    def get(self, value: int) -> Action | None:
        """Return the action for ``value``, falling back to the default."""
        action = self.by_value.get(value)
        if action is not None:
            return action
        return self.default


@dataclass(frozen=True)
class Resolution:
    """A matched action and the control value that triggered it."""

    action: Action
    value: int


@dataclass(frozen=True)
class MappingTable:
    """Immutable lookup built once from configuration."""

    program_changes: Mapping[Input, Action] = field(default_factory=dict)
    control_changes: Mapping[Input, ValueConditionedActions] = field(default_factory=dict)

    @classmethod
    def build(
        cls,
        program_changes: Mapping[Input, Action],
        control_change_blocks: Iterable[Mapping[Input, ConditionalAction]],
    ) -> MappingTable:
        """Compile configuration into a :class:`MappingTable`.

        Args:
            program_changes: One action per pad/knob in program-change mode.
            control_change_blocks: Control-change blocks in file order.

        Returns:
            A frozen table whose mappings cannot be mutated.

        Raises:
            MappingConfigError: If two entries share an input and trigger value,
                or an input has two defaults.
        """
        by_value: dict[Input, dict[int, Action]] = {}
        defaults: dict[Input, Action] = {}

        for block_index, block in enumerate(control_change_blocks):
            for input_, entry in block.items():
                if entry.on is None:
                    if input_ in defaults:
                        raise MappingConfigError(
                            f"control_changes[{block_index}]: {input_.value} already has a "
                            f"default action ({defaults[input_]}), cannot add "
                            f"'{entry.action}'"
                        )
                    defaults[input_] = entry.action
                    continue

                values = by_value.setdefault(input_, {})
                if entry.on in values:
                    raise MappingConfigError(
                        f"control_changes[{block_index}]: {input_.value} on={entry.on} is "
                        f"already mapped to '{values[entry.on]}', cannot add '{entry.action}'"
                    )
                values[entry.on] = entry.action

        control_changes = {
            input_: ValueConditionedActions(
                by_value=MappingProxyType(by_value.get(input_, {})),
                default=defaults.get(input_),
            )
            for input_ in (*by_value, *(i for i in defaults if i not in by_value))
        }

        return cls(
            program_changes=MappingProxyType(dict(program_changes)),
            control_changes=MappingProxyType(control_changes),
        )

    def resolve(self, message: Lpd8Message) -> Resolution | None:
        """Find the action for a decoded LPD8 message, if any."""
        if isinstance(message, ProgramChange):
            action = self.program_changes.get(message.input)
            if action is None:
                return None
            return Resolution(action, PROGRAM_CHANGE_VALUE)

        if isinstance(message, ControlChange):
            actions = self.control_changes.get(message.input)
            if actions is None:
                return None
            action = actions.get(message.value)
            if action is None:
                return None
            return Resolution(action, message.value)

        return None

    @property
    def entry_count(self) -> int:
        """Total number of configured triggers across both sub-tables."""
        return len(self.program_changes) + sum(
            len(a.by_value) + (a.default is not None) for a in self.control_changes.values()
        )
