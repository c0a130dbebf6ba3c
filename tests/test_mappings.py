"""Tests for core/mappings/ — actions and the compiled mapping table.

Covers:
- volume_ratio: pass mode (value / 127) and fixed percent (value / 100)
- Action descriptions used in log lines
- ValueConditionedActions precedence: exact value > default > nothing
- MappingTable.build: block merging, duplicate detection (value and default)
- MappingTable.resolve: program change / control change, triggering value
- Immutability of the built table
"""

from __future__ import annotations

import pytest

from core.lpd8.inputs import ControlChange, Input, ProgramChange
from core.mappings.actions import (
    PASS,
    DisableSceneItem,
    EnableSceneItem,
    SetScene,
    SetVolume,
    ToggleInputMute,
    ToggleSceneItem,
    volume_ratio,
)
from core.mappings.table import (
    PROGRAM_CHANGE_VALUE,
    ConditionalAction,
    MappingConfigError,
    MappingTable,
    Resolution,
    ValueConditionedActions,
)

# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


class TestVolumeRatio:
    def test_pass_full_scale(self) -> None:
        assert volume_ratio(PASS, 127) == 1.0

    def test_pass_zero(self) -> None:
        assert volume_ratio(PASS, 0) == 0.0

    def test_pass_midpoint(self) -> None:
        assert volume_ratio(PASS, 64) == pytest.approx(64 / 127)

    def test_fixed_percent_ignores_value(self) -> None:
        assert volume_ratio(40, 127) == pytest.approx(0.4)
        assert volume_ratio(100, 0) == 1.0


class TestActionDescriptions:
    def test_set_scene(self) -> None:
        assert str(SetScene("Camera A")) == "set current scene to Camera A"

    def test_set_volume_pass(self) -> None:
        assert str(SetVolume("Mic", PASS)) == "set volume of Mic to input value"

    def test_set_volume_fixed(self) -> None:
        assert str(SetVolume("Mic", 30)) == "set volume of Mic to 30"

    def test_scene_item_actions(self) -> None:
        assert str(EnableSceneItem("Webcam")) == "enable scene item Webcam"
        assert str(DisableSceneItem("Webcam")) == "disable scene item Webcam"
        assert str(ToggleSceneItem("Webcam")) == "toggle scene item Webcam"

    def test_toggle_input(self) -> None:
        assert str(ToggleInputMute("Mic")) == "toggle input Mic"

    def test_actions_are_frozen(self) -> None:
        action = SetScene("Camera A")
        with pytest.raises(AttributeError):
            action.name = "Camera B"  # type: ignore[misc]

    def test_actions_compare_by_value(self) -> None:
        assert SetScene("A") == SetScene("A")
        assert SetScene("A") != EnableSceneItem("A")


# ---------------------------------------------------------------------------
# ValueConditionedActions
# ---------------------------------------------------------------------------


class TestValueConditionedActions:
    def test_exact_value_wins_over_default(self) -> None:
        actions = ValueConditionedActions(
            by_value={64: SetScene("Specific")}, default=SetScene("Default")
        )
        assert actions.get(64) == SetScene("Specific")

    def test_default_used_when_no_exact_match(self) -> None:
        actions = ValueConditionedActions(
            by_value={64: SetScene("Specific")}, default=SetScene("Default")
        )
        assert actions.get(1) == SetScene("Default")

    def test_none_without_match_or_default(self) -> None:
        actions = ValueConditionedActions(by_value={64: SetScene("Specific")})
        assert actions.get(1) is None

    def test_empty(self) -> None:
        assert ValueConditionedActions().get(0) is None


# ---------------------------------------------------------------------------
# MappingTable.build
# ---------------------------------------------------------------------------


def _table() -> MappingTable:
    return MappingTable.build(
        {Input.PAD1: SetScene("Camera A")},
        [
            {
                Input.KNOB1: ConditionalAction(SetVolume("Mic", PASS)),
                Input.PAD2: ConditionalAction(EnableSceneItem("Webcam"), on=127),
            },
            {
                Input.PAD2: ConditionalAction(DisableSceneItem("Webcam"), on=0),
                Input.KNOB2: ConditionalAction(ToggleInputMute("Mic"), on=64),
            },
        ],
    )


class TestMappingTableBuild:
    def test_blocks_are_merged_per_input(self) -> None:
        table = _table()
        pad2 = table.control_changes[Input.PAD2]
        assert pad2.by_value == {127: EnableSceneItem("Webcam"), 0: DisableSceneItem("Webcam")}
        assert pad2.default is None

    def test_default_only_input(self) -> None:
        knob1 = _table().control_changes[Input.KNOB1]
        assert dict(knob1.by_value) == {}
        assert knob1.default == SetVolume("Mic", PASS)

    def test_entry_count(self) -> None:
        assert _table().entry_count == 5

    def test_empty(self) -> None:
        table = MappingTable.build({}, [])
        assert table.entry_count == 0
        assert table.resolve(ProgramChange(Input.PAD1)) is None

    def test_duplicate_value_across_blocks_fails(self) -> None:
        with pytest.raises(MappingConfigError, match="on=64"):
            MappingTable.build(
                {},
                [
                    {Input.KNOB1: ConditionalAction(SetScene("A"), on=64)},
                    {Input.KNOB1: ConditionalAction(SetScene("B"), on=64)},
                ],
            )

    def test_duplicate_default_across_blocks_fails(self) -> None:
        with pytest.raises(MappingConfigError, match="default"):
            MappingTable.build(
                {},
                [
                    {Input.KNOB1: ConditionalAction(SetScene("A"))},
                    {Input.KNOB1: ConditionalAction(SetScene("B"))},
                ],
            )

    def test_duplicate_error_names_block(self) -> None:
        with pytest.raises(MappingConfigError, match=r"control_changes\[2\]"):
            MappingTable.build(
                {},
                [
                    {Input.PAD1: ConditionalAction(SetScene("A"), on=1)},
                    {Input.PAD2: ConditionalAction(SetScene("A"), on=1)},
                    {Input.PAD1: ConditionalAction(SetScene("B"), on=1)},
                ],
            )

    def test_same_value_on_different_inputs_is_fine(self) -> None:
        table = MappingTable.build(
            {},
            [
                {Input.PAD1: ConditionalAction(SetScene("A"), on=127)},
                {Input.PAD2: ConditionalAction(SetScene("B"), on=127)},
            ],
        )
        assert table.entry_count == 2

    def test_duplicate_error_is_value_error(self) -> None:
        assert issubclass(MappingConfigError, ValueError)

    def test_table_is_read_only(self) -> None:
        table = _table()
        with pytest.raises(TypeError):
            table.program_changes[Input.PAD2] = SetScene("X")  # type: ignore[index]
        with pytest.raises(TypeError):
            table.control_changes[Input.PAD2].by_value[5] = SetScene("X")  # type: ignore[index]

    def test_build_copies_program_changes(self) -> None:
        source = {Input.PAD1: SetScene("Camera A")}
        table = MappingTable.build(source, [])
        source[Input.PAD2] = SetScene("Camera B")
        assert Input.PAD2 not in table.program_changes


# ---------------------------------------------------------------------------
# MappingTable.resolve
# ---------------------------------------------------------------------------


class TestMappingTableResolve:
    def test_program_change(self) -> None:
        assert _table().resolve(ProgramChange(Input.PAD1)) == Resolution(
            SetScene("Camera A"), PROGRAM_CHANGE_VALUE
        )

    def test_program_change_unmapped(self) -> None:
        assert _table().resolve(ProgramChange(Input.PAD8)) is None

    def test_program_change_table_not_used_for_control_change(self) -> None:
        assert _table().resolve(ControlChange(Input.PAD1, 127)) is None

    def test_control_change_specific_value(self) -> None:
        assert _table().resolve(ControlChange(Input.PAD2, 127)) == Resolution(
            EnableSceneItem("Webcam"), 127
        )

    def test_control_change_specific_value_other_block(self) -> None:
        assert _table().resolve(ControlChange(Input.PAD2, 0)) == Resolution(
            DisableSceneItem("Webcam"), 0
        )

    def test_control_change_no_match_no_default(self) -> None:
        assert _table().resolve(ControlChange(Input.PAD2, 5)) is None

    def test_control_change_default_carries_value(self) -> None:
        assert _table().resolve(ControlChange(Input.KNOB1, 42)) == Resolution(
            SetVolume("Mic", PASS), 42
        )

    def test_specific_value_precedence_over_default(self) -> None:
        table = MappingTable.build(
            {},
            [
                {Input.KNOB3: ConditionalAction(SetScene("Default"))},
                {Input.KNOB3: ConditionalAction(SetScene("Specific"), on=64)},
            ],
        )
        assert table.resolve(ControlChange(Input.KNOB3, 64)).action == SetScene("Specific")
        assert table.resolve(ControlChange(Input.KNOB3, 1)).action == SetScene("Default")

    def test_unmapped_input(self) -> None:
        assert _table().resolve(ControlChange(Input.KNOB8, 10)) is None
