"""Tests for ralph/modes.py - mode registry and run options.

This module tests:
- Every mode has a registry entry
- Prompt file selection, including the backpressure audit
- Prompt placeholder values per mode
"""

import pytest

from ralph.modes import (
    BACKPRESSURE_PROMPT_FILE,
    MODE_CONFIGS,
    AuditOptions,
    AuditScope,
    Mode,
    RunOptions,
    get_mode_config,
)


class TestModeConfigs:
    """Tests for the MODE_CONFIGS registry."""

    def test_every_mode_registered(self) -> None:
        assert set(MODE_CONFIGS) == set(Mode)

    def test_only_done_skips_loop(self) -> None:
        assert [m for m, c in MODE_CONFIGS.items() if not c.runs_loop] == [Mode.DONE]

    def test_looping_modes_have_prompts(self) -> None:
        for config in MODE_CONFIGS.values():
            if config.runs_loop:
                assert config.prompt_file is not None
                assert config.prompt_file.startswith("PROMPT_")

    def test_get_mode_config_by_name(self) -> None:
        assert get_mode_config("PLAN-WORK").mode == Mode.PLAN_WORK

    def test_get_mode_config_unknown(self) -> None:
        with pytest.raises(ValueError):
            get_mode_config("ship")


class TestRunOptions:
    """Tests for RunOptions prompt selection."""

    def test_default_prompt(self) -> None:
        assert RunOptions().prompt_file == "PROMPT_build.md"

    def test_backpressure_audit_prompt(self) -> None:
        options = RunOptions(mode=Mode.AUDIT, audit=AuditOptions(scope=AuditScope.BACKPRESSURE))

        assert options.prompt_file == BACKPRESSURE_PROMPT_FILE

    def test_done_has_no_prompt(self) -> None:
        assert RunOptions(mode=Mode.DONE).prompt_file is None

    def test_plan_work_variables(self) -> None:
        options = RunOptions(mode=Mode.PLAN_WORK, work_scope="billing")

        assert options.prompt_variables() == {"WORK_SCOPE": "billing"}

    def test_audit_variables(self) -> None:
        options = RunOptions(
            mode=Mode.AUDIT, audit=AuditOptions(scope=AuditScope.PATTERNS, quick=True)
        )

        assert options.prompt_variables() == {
            "AUDIT_SCOPE": "patterns",
            "AUDIT_APPLY": "false",
            "AUDIT_QUICK": "true",
        }

    def test_build_has_no_variables(self) -> None:
        assert RunOptions().prompt_variables() == {}
