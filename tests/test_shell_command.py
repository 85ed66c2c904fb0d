from __future__ import annotations

import asyncio

import pytest

from feature_installer.errors import ExecutionError, ValidationError
from feature_installer.lib.shell_command import UNSET, ShellCommand, quote_value, shell

# ── Construction ─────────────────────────────────────────────────────


def test_shell_factory_returns_command() -> None:
    assert isinstance(shell("echo"), ShellCommand)


@pytest.mark.parametrize("command", ["", "   ", "\t"])
def test_empty_command_rejected(command: str) -> None:
    with pytest.raises(ValidationError):
        ShellCommand(command)


def test_command_is_read_only() -> None:
    cmd = ShellCommand("echo")
    with pytest.raises(AttributeError):
        cmd.command = "ls"  # type: ignore[misc]


# ── add_option ───────────────────────────────────────────────────────


class TestAddOption:
    def test_option_with_value(self) -> None:
        assert ShellCommand("echo").add_option("--verbose", "true").parse() == "echo --verbose true"

    def test_flag(self) -> None:
        assert ShellCommand("echo").add_option("-v").parse() == "echo -v"

    def test_multiple_options_keep_insertion_order(self) -> None:
        cmd = ShellCommand("echo").add_option("--verbose", "true").add_option("-v")
        assert cmd.parse() == "echo --verbose true -v"

    def test_value_with_space_is_quoted(self) -> None:
        cmd = ShellCommand("echo").add_option("--message", "Hello World")
        assert cmd.parse() == 'echo --message "Hello World"'

    def test_repeated_option_accumulates(self) -> None:
        cmd = ShellCommand("echo").add_option("-e", "1").add_option("-e", "2").add_option("-e", "3")
        assert cmd.parse() == "echo -e 1 -e 2 -e 3"

    def test_scalar_is_promoted_in_order(self) -> None:
        cmd = ShellCommand("echo").add_option("-e", "1").add_option("-e", "2")
        assert cmd.options["-e"] == ["1", "2"]

    def test_flag_not_added_twice(self) -> None:
        assert ShellCommand("echo").add_option("-e").add_option("-e").parse() == "echo -e"

    def test_bare_or_blank_values_never_mutate_valued_option(self) -> None:
        cmd = (
            ShellCommand("echo")
            .add_option("-e", "1")
            .add_option("-e")
            .add_option("-e", "")
            .add_option("-e", " ")
        )
        assert cmd.parse() == "echo -e 1"

    def test_blank_value_not_appended_to_list(self) -> None:
        cmd = ShellCommand("echo").add_option("-e", "1").add_option("-e", "2").add_option("-e", "  ")
        assert cmd.parse() == "echo -e 1 -e 2"

    def test_flag_gets_value_on_later_add(self) -> None:
        assert ShellCommand("echo").add_option("-o").add_option("-o", "x").parse() == "echo -o x"

    def test_empty_name_tolerated(self) -> None:
        cmd = ShellCommand("echo").add_option("")
        assert cmd.parse() == "echo"


# ── set_option / remove_option ───────────────────────────────────────


class TestSetOption:
    def test_option_with_value(self) -> None:
        assert ShellCommand("echo").set_option("--verbose", "true").parse() == "echo --verbose true"

    def test_flag(self) -> None:
        assert ShellCommand("echo").set_option("-v").parse() == "echo -v"

    def test_value_with_space_is_quoted(self) -> None:
        cmd = ShellCommand("echo").set_option("--message", "Hello World")
        assert cmd.parse() == 'echo --message "Hello World"'

    def test_overwrites_previous_value(self) -> None:
        assert ShellCommand("echo").set_option("-e", "1").set_option("-e", "2").parse() == "echo -e 2"

    def test_overwrites_accumulated_values(self) -> None:
        cmd = ShellCommand("echo").add_option("-e", "1").add_option("-e", "2").set_option("-e", "3")
        assert cmd.parse() == "echo -e 3"

    def test_empty_name_is_noop(self) -> None:
        cmd = ShellCommand("echo").set_option("", "x")
        assert cmd.options == {}


class TestRemoveOption:
    def test_remove_valued_option(self) -> None:
        assert ShellCommand("echo").add_option("--verbose", "true").remove_option("--verbose").parse() == "echo"

    def test_remove_flag(self) -> None:
        assert ShellCommand("echo").add_option("-v").remove_option("-v").parse() == "echo"

    def test_remove_missing_is_noop(self) -> None:
        assert ShellCommand("echo").remove_option("--nonexistent").parse() == "echo"


# ── Arguments ────────────────────────────────────────────────────────


class TestArgs:
    def test_add_arg(self) -> None:
        assert ShellCommand("echo").add_arg("Hello").parse() == "echo Hello"

    def test_add_multiple_args_in_call_order(self) -> None:
        cmd = ShellCommand("echo").add_arg("Hello", "World").add_arg("again")
        assert cmd.parse() == "echo Hello World again"

    def test_arg_with_space_is_quoted(self) -> None:
        assert ShellCommand("echo").add_arg("Hello World").parse() == 'echo "Hello World"'

    def test_set_arg_overwrites(self) -> None:
        assert ShellCommand("echo").add_arg("Hello").set_arg(0, "World").parse() == "echo World"

    def test_set_arg_with_space(self) -> None:
        assert ShellCommand("echo").add_arg("Hello").set_arg(0, "Hello World").parse() == 'echo "Hello World"'

    def test_set_arg_negative_index(self) -> None:
        with pytest.raises(IndexError):
            ShellCommand("echo").set_arg(-1, "Hello")

    def test_set_arg_past_end_fills_gap(self) -> None:
        cmd = ShellCommand("echo").set_arg(5, "test")
        assert cmd.arguments[:5] == [UNSET] * 5
        assert cmd.parse() == "echo test"

    def test_set_arg_empty_unsets_slot(self) -> None:
        assert ShellCommand("echo").add_arg("Hello").set_arg(0, "").parse() == "echo"
        assert ShellCommand("echo").set_arg(0, "").parse() == "echo"

    def test_unset_slot_can_be_overwritten_later(self) -> None:
        cmd = ShellCommand("echo").add_arg("a", "b").set_arg(0, "").set_arg(0, "c")
        assert cmd.parse() == "echo c b"

    def test_options_render_before_args(self) -> None:
        cmd = ShellCommand("apt-get").add_arg("install", "curl").add_option("-y")
        assert cmd.parse() == "apt-get -y install curl"


# ── Quoting ──────────────────────────────────────────────────────────


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("plain", "plain"),
        ("a b", '"a b"'),
        ("tab\tsep", '"tab\tsep"'),
        ("line\nbreak", '"line\nbreak"'),
        ('say "hi" now', '"say \\"hi\\" now"'),
        ("$HOME dir", '"\\$HOME dir"'),
    ],
)
def test_quote_value(value: str, expected: str) -> None:
    assert quote_value(value) == expected


def test_no_double_separators() -> None:
    cmd = ShellCommand("echo").add_option("", "x").add_arg("", " ", "a").set_arg(6, "b")
    assert cmd.parse() == "echo a b"
    assert str(cmd) == "echo a b"


# ── exists / run (real shell) ────────────────────────────────────────


def test_exists_for_shell_builtin_command() -> None:
    assert asyncio.run(ShellCommand("echo").exists()) is True


def test_exists_false_for_missing_command() -> None:
    assert asyncio.run(ShellCommand("nonexistentcommand-feature-installer").exists()) is False


def test_run_returns_output() -> None:
    result = asyncio.run(ShellCommand("echo").add_arg("Hello World").run())
    assert result.stdout == "Hello World\n"
    assert result.ok


def test_run_raises_on_failure() -> None:
    with pytest.raises(ExecutionError) as exc:
        asyncio.run(ShellCommand("nonexistentcommand-feature-installer").run())
    assert exc.value.returncode == 127
