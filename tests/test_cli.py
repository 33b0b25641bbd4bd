"""Tests for the dpmm command line interface."""
import pytest
import yaml

from dpmm.cli import build_parser, generation_arg, main
from dpmm.engine import CommandResult
from dpmm.errors import StoreError
from dpmm.store import GenerationStore


APT = """
update: apt update
install: apt install $
uninstall: apt remove $
packages:
  - jq
"""

CARGO = """
install: cargo install $
uninstall: cargo uninstall $
supports_multi_args: false
packages:
  - rg
"""


@pytest.fixture
def dirs(tmp_path):
    config = tmp_path / "config"
    cache = tmp_path / "cache"
    config.mkdir()
    (config / "dpmm.yaml").write_text("managers:\n  - apt\n")
    (config / "apt.yaml").write_text(APT)
    return config, cache


@pytest.fixture
def calls(monkeypatch):
    """Capture commands instead of running them."""
    recorded = []

    def fake_run(self, argv):
        recorded.append(list(argv))
        return CommandResult(success=True, exit_code=0)

    monkeypatch.setattr("dpmm.engine.executor.CommandRunner.run", fake_run)
    return recorded


def run(dirs, *args):
    config, cache = dirs
    return main(["--config-dir", str(config), "--cache-dir", str(cache), *args])


def set_packages(dirs, packages):
    config, _ = dirs
    data = yaml.safe_load((config / "apt.yaml").read_text())
    data["packages"] = packages
    (config / "apt.yaml").write_text(yaml.safe_dump(data))


class TestParser:
    """Tests for argument parsing."""

    def test_generation_arg(self):
        assert generation_arg("7") == 7
        assert generation_arg("generation_7") == 7

    def test_bad_generation_arg(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["rollback", "seven"])

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_gc_keep_positive(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["gc", "--keep", "0"])


class TestCommands:
    """End-to-end CLI runs with a fake command runner."""

    def test_switch(self, dirs, calls, capsys):
        """Test switch installs and records a generation."""
        assert run(dirs, "switch") == 0

        assert calls == [["apt", "install", "jq"]]
        assert GenerationStore(dirs[1]).sequences() == [1]
        assert "Recorded generation 1" in capsys.readouterr().out

    def test_switch_nothing_to_resolve(self, dirs, calls, capsys):
        run(dirs, "switch")
        capsys.readouterr()

        assert run(dirs, "switch") == 0

        assert "Nothing to resolve with apt!" in capsys.readouterr().out
        assert GenerationStore(dirs[1]).sequences() == [1]

    def test_dry_run(self, dirs, calls, capsys):
        """Test dry run prints the plan and the generation it would write."""
        assert run(dirs, "--dry-run", "switch") == 0

        out = capsys.readouterr().out
        assert calls == []
        assert "[DRY-RUN] apt: apt install jq" in out
        assert "Would write generation_1" in out
        assert GenerationStore(dirs[1]).sequences() == []

    def test_switch_failure_exit_code(self, dirs, monkeypatch, capsys):
        monkeypatch.setattr(
            "dpmm.engine.executor.CommandRunner.run",
            lambda self, argv: CommandResult(success=False, exit_code=100),
        )

        assert run(dirs, "switch") == 1
        assert "install failed for apt" in capsys.readouterr().err

    def test_config_error_exit_code(self, tmp_path, calls):
        assert main([
            "--config-dir", str(tmp_path / "missing"),
            "--cache-dir", str(tmp_path / "cache"),
            "switch",
        ]) == 1
        assert calls == []

    def test_list(self, dirs, calls, capsys):
        run(dirs, "switch")
        capsys.readouterr()

        assert run(dirs, "list") == 0

        out = capsys.readouterr().out
        assert "generation_1" in out
        assert "apt: 1 package" in out
        assert "(current)" in out

    def test_rollback_rewrites_config(self, dirs, calls):
        """Test rollback restores packages and the manager file."""
        run(dirs, "switch")
        set_packages(dirs, ["jq", "vim"])
        run(dirs, "switch")
        calls.clear()

        assert run(dirs, "rollback") == 0

        assert calls == [["apt", "remove", "vim"]]
        data = yaml.safe_load((dirs[0] / "apt.yaml").read_text())
        assert data["packages"] == ["jq"]
        assert GenerationStore(dirs[1]).sequences() == [1, 2, 3]

    def test_rollback_keep_config(self, dirs, calls):
        run(dirs, "switch")
        set_packages(dirs, ["jq", "vim"])
        run(dirs, "switch")

        assert run(dirs, "rollback", "generation_1", "--keep-config") == 0

        data = yaml.safe_load((dirs[0] / "apt.yaml").read_text())
        assert data["packages"] == ["jq", "vim"]

    def test_rollback_drops_added_manager(self, dirs, calls):
        """Test a manager added after the target leaves dpmm.yaml on rollback."""
        config, cache = dirs
        run(dirs, "switch")
        (config / "cargo.yaml").write_text(CARGO)
        (config / "dpmm.yaml").write_text("managers:\n  - apt\n  - cargo\n")
        run(dirs, "switch")
        calls.clear()

        assert run(dirs, "rollback") == 0

        assert calls == []
        main_config = yaml.safe_load((config / "dpmm.yaml").read_text())
        assert main_config["managers"] == ["apt"]

        assert run(dirs, "switch") == 0
        assert calls == []
        assert GenerationStore(cache).sequences() == [1, 2, 3]

    def test_rollback_restores_removed_manager(self, dirs, calls):
        """Test a manager removed after the target is recreated on rollback."""
        config, cache = dirs
        (config / "cargo.yaml").write_text(CARGO)
        (config / "dpmm.yaml").write_text("managers:\n  - apt\n  - cargo\n")
        run(dirs, "switch")
        (config / "cargo.yaml").unlink()
        (config / "dpmm.yaml").write_text("managers:\n  - apt\n")
        run(dirs, "switch")
        calls.clear()

        assert run(dirs, "rollback") == 0

        assert calls == [["cargo", "install", "rg"]]
        cargo = yaml.safe_load((config / "cargo.yaml").read_text())
        assert cargo["install"] == "cargo install $"
        assert cargo["packages"] == ["rg"]
        main_config = yaml.safe_load((config / "dpmm.yaml").read_text())
        assert main_config["managers"] == ["apt", "cargo"]

        calls.clear()
        assert run(dirs, "switch") == 0
        assert calls == []
        assert GenerationStore(cache).sequences() == [1, 2, 3]

    def test_rollback_unreadable_record_warns(self, dirs, calls, monkeypatch, capsys):
        """Test failing to reread the new generation only warns."""
        run(dirs, "switch")
        set_packages(dirs, ["jq", "vim"])
        run(dirs, "switch")
        capsys.readouterr()

        real_get = GenerationStore.get

        def get(self, sequence):
            if sequence == 3:
                raise StoreError("generation_3.yaml is corrupt")
            return real_get(self, sequence)

        monkeypatch.setattr(GenerationStore, "get", get)

        assert run(dirs, "rollback") == 0

        assert calls[-1] == ["apt", "remove", "vim"]
        err = capsys.readouterr().err
        assert "Could not update the config files" in err
        assert "corrupt" in err
        data = yaml.safe_load((dirs[0] / "apt.yaml").read_text())
        assert data["packages"] == ["jq", "vim"]

    def test_rollback_nothing_recorded(self, dirs, calls):
        assert run(dirs, "rollback") == 1
        assert calls == []

    def test_update(self, dirs, calls):
        assert run(dirs, "update", "apt") == 0
        assert calls == [["apt", "update"]]

    def test_update_requires_target(self, dirs, calls, capsys):
        assert run(dirs, "update") == 1
        assert calls == []
        assert "requires a manager name" in capsys.readouterr().err

    def test_upgrade_without_template(self, dirs, calls):
        """Test upgrade of a manager without an upgrade command is a no-op."""
        assert run(dirs, "upgrade", "all") == 0
        assert calls == []

    def test_gc(self, dirs, calls):
        for packages in (["a"], ["b"], ["c"]):
            set_packages(dirs, packages)
            run(dirs, "switch")

        assert run(dirs, "gc", "--keep", "1") == 0
        assert GenerationStore(dirs[1]).sequences() == [3]

    def test_audit(self, dirs, calls, capsys):
        run(dirs, "switch")
        capsys.readouterr()

        assert run(dirs, "audit") == 0

        out = capsys.readouterr().out
        assert "apt install jq" in out
        assert "ok" in out
