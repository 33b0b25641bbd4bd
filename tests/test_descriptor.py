"""Tests for backend descriptors and command rendering."""
import pytest

from dpmm.engine import BackendDescriptor, Operation
from dpmm.errors import ConfigError


def apt(**overrides):
    fields = dict(
        name="apt",
        install="sudo apt-get install -y $",
        uninstall="sudo apt-get remove -y $",
        update="sudo apt-get update",
        upgrade="sudo apt-get upgrade -y",
        supports_multi_args=True,
        packages=("jq", "vim"),
    )
    fields.update(overrides)
    return BackendDescriptor(**fields)


class TestValidation:
    """Tests for descriptor validation."""

    def test_valid_descriptor(self):
        """Test a complete descriptor is accepted."""
        d = apt()
        assert d.name == "apt"
        assert d.packages == ("jq", "vim")

    def test_packages_converted_to_tuple(self):
        """Test packages given as a list are stored as a tuple."""
        d = apt(packages=["jq"])
        assert d.packages == ("jq",)

    def test_missing_install(self):
        """Test install command is required."""
        with pytest.raises(ConfigError, match="missing required 'install'"):
            apt(install="")

    def test_missing_uninstall(self):
        """Test uninstall command is required."""
        with pytest.raises(ConfigError, match="missing required 'uninstall'"):
            apt(uninstall="   ")

    def test_placeholder_required(self):
        """Test install without placeholder is rejected."""
        with pytest.raises(ConfigError, match="exactly once"):
            apt(install="sudo apt-get install -y")

    def test_placeholder_twice(self):
        """Test placeholder may appear only once."""
        with pytest.raises(ConfigError, match="found 2"):
            apt(uninstall="rm $ $")

    def test_placeholder_must_be_own_word(self):
        """Test '$' glued to other text does not count as the placeholder."""
        with pytest.raises(ConfigError, match="found 0"):
            apt(install="pip install pkg==$")

    def test_placeholder_in_update_rejected(self):
        """Test update commands cannot take packages."""
        with pytest.raises(ConfigError, match="takes no packages"):
            apt(update="apt-get update $")

    def test_empty_upgrade_rejected(self):
        """Test a blank upgrade command is an error rather than a no-op."""
        with pytest.raises(ConfigError, match="'upgrade' command is empty"):
            apt(upgrade="  ")

    def test_update_optional(self):
        """Test update and upgrade may be left out."""
        d = apt(update=None, upgrade=None)
        assert not d.supports(Operation.UPDATE)
        assert not d.supports(Operation.UPGRADE)
        assert d.supports(Operation.INSTALL)

    def test_duplicate_package(self):
        """Test duplicate package names are rejected."""
        with pytest.raises(ConfigError, match="duplicate package 'jq'"):
            apt(packages=("jq", "vim", "jq"))

    def test_bad_quoting(self):
        """Test unbalanced quotes are reported as ConfigError."""
        with pytest.raises(ConfigError, match="Cannot parse"):
            apt(install="sh -c 'install $")

    def test_errors_are_collected(self):
        """Test all problems are reported in one message."""
        with pytest.raises(ConfigError) as exc:
            apt(install="", uninstall="")
        assert "install" in str(exc.value)
        assert "uninstall" in str(exc.value)


class TestFromConfig:
    """Tests for building descriptors from config mappings."""

    def test_basic(self):
        """Test a typical manager mapping."""
        d = BackendDescriptor.from_config("cargo", {
            "install": "cargo install $",
            "uninstall": "cargo uninstall $",
            "supports_multi_args": False,
            "packages": ["ripgrep"],
        })
        assert d.name == "cargo"
        assert not d.supports_multi_args
        assert d.update is None
        assert d.packages == ("ripgrep",)

    def test_multi_args_defaults_true(self):
        """Test supports_multi_args defaults to true."""
        d = BackendDescriptor.from_config("apt", {
            "install": "apt install $",
            "uninstall": "apt remove $",
        })
        assert d.supports_multi_args
        assert d.packages == ()

    def test_unknown_key_warns(self, caplog):
        """Test unknown keys are ignored with a warning."""
        d = BackendDescriptor.from_config("apt", {
            "install": "apt install $",
            "uninstall": "apt remove $",
            "instal": "typo",
        })
        assert d.name == "apt"
        assert "ignoring unknown key 'instal'" in caplog.text

    def test_packages_not_list(self):
        """Test packages must be a list."""
        with pytest.raises(ConfigError, match="must be a list"):
            BackendDescriptor.from_config("apt", {
                "install": "apt install $",
                "uninstall": "apt remove $",
                "packages": "jq",
            })

    def test_non_string_package(self):
        """Test package names must be strings."""
        with pytest.raises(ConfigError, match="must be strings"):
            BackendDescriptor.from_config("apt", {
                "install": "apt install $",
                "uninstall": "apt remove $",
                "packages": ["jq", 42],
            })

    def test_multi_args_not_bool(self):
        """Test supports_multi_args must be a boolean."""
        with pytest.raises(ConfigError, match="true or false"):
            BackendDescriptor.from_config("apt", {
                "install": "apt install $",
                "uninstall": "apt remove $",
                "supports_multi_args": "yes please",
            })

    def test_command_not_string(self):
        """Test command templates must be strings."""
        with pytest.raises(ConfigError, match="'install' must be a string"):
            BackendDescriptor.from_config("apt", {
                "install": ["apt", "install"],
                "uninstall": "apt remove $",
            })


class TestRender:
    """Tests for rendering commands from templates."""

    def test_multi_args_single_command(self):
        """Test multi-arg backends get one command with all packages."""
        steps = apt().render(Operation.INSTALL, ["jq", "vim"])
        assert len(steps) == 1
        assert steps[0].argv == ["sudo", "apt-get", "install", "-y", "jq", "vim"]
        assert steps[0].packages == ["jq", "vim"]
        assert steps[0].command == "sudo apt-get install -y jq vim"

    def test_single_arg_one_command_per_package(self):
        """Test single-arg backends get one command per package, in order."""
        d = apt(supports_multi_args=False)
        steps = d.render(Operation.UNINSTALL, ["b", "a"])
        assert [s.argv for s in steps] == [
            ["sudo", "apt-get", "remove", "-y", "b"],
            ["sudo", "apt-get", "remove", "-y", "a"],
        ]

    def test_placeholder_in_middle(self):
        """Test words after the placeholder are preserved."""
        d = apt(install="brew install $ --quiet")
        steps = d.render(Operation.INSTALL, ["jq", "fd"])
        assert steps[0].argv == ["brew", "install", "jq", "fd", "--quiet"]

    def test_no_packages_no_command(self):
        """Test an empty package list renders nothing."""
        assert apt().render(Operation.INSTALL, []) == []

    def test_update_takes_no_packages(self):
        """Test update renders the template as-is."""
        steps = apt().render(Operation.UPDATE)
        assert len(steps) == 1
        assert steps[0].argv == ["sudo", "apt-get", "update"]
        assert steps[0].packages == []

    def test_missing_upgrade_renders_nothing(self):
        """Test unsupported maintenance operations render nothing."""
        assert apt(upgrade=None).render(Operation.UPGRADE) == []

    def test_package_names_not_shell_expanded(self):
        """Test package names are passed as single argv words."""
        steps = apt().render(Operation.INSTALL, ["foo; rm -rf /"])
        assert steps[0].argv[-1] == "foo; rm -rf /"
        assert steps[0].command.endswith("'foo; rm -rf /'")
