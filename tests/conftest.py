"""Shared fixtures for dpmm tests."""
import pytest

from dpmm.engine import BackendDescriptor, CommandResult, CommandRunner


class FakeRunner(CommandRunner):
    """Records argv instead of spawning processes.

    `fail_on` maps an argv[0]/argv prefix (joined with spaces) to the
    CommandResult to return for matching commands.
    """

    def __init__(self, fail_on=None):
        self.calls = []
        self.fail_on = fail_on or {}

    def run(self, argv):
        self.calls.append(list(argv))
        joined = " ".join(argv)
        for prefix, result in self.fail_on.items():
            if joined.startswith(prefix):
                return result
        return CommandResult(success=True, exit_code=0)


def make_backend(name, packages=(), multi=True, update=True, upgrade=True):
    return BackendDescriptor(
        name=name,
        install=f"{name} install $",
        uninstall=f"{name} remove $",
        update=f"{name} update" if update else None,
        upgrade=f"{name} upgrade" if upgrade else None,
        supports_multi_args=multi,
        packages=packages,
    )


@pytest.fixture
def runner():
    return FakeRunner()
