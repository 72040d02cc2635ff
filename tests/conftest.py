import os
import stat
from collections import namedtuple
from functools import partial

import pytest

# Qt objects in the service tests need a platform plugin even without a display
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from sshdeck.core.credentials import MemoryCredentialStore
from sshdeck.core.process_runner import CommandResult
from sshdeck.core.settings import ClientSettings
from sshdeck.models.session import AuthMethod, ConnectionConfig, TransferBackend

Call = namedtuple("Call", "invocation password files")
TempFile = namedtuple("TempFile", "content mode")

# argv flags whose value is a temp file the engine deletes after the call
_TEMP_FILE_FLAGS = ("-b", "--netrc-file")


class FakeRunner:
    """Records invocations instead of spawning processes.

    Temp files passed with ``-b`` or ``--netrc-file`` are read while the call
    is in progress, since the engine removes them right after.
    """

    def __init__(self, *results):
        self.calls = []
        self.results = list(results)
        self.on_run = None

    def queue(self, *results):
        self.results.extend(results)

    def run(self, invocation):
        return self._record(invocation, None)

    def run_with_password(self, invocation, password):
        return self._record(invocation, password)

    def _record(self, invocation, password):
        files = {}
        argv = invocation.argv
        for i, arg in enumerate(argv[:-1]):
            if arg in _TEMP_FILE_FLAGS:
                path = argv[i + 1]
                with open(path, 'r', encoding='utf-8') as f:
                    files[arg] = TempFile(f.read(), stat.S_IMODE(os.stat(path).st_mode))
        self.calls.append(Call(invocation, password, files))
        if self.on_run:
            self.on_run(invocation)
        return self.results.pop(0) if self.results else CommandResult(0)

    @property
    def last(self):
        return self.calls[-1]


class ManualExecutor:
    """Executor that runs submitted jobs only when the test says so."""

    def __init__(self):
        self.jobs = []

    def submit(self, fn, *args, **kwargs):
        self.jobs.append(partial(fn, *args, **kwargs))

    def run_next(self, index=0):
        self.jobs.pop(index)()

    def run_all(self):
        while self.jobs:
            self.run_next()

    def shutdown(self, wait=True):
        self.jobs.clear()


@pytest.fixture
def settings():
    return ClientSettings(
        ssh_path="/usr/bin/ssh",
        sftp_path="/usr/bin/sftp",
        scp_path="/usr/bin/scp",
        curl_path="/usr/bin/curl",
        telnet_path="/usr/bin/telnet",
        python_path="/usr/bin/python3",
    )


@pytest.fixture
def credentials():
    return MemoryCredentialStore()


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def executor():
    return ManualExecutor()


def _make_config(backend=TransferBackend.SFTP, auth=AuthMethod.KEY, **kwargs):
    config = ConnectionConfig(
        id=kwargs.pop("id", "host-1"),
        name=kwargs.pop("name", "web"),
        host=kwargs.pop("host", "example.com"),
        port=kwargs.pop("port", 22),
        username=kwargs.pop("username", "alice"),
        auth_method=auth,
        key_path=kwargs.pop("key_path", "/keys/id_ed25519"),
    )
    config.file_transfer.backend = backend
    for key, value in kwargs.items():
        target = config.file_transfer if hasattr(config.file_transfer, key) else config.options
        setattr(target, key, value)
    return config


@pytest.fixture
def make_config():
    return _make_config
