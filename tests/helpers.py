import hashlib
import io
import pathlib
import tarfile

from groundwork.build.common.download import STDOUT, RetrievalStrategy
from groundwork.common import BuildStepError, FetchError


class FakeStrategy(RetrievalStrategy):
    """
    Serve urls from a dictionary, recording every request.
    """

    name = "fake"

    def __init__(self, files=None, available=True):
        super().__init__()
        self.files = dict(files or {})
        self._available = available
        self.calls = []
        self.stdout = io.BytesIO()

    def available(self):
        return self._available

    def retrieve(self, url, target):
        self.calls.append((url, target))
        if url not in self.files:
            raise FetchError(f"404 {url}")
        if target == STDOUT:
            self.stdout.write(self.files[url])
            return
        pathlib.Path(target).write_bytes(self.files[url])


class FakeRunner:
    """
    Record commands instead of running them.
    """

    def __init__(self, fail_on=None):
        self.calls = []
        self.fail_on = fail_on

    def run(self, argv, env, cwd):
        self.calls.append((list(argv), dict(env), pathlib.Path(cwd)))
        if self.fail_on and self.fail_on in argv:
            raise BuildStepError(list(argv), 2, ["boom"])

    @property
    def commands(self):
        return [_[0] for _ in self.calls]


def sha256(data):
    return hashlib.sha256(data).hexdigest()


def make_tarball(path, topdir="pkg-1.0", files=None):
    """
    Create a gzipped tarball with every file under a single top directory.
    """
    if files is None:
        files = {"configure": "#!/bin/sh\n", "README": "readme\n"}
    with tarfile.open(path, "w:gz") as tar:
        info = tarfile.TarInfo(topdir)
        info.type = tarfile.DIRTYPE
        info.mode = 0o755
        tar.addfile(info)
        for name, content in files.items():
            data = content.encode()
            info = tarfile.TarInfo(f"{topdir}/{name}")
            info.size = len(data)
            info.mode = 0o755
            info.uid = 4242
            info.gid = 4242
            tar.addfile(info, io.BytesIO(data))
    return path
