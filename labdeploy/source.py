"""Where the lab server's image build context comes from."""

from __future__ import annotations

import zipfile
from collections.abc import Iterator
from contextlib import AbstractContextManager, contextmanager
from pathlib import Path
from tempfile import TemporaryDirectory
from typing import Protocol

import requests
import structlog

from .constants import APP_NAME, GITHUB_ARCHIVE_URL, HTTP_TIMEOUT
from .exceptions import BuildContextError, RemoteOperationError
from .models import RepoCoordinates
from .ui import console

__all__ = ["BuildSource", "GitHubBuildSource", "LocalBuildSource", "download"]


class BuildSource(Protocol):
    def materialize(self) -> AbstractContextManager[Path]: ...

    def describe(self) -> str: ...


def download(url: str, dest: Path) -> Path:
    """Stream ``url`` to ``dest``; HTTP failures are remote errors."""
    console.print(f"[cyan]→ GET {url}[/cyan]")
    try:
        with requests.get(url, stream=True, timeout=HTTP_TIMEOUT) as response:
            response.raise_for_status()
            with dest.open("wb") as f:
                for chunk in response.iter_content(chunk_size=1 << 16):
                    f.write(chunk)
    except requests.exceptions.RequestException as e:
        raise RemoteOperationError(f"Download of {url} failed: {e}") from e
    return dest


class LocalBuildSource:
    """A directory already on disk."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def describe(self) -> str:
        return str(self.path)

    @contextmanager
    def materialize(self) -> Iterator[Path]:
        if not self.path.is_dir():
            raise BuildContextError(f"Build context {self.path} is not a directory")
        yield self.path


class GitHubBuildSource:
    """A branch of a GitHub repository, fetched as a zip archive.

    The archive is unpacked into a temporary directory which is removed when
    the context exits, however it exits.
    """

    def __init__(self, repo: RepoCoordinates) -> None:
        self.repo = repo
        self._logger = structlog.get_logger(APP_NAME)

    def describe(self) -> str:
        return str(self.repo)

    @property
    def url(self) -> str:
        return GITHUB_ARCHIVE_URL.format(
            owner=self.repo.owner, name=self.repo.name, branch=self.repo.branch
        )

    @contextmanager
    def materialize(self) -> Iterator[Path]:
        with TemporaryDirectory(prefix="labdeploy-") as tmp:
            tmp_path = Path(tmp)
            archive = download(self.url, tmp_path / "source.zip")
            extract_dir = tmp_path / "src"
            try:
                with zipfile.ZipFile(archive) as zf:
                    zf.extractall(extract_dir)
            except zipfile.BadZipFile as e:
                raise RemoteOperationError(
                    f"Archive for {self.repo} is not a zip file: {e}"
                ) from e
            self._logger.info("Build source fetched", repo=str(self.repo))
            # GitHub archives hold a single top-level "<name>-<branch>" folder.
            entries = list(extract_dir.iterdir())
            if len(entries) == 1 and entries[0].is_dir():
                yield entries[0]
            else:
                yield extract_dir
