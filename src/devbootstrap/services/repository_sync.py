"""Clone-or-verify for the workbench repositories."""

import os
from typing import Callable, Iterable, List

from devbootstrap.errors import BootstrapError, CloneFailed
from devbootstrap.errors_catalog import actionable_error
from devbootstrap.models import RepositorySpec


class RepositorySync:
    """Clones repositories whose local path is missing or empty.

    An existing non-empty directory counts as synced: it is neither pulled
    nor compared against the remote.
    """

    def __init__(self, logger, console, filesystem_service, run_cmd: Callable):
        self.logger = logger
        self.console = console
        self.filesystem_service = filesystem_service
        self.run_cmd = run_cmd

    def is_synced(self, repo: RepositorySpec) -> bool:
        return self.filesystem_service.is_non_empty_dir(repo.path)

    def all_synced(self, repos: Iterable[RepositorySpec]) -> bool:
        return all(self.is_synced(repo) for repo in repos)

    def clone(self, repo: RepositorySpec):
        self.console.print(f"[blue]Cloning {repo.name} repository...[/blue]")
        os.makedirs(os.path.dirname(repo.path) or ".", exist_ok=True)
        try:
            self.run_cmd(["git", "clone", repo.url, repo.path], check=True, capture_output=True)
        except BootstrapError as exc:
            raise CloneFailed(
                f"{actionable_error('clone_failed', name=repo.name, url=repo.url)}\n{exc}"
            ) from exc
        self.console.print(f"[green]{repo.name} repository cloned.[/green]")

    def sync(self, repos: Iterable[RepositorySpec]) -> List[str]:
        cloned: List[str] = []
        for repo in repos:
            if self.is_synced(repo):
                self.logger.info("%s directory already exists: %s", repo.name, repo.path)
                continue
            self.clone(repo)
            cloned.append(repo.name)
        return cloned

    def verify(self, repos: Iterable[RepositorySpec]):
        missing = [repo.path for repo in repos if not os.path.isdir(repo.path)]
        if missing:
            raise BootstrapError(
                "Repository directories not found. Expected structure:\n  - "
                + "\n  - ".join(missing)
            )
