"""Image build gate: build the lab server image only when its tag is missing."""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

import structlog

from .azcli import AzureCli
from .constants import APP_NAME, BUILD_DESCRIPTOR, SOURCE_MARKERS
from .exceptions import BuildContextError, CommandFailedError, ImageBuildError
from .models import ImageCoordinate
from .probe import Prober
from .source import BuildSource
from .ui import console

__all__ = ["ImageBuilder", "check_build_context"]


def check_build_context(
    path: Path,
    descriptor: str = BUILD_DESCRIPTOR,
    markers: Sequence[str] = SOURCE_MARKERS,
) -> None:
    """Refuse to build a directory that is not the server's sources.

    It needs a build descriptor and at least one source-unit marker.
    """
    if not path.is_dir():
        raise BuildContextError(f"Build context {path} is not a directory")
    if not (path / descriptor).is_file():
        raise BuildContextError(f"No {descriptor} in build context {path}")
    if not any((path / marker).is_file() for marker in markers):
        raise BuildContextError(
            f"Build context {path} has none of: {', '.join(markers)}"
        )


class ImageBuilder:
    def __init__(
        self,
        az: AzureCli,
        prober: Prober,
        *,
        descriptor: str = BUILD_DESCRIPTOR,
        dry_run: bool = False,
    ) -> None:
        self._az = az
        self._prober = prober
        self._descriptor = descriptor
        self._dry_run = dry_run
        self._logger = structlog.get_logger(APP_NAME)

    def image_exists(self, image: ImageCoordinate) -> bool:
        return image.tag in self._prober.list_tags(image.registry, image.repository)

    def ensure_image(self, image: ImageCoordinate, source: BuildSource) -> bool:
        """Make sure ``image`` is in the registry.

        Returns ``True`` if a build ran, ``False`` if the tag was already
        there. Blocks until the remote build finishes.
        """
        if self.image_exists(image):
            console.print(
                f"[green]✓[/green] Image {image.reference} already in"
                f" {image.registry}, skipping build"
            )
            self._logger.info("Image build skipped", image=image.reference)
            return False

        if self._dry_run:
            console.print(
                f"[yellow]🔸 Dry run - would build {image.reference} from"
                f" {source.describe()}[/yellow]"
            )
            return False

        with source.materialize() as context:
            check_build_context(context, self._descriptor)
            self._build(image, context)
        return True

    def _build(self, image: ImageCoordinate, context: Path) -> None:
        console.print(
            f"[cyan]→ az acr build --registry {image.registry}"
            f" --image {image.reference}[/cyan]"
        )
        console.print("[dim]Building in the registry (this takes a few minutes)...[/dim]")
        self._logger.info("Image build started", image=image.reference)
        args = [
            "acr", "build",
            "--registry", image.registry,
            "--image", image.reference,
            "--file", str(context / self._descriptor),
            str(context),
        ]
        try:
            with console.status(f"Building {image.reference}..."):
                self._az.run(args)
        except CommandFailedError as e:
            self._logger.error("Image build failed", image=image.reference)
            raise ImageBuildError(
                f"Build of {image.reference} failed:\n{e.stderr or e.stdout}"
            ) from e
        console.print(f"[green]✓[/green] Image built: [cyan]{image.reference}[/cyan]")
        self._logger.info("Image build finished", image=image.reference)
