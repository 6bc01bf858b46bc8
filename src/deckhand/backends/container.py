"""Container stack backend driven by ``docker compose``.

Stopping a container project tears the stack down completely (``down``), so
it does not come back after a host reboot. Image removal on uninstall only
happens for descriptors deckhand synthesized itself.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import yaml

from deckhand.backends.artifacts import (
    ArtifactSource,
    link_target,
    retire_artifact,
    select_artifact,
)
from deckhand.backends.base import Backend, prompt_environment
from deckhand.backends.templates import (
    GENERATION_MARKER,
    render_compose,
    render_dockerfile,
    suggest_entrypoint,
)
from deckhand.core.exceptions import ExternalToolError, NotFoundError
from deckhand.core.types import Outcome, RunningState
from deckhand.projects.models import ProjectContext, ProjectType

logger = logging.getLogger(__name__)

DESCRIPTOR_SUFFIX = ".compose.yml"
CONVENTIONAL_DESCRIPTOR = "docker-compose.yml"
FALLBACK_DESCRIPTOR = "docker-compose-default.yml"
BUILD_FILE = "Dockerfile"

# Printed by `docker image pull` when nothing was downloaded
IMAGE_UP_TO_DATE = "Status: Image is up to date"


@dataclass(frozen=True, slots=True)
class DanglingImage:
    """An untagged image left behind by a same-tag pull."""

    image_id: str
    reference: str


def image_repository(image: str) -> str:
    """Strip the tag (not a registry port) from an image reference."""
    name, _, last = image.rpartition("/")
    if ":" in last:
        last = last.split(":", 1)[0]
    return f"{name}/{last}" if name else last


class ContainerBackend(Backend):
    """Backend for ``docker compose`` stacks."""

    project_type = ProjectType.CONTAINER

    def descriptor(self, ctx: ProjectContext) -> Path:
        return ctx.managed_file(DESCRIPTOR_SUFFIX)

    def _compose(self, ctx: ProjectContext, *args: str) -> list[str]:
        return [
            "docker",
            "compose",
            "-f",
            str(self.descriptor(ctx)),
            "--project-directory",
            str(ctx.path),
            *args,
        ]

    def _require_descriptor(self, ctx: ProjectContext, action: str) -> Path:
        descriptor = self.descriptor(ctx)
        if not descriptor.is_file():
            raise NotFoundError(f"No valid compose file found for {ctx.id}, cannot {action}")
        return descriptor

    def synthesize(self, ctx: ProjectContext) -> str | None:
        """Compose content generated from the project's Dockerfile, if any."""
        build_file = ctx.path / BUILD_FILE
        if not build_file.is_file():
            return None
        return render_compose(ctx.id, ctx.path, build_file.read_text(encoding="utf-8"))

    def _generate(self, ctx: ProjectContext) -> str | None:
        interaction = ctx.interaction
        if not interaction.confirm(f"No compose file or Dockerfile found. Generate a Dockerfile in {ctx.path}?"):
            return None

        suggested, run_steps = suggest_entrypoint(ctx.path)
        entrypoint = interaction.ask(f"Entrypoint (e.g. {suggested})", default=suggested)
        port = interaction.ask("Port (e.g. 8700 or 8700:8700, blank for none)")
        environment = prompt_environment(interaction)

        build_file = ctx.path / BUILD_FILE
        build_file.write_text(
            render_dockerfile(
                ctx.settings.default_container_image,
                entrypoint,
                run_steps=run_steps,
                port=port,
                environment=environment,
            ),
            encoding="utf-8",
        )
        logger.info("Wrote %s", build_file)
        return self.synthesize(ctx)

    def _install(self, ctx: ProjectContext, *, ran_setup: bool) -> Outcome:
        try:
            artifact = select_artifact(
                self.descriptor(ctx),
                [
                    (ctx.path / CONVENTIONAL_DESCRIPTOR, ArtifactSource.CONVENTIONAL),
                    (ctx.path / FALLBACK_DESCRIPTOR, ArtifactSource.FALLBACK),
                ],
                synthesize=lambda: self.synthesize(ctx),
                generate=lambda: self._generate(ctx),
            )
        except NotFoundError:
            hint = " (run without --quiet to generate a Dockerfile)" if ctx.interaction.quiet else ""
            raise NotFoundError(f"No compose file could be determined for {ctx.id}{hint}") from None

        logger.info("Building images for %s", ctx.id)
        self.runner(self._compose(ctx, "build"), capture=False)
        return Outcome.success(f"Using compose file {artifact.describe()} ({artifact.source})")

    def start(self, ctx: ProjectContext) -> None:
        self._require_descriptor(ctx, "start")
        self.runner(self._compose(ctx, "up", "-d"), capture=False)

    def stop(self, ctx: ProjectContext) -> None:
        self._require_descriptor(ctx, "stop")
        self.runner(self._compose(ctx, "down"), capture=False)

    def restart(self, ctx: ProjectContext) -> None:
        self._require_descriptor(ctx, "restart")
        self.runner(self._compose(ctx, "down"), capture=False)
        self.runner(self._compose(ctx, "up", "-d"), capture=False)

    def status(self, ctx: ProjectContext) -> RunningState:
        if not self.descriptor(ctx).is_file():
            return RunningState.UNKNOWN
        result = self.runner(
            self._compose(ctx, "ps", "--services", "--filter", "status=running"),
            check=False,
        )
        if not result.ok:
            return RunningState.UNKNOWN
        return RunningState.RUNNING if result.output.strip() else RunningState.STOPPED

    def is_generated(self, ctx: ProjectContext) -> bool:
        descriptor = self.descriptor(ctx)
        if not descriptor.is_file():
            return False
        with descriptor.open(encoding="utf-8", errors="replace") as f:
            return f.readline().rstrip("\n") == GENERATION_MARKER

    def uninstall(self, ctx: ProjectContext) -> Outcome:
        descriptor = self.descriptor(ctx)
        if not descriptor.is_file():
            return Outcome.warning("No valid compose file found, possibly already uninstalled")

        if not self.is_generated(ctx):
            logger.info("Stopping containers of %s", ctx.id)
            self.runner(self._compose(ctx, "down"), capture=False)
            return Outcome.success()

        logger.info("Stopping containers of %s and removing its images", ctx.id)
        self.runner(self._compose(ctx, "down", "--rmi", "all"), capture=False)
        if descriptor.is_symlink():
            return Outcome.success()
        backup = retire_artifact(descriptor, self.synthesize(ctx))
        if backup is not None:
            return Outcome.success(f"Kept edited compose file as {backup}")
        return Outcome.success()

    def logs(self, ctx: ProjectContext, lines: int | None) -> None:
        self._require_descriptor(ctx, "show logs")
        tail = ["-f"] if lines is None else ["-n", str(lines)]
        self.runner(self._compose(ctx, "logs", *tail), capture=False)

    def details(self, ctx: ProjectContext) -> dict[str, str]:
        descriptor = self.descriptor(ctx)
        if not descriptor.is_file():
            return {"Compose file": "Not found"}
        target = link_target(descriptor)
        return {"Compose file": f"{descriptor} -> {target}" if target else str(descriptor)}

    def native_status(self, ctx: ProjectContext, *, batch: bool) -> Outcome | None:
        if batch or not self.descriptor(ctx).is_file():
            return None
        self.runner(self._compose(ctx, "ps", "-a"), capture=False, check=False)
        return None

    def services(self, ctx: ProjectContext) -> list[str]:
        """Service names declared by the descriptor."""
        self._require_descriptor(ctx, "list services")
        result = self.runner(self._compose(ctx, "ps", "--services"))
        return [line.strip() for line in result.output.splitlines() if line.strip()]

    def shell(self, ctx: ProjectContext, service: str) -> None:
        """Open a login shell inside a running service container."""
        self.runner(self._compose(ctx, "exec", service, "sh", "-l"), capture=False)

    def images(self, ctx: ProjectContext) -> list[str]:
        """Image references named in the resolved descriptor, in order."""
        self._require_descriptor(ctx, "read images")
        result = self.runner(self._compose(ctx, "config"))
        try:
            config = yaml.safe_load(result.output) or {}
        except yaml.YAMLError as e:
            raise ExternalToolError(
                f"Unreadable compose config for {ctx.id}: {e}",
                command=result.command,
                output=result.output,
            ) from e

        images: list[str] = []
        for service in (config.get("services") or {}).values():
            image = (service or {}).get("image")
            if image and image not in images:
                images.append(image)
        return images

    def pull_image(self, image: str) -> bool:
        """Pull one image.

        Returns:
            True if a newer image was downloaded.

        """
        result = self.runner(["docker", "image", "pull", image])
        return IMAGE_UP_TO_DATE not in result.output

    def dangling_images(self, image: str) -> list[DanglingImage]:
        """Untagged images of the same repository as ``image``."""
        result = self.runner(
            [
                "docker",
                "images",
                "--format",
                "{{.ID}} {{.Repository}}:{{.Tag}}",
                "--filter",
                "dangling=true",
                "--filter",
                f"reference={image_repository(image)}",
            ],
        )
        dangling = []
        for line in result.output.splitlines():
            image_id, _, reference = line.strip().partition(" ")
            if image_id:
                dangling.append(DanglingImage(image_id=image_id, reference=reference))
        return dangling

    def remove_images(self, image_ids: list[str]) -> None:
        if image_ids:
            self.runner(["docker", "rmi", "-f", *image_ids], capture=False)
