"""Generated artifact content.

Compose descriptors synthesized here start with GENERATION_MARKER. Only a
descriptor carrying the marker has its images removed on uninstall.
"""

from __future__ import annotations

import json
import shlex
from collections.abc import Sequence
from pathlib import Path

import yaml

GENERATION_MARKER = "# Generated by deckhand; images are removed on uninstall"
UNIT_MARKER = "# Generated by deckhand"


def _split_words(text: str) -> list[str]:
    try:
        return shlex.split(text)
    except ValueError:
        # unbalanced quotes
        return text.split()


def parse_dockerfile(text: str) -> tuple[list[str], list[str]]:
    """Extract published ports and environment from a Dockerfile.

    ``EXPOSE 8700`` becomes ``8700:8700`` (a protocol suffix is kept on the
    container side) and ``EXPOSE 8080:80`` is kept as given. ``ENV KEY=value``
    and the legacy ``ENV KEY value`` both become ``KEY=value``.

    Returns:
        Tuple of (ports, environment) in declaration order.

    """
    ports: list[str] = []
    environment: list[str] = []
    for raw_line in text.splitlines():
        line = raw_line.strip()
        keyword, _, rest = line.partition(" ")
        keyword = keyword.upper()
        rest = rest.strip()
        if not rest:
            continue
        if keyword == "EXPOSE":
            for port in rest.split():
                if ":" in port:
                    ports.append(port)
                else:
                    host = port.split("/", 1)[0]
                    ports.append(f"{host}:{port}")
        elif keyword == "ENV":
            tokens = _split_words(rest)
            if all("=" in token for token in tokens):
                environment.extend(tokens)
            else:
                environment.append(f"{tokens[0]}={' '.join(tokens[1:])}")
    return ports, environment


def render_compose(project_id: str, build_dir: Path, dockerfile_text: str) -> str:
    """Render a compose descriptor building ``build_dir``.

    The output is byte-for-byte stable for the same inputs; uninstall
    compares against it to detect edits.
    """
    ports, environment = parse_dockerfile(dockerfile_text)
    service: dict[str, object] = {
        "build": str(build_dir),
        "container_name": project_id,
    }
    if ports:
        service["ports"] = ports
    if environment:
        service["environment"] = environment
    service["restart"] = "always"

    body = yaml.safe_dump(
        {"services": {project_id: service}},
        default_flow_style=False,
        sort_keys=False,
    )
    return f"{GENERATION_MARKER}\n{body}"


def suggest_entrypoint(project_dir: Path) -> tuple[str, list[str]]:
    """Guess an entrypoint and install steps from a node project layout.

    Returns:
        Tuple of (suggested entrypoint, extra RUN steps).

    """
    package_json = project_dir / "package.json"
    if (project_dir / "yarn.lock").exists() or (
        package_json.is_file() and "packageManager: 'yarn" in package_json.read_text(errors="replace")
    ):
        return "yarn start", ["yarn set version stable", "yarn install"]
    if package_json.is_file():
        return "npm start", ["npm install"]
    return "node index.js", []


def render_dockerfile(
    base_image: str,
    entrypoint: str,
    *,
    run_steps: Sequence[str] = (),
    port: str = "",
    environment: Sequence[str] = (),
) -> str:
    """Render a minimal Dockerfile for a project copied into the image."""
    lines = [
        f"FROM {base_image}",
        "WORKDIR /usr/src/app",
        "RUN corepack enable",
        "COPY . .",
    ]
    lines.extend(f"RUN {step}" for step in run_steps)
    lines.append(f"ENTRYPOINT {json.dumps(_split_words(entrypoint))}")
    if port:
        lines.append(f"EXPOSE {port}")
    if environment:
        lines.extend(f"ENV {variable}" for variable in environment)
    else:
        lines.append("# ENV NODE_ENV=production")
    return "\n".join(lines) + "\n"


def render_unit(
    project_id: str,
    working_dir: Path,
    start_command: str,
    *,
    user: str,
    environment: Sequence[str] = (),
) -> str:
    """Render a simple always-restarting systemd unit."""
    lines = [
        UNIT_MARKER,
        "[Unit]",
        f"Description={project_id} (managed by deckhand)",
        "After=network.target",
        "",
        "[Service]",
        "Type=simple",
        f"User={user}",
        f"WorkingDirectory={working_dir}",
        f"ExecStart={start_command}",
        "Restart=always",
    ]
    lines.extend(f'Environment="{variable}"' for variable in environment)
    lines.extend(["", "[Install]", "WantedBy=multi-user.target"])
    return "\n".join(lines) + "\n"
