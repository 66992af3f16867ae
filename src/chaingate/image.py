"""Publishing the node image and pointing the compose deployment at it.

The image is only considered published once a container started from it
reports its own version.
"""

from __future__ import annotations

import json
import logging
import re
import subprocess
import tempfile
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

import yaml

from chaingate.errors import ImageError

logger = logging.getLogger(__name__)

_SEMVER_RE = re.compile(r"^v?(\d+\.\d+\.\d+(?:-[0-9A-Za-z.-]+)?)$")
_TAG_UNSAFE_RE = re.compile(r"[^A-Za-z0-9_.-]")


@dataclass
class ImageMetadata:
    image: str
    tags: list[str] = field(default_factory=list)
    labels: dict[str, str] = field(default_factory=dict)

    @property
    def primary(self) -> str:
        return self.tags[0]


def compute_metadata(
    image: str,
    ref: str,
    sha: str,
    source_url: str | None = None,
) -> ImageMetadata:
    """Derive image tags from a git ref and commit.

    Tag refs yield the tag, its bare semver and ``latest``; branch refs yield a
    sanitized branch name. Every build also gets ``sha-<short sha>``.
    """
    tags: list[str] = []
    if ref.startswith("refs/tags/"):
        tag = ref.removeprefix("refs/tags/")
        tags.append(_TAG_UNSAFE_RE.sub("-", tag))
        m = _SEMVER_RE.match(tag)
        if m and m.group(1) != tag:
            tags.append(m.group(1))
        if m:
            tags.append("latest")
    elif ref.startswith("refs/heads/"):
        branch = ref.removeprefix("refs/heads/")
        tags.append(_TAG_UNSAFE_RE.sub("-", branch))
    tags.append(f"sha-{sha[:7]}")

    labels = {
        "org.opencontainers.image.revision": sha,
        "org.opencontainers.image.created": datetime.now(UTC).isoformat(),
    }
    if source_url:
        labels["org.opencontainers.image.source"] = source_url

    return ImageMetadata(
        image=image,
        tags=[f"{image}:{t}" for t in tags],
        labels=labels,
    )


def split_image_ref(ref: str) -> tuple[str, str]:
    """``registry/owner/name:tag`` -> (``registry/owner/name``, ``tag``)."""
    name, sep, tag = ref.rpartition(":")
    if not sep or "/" in tag:
        return ref, "latest"
    return name, tag


def build_and_push(
    meta: ImageMetadata,
    context: Path,
    dockerfile: str = "Dockerfile",
    platform: str = "linux/amd64",
    push: bool = True,
) -> str | None:
    """Build with buildx, optionally push, and return the image digest."""
    with tempfile.TemporaryDirectory() as tmp:
        metadata_file = Path(tmp) / "metadata.json"
        cmd = [
            "docker", "buildx", "build",
            "--file", dockerfile,
            "--platform", platform,
            "--metadata-file", str(metadata_file),
        ]
        for tag in meta.tags:
            cmd.extend(["--tag", tag])
        for key, value in meta.labels.items():
            cmd.extend(["--label", f"{key}={value}"])
        cmd.append("--push" if push else "--load")
        cmd.append(str(context))

        logger.info("Building %s", ", ".join(meta.tags))
        try:
            subprocess.run(cmd, cwd=context, text=True, check=True)
        except (subprocess.CalledProcessError, OSError) as exc:
            msg = f"Image build failed: {exc}"
            raise ImageError(msg) from exc

        if not metadata_file.is_file():
            return None
        data = json.loads(metadata_file.read_text())
    digest = data.get("containerimage.digest")
    logger.info("Image digest: %s", digest)
    return digest


def verify_version(image: str, binary: str = "/app/axon") -> str:
    """Run the image and require ``<binary> --version`` to print something."""
    try:
        result = subprocess.run(
            ["docker", "run", "--rm", image, binary, "--version"],
            capture_output=True,
            text=True,
            check=True,
        )
    except (subprocess.CalledProcessError, OSError) as exc:
        msg = f"{image} failed its version check: {exc}"
        raise ImageError(msg) from exc
    version = result.stdout.strip()
    if not version:
        msg = f"{image} printed no version"
        raise ImageError(msg)
    logger.info("%s reports %s", image, version)
    return version


def pin_compose_image(compose_file: Path, service: str, image: str) -> None:
    """Point ``services.<service>.image`` at *image*."""
    data = yaml.safe_load(compose_file.read_text()) or {}
    services = data.get("services") or {}
    if service not in services:
        msg = f"Service {service!r} not found in {compose_file}"
        raise ImageError(msg)
    services[service]["image"] = image
    compose_file.write_text(yaml.safe_dump(data, sort_keys=False))


def publish_image(
    meta: ImageMetadata,
    context: Path,
    push: bool = True,
    binary: str = "/app/axon",
) -> tuple[str, str, str | None]:
    """Build, push and self-check. Returns (image_name, image_tag, digest)."""
    digest = build_and_push(meta, context, push=push)
    if push:
        verify_version(meta.primary, binary)
    name, tag = split_image_ref(meta.primary)
    return name, tag, digest
