"""Shared pytest fixtures for image conversion tests."""

from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest
from PIL import Image


def write_image(
    path: Path,
    size: tuple[int, int] = (32, 32),
    mode: str = "RGB",
    color: object = (255, 0, 0),
    fmt: str | None = None,
) -> Path:
    """Write a solid-colour image to ``path`` and return the path."""
    with Image.new(mode, size, color) as img:
        img.save(path, format=fmt)
    return path


@pytest.fixture
def make_image() -> Callable[..., Path]:
    """Expose ``write_image`` to tests as a fixture."""
    return write_image


@pytest.fixture
def corrupt_image() -> Callable[[Path], Path]:
    """Return a factory that writes garbage bytes under an image name."""

    def _write(path: Path) -> Path:
        path.write_bytes(b"this is not an image at all" * 16)
        return path

    return _write
