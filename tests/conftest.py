import pytest


REGISTRY = "registry.example.com"


@pytest.fixture
def make_image(tmp_path):
    """Return a function that writes an image directory under tmp_path."""

    def make(name, base_ref, version="1.0.0", extra_lines=("RUN true",)):
        directory = tmp_path / name
        directory.mkdir()
        lines = ["# comment", f"FROM {base_ref}", *extra_lines, ""]
        (directory / "Dockerfile").write_text("\n".join(lines))
        if version is not None:
            (directory / "VERSION").write_text(version + "\n")
        return directory

    return make


@pytest.fixture
def chain(tmp_path, make_image):
    """base <- middle <- leaf, plus other <- (base) and an unrelated image."""
    make_image("base", "ubuntu:jammy", "1.2.3")
    make_image("middle", f"{REGISTRY}/base:1.2.3", "0.1.0")
    make_image("leaf", f"{REGISTRY}/middle:0.1.0", "2.0.0")
    make_image("other", f"{REGISTRY}/base:1.2.3", "3.1.4")
    make_image("unrelated", "alpine:3", "0.0.1")
    return tmp_path
