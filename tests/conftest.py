"""Shared pytest fixtures for pagepack tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from pagepack.config import BuildConfig

INDEX_HTML = """\
<!DOCTYPE html>
<html>
  <head>
    <title>Sample</title>
  </head>
  <body>
    <div id="app"></div>
    <script type="module" src="/src/main.js"></script>
  </body>
</html>
"""

MAIN_JS = """\
import "./style.css";
import logo from "./logo.png";

const img = document.createElement("img");
img.src = logo;
document.getElementById("app").appendChild(img);

export const mode = process.env.NODE_ENV;
"""

STYLE_CSS = """\
/* sample styles */
body {
  color:   red;
}
"""

# Smaller than the default inline limit
LOGO_PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


@pytest.fixture
def sample_project(tmp_path: Path) -> Path:
    """A project with one script entry, one stylesheet and a small image."""
    root = tmp_path / "app"
    (root / "src").mkdir(parents=True)
    (root / "public").mkdir()
    (root / "index.html").write_text(INDEX_HTML)
    (root / "src" / "main.js").write_text(MAIN_JS)
    (root / "src" / "style.css").write_text(STYLE_CSS)
    (root / "src" / "logo.png").write_bytes(LOGO_PNG)
    (root / "public" / "robots.txt").write_text("User-agent: *\n")
    return root


@pytest.fixture
def sample_config(sample_project: Path) -> BuildConfig:
    """Config that needs no external binaries."""
    return BuildConfig(root=sample_project, minify=False, silent=True)
