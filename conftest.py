"""File for tests."""

from collections.abc import Iterator
from pathlib import Path
from typing import Any

import yaml

DEFAULT_GOLDEN_PATTERN = "golden/*.yaml"


def pytest_configure(config: Any) -> None:
    """Register the golden_test marker."""
    config.addinivalue_line(
        "markers",
        "golden_test(pattern): parameterize test with YAML program records matching pattern",
    )


def _iter_marker_patterns(node: Any) -> Iterator[str]:
    """Yield pattern strings from golden_test markers on `node`."""
    for m in node.iter_markers(name="golden_test"):
        yield m.args[0] if m.args else DEFAULT_GOLDEN_PATTERN


def pytest_generate_tests(metafunc: Any) -> None:
    """Parametrize the `golden` fixture with one YAML record per file."""
    if "golden" not in metafunc.fixturenames:
        return

    patterns = list(_iter_marker_patterns(metafunc.definition)) or [DEFAULT_GOLDEN_PATTERN]
    root = Path(metafunc.config.rootpath)

    files: list[Path] = []
    for pat in patterns:
        files.extend(sorted(root.glob(pat)))

    params: list[dict[str, Any]] = []
    ids: list[str] = []
    for p in files:
        with p.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        data.setdefault("__path__", str(p))
        params.append(data)
        ids.append(p.stem)

    metafunc.parametrize("golden", params, ids=ids)
