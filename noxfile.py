"""Nox configuration."""

from __future__ import annotations

import nox

nox.needs_version = ">=2024.4.15"

PYPROJECT = nox.project.load_toml()

package = "sqlio"
python_versions = nox.project.python_versions(PYPROJECT)
main_python = python_versions[-1]
locations = "sqlio", "tests", "noxfile.py"
nox.options.sessions = [
    f"mypy-{main_python}",
    f"tests-{main_python}",
]


@nox.session(python=[python_versions[0], main_python])
def mypy(session: nox.Session) -> None:
    """Check types with mypy."""
    args = session.posargs or [package]
    session.install("-e", ".[test]", "mypy", "types-PyYAML")
    session.run("mypy", *args)


@nox.session(python=python_versions, tags=["test"])
def tests(session: nox.Session) -> None:
    """Execute pytest tests."""
    session.install("-e", ".[test]")
    session.run("pytest", "--durations=10", *session.posargs)
