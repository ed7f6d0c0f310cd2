import os

import nox  # type:ignore[import-not-found]

nox.options.default_venv_backend = "conda"
os.environ.update({"PDM_IGNORE_SAVED_PYTHON": "1"})
MIN_COVERAGE = 80


def _pdm_install(session: nox.Session, *groups: str) -> None:
    session.env.pop(
        "VIRTUAL_ENV", None
    )  # nox does not clear this and pdm takes this before CONDA_PREFIX
    args = []
    for group in groups:
        args.extend(("-dG", group))
    session.run_always("pdm", "install", *args, "--check", "-q", external=True)


@nox.session(python=["3.10", "3.11", "3.12"])
def test(session: nox.Session) -> None:
    _pdm_install(session, "test")
    session.run("pytest", "--cov=sqlextend", f"--cov-fail-under={MIN_COVERAGE}", "tests/")


@nox.session(python="3.10")
def lint(session: nox.Session) -> None:
    _pdm_install(session, "lint")
    session.run("pre-commit", "run", "--all", external=True)
