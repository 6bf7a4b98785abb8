"""Nox sessions for testing and quality checks."""

import nox


@nox.session(python=["3.13", "3.14"])
def tests(session: nox.Session) -> None:
    """Run the test suite with coverage reporting.

    Args:
        session: The nox session object.
    """
    session.install("-e", ".[test]")
    session.run(
        "pytest",
        "--cov=spend_monitor",
        "--cov-report=term-missing:skip-covered",
        "--cov-fail-under=80",
        *session.posargs,
    )


@nox.session(python=["3.13"])
def property_tests(session: nox.Session) -> None:
    """Run only the hypothesis property tests."""
    session.install("-e", ".[test]")
    session.run("pytest", "-m", "property", *session.posargs)


@nox.session(python=["3.13"])
def lint(session: nox.Session) -> None:
    """Run ruff linting and formatting checks."""
    session.install("ruff")
    session.run("ruff", "check", ".")
    session.run("ruff", "format", "--check", ".")


@nox.session(python=["3.13"])
def typecheck(session: nox.Session) -> None:
    """Run basedpyright over sources and tests."""
    session.install("-e", ".[test]", "basedpyright")
    session.run("basedpyright")


@nox.session(python=False)
def check_isolation(session: nox.Session) -> None:
    """Check that core, types and utils never reference the notification provider."""
    session.run("python3", "scripts/check_provider_isolation.py", external=True)
