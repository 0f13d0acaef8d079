import nox


@nox.session
def tests(session: nox.Session) -> None:
    """Run the test suite."""
    session.install("-e", ".[test]")
    session.run("pytest")


@nox.session
def smoke(session: nox.Session) -> None:
    """Ensure the package imports in a clean environment."""
    session.install("-e", ".")
    session.run("python", "-c", "import sofun_pipeline")
