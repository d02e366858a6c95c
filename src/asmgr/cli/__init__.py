"""
CLI interface for asmgr using Typer.

Commands live in submodules and register themselves on the shared app.
"""

# Import shared state (app, options, utilities) first
from ._shared import app, main_callback, ProjectOption  # noqa: F401

# Import submodules to register their commands with the Typer app
from . import session  # noqa: F401
from . import project  # noqa: F401
from . import tmux  # noqa: F401


@app.command()
def version():
    """Show the installed version."""
    from rich import print as rprint

    from .. import __version__

    rprint(f"asmgr {__version__}")


def main():
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
