import typer

from sbomindex.__version__ import __version__
from sbomindex.commands import index
from sbomindex.core.logging import setup_logging

app = typer.Typer(
    help='sbomindex: build SBOMs for container images with Syft and Trivy.',
    no_args_is_help=True,
    pretty_exceptions_show_locals=False,
)

app.command(name='index')(index.main)


def version_callback(value: bool):
    if value:
        typer.echo(__version__)
        raise typer.Exit()


@app.callback()
def main(
    debug: bool = typer.Option(False, '--debug', help='Enable debug logging'),
    version: bool = typer.Option(
        False, '--version', callback=version_callback, is_eager=True, help='Show version and exit',
    ),
):
    """
    sbomindex CLI - index container images into SBOMs.
    """
    level = 'DEBUG' if debug else 'INFO'
    setup_logging(level=level)


if __name__ == '__main__':
    app()
