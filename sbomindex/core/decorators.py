import functools
from collections.abc import Callable
from typing import Any

import structlog
import typer

from sbomindex.core.errors import SbomIndexError
from sbomindex.core.logging import console

logger = structlog.get_logger('cli')


def handle_errors(func: Callable[..., Any]) -> Callable[..., Any]:
    """Turn indexing errors into a one-line message and a non-zero exit code."""
    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except typer.Exit:
            raise
        except SbomIndexError as e:
            console.print(f"[bold red]Error:[/] {e}")
            logger.debug('Command failed', exc_info=True)
            raise typer.Exit(1)
        except ValueError as e:
            console.print(f"[bold red]Invalid option:[/] {e}")
            raise typer.Exit(2)
        except KeyboardInterrupt:
            console.print('\n[yellow]Indexing cancelled.[/]')
            raise typer.Exit(130)
        except Exception as e:
            console.print(f"[bold red]Unexpected Error:[/] {e}")
            logger.exception('Unexpected error')
            raise typer.Exit(1)
    return wrapper
