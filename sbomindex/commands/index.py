import re
from enum import Enum
from pathlib import Path

import dotenv
import structlog
import typer
from rich.progress import BarColumn
from rich.progress import MofNCompleteColumn
from rich.progress import Progress
from rich.progress import SpinnerColumn
from rich.progress import TaskProgressColumn
from rich.progress import TextColumn
from rich.progress import TimeElapsedColumn
from rich.table import Table

from sbomindex.core.config import IndexConfig
from sbomindex.core.container import Container
from sbomindex.core.decorators import handle_errors
from sbomindex.core.logging import console
from sbomindex.core.stats import IndexStats
from sbomindex.services.indexer_service import ImageIndexResult
from sbomindex.services.vulnerability_service import ReportVulnerabilitySource

dotenv.load_dotenv()

logger = structlog.get_logger('index_command')


class Engine(str, Enum):
    SYFT = 'syft'
    TRIVY = 'trivy'

    def __str__(self) -> str:
        return self.value


def output_filename(input: str) -> str:
    """File name for the SBOM of *input* inside the output directory."""
    path, _, name = input.partition('=')
    stem = name or Path(path).name or 'image'
    return re.sub(r'[^A-Za-z0-9._-]+', '_', stem) + '.sbom.json'


@handle_errors
def main(
    images: list[str] = typer.Argument(
        ..., help='Extracted image directories, optionally as PATH=REFERENCE',
    ),
    no_cache: bool = typer.Option(
        False, '--no-cache', envvar='SBOMINDEX_NO_CACHE',
        help='Ignore SBOMs persisted by earlier runs',
    ),
    priority: Engine = typer.Option(
        Engine.SYFT, help='Engine whose metadata wins when both report a package',
    ),
    workers: int = typer.Option(4, help='Number of images indexed concurrently'),
    output: Path | None = typer.Option(
        None, '--output', '-o', help='Directory to write one SBOM per image',
    ),
    vulns: list[Path] | None = typer.Option(
        None, '--vulns', help='Grype or Trivy vulnerability report to match against',
    ),
):
    """
    Index container images into SBOMs.
    """
    engine_priority = (str(priority),) + tuple(str(e) for e in Engine if e != priority)
    config = IndexConfig(use_cache=not no_cache, engine_priority=engine_priority, workers=workers)
    lookup = ReportVulnerabilitySource(vulns) if vulns else None
    service = Container(config).get_indexer_service(vulnerability_lookup=lookup)

    if output:
        output.mkdir(parents=True, exist_ok=True)

    stats = IndexStats(total=len(images))
    with Progress(
        SpinnerColumn(), TextColumn('[progress.description]{task.description}'), BarColumn(),
        TaskProgressColumn(), MofNCompleteColumn(), TextColumn('•'), TimeElapsedColumn(), console=console,
    ) as progress:
        task = progress.add_task('Indexing images...', total=len(images))

        def on_result(outcome: ImageIndexResult):
            if output and outcome.sbom is not None:
                (output / output_filename(outcome.input)).write_text(
                    outcome.sbom.to_json(), encoding='utf-8',
                )
            progress.advance(task)

        outcomes = service.index_images(
            images, workers=config.workers, stats=stats, on_result=on_result,
        )

    console.print(render_summary(sorted(outcomes, key=lambda o: images.index(o.input))))
    logger.info(
        'Indexing Complete',
        indexed=stats.indexed,
        cache_hits=stats.cache_hits,
        failed=stats.failed,
        packages=stats.packages,
        elapsed=f"{stats.elapsed_time:.2f}s",
    )

    if stats.failed:
        raise typer.Exit(1)


def render_summary(outcomes: list[ImageIndexResult]) -> Table:
    table = Table(title='Indexed Images')
    table.add_column('Input', style='cyan')
    table.add_column('Digest', style='dim')
    table.add_column('Packages', style='magenta', justify='right')
    table.add_column('Vulnerabilities', justify='right')
    table.add_column('Status')
    for outcome in outcomes:
        if outcome.sbom is None:
            table.add_row(outcome.input, '', '', '', f"[red]{outcome.error}[/red]")
            continue
        vulnerabilities = outcome.sbom.vulnerabilities
        table.add_row(
            outcome.input,
            outcome.sbom.source.image.digest[:19],
            f"{len(outcome.sbom.artifacts):,}",
            '-' if vulnerabilities is None else f"{len(vulnerabilities):,}",
            '[dim]cached[/dim]' if outcome.cached else '[green]indexed[/green]',
        )
    return table
