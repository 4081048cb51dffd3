"""tus-uploader CLI entry point."""

import asyncio
import logging
from pathlib import Path

import aiohttp
import pydantic
import typer
from tqdm import tqdm

from tus_uploader import __version__
from tus_uploader.event_emitter import Emitter
from tus_uploader.helpers import get_file_id_from_url
from tus_uploader.models import SessionSnapshot, SessionState, UploadOptions
from tus_uploader.uploader import Uploader

app = typer.Typer(add_completion=False, help="Resumable chunked uploads.")


def _version_callback(value: bool) -> bool:
    if value:
        typer.echo(__version__)
        raise typer.Exit()
    return value


@app.callback()
def callback(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        help="Show the tus-uploader version and exit.",
        callback=_version_callback,
        is_eager=True,
        is_flag=True,
    ),
) -> None:
    """Handle global CLI option for --version."""
    return None


def _parse_pairs(values: list[str] | None, option: str) -> dict[str, str]:
    """Parse repeated ``KEY=VALUE`` options into a dict."""
    pairs: dict[str, str] = {}
    for value in values or []:
        key, sep, item = value.partition("=")
        if not sep or not key:
            raise typer.BadParameter(
                f"Expected KEY=VALUE, got {value!r}", param_hint=option
            )
        pairs[key.strip()] = item.strip()
    return pairs


async def _run_upload(
    file: Path, url: str, options: UploadOptions, show_progress: bool
) -> SessionSnapshot:
    async with aiohttp.ClientSession() as client_session:
        uploader = Uploader(client_session)
        with tqdm(
            total=100.0,
            desc=f"Uploading {file.name}",
            unit="%",
            bar_format="{l_bar}{bar}| {n:.1f}/{total:.0f}%",
            disable=not show_progress,
        ) as pbar:

            def on_progress(progress: float, offset: int, total: int) -> None:
                pbar.n = progress
                pbar.refresh()

            def on_state(state: SessionState) -> None:
                if state is SessionState.COMPLETED:
                    pbar.n = 100.0
                    pbar.refresh()

            uploader.on(Emitter.PROGRESS, on_progress)
            uploader.on(Emitter.STATE_CHANGED, on_state)
            return await uploader.upload(file, options.network, url, options)


@app.command("upload")
def upload(
    file: Path = typer.Argument(
        ..., exists=True, dir_okay=False, readable=True, help="File to upload."
    ),
    url: str = typer.Argument(..., help="Endpoint that creates upload targets."),
    network: str = typer.Option(
        "public", "--network", "-n", help="Network: public or private."
    ),
    name: str | None = typer.Option(None, "--name", help="Display name."),
    group_id: str | None = typer.Option(None, "--group-id", help="Group ID."),
    keyvalue: list[str] | None = typer.Option(
        None, "--keyvalue", "-k", help="Key-value tag as KEY=VALUE (repeatable)."
    ),
    header: list[str] | None = typer.Option(
        None, "--header", "-H", help="Request header as KEY=VALUE (repeatable)."
    ),
    chunk_size: str | None = typer.Option(
        None, "--chunk-size", help="Chunk size, e.g. 5mb or 1048576."
    ),
    max_retries: int | None = typer.Option(
        None, "--max-retries", help="Retries per request after the first attempt."
    ),
    no_progress: bool = typer.Option(
        False, "--no-progress", help="Hide the progress bar."
    ),
    log_level: str = typer.Option("WARNING", "--log-level", help="Logging level."),
) -> None:
    """Upload FILE through the resumable endpoint at URL."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    headers = _parse_pairs(header, "--header")
    keyvalues = _parse_pairs(keyvalue, "--keyvalue")

    fields: dict = {
        "network": network,
        "name": name,
        "group_id": group_id,
        "custom_headers": headers,
        "keyvalues": keyvalues or None,
    }
    if chunk_size is not None:
        fields["chunk_size"] = chunk_size
    if max_retries is not None:
        fields["retry_options"] = {"max_retries": max_retries}
    try:
        options = UploadOptions(**fields)
    except pydantic.ValidationError as e:
        typer.echo(f"Invalid options: {e}", err=True)
        raise typer.Exit(2) from e

    snapshot = asyncio.run(_run_upload(file, url, options, not no_progress))

    if snapshot.state is SessionState.COMPLETED:
        typer.echo(snapshot.upload_id or "")
        return
    if snapshot.state is SessionState.CANCELLED:
        typer.echo("Upload cancelled", err=True)
        raise typer.Exit(1)
    typer.echo(f"Upload failed: {snapshot.error}", err=True)
    raise typer.Exit(1)


@app.command("file-id")
def file_id(url: str = typer.Argument(..., help="Upload target URL.")) -> None:
    """Print the upload identifier embedded in URL."""
    typer.echo(get_file_id_from_url(url))


def main() -> None:
    """CLI entrypoint for the tus-uploader command."""
    app()


if __name__ == "__main__":
    main()
