"""
Podcast events CLI — key generation, signed sending, and the validator server.

Usage:
    python -m events_cli.cli keygen [--key-id KID] [--out-dir DIR]
    python -m events_cli.cli send --private-key key.pem --jwk-set-url URL --key-id KID --target-inbox-url URL
    python -m events_cli.cli serve [--port 8080]
    python -m events_cli.cli inspect <envelope>
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

import click
import httpx
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from core.checks import INVALID, is_string_record, is_valid_url, try_parse_json
from core.config import Config
from core.crypto import generate_keypair
from core.envelope import encode_envelope, peek_envelope
from core.errors import EventsError
from core.keys import export_pem, generate_jwk_set, import_pem, timestamp_key_id
from core.schema import ListenEvent


console = Console()


def example_batch() -> dict:
    """One listen event, with the shared fields hoisted to the top level."""
    event = ListenEvent(
        feed_url="https://example.com/feed.xml",
        episode_url="https://example.com/path/to/episode1.mp3",
        user_agent="events_cli",
        time="2022-10-05T17:31:16.254Z",
        quartile="50%",
        listener_id="fb4b9a2d-bb72-48f4-96e7-482f7c7f8db9",
    ).to_wire()
    shared = {k: event.pop(k) for k in ("kind", "userAgent", "feedUrl")}
    return {**shared, "events": [event]}


def _load_batch(path: Optional[str]) -> tuple[dict, bytes]:
    if path is None:
        batch = example_batch()
        return batch, json.dumps(batch, indent=2).encode("utf-8")
    content = Path(path).read_bytes()
    batch = try_parse_json(content.decode("utf-8", errors="replace"))
    if batch is INVALID or not is_string_record(batch):
        raise click.ClickException(f"Bad --body {path}, expected a json object")
    # send the file's exact bytes; the signature covers them, not a re-serialization
    return batch, content


@click.group()
@click.option("--log-level", default=None, help="Logging level (default: PODCAST_EVENTS_LOG_LEVEL or INFO)")
@click.pass_context
def main(ctx: click.Context, log_level: Optional[str]):
    """Podcast events: sign and validate listen-event batches."""
    try:
        config = Config.from_env()
    except ValueError as e:
        raise click.ClickException(str(e))
    if log_level:
        config.log_level = log_level.upper()
    logging.basicConfig(level=config.log_level, format="%(levelname)s %(name)s: %(message)s")
    ctx.obj = config


@main.command()
@click.option("--key-id", default=None, help="Key id (kid) for the JWK Set; default is a timestamp")
@click.option("--out-dir", type=click.Path(file_okay=False), default=None,
              help="Also write private.pem, public.pem and jwks.json here")
def keygen(key_id: Optional[str], out_dir: Optional[str]):
    """Generate an RSA key pair and its JWK Set document."""
    kp = generate_keypair()
    private_pem = export_pem(kp.private_key, "private")
    public_pem = export_pem(kp.public_key, "public")
    try:
        jwk_set = generate_jwk_set(key_id or timestamp_key_id(), kp.public_key)
    except EventsError as e:
        raise click.ClickException(str(e))
    jwk_json = json.dumps(jwk_set, indent=2)

    click.echo(private_pem)
    click.echo(public_pem)
    click.echo(jwk_json)

    if out_dir:
        out = Path(out_dir)
        out.mkdir(parents=True, exist_ok=True)
        (out / "private.pem").write_text(private_pem + "\n")
        (out / "public.pem").write_text(public_pem + "\n")
        (out / "jwks.json").write_text(jwk_json + "\n")
        console.print(f"[green]Wrote private.pem, public.pem, jwks.json to {out}[/green]", highlight=False)
        console.print("Publish jwks.json at an https: url and pass it as --jwk-set-url when sending.")


@main.command()
@click.option("--private-key", "private_key_file", required=True, type=click.Path(exists=True, dir_okay=False),
              help="Path to the private key PEM file")
@click.option("--jwk-set-url", required=True, help="URL of the JWK Set json holding the public key")
@click.option("--key-id", required=True, help="Key id (kid) of the key within the JWK Set")
@click.option("--target-inbox-url", required=True, help="URL where the events should be sent")
@click.option("--body", "body_file", type=click.Path(exists=True, dir_okay=False), default=None,
              help="JSON batch to send (default: an example listen event)")
@click.option("--subject", default=None, help="Feed url to sign for (default: the batch's top-level feedUrl)")
@click.pass_obj
def send(
    config: Config,
    private_key_file: str,
    jwk_set_url: str,
    key_id: str,
    target_inbox_url: str,
    body_file: Optional[str],
    subject: Optional[str],
):
    """Sign a batch of listen events and POST it to an inbox url."""
    if not is_valid_url(jwk_set_url):
        raise click.ClickException(f"Bad --jwk-set-url {jwk_set_url}, expected a URL")
    if not is_valid_url(target_inbox_url):
        raise click.ClickException(f"Bad --target-inbox-url {target_inbox_url}, expected a URL")

    try:
        private_key = import_pem(Path(private_key_file).read_text(), "private")
    except EventsError as e:
        raise click.ClickException(f"Cannot load --private-key {private_key_file}: {e}")

    batch, content = _load_batch(body_file)
    subject = subject or batch.get("feedUrl")
    if not isinstance(subject, str):
        raise click.ClickException("Use --subject <url> when the batch has no top-level feedUrl")

    envelope = encode_envelope(subject, jwk_set_url, key_id, private_key, content)
    try:
        res = httpx.post(
            target_inbox_url,
            content=content,
            headers={"authorization": f"Bearer {envelope}"},
            timeout=config.fetch_timeout,
        )
    except httpx.HTTPError as e:
        raise click.ClickException(f"Request to {target_inbox_url} failed: {e}")

    click.echo(res.status_code)
    click.echo(res.text)


@main.command()
@click.option("--port", type=int, default=None, help="Listening port (default: 8080)")
@click.option("--host", default=None, help="Listening host (default: 0.0.0.0)")
@click.pass_obj
def serve(config: Config, port: Optional[int], host: Optional[str]):
    """Run the validator endpoint as a local HTTP server."""
    import uvicorn

    port = port or config.port
    host = host or config.host
    console.print(f"HTTP webserver running. Access it at: http://localhost:{port}/", highlight=False)
    uvicorn.run("server.app:app", host=host, port=port, log_level=config.log_level.lower())


@main.command()
@click.argument("envelope")
def inspect(envelope: str):
    """Show an envelope's header and claims WITHOUT verifying it."""
    if envelope.startswith("Bearer "):
        envelope = envelope[len("Bearer "):]
    try:
        header, claims = peek_envelope(envelope)
    except EventsError as e:
        raise click.ClickException(str(e))

    console.print(Panel("Envelope Inspection (unverified)", style="bold cyan"))
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Part", width=8)
    table.add_column("Field", width=14)
    table.add_column("Value", overflow="fold")
    for part, obj in (("header", header), ("claims", claims)):
        for name, value in obj.items():
            table.add_row(part, name, str(value))
    console.print(table)
    console.print(f"\n  JWK:  {claims['jku']}#{claims['kid']}", highlight=False)


if __name__ == "__main__":
    main()
