"""
CLI for running and poking at the speaker cloud
"""

import click
import sys

from tenacity import Retrying, stop_after_attempt, wait_exponential, retry_if_exception_type

from .config import CloudConfig
from .discovery import discover_speakers
from .errors import CloudError, ResolutionFailed
from .models import ContentReference, Source
from .presets import PresetStore
from .radio_directory import RadioDirectoryClient
from .registry import DeviceRegistry
from .events import EventBus
from .resolver import StreamResolver
from .storage import PersistentStore
from .logging_utils import setup_logging, get_logger

logger = get_logger(__name__)


@click.group()
@click.option('--log-level', default=None, help='Log level')
@click.option('--log-format', default=None, type=click.Choice(['text', 'json', 'simple']), help='Log format')
@click.pass_context
def cli(ctx, log_level, log_format):
    """SoundTouch cloud CLI - serve the replacement cloud and query the radio directory"""
    config = CloudConfig.from_env()
    setup_logging(log_level=log_level or config.log_level, log_format=log_format or config.log_format)
    ctx.ensure_object(dict)
    ctx.obj['config'] = config


@cli.command()
@click.option('--host', default=None, help='Bind address')
@click.option('--port', type=int, default=None, help='Bind port')
@click.option('--app-dir', default='app', help='Directory holding main.py')
@click.pass_context
def serve(ctx, host, port, app_dir):
    """Run the HTTP/WebSocket server"""
    import uvicorn

    config = ctx.obj['config']
    host = host or config.host
    port = port or config.port
    logger.info(f"Starting SoundTouch cloud on {host}:{port}")
    uvicorn.run(
        "main:app",
        host=host,
        port=port,
        app_dir=app_dir,
        log_level=config.log_level.lower(),
        access_log=False,
    )


@cli.command()
@click.option('--timeout', '-t', default=3.0, help='Discovery timeout in seconds')
def discover(timeout):
    """Discover SoundTouch speakers via mDNS"""
    speakers = discover_speakers(timeout_s=timeout)

    if speakers:
        click.echo(f"Found {len(speakers)} SoundTouch speakers:")
        for speaker in speakers:
            click.echo(f"  - {speaker.instance_name} at {speaker.ip}:{speaker.port}")
            if speaker.txt_records:
                click.echo(f"    TXT Records: {speaker.txt_records}")
    else:
        click.echo("No SoundTouch speakers found")


@cli.command()
@click.argument('query')
@click.pass_context
def search(ctx, query):
    """Search the radio directory"""
    client = RadioDirectoryClient(ctx.obj['config'].radio)
    try:
        click.echo(client.search(query))
    except CloudError as e:
        click.echo(f"Search failed: {e}")
        sys.exit(1)


@cli.command()
@click.argument('category', required=False, default='local')
@click.pass_context
def browse(ctx, category):
    """Browse a radio directory category"""
    client = RadioDirectoryClient(ctx.obj['config'].radio)
    try:
        click.echo(client.browse(category))
    except CloudError as e:
        click.echo(f"Browse failed: {e}")
        sys.exit(1)


@cli.command()
@click.option('--location', default='', help='Content location (URL or legacy station path)')
@click.option('--name', default='', help='Display name')
@click.option('--source', default=Source.INTERNET_RADIO.value, help='Content source')
@click.option('--station-id', default=None, help='Directory station id (e.g. s24939)')
@click.pass_context
def resolve(ctx, location, name, source, station_id):
    """Resolve a location or station id to a stream URL"""
    config = ctx.obj['config']
    resolver = StreamResolver(RadioDirectoryClient(config.radio))
    content = ContentReference(source=source, location=location, station_id=station_id, name=name)
    retrying = Retrying(
        stop=stop_after_attempt(config.resolve_attempts),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        retry=retry_if_exception_type(ResolutionFailed),
        reraise=True,
    )
    try:
        resolved = retrying(resolver.resolve, content)
    except CloudError as e:
        click.echo(f"Resolution failed ({type(e).__name__}): {e}")
        sys.exit(1)

    click.echo(f"Source: {resolved.source}")
    click.echo(f"Location: {resolved.location}")
    if resolved.station_id:
        click.echo(f"Station: {resolved.station_id}")


@cli.command()
@click.argument('device_id')
@click.option('--account', default=None, help='Account id')
@click.pass_context
def presets(ctx, device_id, account):
    """Show the durable presets of a device"""
    config = ctx.obj['config']
    account = account or config.default_account
    store = PresetStore(DeviceRegistry(EventBus()), PersistentStore(config.base_dir))
    try:
        items = store.get_presets(account, device_id)
    except CloudError as e:
        click.echo(f"Could not read presets: {e}")
        sys.exit(1)

    if not items:
        click.echo(f"No presets stored for {device_id}")
        return
    click.echo(f"Presets for {device_id} (account {account}):")
    for preset in items:
        click.echo(f"  {preset.id}. {preset.name} [{preset.source}] {preset.location}")


if __name__ == '__main__':
    cli()
