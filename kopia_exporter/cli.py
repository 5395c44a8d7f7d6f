"""Command-line interface for kopia exporter."""

import logging
import sys
from typing import Any, Dict, Optional, Tuple

import click

from .config.config_manager import ConfigManager
from .core.errors import KopiaExporterError
from .core.exporter import KopiaExporter
from .server import create_app, serve
from .utils.formatters import format_age, format_file_size, format_timestamp


def setup_logging(level: str, log_file: Optional[str] = None):
    """Set up logging configuration."""
    # Convert string level to logging constant
    numeric_level = getattr(logging, level.upper(), None)
    if not isinstance(numeric_level, int):
        raise ValueError(f'Invalid log level: {level}')

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    # Clear existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # Logs go to stderr so `metrics` output on stdout stays clean
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        try:
            file_handler = logging.FileHandler(log_file)
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)
        except OSError as e:
            click.echo(f"Warning: Could not set up file logging: {e}", err=True)


def _load_config(ctx) -> Tuple[ConfigManager, Dict[str, Any]]:
    """Load configuration with command-line overrides and set up logging."""
    config_manager = ConfigManager(ctx.obj.get('config_path'))
    config = config_manager.load_config(ctx.obj.get('overrides'))
    logging_config = config_manager.get_logging_config()
    setup_logging(logging_config['level'], logging_config.get('file'))
    return config_manager, config


@click.group()
@click.option('--config', '-c', 'config_path',
              help='Path to configuration file')
@click.option('--log-level',
              type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR'], case_sensitive=False),
              help='Logging level [default: INFO]')
@click.option('--log-file',
              help='Log file path')
@click.option('--kopia-bin',
              help='Path to the kopia binary [default: kopia]')
@click.option('--timeout', 'timeout_seconds', type=click.FloatRange(min=0, min_open=True),
              help='Timeout for one kopia invocation in seconds [default: 15]')
@click.option('--cache-seconds', type=click.FloatRange(min=0),
              help='Reuse kopia results for this many seconds, 0 disables caching [default: 30]')
@click.option('--extra-arg', 'extra_args', multiple=True,
              help='Extra argument passed verbatim to kopia (repeatable)')
@click.pass_context
def cli(ctx, config_path: Optional[str], log_level: Optional[str], log_file: Optional[str],
        kopia_bin: Optional[str], timeout_seconds: Optional[float], cache_seconds: Optional[float],
        extra_args: Tuple[str, ...]):
    """Kopia Exporter - Prometheus metrics for kopia backup snapshots."""

    ctx.ensure_object(dict)

    ctx.obj['config_path'] = config_path
    ctx.obj['overrides'] = {
        'kopia': {
            'bin': kopia_bin,
            'timeout_seconds': timeout_seconds,
            'extra_args': list(extra_args) if extra_args else None,
        },
        'cache': {'seconds': cache_seconds},
        'logging': {
            'level': log_level.upper() if log_level else None,
            'file': log_file,
        },
    }


@cli.command(name='serve')
@click.option('--bind', '-b', help='Listen address host:port [default: 127.0.0.1:9090]')
@click.option('--max-bind-retries', type=click.IntRange(min=0),
              help='Maximum number of bind retry attempts [default: 5]')
@click.pass_context
def serve_command(ctx, bind: Optional[str], max_bind_retries: Optional[int]):
    """Serve metrics over HTTP."""
    ctx.obj['overrides']['server'] = {'bind': bind, 'max_bind_retries': max_bind_retries}
    try:
        config_manager, config = _load_config(ctx)
        server_config = config_manager.get_server_config()

        exporter = KopiaExporter.from_config(config)
        app = create_app(exporter)

        click.echo(f"Serving kopia metrics on http://{server_config['bind']}/metrics", err=True)
        serve(app, server_config['bind'], server_config['max_bind_retries'])

    except KeyboardInterrupt:
        click.echo("Stopped", err=True)
    except (KopiaExporterError, ValueError, OSError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.pass_context
def metrics(ctx):
    """Acquire metrics once and print them to stdout."""
    try:
        _, config = _load_config(ctx)
        exporter = KopiaExporter.from_config(config)
        click.echo(exporter.render_metrics().decode('utf-8'), nl=False)

    except (KopiaExporterError, ValueError, OSError) as e:
        click.echo(f"Error acquiring metrics: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.pass_context
def overview(ctx):
    """Show a quick overview of all backup sources."""
    try:
        _, config = _load_config(ctx)
        exporter = KopiaExporter.from_config(config)
        snapshot = exporter.get_metrics()

        click.echo("\n🗂️  Kopia Snapshot Overview")
        click.echo("=" * 50)

        sources = sorted(snapshot.total_sizes)
        if not sources:
            click.echo("   ❌ No snapshots with a valid source")

        for source in sources:
            click.echo(f"\n📍 {source}")
            click.echo("-" * len(source))

            count = snapshot.get('kopia_snapshots_total', source=source)
            errors = snapshot.get('kopia_snapshot_errors_total', source=source)
            failed = snapshot.get('kopia_snapshot_failed_files_total', source=source)
            change = snapshot.get('kopia_snapshot_size_change_bytes', source=source)

            click.echo(f"   📸 Snapshots: {int(count or 0)}")
            click.echo(f"   💾 Latest size: {format_file_size(snapshot.total_sizes[source])}")
            if change is not None:
                click.echo(f"   📈 Size change: {format_file_size(change)}")
            click.echo(f"   🕒 Last success: "
                       f"{format_timestamp(snapshot.get('kopia_snapshot_last_success_timestamp', source=source))}"
                       f" ({format_age(snapshot.get('kopia_snapshot_age_seconds', source=source))} ago)")

            if errors:
                click.echo(f"   ⚠️  Errors: {int(errors)}")
            if failed:
                click.echo(f"   ⚠️  Failed files: {int(failed)}")

        malformed = snapshot.get('kopia_snapshot_record_parse_errors_total') or 0
        invalid_sources = sum(s.value for s in snapshot.family('kopia_snapshot_source_parse_errors'))
        if malformed or invalid_sources:
            click.echo(f"\n⚠️  Skipped entries: {int(malformed)} malformed, "
                       f"{int(invalid_sources)} with invalid sources")

    except (KopiaExporterError, ValueError, OSError) as e:
        click.echo(f"Error getting overview: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.pass_context
def validate_config(ctx):
    """Validate configuration file."""
    try:
        config_manager, config = _load_config(ctx)

        click.echo("✅ Configuration loaded successfully")

        kopia_config = config_manager.get_kopia_config()
        server_config = config_manager.get_server_config()

        click.echo(f"\n📊 Configuration Summary:")
        click.echo(f"   Config file: {config_manager.config_file or 'none (defaults)'}")
        click.echo(f"   Command: {' '.join(KopiaExporter.from_config(config).command)}")
        click.echo(f"   Timeout: {kopia_config['timeout_seconds']}s")
        click.echo(f"   Cache: {config_manager.get_cache_config()['seconds']}s")
        click.echo(f"   Bind: {server_config['bind']} ({server_config['max_bind_retries']} retries)")

    except (ValueError, OSError) as e:
        click.echo(f"❌ Configuration validation failed: {e}", err=True)
        sys.exit(1)


def main():
    """Main CLI entry point."""
    cli()


if __name__ == '__main__':
    main()
