from functools import wraps
from pathlib import Path

import click
from confluent_kafka import KafkaException

from kafka_replay import __version__
from kafka_replay.cli import FORMATS, CLIAdapter, setup_logging
from kafka_replay.core.errors import KafkaReplayError


def handle_errors(f):
    @wraps(f)
    def wrapper(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except (KafkaReplayError, KafkaException, OSError) as e:
            click.echo(f"Error: {e}", err=True)
            raise click.Abort()

    return wrapper


@click.group()
@click.option(
    "--config",
    "config_path",
    type=Path,
    envvar="KAFKA_REPLAY_CONFIG",
    help="Path to configuration file (defaults to ./kafka-replay.yaml, then ~/.kafka-replay/config.yaml)",
)
@click.option(
    "--profile", type=str, envvar="KAFKA_REPLAY_PROFILE", help="Profile name to use from configuration"
)
@click.option(
    "--brokers",
    "-b",
    type=str,
    multiple=True,
    envvar="KAFKA_REPLAY_BROKERS",
    help="Kafka broker address(es), comma-separated or repeated",
)
@click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice(FORMATS),
    default="table",
    show_default=True,
    help="Output format: table, json (one object per line) or raw (cat only)",
)
@click.option("--quiet", "-q", is_flag=True, help="Suppress status output and progress bars")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx, config_path, profile, brokers, output_format, quiet, verbose):
    """Record messages from Kafka topics and replay them back."""
    setup_logging(verbose=verbose, quiet=quiet)
    ctx.obj = CLIAdapter(
        config_path=config_path,
        profile=profile,
        brokers=list(brokers),
        output_format=output_format,
        quiet=quiet,
    )


@cli.command()
@click.option("--topic", "-t", type=str, required=True, help="Topic to record messages from")
@click.option("--partition", "-p", type=int, default=0, show_default=True, help="Partition to record from")
@click.option("--group-id", "-g", type=str, default=None, help="Consumer group ID")
@click.option(
    "--output",
    "-o",
    type=Path,
    default=Path("messages.log"),
    show_default=True,
    help="Output file for recorded messages",
)
@click.option("--offset", type=int, default=None, help="Start recording at this absolute offset")
@click.option("--from-beginning", is_flag=True, help="Start reading from the beginning of the partition")
@click.option(
    "--limit",
    "-l",
    type=click.IntRange(min=0),
    default=0,
    show_default=True,
    help="Maximum number of messages to record (0 for unlimited)",
)
@click.option("--force", is_flag=True, help="Overwrite the output file without asking")
@click.pass_obj
@handle_errors
def record(adapter: CLIAdapter, topic, partition, group_id, output, offset, from_beginning, limit, force):
    """Record messages from a Kafka topic to a file."""
    if offset is not None and from_beginning:
        click.echo("--offset and --from-beginning are mutually exclusive", err=True)
        raise click.Abort()
    if output.exists() and not force:
        if not click.confirm(f"Output file {output} already exists. Override?"):
            raise click.Abort()
    adapter.record(
        topic,
        output,
        partition=partition,
        group_id=group_id,
        offset=offset,
        from_beginning=from_beginning,
        limit=limit,
    )


@cli.command()
@click.option("--topic", "-t", type=str, required=True, help="Topic to replay messages to")
@click.option(
    "--input",
    "-i",
    "input_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    required=True,
    help="Recording file to replay",
)
@click.option(
    "--rate",
    "-r",
    type=click.IntRange(min=0),
    default=0,
    show_default=True,
    help="Messages per second (0 for unlimited)",
)
@click.option("--loop", is_flag=True, help="Replay the file indefinitely")
@click.option(
    "--preserve-timestamps", is_flag=True, help="Publish with the recorded timestamps instead of now"
)
@click.option(
    "--batch-size",
    type=click.IntRange(min=0),
    default=0,
    help="Messages per publish batch (0 for default: 100)",
)
@click.option(
    "--batch-bytes",
    type=click.IntRange(min=0),
    default=0,
    help="Maximum payload bytes per publish batch (0 for default: 10MiB)",
)
@click.option("--create-topic", is_flag=True, help="Create the topic if it does not exist")
@click.pass_obj
@handle_errors
def replay(adapter: CLIAdapter, topic, input_path, rate, loop, preserve_timestamps, batch_size, batch_bytes, create_topic):
    """Replay recorded messages from a file to a Kafka topic."""
    adapter.replay(
        topic,
        input_path,
        rate=rate,
        loop=loop,
        preserve_timestamps=preserve_timestamps,
        batch_size=batch_size,
        batch_bytes=batch_bytes,
        create_topic=create_topic,
    )


@cli.command()
@click.option(
    "--input",
    "-i",
    "input_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    required=True,
    help="Recording file to print",
)
@click.option(
    "--preserve-timestamps/--no-preserve-timestamps",
    default=True,
    show_default=True,
    help="Show recorded timestamps instead of the current time",
)
@click.pass_obj
@handle_errors
def cat(adapter: CLIAdapter, input_path, preserve_timestamps):
    """Print the messages of a recording file."""
    adapter.cat(input_path, preserve_timestamps=preserve_timestamps)


@cli.command()
@click.pass_obj
@handle_errors
def info(adapter: CLIAdapter):
    """Display brokers, topics, partitions and their relationships."""
    adapter.info()


#######################################################################################
# Group: ls
#######################################################################################
@cli.group(name="ls")
def ls_group():
    """List Kafka resources."""
    pass


@ls_group.command(name="brokers")
@click.pass_obj
@handle_errors
def ls_brokers(adapter: CLIAdapter):
    """List brokers."""
    adapter.list_brokers()


@ls_group.command(name="topics")
@click.pass_obj
@handle_errors
def ls_topics(adapter: CLIAdapter):
    """List topics with partition count and replication factor."""
    adapter.list_topics()


@ls_group.command(name="partitions")
@click.option("--topic", "-t", type=str, default=None, help="Only list partitions of this topic")
@click.pass_obj
@handle_errors
def ls_partitions(adapter: CLIAdapter, topic):
    """List partitions with leader and replicas."""
    adapter.list_partitions(topic)


#######################################################################################
# Group: debug
#######################################################################################
@cli.group()
def debug():
    """Debug and internal commands (unstable)."""
    pass


@debug.command(name="config")
@click.pass_obj
@handle_errors
def debug_config(adapter: CLIAdapter):
    """Show the resolved configuration."""
    adapter.show_config()


@cli.command()
def version():
    """Print version information."""
    click.echo(f"kafka-replay version {__version__}")


def main():
    cli()


if __name__ == "__main__":
    main()
