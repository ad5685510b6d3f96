import base64
import json
import signal
import sys
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, List, Optional

import click
from confluent_kafka import OFFSET_BEGINNING
from loguru import logger
from rich.console import Console
from rich.table import Table

from kafka_replay.config import Settings, load_config, resolve_brokers, resolve_config_path
from kafka_replay.core.datatypes import ClusterInfo, RecordedMessage, RecordResult, ReplayResult
from kafka_replay.core.errors import ConfigurationError, OperationCancelled
from kafka_replay.core.frame import format_timestamp
from kafka_replay.core.info import collect_info
from kafka_replay.core.progress import record_progress, replay_progress
from kafka_replay.core.reader import MessageFileReader
from kafka_replay.core.record import Recorder
from kafka_replay.core.replay import Replayer, ReplayConfig
from kafka_replay.integrations.kafka import KafkaConsumer, KafkaProducer, admin_client

FORMATS = ("table", "json", "raw")
_PREVIEW_LENGTH = 60


def setup_logging(verbose: bool = False, quiet: bool = False):
    level = "DEBUG" if verbose else "WARNING" if quiet else "INFO"
    logger.remove()
    logger.add(sys.stderr, level=level, format="<level>{level: <8}</level> {message}")


@contextmanager
def interruptible():
    """Yield a stop event that SIGINT/SIGTERM set instead of raising."""
    stop = threading.Event()

    def _handler(signum, frame):
        logger.debug(f"Received signal {signum}, stopping")
        stop.set()

    previous = {
        sig: signal.signal(sig, _handler) for sig in (signal.SIGINT, signal.SIGTERM)
    }
    try:
        yield stop
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


def _format_time(message: RecordedMessage) -> str:
    return format_timestamp(message.timestamp).decode("ascii")


def _preview(data: bytes) -> str:
    text = data.decode("utf-8", errors="replace")
    if len(text) > _PREVIEW_LENGTH:
        return text[:_PREVIEW_LENGTH] + "…"
    return text


def _ids(values: List[int]) -> str:
    return "[" + ", ".join(str(v) for v in values) + "]"


class CLIAdapter:
    def __init__(
        self,
        config_path: Optional[Path] = None,
        profile: Optional[str] = None,
        brokers: Optional[List[str]] = None,
        output_format: str = "table",
        quiet: bool = False,
    ):
        self.config_path = config_path
        self.profile = profile
        self.flag_brokers = list(brokers or [])
        self.output_format = output_format
        self.quiet = quiet
        self.console = Console()
        self._settings: Optional[Settings] = None

    @property
    def settings(self) -> Settings:
        if self._settings is None:
            self._settings = load_config(self.config_path)
        return self._settings

    def brokers(self) -> List[str]:
        return resolve_brokers(self.flag_brokers, self.profile, self.settings)

    def status(self, message: str):
        if not self.quiet:
            click.echo(message, err=True)

    def _echo_lines(self, items: Iterable[dict]):
        for item in items:
            click.echo(json.dumps(item))

    # ------------------------------------------------------------------
    # record / replay
    # ------------------------------------------------------------------
    def record(
        self,
        topic: str,
        output: Path,
        partition: int = 0,
        group_id: Optional[str] = None,
        offset: Optional[int] = None,
        from_beginning: bool = False,
        limit: int = 0,
    ) -> RecordResult:
        brokers = self.brokers()
        self.status(f"Recording messages from topic '{topic}' on brokers {brokers}")
        self.status(f"Consumer group: {group_id or self.settings.kafka.group_id}")
        self.status(f"Output file: {output}")
        if from_beginning:
            self.status("Starting from beginning of topic")
            offset = OFFSET_BEGINNING
        if limit > 0:
            self.status(f"Message limit: {limit}")

        consumer = KafkaConsumer(
            brokers, topic, partition, group_id=group_id, settings=self.settings.kafka
        )
        try:
            with open(output, "wb") as f:
                recorder = Recorder(
                    consumer,
                    f,
                    limit=limit,
                    offset=offset,
                    progress=record_progress(limit, disable=self.quiet),
                )
                with interruptible() as stop:
                    try:
                        result = recorder.run(stop)
                    except OperationCancelled as e:
                        self.status("Recording interrupted")
                        result = e.result
        finally:
            consumer.close()
        self.status(f"Recorded {result.message_count} messages ({result.bytes_written} bytes)")
        return result

    def replay(
        self,
        topic: str,
        input_path: Path,
        rate: int = 0,
        loop: bool = False,
        preserve_timestamps: bool = False,
        batch_size: int = 0,
        batch_bytes: int = 0,
        create_topic: bool = False,
    ) -> ReplayResult:
        brokers = self.brokers()
        config = ReplayConfig(
            rate=rate, loop=loop, max_batch_size=batch_size, max_batch_bytes=batch_bytes
        )
        producer = KafkaProducer(brokers, topic, settings=self.settings.kafka)
        if create_topic:
            producer.create_topic()
        else:
            producer.ensure_topic_exists()

        self.status(f"Replaying messages from {input_path} to topic '{topic}' on brokers {brokers}")
        if rate > 0:
            self.status(f"Rate limit: {rate} messages/second")
        if loop:
            self.status("Looping enabled, press Ctrl+C to stop")

        try:
            with MessageFileReader.open(
                input_path, preserve_timestamps=preserve_timestamps
            ) as reader:
                replayer = Replayer(
                    reader,
                    producer,
                    config,
                    progress=replay_progress(loop, disable=self.quiet),
                    log_writer=None if self.quiet else click.get_text_stream("stderr"),
                )
                with interruptible() as stop:
                    try:
                        result = replayer.run(stop)
                    except OperationCancelled as e:
                        self.status("Replay interrupted")
                        result = e.result
        finally:
            producer.close()
        self.status(f"Replayed {result.message_count} messages")
        return result

    # ------------------------------------------------------------------
    # cat
    # ------------------------------------------------------------------
    def cat(self, input_path: Path, preserve_timestamps: bool = True):
        with MessageFileReader.open(
            input_path, preserve_timestamps=preserve_timestamps
        ) as reader:
            if self.output_format == "raw":
                out = click.get_binary_stream("stdout")
                for message in reader:
                    out.write(message.data + b"\n")
                out.flush()
            elif self.output_format == "json":
                self._echo_lines(
                    {
                        "timestamp": _format_time(message),
                        "size": len(message.data),
                        "data": base64.b64encode(message.data).decode("ascii"),
                    }
                    for message in reader
                )
            else:
                table = Table()
                table.add_column("#", justify="right", style="cyan", no_wrap=True)
                table.add_column("Timestamp", justify="left", style="cyan", no_wrap=True)
                table.add_column("Size", justify="right", no_wrap=True)
                table.add_column("Data", justify="left", no_wrap=False)
                for i, message in enumerate(reader):
                    table.add_row(
                        str(i), _format_time(message), str(len(message.data)), _preview(message.data)
                    )
                self.console.print(table)

    # ------------------------------------------------------------------
    # cluster metadata
    # ------------------------------------------------------------------
    def cluster_info(self) -> ClusterInfo:
        return collect_info(
            self.brokers(),
            admin_factory=admin_client,
            timeout=self.settings.kafka.metadata_timeout,
        )

    def info(self):
        cluster = self.cluster_info()
        if self.output_format != "table":
            click.echo(json.dumps(cluster.to_dict(), indent=2))
            return cluster

        brokers = Table(title="Brokers")
        brokers.add_column("ID", justify="right", style="cyan", no_wrap=True)
        brokers.add_column("Address", justify="left", style="cyan", no_wrap=True)
        brokers.add_column("Leader", justify="left", no_wrap=True)
        for broker in cluster.brokers:
            brokers.add_row(
                str(broker.id),
                broker.address,
                "[green]Yes[/green]" if broker.is_leader else "No",
            )
        self.console.print(brokers)

        if not cluster.topics:
            self.console.print("No topics found.")
            return cluster
        self.console.print(self._partitions_table(cluster, title="Topics"))

        mapping = Table(title="Broker-to-Topic Mapping")
        mapping.add_column("Broker", justify="right", style="cyan", no_wrap=True)
        mapping.add_column("Topics", justify="left", no_wrap=False)
        for broker_id, topics in cluster.broker_topics().items():
            mapping.add_row(str(broker_id), ", ".join(topics))
        self.console.print(mapping)
        return cluster

    def _partitions_table(self, cluster: ClusterInfo, title: Optional[str] = None, topic: Optional[str] = None):
        table = Table(title=title)
        table.add_column("Topic", justify="left", style="cyan", no_wrap=True)
        table.add_column("Partition", justify="right", style="cyan", no_wrap=True)
        table.add_column("Leader", justify="right", no_wrap=True)
        table.add_column("Replicas", justify="left", no_wrap=True)
        table.add_column("In-Sync Replicas", justify="left", no_wrap=True)
        for name in sorted(cluster.topics):
            if topic and name != topic:
                continue
            partitions = cluster.topics[name].partitions
            for pid in sorted(partitions):
                partition = partitions[pid]
                table.add_row(
                    name,
                    str(pid),
                    str(partition.leader),
                    _ids(partition.replicas),
                    _ids(partition.in_sync_replicas),
                )
        return table

    def list_brokers(self):
        cluster = self.cluster_info()
        if self.output_format != "table":
            self._echo_lines(broker.model_dump() for broker in cluster.brokers)
            return
        table = Table()
        table.add_column("ID", justify="right", style="cyan", no_wrap=True)
        table.add_column("Address", justify="left", style="cyan", no_wrap=True)
        table.add_column("Leader", justify="left", no_wrap=True)
        for broker in cluster.brokers:
            table.add_row(str(broker.id), broker.address, "yes" if broker.is_leader else "no")
        self.console.print(table)

    def list_topics(self):
        cluster = self.cluster_info()
        rows = []
        for name in sorted(cluster.topics):
            partitions = cluster.topics[name].partitions
            replication = max((len(p.replicas) for p in partitions.values()), default=0)
            rows.append(
                {"name": name, "partitions": len(partitions), "replication_factor": replication}
            )
        if self.output_format != "table":
            self._echo_lines(rows)
            return
        table = Table()
        table.add_column("Topic", justify="left", style="cyan", no_wrap=True)
        table.add_column("Partitions", justify="right", no_wrap=True)
        table.add_column("Replication", justify="right", no_wrap=True)
        for row in rows:
            table.add_row(row["name"], str(row["partitions"]), str(row["replication_factor"]))
        self.console.print(table)

    def list_partitions(self, topic: Optional[str] = None):
        cluster = self.cluster_info()
        if topic and topic not in cluster.topics:
            raise ConfigurationError(f"Topic '{topic}' does not exist")
        if self.output_format != "table":
            self._echo_lines(
                {"topic": name, **partition.model_dump()}
                for name in sorted(cluster.topics)
                if not topic or name == topic
                for _, partition in sorted(cluster.topics[name].partitions.items())
            )
            return
        self.console.print(self._partitions_table(cluster, topic=topic))

    # ------------------------------------------------------------------
    # debug
    # ------------------------------------------------------------------
    def show_config(self):
        path = resolve_config_path(self.config_path)
        click.echo(f"Config file: {path} ({'found' if path.exists() else 'not found'})")
        profile = self.profile or self.settings.default_profile
        click.echo(f"Profile: {profile or '-'}")
        try:
            brokers = self.brokers()
        except ConfigurationError as e:
            click.echo(f"Brokers: unresolved ({e})")
        else:
            click.echo(f"Brokers: {', '.join(brokers)}")
