"""Ordered consumer of inbound stream events for one session."""

import asyncio
import logging

from .digest import DigestRecord, decode_digest_entry
from .errors import DigestDecodeError, P4RuntimeClientError
from .events import DigestList, EventKind, InboundEvent
from .faults import FaultChannel
from .p4runtime_client import ProtocolClient


class StreamDispatcher:
    """
    Routes inbound events of one session, strictly in arrival order.

    Digest lists are decoded and acknowledged; stream errors are reported to
    the session's fault channel; everything else is only logged.
    """

    def __init__(
        self,
        client: ProtocolClient,
        faults: FaultChannel,
        log: logging.LoggerAdapter,
        grace_period_seconds: float = 0.25,
    ):
        self.client = client
        self.faults = faults
        self.log = log
        self.grace_period_seconds = grace_period_seconds

    async def run(
        self, messages: asyncio.Queue, shutdown: asyncio.Event | None = None
    ) -> None:
        """
        Consume events until the end-of-stream marker or shutdown.

        Args:
            messages: Queue of InboundEvent, terminated by None
            shutdown: Process-wide shutdown signal
        """
        while shutdown is None or not shutdown.is_set():
            event = await messages.get()
            if event is None:
                break
            await self.dispatch(event)

        self.log.debug("Closed message stream")
        # let an in-flight acknowledgement reach the switch
        await asyncio.sleep(self.grace_period_seconds)

    async def dispatch(self, event: InboundEvent) -> None:
        if event.kind is EventKind.PACKET_IN:
            self.log.debug("Received PacketIn")
        elif event.kind is EventKind.DIGEST_LIST:
            self.log.debug("Received DigestList")
            await self.handle_digest(event.digest)
        elif event.kind is EventKind.IDLE_TIMEOUT:
            self.log.debug("Received IdleTimeoutNotification")
        elif event.kind is EventKind.STREAM_ERROR:
            self.log.debug("Received StreamError")
            self.faults.report(event.error)
        else:
            self.log.debug("Received unknown stream message")

    async def handle_digest(self, digest_list: DigestList) -> list[DigestRecord]:
        """
        Decode every entry of a digest list, then acknowledge the list once.

        Entries that cannot be decoded are logged and skipped.

        Returns:
            Decoded records, in list order
        """
        records = []
        for entry in digest_list.entries:
            try:
                record = decode_digest_entry(entry)
            except DigestDecodeError as e:
                self.log.warning(f"Skipping digest entry: {e}")
                continue
            self.log.debug(
                f"Digest flow={record.flow_id.hex()} "
                f"flow_opp={record.opposite_flow_id.hex()} "
                f"threshold={record.threshold}"
            )
            records.append(record)

        try:
            await self.client.ack_digest_list(digest_list)
        except P4RuntimeClientError as e:
            self.faults.report(e)
        else:
            self.log.debug("Ack digest list")

        return records
