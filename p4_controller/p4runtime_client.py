"""P4Runtime client for switch communication."""

import asyncio
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Protocol

import grpc
from p4.v1 import p4runtime_pb2, p4runtime_pb2_grpc

from .errors import P4RuntimeClientError
from .events import DigestConfig, DigestEntry, DigestList, InboundEvent
from .p4info import P4InfoIndex, parse_p4info

logger = logging.getLogger(__name__)

# google.rpc.Code.OK in an arbitration status means we are the primary
_STATUS_OK = 0


@dataclass(frozen=True)
class LpmMatch:
    """Longest-prefix match on the match field at the same position."""

    value: bytes
    prefix_len: int


class ProtocolClient(Protocol):
    """Session primitives the supervisor relies on."""

    async def capabilities(self) -> str: ...

    async def run(
        self, arbitration: asyncio.Queue, messages: asyncio.Queue
    ) -> None: ...

    async def set_forwarding_pipeline(
        self, binary: bytes, p4info: bytes, cookie: int
    ) -> None: ...

    async def enable_digest(self, name: str, config: DigestConfig) -> None: ...

    def build_table_entry(
        self, table_name: str, matches: list[LpmMatch], action
    ) -> p4runtime_pb2.TableEntry: ...

    def build_direct_action(
        self, action_name: str, params: list[bytes]
    ) -> p4runtime_pb2.TableAction: ...

    async def insert_table_entry(self, entry: p4runtime_pb2.TableEntry) -> None: ...

    async def modify_table_entry(self, entry: p4runtime_pb2.TableEntry) -> None: ...

    async def ack_digest_list(self, digest_list: DigestList) -> None: ...

    async def read_counter(self, name: str, index: int) -> int: ...

    async def write_counter(self, name: str, index: int, packet_count: int) -> None: ...


def _rpc_error(operation: str, error: grpc.aio.AioRpcError) -> P4RuntimeClientError:
    return P4RuntimeClientError(f"{operation} failed: {error.code().name} {error.details()}")


def event_from_response(response: p4runtime_pb2.StreamMessageResponse) -> InboundEvent:
    """Translate a non-arbitration stream response into an inbound event."""
    kind = response.WhichOneof("update")

    if kind == "packet":
        return InboundEvent.packet_in(response.packet)
    if kind == "digest":
        digest = response.digest
        return InboundEvent.digest_list(
            DigestList(
                digest_id=digest.digest_id,
                list_id=digest.list_id,
                entries=[
                    DigestEntry(
                        members=tuple(m.bitstring for m in data.struct.members)
                    )
                    for data in digest.data
                ],
            )
        )
    if kind == "idle_timeout_notification":
        return InboundEvent.idle_timeout(response.idle_timeout_notification)
    if kind == "error":
        error = response.error
        return InboundEvent.stream_error(
            P4RuntimeClientError(
                f"StreamError: code={error.canonical_code} {error.message}"
            )
        )
    return InboundEvent.unknown(response)


class P4RuntimeClient:
    """
    gRPC client for one P4Runtime device.

    Handles:
    - The long-lived StreamChannel (arbitration, digests, packet-in)
    - Pipeline and digest configuration
    - Table entry and counter reads/writes
    """

    def __init__(
        self,
        channel: grpc.aio.Channel,
        device_id: int,
        election_id: tuple[int, int] = (0, 1),
    ):
        """
        Initialize P4Runtime client.

        Args:
            channel: Open gRPC channel to the switch
            device_id: P4Runtime device id
            election_id: (high, low) election id for mastership
        """
        self.channel = channel
        self.stub = p4runtime_pb2_grpc.P4RuntimeStub(channel)
        self.device_id = device_id
        self.election_id = p4runtime_pb2.Uint128(
            high=election_id[0], low=election_id[1]
        )
        self.p4info: P4InfoIndex | None = None
        self._outbound: asyncio.Queue[p4runtime_pb2.StreamMessageRequest] = (
            asyncio.Queue()
        )
        self._streaming = False

    @property
    def index(self) -> P4InfoIndex:
        if self.p4info is None:
            raise P4RuntimeClientError("Forwarding pipeline not set")
        return self.p4info

    async def capabilities(self) -> str:
        """
        Query the P4Runtime API version of the switch.

        Returns:
            P4Runtime API version string
        """
        try:
            response = await self.stub.Capabilities(p4runtime_pb2.CapabilitiesRequest())
        except grpc.aio.AioRpcError as e:
            raise _rpc_error("Capabilities", e) from e
        return response.p4runtime_api_version

    async def _stream_requests(self) -> AsyncIterator[p4runtime_pb2.StreamMessageRequest]:
        request = p4runtime_pb2.StreamMessageRequest()
        request.arbitration.device_id = self.device_id
        request.arbitration.election_id.CopyFrom(self.election_id)
        yield request

        while True:
            yield await self._outbound.get()

    async def run(self, arbitration: asyncio.Queue, messages: asyncio.Queue) -> None:
        """
        Run the stream channel until it closes or the task is cancelled.

        Every arbitration update puts a bool (primary or not) on
        ``arbitration``; every other message becomes an InboundEvent on
        ``messages``. A broken stream, or one the switch closes, is reported
        as a stream error event.
        ``None`` is put on ``messages`` when the stream ends.

        Args:
            arbitration: Queue receiving mastership results
            messages: Queue receiving inbound events
        """
        call = self.stub.StreamChannel(self._stream_requests())
        self._streaming = True
        try:
            async for response in call:
                if response.WhichOneof("update") == "arbitration":
                    is_primary = response.arbitration.status.code == _STATUS_OK
                    logger.debug(
                        f"Arbitration update for device {self.device_id}: "
                        f"primary={is_primary}"
                    )
                    arbitration.put_nowait(is_primary)
                    continue
                messages.put_nowait(event_from_response(response))
        except grpc.aio.AioRpcError as e:
            if e.code() != grpc.StatusCode.CANCELLED:
                messages.put_nowait(InboundEvent.stream_error(_rpc_error("StreamChannel", e)))
        else:
            messages.put_nowait(
                InboundEvent.stream_error(
                    P4RuntimeClientError("StreamChannel closed by the switch")
                )
            )
        finally:
            self._streaming = False
            call.cancel()
            messages.put_nowait(None)

    async def _write(self, update_type: int, entity: p4runtime_pb2.Entity, operation: str) -> None:
        request = p4runtime_pb2.WriteRequest(
            device_id=self.device_id,
            election_id=self.election_id,
        )
        update = request.updates.add()
        update.type = update_type
        update.entity.CopyFrom(entity)

        try:
            await self.stub.Write(request)
        except grpc.aio.AioRpcError as e:
            raise _rpc_error(operation, e) from e

    async def set_forwarding_pipeline(
        self, binary: bytes, p4info: bytes, cookie: int = 0
    ) -> None:
        """
        Push a forwarding pipeline with VERIFY_AND_COMMIT.

        Args:
            binary: Target-specific device config
            p4info: P4Info in protobuf text format
            cookie: Configuration version tag
        """
        parsed = parse_p4info(p4info)

        request = p4runtime_pb2.SetForwardingPipelineConfigRequest(
            device_id=self.device_id,
            election_id=self.election_id,
            action=p4runtime_pb2.SetForwardingPipelineConfigRequest.VERIFY_AND_COMMIT,
        )
        request.config.p4info.CopyFrom(parsed)
        request.config.p4_device_config = binary
        request.config.cookie.cookie = cookie

        try:
            await self.stub.SetForwardingPipelineConfig(request)
        except grpc.aio.AioRpcError as e:
            raise _rpc_error("SetForwardingPipelineConfig", e) from e

        self.p4info = P4InfoIndex(parsed)

    async def enable_digest(self, name: str, config: DigestConfig) -> None:
        """Insert a digest entry so the switch starts sending digest lists."""
        entity = p4runtime_pb2.Entity()
        entry = entity.digest_entry
        entry.digest_id = self.index.digest_id(name)
        entry.config.max_timeout_ns = config.max_timeout_ns
        entry.config.max_list_size = config.max_list_size
        entry.config.ack_timeout_ns = config.ack_timeout_ns

        await self._write(p4runtime_pb2.Update.INSERT, entity, f"Enable digest {name}")

    def build_table_entry(
        self,
        table_name: str,
        matches: list[LpmMatch],
        action: p4runtime_pb2.TableAction,
    ) -> p4runtime_pb2.TableEntry:
        """
        Build a table entry.

        Match fields are assigned to the table's match field ids by position.
        """
        table = self.index.table(table_name)
        field_ids = self.index.match_field_ids(table_name)
        if len(matches) > len(field_ids):
            raise P4RuntimeClientError(
                f"Table {table_name} has {len(field_ids)} match fields, "
                f"got {len(matches)}"
            )

        entry = p4runtime_pb2.TableEntry(table_id=table.preamble.id)
        for field_id, match in zip(field_ids, matches):
            field_match = entry.match.add()
            field_match.field_id = field_id
            field_match.lpm.value = match.value
            field_match.lpm.prefix_len = match.prefix_len
        entry.action.CopyFrom(action)
        return entry

    def build_direct_action(
        self, action_name: str, params: list[bytes]
    ) -> p4runtime_pb2.TableAction:
        """Build a direct action; params map to the action's params by position."""
        action = self.index.action(action_name)
        param_ids = self.index.action_param_ids(action_name)
        if len(params) != len(param_ids):
            raise P4RuntimeClientError(
                f"Action {action_name} takes {len(param_ids)} params, got {len(params)}"
            )

        table_action = p4runtime_pb2.TableAction()
        table_action.action.action_id = action.preamble.id
        for param_id, value in zip(param_ids, params):
            param = table_action.action.params.add()
            param.param_id = param_id
            param.value = value
        return table_action

    async def insert_table_entry(self, entry: p4runtime_pb2.TableEntry) -> None:
        await self._write(
            p4runtime_pb2.Update.INSERT,
            p4runtime_pb2.Entity(table_entry=entry),
            "Insert table entry",
        )

    async def modify_table_entry(self, entry: p4runtime_pb2.TableEntry) -> None:
        await self._write(
            p4runtime_pb2.Update.MODIFY,
            p4runtime_pb2.Entity(table_entry=entry),
            "Modify table entry",
        )

    async def ack_digest_list(self, digest_list: DigestList) -> None:
        """Acknowledge a digest list over the stream channel."""
        if not self._streaming:
            raise P4RuntimeClientError("Stream channel is not running")

        request = p4runtime_pb2.StreamMessageRequest()
        request.digest_ack.digest_id = digest_list.digest_id
        request.digest_ack.list_id = digest_list.list_id
        await self._outbound.put(request)

    async def read_counter(self, name: str, index: int) -> int:
        """
        Read the packet count of one counter cell.

        Args:
            name: Counter name
            index: Cell index

        Returns:
            Packet count
        """
        request = p4runtime_pb2.ReadRequest(device_id=self.device_id)
        entity = request.entities.add()
        entity.counter_entry.counter_id = self.index.counter_id(name)
        entity.counter_entry.index.index = index

        call = self.stub.Read(request)
        try:
            async for response in call:
                for result in response.entities:
                    return result.counter_entry.data.packet_count
        except grpc.aio.AioRpcError as e:
            raise _rpc_error(f"Read counter {name}[{index}]", e) from e
        finally:
            call.cancel()

        raise P4RuntimeClientError(f"Counter {name}[{index}] not returned by switch")

    async def write_counter(self, name: str, index: int, packet_count: int) -> None:
        """Overwrite the packet count of one counter cell."""
        entity = p4runtime_pb2.Entity()
        entity.counter_entry.counter_id = self.index.counter_id(name)
        entity.counter_entry.index.index = index
        entity.counter_entry.data.packet_count = packet_count

        await self._write(
            p4runtime_pb2.Update.MODIFY, entity, f"Write counter {name}[{index}]"
        )
