"""Supervised P4Runtime session for one switch."""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass

import grpc
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    stop_when_event_set,
    wait_fixed,
)

from .config import Settings
from .dispatcher import StreamDispatcher
from .errors import ArbitrationLostError, ControllerError, P4RuntimeClientError, SetupError
from .events import DigestConfig
from .faults import FaultChannel
from .p4runtime_client import P4RuntimeClient, ProtocolClient
from .provisioner import ConfigProvisioner
from .routes import JsonRouteSource, RouteSource
from .sampler import PacketCounterSampler
from .tls import open_secure_channel

logger = logging.getLogger(__name__)

ClientFactory = Callable[[grpc.aio.Channel, int, tuple[int, int]], ProtocolClient]


def resolve_address(base_address: str, base_port: int, device_id: int) -> str:
    """Address of a device: the base port offset by the device id."""
    return f"{base_address}:{base_port + device_id}"


class DeviceLogAdapter(logging.LoggerAdapter):
    """Prefixes every record with the device id of the session."""

    def process(self, msg, kwargs):
        return f"[device {self.extra['device_id']}] {msg}", kwargs


@dataclass
class SessionState:
    """Per-switch session state, kept across reconnections."""

    device_id: int
    address: str
    pipeline_binary: bytes = b""
    pipeline_info: bytes = b""
    port_count: int = 3
    restarts: int = 0
    client: ProtocolClient | None = None
    abandoned: bool = False

    @classmethod
    def for_device(
        cls,
        device_id: int,
        settings: Settings,
        pipeline_binary: bytes = b"",
        pipeline_info: bytes = b"",
    ) -> "SessionState":
        return cls(
            device_id=device_id,
            address=resolve_address(settings.base_address, settings.base_port, device_id),
            pipeline_binary=pipeline_binary,
            pipeline_info=pipeline_info,
            port_count=settings.port_count,
        )


class SwitchSession:
    """
    Supervises the P4Runtime session of one switch.

    Responsibilities:
    - Connect, win mastership and push pipeline/digest configuration
    - Install static forwarding entries
    - Dispatch inbound stream events
    - Reconnect after runtime faults, up to ``max_retries`` attempts
    """

    def __init__(
        self,
        state: SessionState,
        settings: Settings,
        routes: RouteSource,
        shutdown: asyncio.Event,
        client_factory: ClientFactory = P4RuntimeClient,
    ):
        """
        Initialize switch session.

        Args:
            state: Session state of the switch
            settings: Application settings
            routes: Source of static forwarding links
            shutdown: Process-wide shutdown signal
            client_factory: Builds a protocol client for an open channel
        """
        self.state = state
        self.settings = settings
        self.routes = routes
        self.shutdown = shutdown
        self.client_factory = client_factory
        self.log = DeviceLogAdapter(logger, {"device_id": state.device_id})

        self.faults = FaultChannel()
        self._channel: grpc.aio.Channel | None = None
        self._provisioner: ConfigProvisioner | None = None
        self._sampler: PacketCounterSampler | None = None
        self._client_task: asyncio.Task | None = None
        self._dispatcher_task: asyncio.Task | None = None
        self._run_task: asyncio.Task | None = None
        self._reconnect_task: asyncio.Task | None = None
        self._sample_tasks: set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._run_task is not None and not self._run_task.done()

    async def start(self) -> bool:
        """
        Establish the session for the first time.

        A failure here is logged and never retried.

        Returns:
            True if the session is up
        """
        try:
            await self.establish()
        except SetupError as e:
            self.log.error(f"Cannot start: {e}")
            return False
        return True

    async def establish(self, require_provisioned: bool = False) -> None:
        """
        Connect, arbitrate, configure and provision the switch.

        On success the dispatcher and the supervisory run loop are running.
        Never retries. A provisioning failure is reported on the fault
        channel unless ``require_provisioned`` is set, in which case it
        fails the setup.

        Args:
            require_provisioned: Fail unless every forwarding entry is installed

        Raises:
            SetupError: If any setup step fails
        """
        state = self.state
        self.log.info(f"Connecting to server at {state.address}")

        try:
            self._channel = open_secure_channel(state.address, self.settings)
        except (OSError, ValueError) as e:
            raise SetupError(f"Cannot load TLS credentials: {e}") from e

        client = self.client_factory(
            self._channel,
            state.device_id,
            (self.settings.election_id_high, self.settings.election_id_low),
        )
        arbitration: asyncio.Queue[bool] = asyncio.Queue()
        messages: asyncio.Queue = asyncio.Queue()

        try:
            version = await client.capabilities()
            self.log.info(f"Connected, runtime version: {version}")

            self._client_task = asyncio.create_task(client.run(arbitration, messages))
            await self._await_mastership(arbitration)
            self.log.debug("We are the primary client")

            await asyncio.sleep(self.settings.settle_delay_seconds)
            await client.set_forwarding_pipeline(
                state.pipeline_binary, state.pipeline_info, 0
            )
            self.log.debug("Set forwarding pipeline")

            digest_name = self.settings.digest_name
            try:
                await client.enable_digest(
                    digest_name,
                    DigestConfig(
                        max_timeout_ns=self.settings.digest_max_timeout_ns,
                        max_list_size=self.settings.digest_max_list_size,
                        ack_timeout_ns=self.settings.digest_ack_timeout_ns,
                    ),
                )
            except P4RuntimeClientError as e:
                raise SetupError(f"Cannot enable digest {digest_name}: {e}") from e
            self.log.debug(f"Enabled digest {digest_name}")
        except SetupError:
            await self._teardown()
            raise
        except P4RuntimeClientError as e:
            await self._teardown()
            raise SetupError(str(e)) from e

        state.client = client
        self.faults = FaultChannel()
        self._provisioner = ConfigProvisioner(
            client,
            self.faults,
            self.log,
            table_name=self.settings.lpm_table_name,
            action_name=self.settings.forward_action_name,
        )
        self._sampler = PacketCounterSampler(
            client,
            self.faults,
            self.log,
            port_count=state.port_count,
            counter_name=self.settings.packet_counter_name,
            warn_threshold=self.settings.packet_count_warn,
        )
        await self._provisioner.provision(state.device_id, self.routes)
        if require_provisioned and self.faults.pending:
            error = self.faults.take()
            await self._teardown()
            raise SetupError(f"Cannot provision forwarding entries: {error}") from error

        dispatcher = StreamDispatcher(
            client, self.faults, self.log, self.settings.grace_period_seconds
        )
        self._dispatcher_task = asyncio.create_task(
            dispatcher.run(messages, self.shutdown)
        )
        self._run_task = asyncio.create_task(self._run_loop())
        self.log.debug("Switch configured")

    async def _await_mastership(self, arbitration: asyncio.Queue) -> None:
        first_signal = asyncio.create_task(arbitration.get())
        done, _ = await asyncio.wait(
            {first_signal, self._client_task},
            timeout=self.settings.arbitration_timeout_seconds,
            return_when=asyncio.FIRST_COMPLETED,
        )

        if first_signal not in done:
            first_signal.cancel()
            if self._client_task in done:
                raise SetupError("Stream channel closed before arbitration")
            raise SetupError("Timed out waiting for arbitration")

        if not first_signal.result():
            raise ArbitrationLostError("We are not the primary client")

    async def _run_loop(self) -> None:
        """Wait on counter tick, fault and shutdown until a fault or shutdown."""
        try:
            while True:
                tick = asyncio.create_task(
                    asyncio.sleep(self.settings.counter_check_interval_seconds)
                )
                fault = asyncio.create_task(self.faults.wait())
                stop = asyncio.create_task(self.shutdown.wait())

                done, pending = await asyncio.wait(
                    {tick, fault, stop}, return_when=asyncio.FIRST_COMPLETED
                )
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)

                if stop in done:
                    await self._teardown()
                    return

                if fault in done:
                    self.log.error(f"{fault.result()}")
                    await self._teardown()
                    self._reconnect_task = asyncio.create_task(self.reconnect())
                    return

                if self.settings.counter_sampling_enabled and self._sampler:
                    sample = asyncio.create_task(self._sampler.sample())
                    self._sample_tasks.add(sample)
                    sample.add_done_callback(self._sample_tasks.discard)
        finally:
            self.log.info("Stopping")

    async def reconnect(self) -> bool:
        """
        Re-establish the session after a runtime fault.

        Each attempt increments the restart counter; attempts stop once the
        counter reaches ``max_retries``, after which the session is abandoned.
        A successful attempt resets the counter.

        Returns:
            True if the session is up again
        """
        max_retries = self.settings.max_retries
        if self.state.restarts >= max_retries:
            self.log.error("Max retry attempts reached, abandoning session")
            self.state.abandoned = True
            return False

        retrying = AsyncRetrying(
            stop=(
                stop_after_attempt(max_retries - self.state.restarts)
                | stop_when_event_set(self.shutdown)
            ),
            wait=wait_fixed(self.settings.reconnect_delay_seconds),
            retry=retry_if_exception_type(SetupError),
            before_sleep=self._log_failed_attempt,
            sleep=self._sleep_unless_shutdown,
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    if self.shutdown.is_set():
                        return False
                    self.state.restarts += 1
                    self.log.info(f"Reconnect attempt n. {self.state.restarts}")
                    await self.establish(require_provisioned=True)
        except SetupError as e:
            if self.shutdown.is_set():
                self.log.info(f"{e}; shutting down, not reconnecting")
                return False
            self.log.error(f"{e}; max retry attempts reached, abandoning session")
            self.state.abandoned = True
            return False

        self.state.restarts = 0
        return True

    def _log_failed_attempt(self, retry_state: RetryCallState) -> None:
        self.log.error(
            f"{retry_state.outcome.exception()}; retrying in "
            f"{self.settings.reconnect_delay_seconds}s"
        )

    async def _sleep_unless_shutdown(self, seconds: float) -> None:
        """Wait between attempts, returning early on shutdown."""
        try:
            await asyncio.wait_for(self.shutdown.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def update_config(self, route_file: str) -> int:
        """
        Switch the session to another route file and rewrite its entries.

        Later reconnections provision from the new route file too.

        Returns:
            Number of entries written

        Raises:
            ControllerError: If the session is not established
        """
        if self.state.client is None or self._provisioner is None:
            raise ControllerError(f"Device {self.state.device_id} is not connected")

        self.log.info(f"Changing switch config to {route_file}")
        self.routes = JsonRouteSource(route_file)
        return await self._provisioner.provision(
            self.state.device_id, self.routes, modify=True
        )

    async def _finish(self, task: asyncio.Task | None, timeout: float | None = None) -> None:
        if task is None:
            return
        if timeout is not None and not task.done():
            await asyncio.wait({task}, timeout=timeout)
        if not task.done():
            task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception as e:
            self.log.error(f"Session task failed: {e}", exc_info=True)

    async def _teardown(self) -> None:
        """Stop the stream, drain the dispatcher and close the channel."""
        client_task, self._client_task = self._client_task, None
        if client_task is not None:
            client_task.cancel()
            await self._finish(client_task)

        dispatcher_task, self._dispatcher_task = self._dispatcher_task, None
        await self._finish(
            dispatcher_task, timeout=self.settings.grace_period_seconds + 1.0
        )

        for sample in list(self._sample_tasks):
            sample.cancel()
            await self._finish(sample)

        channel, self._channel = self._channel, None
        if channel is not None:
            await channel.close()

        self.state.client = None

    async def wait_closed(self) -> None:
        """Wait until the run loop and any reconnection have finished."""
        while True:
            tasks = [
                task
                for task in (self._run_task, self._reconnect_task)
                if task is not None and not task.done()
            ]
            if not tasks:
                break
            for result in await asyncio.gather(*tasks, return_exceptions=True):
                if isinstance(result, Exception):
                    self.log.error(f"Session task failed: {result}")

        await self._teardown()
