"""
Backoff Channel Client
======================

Bounded Context: Live Counter Feed

Keeps one WebSocket subscription to a controller stream (``traffic`` or
``memory``) alive across network drops.

State machine:

    idle ──start()──▶ connecting ──open──▶ open
                          ▲                  │ close / error
                          │ timer            ▼
                          └──────────── closed (transient)
                                             │ budget spent
                                             ▼
                                       closed (terminal)

    stop() from any state ──▶ idle

Design:
- One reconnect timer (threading.Timer) and at most one socket at a time
- Every attempt carries a generation number; callbacks from an older
  generation are ignored and a stale socket that still opens is closed
- State changes and consumer callbacks run under one re-entrant lock, so
  once stop() returns no callback can fire
- Failures never raise to the caller; ``connected`` and ``state`` carry them

Example:
    >>> from trafficlens_channel import BackoffChannelClient, EndpointConfig
    >>> client = BackoffChannelClient(
    ...     stream="traffic",
    ...     on_value=lambda frame: print(frame.up, frame.down),
    ... )
    >>> client.start(EndpointConfig(host="127.0.0.1", port=9091, token="s3cret"))
    >>> # ...
    >>> client.stop()
"""

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional, Union

import websocket

from trafficlens_mqtt.logging import LogEvent, StructuredLogger, create_logger
from .backoff import BASE_DELAY_S, CAP_DELAY_S, MAX_RECONNECT_ATTEMPTS, next_delay
from .endpoint import EndpointConfig
from .frames import Frame, FrameDecodeError, StreamName, decode_frame, frame_type


class ChannelPhase(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


@dataclass(frozen=True)
class ChannelSessionState:
    """
    Immutable snapshot of a channel's session.

    Attributes:
        phase: Current lifecycle phase
        attempt: Retries scheduled since the last successful open
        last_value: Latest decoded frame (zeros while disconnected)
        last_error: Last transport or configuration error, if any
        terminal: True once the retry budget is spent (or config is unusable)
    """
    phase: ChannelPhase
    attempt: int
    last_value: Frame
    last_error: Optional[str] = None
    terminal: bool = False

    @property
    def connected(self) -> bool:
        return self.phase is ChannelPhase.OPEN


class BackoffChannelClient:
    """
    Resilient subscriber for one controller stream.

    Attributes:
        stream: Stream name (traffic or memory)
        max_attempts: Retry budget between successful opens
        base_delay: First backoff delay in seconds
        cap_delay: Upper bound of the backoff delay in seconds

    Thread Safety:
        Public methods may be called from any thread, including from inside
        ``on_value``/``on_health``.
    """

    def __init__(
        self,
        stream: Union[StreamName, str],
        on_value: Optional[Callable[[Frame], None]] = None,
        on_health: Optional[Callable[[bool], None]] = None,
        logger: Optional[StructuredLogger] = None,
        max_attempts: int = MAX_RECONNECT_ATTEMPTS,
        base_delay: float = BASE_DELAY_S,
        cap_delay: float = CAP_DELAY_S,
        app_factory: Optional[Callable[..., Any]] = None,
        timer_factory: Callable[..., Any] = threading.Timer,
        spawn: Optional[Callable[[Callable[[], None]], None]] = None,
    ):
        """
        Initialize an idle channel client.

        Args:
            stream: Which controller stream to follow
            on_value: Called with every decoded frame, and with the zero
                sentinel when an open session drops
            on_health: Called when the connected flag flips
            logger: Structured logger (default: component "channel.<stream>")
            max_attempts: Retry budget (default: 10)
            base_delay: Backoff base in seconds (default: 1)
            cap_delay: Backoff cap in seconds (default: 30)
            app_factory: WebSocketApp-compatible constructor
            timer_factory: threading.Timer-compatible constructor
            spawn: Runs a session callable in the background (default: daemon thread)
        """
        self.stream = StreamName(stream)
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.cap_delay = cap_delay

        self._frame_type = frame_type(self.stream)
        self._on_value = on_value
        self._on_health = on_health
        self._logger = logger or create_logger(f"channel.{self.stream.value}")
        self._app_factory = app_factory or websocket.WebSocketApp
        self._timer_factory = timer_factory
        self._spawn = spawn or self._spawn_thread

        self._lock = threading.RLock()
        self._generation = 0
        self._stopped = True
        self._endpoint: Optional[EndpointConfig] = None
        self._app = None
        self._timer = None

        self._phase = ChannelPhase.IDLE
        self._attempt = 0
        self._last_value: Frame = self._frame_type.disconnected()
        self._last_error: Optional[str] = None
        self._terminal = False
        self._healthy = False

        self._frames_received = 0
        self._frames_dropped = 0
        self._sessions_started = 0

    # ===== Public API =====

    def start(self, endpoint: Union[EndpointConfig, Mapping[str, Any], None] = None) -> None:
        """
        Begin following the stream.

        Calling start() on a running client with the same (or no) endpoint is
        a no-op; a different endpoint triggers a full stop and restart.
        An unusable endpoint leaves the client closed and terminal.

        Args:
            endpoint: EndpointConfig or mapping with host/port/token;
                None reuses the last endpoint
        """
        with self._lock:
            if not self._stopped:
                if endpoint is None:
                    return
                try:
                    if EndpointConfig.coerce(endpoint) == self._endpoint:
                        return
                except ValueError:
                    pass
                self.stop()

            if endpoint is not None:
                try:
                    self._endpoint = EndpointConfig.coerce(endpoint)
                except ValueError as e:
                    self._fail_config(e)
                    return
            if self._endpoint is None:
                self._fail_config(ValueError("No endpoint configured"))
                return

            self._stopped = False
            self._attempt = 0
            self._terminal = False
            self._last_error = None
            self._connect_locked()

    def stop(self) -> None:
        """
        Tear down: cancel the reconnect timer, close the socket, return to idle.

        Idempotent and safe from any state. No consumer callback fires after
        this returns.
        """
        with self._lock:
            was_running = not self._stopped
            self._stopped = True
            self._generation += 1
            self._disarm_locked()

            if not was_running and self._phase is ChannelPhase.IDLE:
                return

            self._phase = ChannelPhase.IDLE
            self._attempt = 0
            self._terminal = False
            self._healthy = False
            self._last_value = self._frame_type.disconnected()

            self._logger.info(
                event=LogEvent.CHANNEL_STOPPED,
                message="Channel stopped",
                metadata=self._describe()
            )

    def restart(self, endpoint: Union[EndpointConfig, Mapping[str, Any], None] = None) -> None:
        """Full stop + start, re-arming a terminal channel."""
        with self._lock:
            self.stop()
            self.start(endpoint)

    @property
    def endpoint(self) -> Optional[EndpointConfig]:
        return self._endpoint

    @property
    def connected(self) -> bool:
        with self._lock:
            return self._phase is ChannelPhase.OPEN

    @property
    def latest(self) -> Frame:
        with self._lock:
            return self._last_value

    @property
    def state(self) -> ChannelSessionState:
        with self._lock:
            return ChannelSessionState(
                phase=self._phase,
                attempt=self._attempt,
                last_value=self._last_value,
                last_error=self._last_error,
                terminal=self._terminal,
            )

    def is_running(self) -> bool:
        """True between start() and stop(), including while backing off."""
        with self._lock:
            return not self._stopped

    def get_stats(self) -> Dict[str, Any]:
        """Counters and connection status for status reports."""
        with self._lock:
            return {
                'stream': self.stream.value,
                'phase': self._phase.value,
                'connected': self._phase is ChannelPhase.OPEN,
                'terminal': self._terminal,
                'attempt': self._attempt,
                'sessions_started': self._sessions_started,
                'frames_received': self._frames_received,
                'frames_dropped': self._frames_dropped,
                'last_error': self._last_error,
            }

    # ===== Session management (lock held) =====

    def _connect_locked(self) -> None:
        self._disarm_locked()
        self._generation += 1
        generation = self._generation

        url = self._endpoint.stream_url(self.stream.value)
        self._phase = ChannelPhase.CONNECTING
        self._logger.info(
            event=LogEvent.CHANNEL_CONNECTING,
            message="Connecting to live stream",
            metadata=self._describe()
        )

        def on_open(ws):
            self._handle_open(generation, ws)

        def on_message(ws, message):
            self._handle_message(generation, ws, message)

        def on_error(ws, error):
            self._handle_error(generation, error)

        def on_close(ws, status_code, reason):
            self._handle_close_notice(generation, status_code, reason)

        try:
            app = self._app_factory(
                url,
                on_open=on_open,
                on_message=on_message,
                on_error=on_error,
                on_close=on_close,
            )
        except Exception as e:
            self._session_ended_locked(e)
            return

        self._app = app
        self._sessions_started += 1
        self._spawn(lambda: self._run_session(app, generation))

    def _disarm_locked(self) -> None:
        """Cancel the pending timer and close the current socket, if any."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

        old_app, self._app = self._app, None
        if old_app is not None:
            try:
                old_app.close()
            except Exception as e:
                self._logger.warning(
                    event=LogEvent.CHANNEL_ERROR,
                    message="Error closing previous socket",
                    metadata={'stream': self.stream.value, 'error': str(e)}
                )

    def _is_current(self, generation: int) -> bool:
        return not self._stopped and generation == self._generation

    def _session_ended_locked(self, error: Optional[BaseException] = None) -> None:
        self._app = None
        if error is not None:
            self._last_error = str(error)

        was_open = self._phase is ChannelPhase.OPEN
        self._phase = ChannelPhase.CLOSED
        self._last_value = self._frame_type.disconnected()

        delay = next_delay(self._attempt, self.max_attempts, self.base_delay, self.cap_delay)
        if delay is None:
            self._terminal = True
            self._logger.error(
                event=LogEvent.CHANNEL_RETRY_EXHAUSTED,
                message="Retry budget exhausted; channel stays closed until restarted",
                metadata=self._describe()
            )
        else:
            self._attempt += 1
            timer = self._timer_factory(delay, self._handle_timer, args=(self._generation,))
            timer.daemon = True
            self._timer = timer
            timer.start()
            self._logger.warning(
                event=LogEvent.CHANNEL_RECONNECTING,
                message=f"Reconnecting in {delay:g}s",
                metadata={**self._describe(), 'delay_s': delay}
            )

        if was_open:
            self._deliver(self._on_value, self._last_value)
        self._set_health(False)

    def _fail_config(self, error: Exception) -> None:
        self._endpoint = None
        self._phase = ChannelPhase.CLOSED
        self._terminal = True
        self._last_error = str(error)
        self._last_value = self._frame_type.disconnected()
        self._logger.error(
            event=LogEvent.CHANNEL_CONFIG_ERROR,
            message="Unusable channel endpoint",
            exc_info=error,
            metadata={'stream': self.stream.value}
        )
        self._set_health(False)

    def _set_health(self, healthy: bool) -> None:
        if healthy == self._healthy:
            return
        self._healthy = healthy
        self._deliver(self._on_health, healthy)

    def _deliver(self, callback: Optional[Callable[[Any], None]], value: Any) -> None:
        if callback is None:
            return
        try:
            callback(value)
        except Exception as e:
            self._logger.error(
                event=LogEvent.CHANNEL_ERROR,
                message="Channel consumer callback failed",
                exc_info=e,
                metadata={'stream': self.stream.value}
            )

    def _describe(self) -> Dict[str, Any]:
        endpoint = self._endpoint
        return {
            'stream': self.stream.value,
            'endpoint': f"{endpoint.host}:{endpoint.port}" if endpoint else None,
            'attempt': self._attempt,
        }

    # ===== Background entry points =====

    def _spawn_thread(self, target: Callable[[], None]) -> None:
        thread = threading.Thread(
            target=target,
            name=f"channel-{self.stream.value}",
            daemon=True,
        )
        thread.start()

    def _run_session(self, app, generation: int) -> None:
        """Blocks in run_forever(); the return marks the end of the session."""
        error = None
        try:
            app.run_forever()
        except Exception as e:
            error = e
        with self._lock:
            if self._is_current(generation):
                self._session_ended_locked(error)

    def _handle_timer(self, generation: int) -> None:
        with self._lock:
            if not self._is_current(generation) or self._timer is None:
                return
            self._timer = None
            self._connect_locked()

    # ===== WebSocket callbacks (socket thread) =====

    def _handle_open(self, generation: int, ws) -> None:
        with self._lock:
            if not self._is_current(generation):
                # Lost the race against stop()/reconnect: drop this socket
                ws.close()
                return
            self._phase = ChannelPhase.OPEN
            self._attempt = 0
            self._terminal = False
            self._last_error = None
            self._logger.info(
                event=LogEvent.CHANNEL_OPEN,
                message="Live stream connected",
                metadata=self._describe()
            )
            self._set_health(True)

    def _handle_message(self, generation: int, ws, message) -> None:
        with self._lock:
            if not self._is_current(generation):
                ws.close()
                return
            if self._phase is not ChannelPhase.OPEN:
                return
            try:
                frame = decode_frame(self.stream, message)
            except FrameDecodeError as e:
                self._frames_dropped += 1
                self._logger.warning(
                    event=LogEvent.MALFORMED_FRAME,
                    message="Dropped malformed frame",
                    metadata={'stream': self.stream.value, 'error': str(e)}
                )
                return

            self._frames_received += 1
            self._last_value = frame
            self._deliver(self._on_value, frame)

    def _handle_error(self, generation: int, error) -> None:
        with self._lock:
            if not self._is_current(generation):
                return
            self._last_error = str(error)
            self._logger.warning(
                event=LogEvent.CHANNEL_ERROR,
                message="WebSocket error",
                metadata={'stream': self.stream.value, 'error': str(error)}
            )

    def _handle_close_notice(self, generation: int, status_code, reason) -> None:
        with self._lock:
            if not self._is_current(generation):
                return
            self._logger.warning(
                event=LogEvent.CHANNEL_CLOSED,
                message="Live stream closed",
                metadata={
                    'stream': self.stream.value,
                    'status_code': status_code,
                    'reason': reason,
                }
            )
