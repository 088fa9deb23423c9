#!/usr/bin/env python3
"""
WebSocket Server for MPC Vehicle Control

This module serves the MPC controller to the driving simulator. The simulator
connects, streams telemetry frames and expects one actuation frame back per
telemetry frame.

Concurrency model:
- One solver thread shared by all connections, so two solves never overlap
- Per connection, a single-slot mailbox holds the newest unprocessed frame;
  a frame arriving while the solver is busy replaces the pending one
- The artificial actuation delay is awaited in the per-connection worker
  task, so frames keep arriving while a reply is delayed
"""

import asyncio
import contextlib
import logging
import signal
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Optional

import websockets

from .component_modes import ComponentMode
from .config import (
    ACTUATION_DELAY,
    SOLVER_BACKEND,
    TERM_BLUE,
    TERM_ORANGE,
    TERM_RESET,
    WS_HOST,
    WS_PORT,
    ControllerConfig,
)
from .controller import MPCController
from .data_collector import DataCollector
from .solvers import get_solver


class CustomFormatter(logging.Formatter):
    """Custom logging formatter that removes timestamps from INFO messages.

    This formatter provides clean console output by showing INFO messages without
    timestamps while preserving full context for WARNING, ERROR, and DEBUG messages.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record based on its level.

        Args:
            record: The log record to format.

        Returns:
            Formatted log message string.
        """
        if record.levelno == logging.INFO:
            return record.getMessage()
        else:
            return f"{self.formatTime(record, self.datefmt)} - {record.levelname} - {record.getMessage()}"


def setup_logging(verbose: bool = False) -> None:
    """Configure logging based on verbosity level.

    Args:
        verbose: If True, show all levels with timestamps. If False, show INFO
                 without timestamps and WARNING/ERROR with timestamps.
    """
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    else:
        handler = logging.StreamHandler()
        formatter = CustomFormatter(datefmt="%Y-%m-%d %H:%M:%S")
        handler.setFormatter(formatter)
        logger = logging.getLogger()
        logger.setLevel(logging.INFO)
        logger.addHandler(handler)


class ControlServer:
    """WebSocket transport around an MPCController.

    Attributes:
        controller: Frame processor shared by every connection.
        host: Interface to listen on.
        port: Port to listen on (0 picks a free port).
        actuation_delay: Seconds to wait before each reply is sent.
        executor: Single solver thread.
        stale_frames: Frames replaced in a mailbox before they were processed.
    """

    def __init__(
        self,
        controller: MPCController,
        host: str = WS_HOST,
        port: int = WS_PORT,
        actuation_delay: float = ACTUATION_DELAY,
    ) -> None:
        """Initialize the server.

        Raises:
            ValueError: If actuation_delay is negative.
        """
        if actuation_delay < 0.0:
            raise ValueError(f"actuation_delay must be non-negative, got {actuation_delay}")

        self.controller = controller
        self.host = host
        self.port = port
        self.actuation_delay = actuation_delay
        self.executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="mpc-solver")
        self.stale_frames = 0
        self._server: Any = None

    async def start(self) -> int:
        """Start listening.

        Returns:
            The bound port.
        """
        self._server = await websockets.serve(self.handle_connection, self.host, self.port)
        self.port = self._server.sockets[0].getsockname()[1]
        logging.info(f"{TERM_BLUE}✓ Listening on {self.host}:{self.port}{TERM_RESET}")
        return self.port

    async def close(self) -> None:
        """Stop listening, close connections and release the solver thread."""
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None
        # An in-flight solve finishes on the solver thread
        await asyncio.get_running_loop().run_in_executor(None, self.executor.shutdown)

    async def handle_connection(self, websocket: Any) -> None:
        """Receive frames from one connection into its mailbox."""
        logging.info(f"{TERM_BLUE}✓ Simulator connected{TERM_RESET}")
        mailbox: asyncio.Queue = asyncio.Queue(maxsize=1)
        worker = asyncio.create_task(self._reply_worker(websocket, mailbox))

        try:
            async for message in websocket:
                if mailbox.full():
                    mailbox.get_nowait()
                    self.stale_frames += 1
                    logging.debug("Solver busy, replaced pending frame")
                mailbox.put_nowait(message)
        except websockets.exceptions.ConnectionClosed as e:
            logging.warning(f"Connection closed: {e}")
        finally:
            worker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await worker
            logging.info(f"{TERM_BLUE}Simulator disconnected{TERM_RESET}")

    async def _reply_worker(self, websocket: Any, mailbox: asyncio.Queue) -> None:
        """Process the newest frame, wait out the actuation delay, reply."""
        loop = asyncio.get_running_loop()
        while True:
            message = await mailbox.get()
            try:
                reply = await loop.run_in_executor(
                    self.executor, self.controller.handle_message, message
                )
            except Exception as e:
                logging.error(f"Unexpected error processing frame: {e}", exc_info=True)
                continue

            if reply is None:
                continue
            if self.actuation_delay > 0.0:
                await asyncio.sleep(self.actuation_delay)

            try:
                await websocket.send(reply)
            except websockets.exceptions.ConnectionClosed:
                break

    async def serve_forever(self, stop: asyncio.Future) -> None:
        """Serve until the stop future resolves."""
        await self.start()
        try:
            await stop
        finally:
            await self.close()
            logging.info(f"{TERM_BLUE}{self.controller.summary()}, {self.stale_frames} stale{TERM_RESET}")


async def main(
    config: Optional[ControllerConfig] = None,
    component_mode: Optional[ComponentMode] = None,
    host: str = WS_HOST,
    port: int = WS_PORT,
    solver_name: str = SOLVER_BACKEND,
    output_dir: str = ".",
) -> None:
    """Main entry point for the controller server.

    Builds the controller, sets up signal handlers for graceful shutdown, and
    serves until SIGINT or SIGTERM.

    Args:
        config: Controller tunables (defaults from config.py).
        component_mode: ComponentMode configuration for stage isolation testing.
        host: Interface to listen on.
        port: Port to listen on.
        solver_name: NLP backend name.
        output_dir: Base directory for run logs.
    """
    if config is None:
        config = ControllerConfig()
    if component_mode is None:
        component_mode = ComponentMode()

    logging.info(f"{TERM_BLUE}Component Configuration: {component_mode}{TERM_RESET}")
    logging.info(
        f"{TERM_BLUE}Solver: {solver_name}, N={config.horizon}, dt={config.dt}s, "
        f"v_ref={config.ref_speed}, latency={config.latency}s{TERM_RESET}"
    )
    if config.latency > 0.0 and not component_mode.use_latency_compensation:
        logging.info(f"{TERM_ORANGE}Latency compensation disabled{TERM_RESET}")

    collector = (
        DataCollector(output_dir=output_dir)
        if component_mode.use_data_logging
        else None
    )
    controller = MPCController(config, get_solver(solver_name), component_mode, collector)
    server = ControlServer(
        controller,
        host=host,
        port=port,
        actuation_delay=ACTUATION_DELAY if component_mode.use_actuation_delay else 0.0,
    )

    with collector if collector is not None else contextlib.nullcontext():
        loop = asyncio.get_running_loop()
        stop = loop.create_future()

        def signal_handler() -> None:
            """Handle shutdown signals (SIGINT, SIGTERM)."""
            logging.info("\nShutdown signal received...")
            if not stop.done():
                stop.set_result(None)

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, signal_handler)

        await server.serve_forever(stop)
