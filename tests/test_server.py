import asyncio
import json
import logging
import threading
import time

import pytest
import websockets

from mpc_control.component_modes import ComponentMode
from mpc_control.config import ControllerConfig
from mpc_control.controller import MANUAL_REPLY, MPCController
from mpc_control.server import ControlServer, CustomFormatter
from mpc_control.solvers import SlsqpSolver

from test_controller import FIRST_FRAME


class SlowController:
    """Stands in for MPCController: echoes frames after a fixed solve time."""

    def __init__(self, solve_time: float) -> None:
        self.solve_time = solve_time
        self.seen = []
        self.started = threading.Event()

    def handle_message(self, message):
        self.started.set()
        time.sleep(self.solve_time)
        self.seen.append(message)
        return "42" + json.dumps(["steer", {"frame": message}])

    def summary(self) -> str:
        return f"{len(self.seen)} frames"


def _mpc_controller() -> MPCController:
    config = ControllerConfig(max_solve_time=10.0, max_iterations=500)
    return MPCController(config, SlsqpSolver(), ComponentMode(use_data_logging=False))


async def _exchange(server: ControlServer, frames, n_replies: int, timeout: float = 60.0):
    port = await server.start()
    try:
        async with websockets.connect(f"ws://127.0.0.1:{port}") as websocket:
            for frame in frames:
                await websocket.send(frame)
            return [await asyncio.wait_for(websocket.recv(), timeout) for _ in range(n_replies)]
    finally:
        await server.close()


def test_telemetry_frame_gets_steer_reply() -> None:
    server = ControlServer(_mpc_controller(), host="127.0.0.1", port=0, actuation_delay=0.0)
    frame = "42" + json.dumps(["telemetry", FIRST_FRAME])
    (reply,) = asyncio.run(_exchange(server, [frame], 1))
    event, data = json.loads(reply[2:])
    assert event == "steer"
    assert -1.0 <= data["steering_angle"] <= 1.0


def test_manual_frame_gets_manual_reply() -> None:
    server = ControlServer(_mpc_controller(), host="127.0.0.1", port=0, actuation_delay=0.0)
    (reply,) = asyncio.run(_exchange(server, ['42["telemetry",null]'], 1))
    assert reply == MANUAL_REPLY


def test_actuation_delay_is_applied() -> None:
    server = ControlServer(SlowController(0.0), host="127.0.0.1", port=0, actuation_delay=0.2)

    async def timed():
        loop = asyncio.get_running_loop()
        start = loop.time()
        replies = await _exchange(server, ['42["telemetry",{"n":1}]'], 1)
        return replies, loop.time() - start

    replies, elapsed = asyncio.run(timed())
    assert len(replies) == 1
    assert elapsed >= 0.2


def test_stale_frames_are_replaced_while_solving() -> None:
    controller = SlowController(0.5)
    server = ControlServer(controller, host="127.0.0.1", port=0, actuation_delay=0.0)
    frames = [f'42["telemetry",{{"n":{i}}}]' for i in range(5)]

    async def exchange():
        port = await server.start()
        loop = asyncio.get_running_loop()
        try:
            async with websockets.connect(f"ws://127.0.0.1:{port}") as websocket:
                await websocket.send(frames[0])
                await loop.run_in_executor(None, controller.started.wait, 5.0)
                for frame in frames[1:]:
                    await websocket.send(frame)
                return [await asyncio.wait_for(websocket.recv(), 10.0) for _ in range(2)]
        finally:
            await server.close()

    replies = asyncio.run(exchange())

    # Frames arriving during the first solve collapse to the newest one
    assert json.loads(replies[0][2:])[1]["frame"] == frames[0]
    assert json.loads(replies[1][2:])[1]["frame"] == frames[-1]
    assert server.stale_frames == 3


def test_negative_delay_rejected() -> None:
    with pytest.raises(ValueError):
        ControlServer(SlowController(0.0), actuation_delay=-0.1)


def test_info_messages_have_no_timestamp() -> None:
    formatter = CustomFormatter(datefmt="%Y-%m-%d %H:%M:%S")
    info = logging.LogRecord("mpc", logging.INFO, __file__, 1, "ready", None, None)
    warning = logging.LogRecord("mpc", logging.WARNING, __file__, 1, "slow solve", None, None)
    assert formatter.format(info) == "ready"
    assert formatter.format(warning).endswith(" - WARNING - slow solve")


def test_close_keeps_event_loop_running_during_solve() -> None:
    controller = SlowController(0.5)
    server = ControlServer(controller, host="127.0.0.1", port=0, actuation_delay=0.0)

    async def scenario():
        loop = asyncio.get_running_loop()
        port = await server.start()
        async with websockets.connect(f"ws://127.0.0.1:{port}") as websocket:
            await websocket.send('42["telemetry",{"n":1}]')
            await loop.run_in_executor(None, controller.started.wait, 5.0)

        ticks = []

        async def ticker():
            while True:
                ticks.append(loop.time())
                await asyncio.sleep(0.01)

        task = asyncio.create_task(ticker())
        await server.close()
        task.cancel()
        return ticks

    ticks = asyncio.run(scenario())
    assert controller.seen == ['42["telemetry",{"n":1}]']
    assert len(ticks) >= 10
