"""
Locates, launches and stops the headless browser process.

Launching is a bounded loop: every attempt spawns the browser and races the
process exiting against the debugging endpoint answering `GET /json/version`.
An attempt that loses the race consumes one retry; when none are left,
`LaunchExhaustedError` is raised after exactly `max_retries + 1` spawns.
"""
import asyncio
import shlex
import sys
from typing import Any, Dict, List, Optional, Sequence

import httpx

from spa_prerenderer.components.renderer.models import BrowserSession
from spa_prerenderer.core.exceptions import LaunchExhaustedError, NoBrowserFoundError
from spa_prerenderer.core.logger import get_logger

logger = get_logger(__name__)

# Candidate commands per `sys.platform`, probed in order.
PLATFORM_COMMANDS: Dict[str, List[str]] = {
    "darwin": [
        '"/Applications/Google Chrome.app/Contents/MacOS/Google Chrome"',
        '"/Applications/Chromium.app/Contents/MacOS/Chromium"',
    ],
    "win32": [
        "chrome",
        '"C:\\Program Files\\Google\\Chrome\\Application\\chrome.exe"',
        '"C:\\Program Files (x86)\\Google\\Chrome\\Application\\chrome.exe"',
    ],
    "linux": [
        "google-chrome",
        "google-chrome-stable",
        "chromium",
        "chromium-browser",
    ],
}


def split_command(command: str) -> List[str]:
    """Splits a configured browser command into an argument vector."""
    if sys.platform == "win32":
        return [part.strip('"') for part in shlex.split(command, posix=False)]
    return shlex.split(command)


class BrowserProcessSupervisor:
    """
    Owns the browser process for a BrowserSession: finds the executable,
    launches it with a remote-debugging port and shuts it down.

    Attributes:
        port_ready_timeout (float): Seconds one launch attempt waits for the debugging endpoint.
        probe_timeout (float): Seconds a candidate command may take to answer the probe.
        shutdown_grace (float): Seconds to wait after terminate before killing.
        log_browser_output (bool): Log the browser's stdout/stderr at DEBUG level.
    """
    DEFAULT_PORT_READY_TIMEOUT = 30.0
    DEFAULT_PROBE_TIMEOUT = 10.0
    DEFAULT_SHUTDOWN_GRACE = 5.0
    PORT_POLL_INTERVAL = 0.1

    def __init__(
        self,
        port_ready_timeout: float = DEFAULT_PORT_READY_TIMEOUT,
        probe_timeout: float = DEFAULT_PROBE_TIMEOUT,
        shutdown_grace: float = DEFAULT_SHUTDOWN_GRACE,
        log_browser_output: bool = False,
    ):
        self.port_ready_timeout = port_ready_timeout
        self.probe_timeout = probe_timeout
        self.shutdown_grace = shutdown_grace
        self.log_browser_output = log_browser_output
        self._output_tasks: List[asyncio.Task] = []

    # --- Command resolution ---

    async def resolve_launch_command(self, explicit_command: Optional[str] = None, platform: Optional[str] = None) -> str:
        """
        Returns the command used to start the browser.

        An explicit command wins. Otherwise every candidate for the platform is
        probed with `--headless --version` and the first candidate (in list
        order) that exits successfully is returned.

        Raises:
            NoBrowserFoundError: If no explicit command is given and no candidate works.
        """
        if explicit_command:
            return explicit_command

        platform = platform or sys.platform
        candidates = PLATFORM_COMMANDS.get(platform, [])
        hits = await asyncio.gather(*(self._probe(candidate) for candidate in candidates))
        for candidate, hit in zip(candidates, hits):
            if hit:
                logger.info(f"Found valid browser binary: {candidate}")
                return candidate

        logger.error(f"No browser found among candidates for platform '{platform}': {candidates}")
        raise NoBrowserFoundError(platform)

    async def _probe(self, command: str) -> bool:
        try:
            proc = await self._spawn([*split_command(command), "--headless", "--version"], capture_output=False)
        except (OSError, ValueError):
            return False
        try:
            returncode = await asyncio.wait_for(proc.wait(), self.probe_timeout)
        except asyncio.TimeoutError:
            await self._terminate(proc)
            return False
        return returncode == 0

    # --- Launch ---

    async def launch(
        self,
        command: str,
        debug_port: int,
        max_retries: int,
        extra_args: Sequence[str] = (),
        host: str = "127.0.0.1",
    ) -> BrowserSession:
        """
        Starts the browser and waits for its debugging endpoint.

        Args:
            command (str): Browser command (see `resolve_launch_command`).
            debug_port (int): Port passed as `--remote-debugging-port`.
            max_retries (int): Relaunches allowed after the first attempt.
            extra_args (Sequence[str]): Caller arguments placed before the fixed flags.
            host (str): Host the debugging endpoint is polled on.

        Returns:
            BrowserSession: The session with a running process.

        Raises:
            LaunchExhaustedError: If every attempt exited or timed out before the port answered.
        """
        session = BrowserSession(
            command=command,
            host=host,
            debug_port=debug_port,
            max_retries=max_retries,
            retries_left=max_retries,
        )
        args = [*split_command(command), *extra_args, "--headless", f"--remote-debugging-port={debug_port}"]

        while True:
            if await self._attempt_launch(session, args):
                logger.info(
                    f"Browser started (pid {session.process.pid}) with debugging port {debug_port} "
                    f"after {session.spawn_attempts} attempt(s)."
                )
                return session
            if session.retries_left <= 0:
                logger.error(f"Browser '{command}' failed to start after {session.spawn_attempts} attempt(s).")
                raise LaunchExhaustedError(command, session.spawn_attempts)
            logger.warning(f"Browser launch attempt {session.spawn_attempts} failed; relaunching ({session.retries_left} retries left).")
            session.retries_left -= 1

    async def _attempt_launch(self, session: BrowserSession, args: List[str]) -> bool:
        session.spawn_attempts += 1
        logger.debug(f"Spawning browser: {args}")
        try:
            proc = await self._spawn(args, capture_output=self.log_browser_output)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to spawn browser process: {e}")
            return False

        if self.log_browser_output:
            self._watch_output(proc)

        exit_task = asyncio.ensure_future(proc.wait())
        port_task = asyncio.ensure_future(
            self.wait_for_debug_port(session.host, session.debug_port, self.port_ready_timeout)
        )
        done, _ = await asyncio.wait({exit_task, port_task}, return_when=asyncio.FIRST_COMPLETED)

        if port_task in done and port_task.result() is not None:
            exit_task.cancel()
            session.process = proc
            session.version_info = port_task.result()
            return True

        port_task.cancel()
        exit_task.cancel()
        await asyncio.gather(port_task, exit_task, return_exceptions=True)
        if proc.returncode is None:
            logger.warning(f"Debugging port {session.debug_port} not ready after {self.port_ready_timeout}s; killing browser.")
            await self._terminate(proc)
        else:
            logger.warning(f"Browser exited with code {proc.returncode} before the debugging port was ready.")
        return False

    async def wait_for_debug_port(self, host: str, port: int, timeout: float) -> Optional[Dict[str, Any]]:
        """
        Polls `GET /json/version` until it answers or `timeout` seconds pass.

        Returns:
            Optional[Dict[str, Any]]: The endpoint's version document, or None on timeout.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        url = f"http://{host}:{port}/json/version"
        # Proxy environment variables must not intercept localhost traffic.
        async with httpx.AsyncClient(trust_env=False) as client:
            while loop.time() < deadline:
                try:
                    response = await client.get(url, timeout=0.75)
                    if response.status_code == 200:
                        return response.json()
                except (httpx.HTTPError, ValueError):
                    pass
                await asyncio.sleep(self.PORT_POLL_INTERVAL)
        return None

    # --- Shutdown ---

    async def shutdown(self, session: BrowserSession) -> None:
        """Stops the session's browser process. Idempotent and bounded in time."""
        proc = session.process
        session.process = None
        if proc is not None:
            logger.info(f"Stopping browser process (pid {proc.pid}).")
            await self._terminate(proc)
        for task in self._output_tasks:
            task.cancel()
        self._output_tasks.clear()

    async def _terminate(self, proc: asyncio.subprocess.Process) -> None:
        if proc.returncode is not None:
            return
        try:
            proc.terminate()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(proc.wait(), self.shutdown_grace)
            return
        except asyncio.TimeoutError:
            logger.warning(f"Browser process {proc.pid} ignored terminate; killing it.")
        try:
            proc.kill()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(proc.wait(), self.shutdown_grace)
        except asyncio.TimeoutError:
            logger.error(f"Browser process {proc.pid} did not exit after kill.")

    # --- Process helpers ---

    async def _spawn(self, args: List[str], capture_output: bool) -> asyncio.subprocess.Process:
        stream = asyncio.subprocess.PIPE if capture_output else asyncio.subprocess.DEVNULL
        return await asyncio.create_subprocess_exec(*args, stdout=stream, stderr=stream)

    def _watch_output(self, proc: asyncio.subprocess.Process) -> None:
        for label, stream in (("STDOUT", proc.stdout), ("STDERR", proc.stderr)):
            if stream is not None:
                self._output_tasks.append(asyncio.ensure_future(self._log_stream(label, stream)))

    async def _log_stream(self, label: str, stream: asyncio.StreamReader) -> None:
        while True:
            line = await stream.readline()
            if not line:
                return
            logger.debug(f"Browser {label}: {line.decode(errors='replace').rstrip()}")
