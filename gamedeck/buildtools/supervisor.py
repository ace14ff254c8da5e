"""BuildTools process supervisor.

Each run compiles a server jar with an external ``java -jar BuildTools.jar``
child process. Both output streams are drained concurrently into one
timestamped log file, which any number of clients can tail while the run is
in progress and inspect on disk afterwards.
"""

import asyncio
import logging
import shutil
import time
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import AsyncIterator, Callable, Dict, List, Optional

import httpx

from gamedeck.buildtools.models import (
    BuildRequest,
    BuildRunSnapshot,
    BuildRunState,
    LogEntry,
    normalize_request,
)
from gamedeck.buildtools.runlog import RunLog, line_timestamp, tail_lines
from gamedeck.catalog.models import VersionCatalogEntry
from gamedeck.catalog.profiles import LocalProfileStore
from gamedeck.errors import JobCancelled, RunNotFound

logger = logging.getLogger(__name__)

BUILDTOOLS_JAR = "BuildTools.jar"
BUILDTOOLS_REFERER = "https://hub.spigotmc.org/jenkins/job/BuildTools/lastSuccessfulBuild/"
STREAM_LINE_LIMIT = 1024 * 1024

CommandFactory = Callable[[BuildRequest, str], List[str]]


def buildtools_command(request: BuildRequest, java: str) -> List[str]:
    return [
        java, "-jar", BUILDTOOLS_JAR,
        "--rev", request.version,
        "--compile", request.compile_target,
    ]


def _written_since(path: Path, since: Optional[float]) -> bool:
    if not path.is_file():
        return False
    return since is None or path.stat().st_mtime >= since


def locate_artifact(profile_dir: Path, request: BuildRequest, since: Optional[float] = None) -> Path:
    """Find the jar BuildTools produced.

    The expected name wins; otherwise exactly one ``*<version>*.jar`` match
    is accepted. No match or several matches fail the run. With ``since``
    (a ``time.time()`` value) only files modified at or after it count, so
    jars left over from an earlier run in the same directory are ignored.
    """
    expected = profile_dir / request.artifact_name
    if _written_since(expected, since):
        return expected

    candidates = sorted(
        path for path in profile_dir.glob(f"*{request.version}*.jar")
        if _written_since(path, since)
        and path.name.lower() != BUILDTOOLS_JAR.lower()
        and path.name != request.target_name
    )
    if not candidates:
        raise FileNotFoundError(f"BuildTools output not found for {request.group} {request.version}")
    if len(candidates) > 1:
        names = ", ".join(path.name for path in candidates)
        raise RuntimeError(
            f"BuildTools output is ambiguous for {request.group} {request.version}: {names}"
        )
    return candidates[0]


class ProcessSupervisor:
    """Starts, tracks and tails BuildTools runs."""

    def __init__(
        self,
        profiles_dir: Path,
        logs_dir: Path,
        profile_store: LocalProfileStore,
        client: Optional[httpx.AsyncClient] = None,
        java_executable: str = "java",
        buildtools_url: Optional[str] = None,
        poll_interval: float = 0.25,
        result_ttl_hours: float = 2,
        command_factory: CommandFactory = buildtools_command,
    ):
        self._profiles_dir = Path(profiles_dir)
        self._logs_dir = Path(logs_dir) / "buildtools"
        self._profiles = profile_store
        self._client = client
        self._java = java_executable
        self._buildtools_url = buildtools_url
        self._poll_interval = poll_interval
        self._result_ttl = timedelta(hours=result_ttl_hours)
        self._command_factory = command_factory
        self._runs: Dict[str, BuildRunState] = {}
        self._tasks: Dict[str, asyncio.Task] = {}
        self._processes: Dict[str, asyncio.subprocess.Process] = {}

    def log_path(self, run_id: str) -> Path:
        return self._logs_dir / f"{run_id}.log"

    # -- runs --------------------------------------------------------------

    async def start_run(self, group: str, version: str) -> BuildRunSnapshot:
        request = normalize_request(group, version)
        self.evict_expired()
        run_id = uuid.uuid4().hex
        log = RunLog(self.log_path(run_id)).open()
        log.write(f"BuildTools run started for {request.group} {request.version}")

        state = BuildRunState(run_id, request, str(log.path))
        self._runs[run_id] = state
        task = asyncio.create_task(self._supervise(state, log), name=f"buildtools-{run_id}")
        self._tasks[run_id] = task
        task.add_done_callback(lambda _: self._tasks.pop(run_id, None))

        logger.info("Started BuildTools run %s for %s", run_id, request.profile_id)
        return state.snapshot()

    def get_run(self, run_id: str) -> Optional[BuildRunSnapshot]:
        state = self._runs.get(run_id)
        return state.snapshot() if state else None

    def list_runs(self) -> List[BuildRunSnapshot]:
        runs = [state.snapshot() for state in list(self._runs.values())]
        runs.sort(key=lambda run: run.started_at, reverse=True)
        return runs

    def cancel_run(self, run_id: str) -> bool:
        """Force-kill the run's child process (or abort it before spawn)."""
        state = self._runs.get(run_id)
        if state is None:
            raise RunNotFound(run_id)
        if state.is_terminal:
            return False
        state.cancel_requested = True
        process = self._processes.get(run_id)
        if process is not None and process.returncode is None:
            process.kill()
        else:
            task = self._tasks.get(run_id)
            if task is not None:
                task.cancel()
        logger.info("Cancellation requested for BuildTools run %s", run_id)
        return True

    def evict_expired(self, now: Optional[datetime] = None) -> int:
        """Forget finished runs older than the result TTL. Log files stay on disk."""
        now = now or datetime.now(timezone.utc)
        expired = [
            run_id for run_id, state in list(self._runs.items())
            if run_id not in self._tasks
            and state.completed_at is not None
            and now - state.completed_at > self._result_ttl
        ]
        for run_id in expired:
            self._runs.pop(run_id, None)
        if expired:
            logger.info("Evicted %d finished BuildTools run(s)", len(expired))
        return len(expired)

    async def stop(self) -> None:
        for run_id in list(self._tasks):
            self.cancel_run(run_id)
        await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    # -- log tail ----------------------------------------------------------

    async def stream_log(self, run_id: str) -> AsyncIterator[LogEntry]:
        state = self._runs.get(run_id)
        if state is None:
            raise RunNotFound(run_id)

        path = Path(state.log_path)
        while not path.exists():
            if state.is_terminal:
                return
            await asyncio.sleep(self._poll_interval)

        async for line in tail_lines(
            path,
            lambda: state.is_terminal,
            poll_interval=self._poll_interval,
            final_backoff=self._poll_interval,
        ):
            yield LogEntry(timestamp=line_timestamp(line), line=line, status=state.status)

    # -- execution ---------------------------------------------------------

    async def _supervise(self, state: BuildRunState, log: RunLog) -> None:
        try:
            await self._build(state, log)
        except asyncio.CancelledError:
            log.write("BuildTools run was cancelled")
            state.mark_failed("BuildTools run was cancelled")
            logger.warning("BuildTools run %s was cancelled", state.run_id)
            raise
        except Exception as exc:
            log.write(f"BuildTools failed: {exc}")
            state.mark_failed(str(exc) or type(exc).__name__)
            logger.exception("BuildTools run %s failed", state.run_id)
        else:
            log.write("BuildTools completed successfully.")
            state.mark_completed()
            logger.info("BuildTools run %s completed", state.run_id)
        finally:
            log.close()

    async def _build(self, state: BuildRunState, log: RunLog) -> None:
        request = state.request
        profile_dir = self._profiles_dir / request.profile_id
        profile_dir.mkdir(parents=True, exist_ok=True)

        await self._ensure_buildtools_jar(profile_dir, log)

        command = self._command_factory(request, self._java)
        log.write(f"Running: {' '.join(command)}")
        spawned_at = time.time()
        exit_code = await self._run_process(state, command, profile_dir, log)
        log.write(f"BuildTools exited with code {exit_code}")

        if state.cancel_requested:
            raise JobCancelled("BuildTools run was cancelled")
        if exit_code != 0:
            raise RuntimeError(
                f"BuildTools exited with code {exit_code}. Check the log output for details."
            )

        artifact = locate_artifact(profile_dir, request, since=spawned_at)
        target = profile_dir / request.target_name
        loop = asyncio.get_running_loop()
        if artifact != target:
            await loop.run_in_executor(None, shutil.copyfile, artifact, target)
        log.write(f"Saved {artifact.name} as {target.name}")

        await loop.run_in_executor(None, self._profiles.upsert, VersionCatalogEntry(
            id=request.profile_id,
            source_group=request.group,
            kind="buildtools",
            version=request.version,
            release_timestamp=datetime.now(timezone.utc).isoformat(),
            filename=target.name,
        ))

    async def _run_process(self, state: BuildRunState, command: List[str], cwd: Path, log: RunLog) -> int:
        process = await asyncio.create_subprocess_exec(
            *command,
            cwd=str(cwd),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            limit=STREAM_LINE_LIMIT,
        )
        self._processes[state.run_id] = process
        pumps = [
            asyncio.create_task(self._pump(process.stdout, log, "")),
            asyncio.create_task(self._pump(process.stderr, log, "ERR ")),
        ]
        try:
            exit_code = await process.wait()
            await asyncio.gather(*pumps)
            return exit_code
        finally:
            self._processes.pop(state.run_id, None)
            if process.returncode is None:
                process.kill()
                await process.wait()
            for pump in pumps:
                pump.cancel()

    @staticmethod
    async def _pump(stream: asyncio.StreamReader, log: RunLog, prefix: str) -> None:
        while True:
            raw = await stream.readline()
            if not raw:
                return
            log.write(prefix + raw.decode("utf-8", errors="replace").rstrip("\r\n"))

    async def _ensure_buildtools_jar(self, profile_dir: Path, log: RunLog) -> None:
        jar = profile_dir / BUILDTOOLS_JAR
        if jar.is_file():
            return
        if self._client is None or not self._buildtools_url:
            raise RuntimeError(f"{BUILDTOOLS_JAR} is missing and no download source is configured")

        log.write(f"Downloading {BUILDTOOLS_JAR}")
        partial = jar.with_name(jar.name + ".part")
        headers = {
            "User-Agent": "Mozilla/5.0 (X11; Linux x86_64) gamedeck/1.0",
            "Accept": "application/java-archive, application/octet-stream",
            "Referer": BUILDTOOLS_REFERER,
        }
        try:
            async with self._client.stream("GET", self._buildtools_url, headers=headers) as response:
                response.raise_for_status()
                with open(partial, "wb") as fh:
                    async for chunk in response.aiter_bytes():
                        fh.write(chunk)
            partial.replace(jar)
        finally:
            partial.unlink(missing_ok=True)
