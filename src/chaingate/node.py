from __future__ import annotations

import logging
import os
import shlex
import shutil
import signal
import subprocess
from pathlib import Path
from typing import IO

from chaingate.config import NodeConfig
from chaingate.errors import DeployError

logger = logging.getLogger(__name__)

_STOP_TIMEOUT = 30


class ProcessNode:
    """A single node started from a locally built binary."""

    def __init__(self, config: NodeConfig, checkout: Path) -> None:
        self.config = config
        self.checkout = checkout
        self._proc: subprocess.Popen[bytes] | None = None

    def _path(self, value: str) -> Path:
        path = Path(value)
        return path if path.is_absolute() else self.checkout / path

    def _run(self, args: list[str], **kwargs: object) -> subprocess.CompletedProcess[str]:
        kwargs.setdefault("cwd", self.checkout)
        try:
            return subprocess.run(args, text=True, check=True, **kwargs)
        except subprocess.CalledProcessError as exc:
            msg = f"{shlex.join(args)} exited with {exc.returncode}"
            raise DeployError(msg) from exc
        except OSError as exc:
            msg = f"{shlex.join(args)} could not start: {exc}"
            raise DeployError(msg) from exc

    def clean(self) -> None:
        """Drop chain data left by an earlier run."""
        data_dir = self._path(self.config.data_dir)
        if data_dir.exists():
            logger.info("Removing %s", data_dir)
            try:
                shutil.rmtree(data_dir)
            except OSError as exc:
                msg = f"Cannot remove {data_dir}: {exc}"
                raise DeployError(msg) from exc

    def build(self) -> None:
        env = {**os.environ, **self.config.build_env}
        logger.info("Building node: %s", self.config.build_command)
        self._run(shlex.split(self.config.build_command), env=env)

    def _open_log(self, log_path: Path, mode: str) -> IO[str]:
        try:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            return log_path.open(mode)
        except OSError as exc:
            msg = f"Cannot open node log {log_path}: {exc}"
            raise DeployError(msg) from exc

    def start(self) -> None:
        """Initialise the chain and launch the node detached."""
        binary = str(self._path(self.config.binary))
        log_path = self._path(self.config.log_file)

        with self._open_log(log_path, "w") as log:
            self._run(
                [
                    binary, "init",
                    "--config", self.config.config,
                    "--chain-spec", self.config.chain_spec,
                ],
                stdout=log,
                stderr=subprocess.STDOUT,
            )

        log = self._open_log(log_path, "a")
        try:
            self._proc = subprocess.Popen(
                [binary, "run", "--config", self.config.config],
                cwd=self.checkout,
                stdin=subprocess.DEVNULL,
                stdout=log,
                stderr=subprocess.STDOUT,
                start_new_session=True,
            )
        except OSError as exc:
            msg = f"Cannot launch {binary}: {exc}"
            raise DeployError(msg) from exc
        finally:
            log.close()
        logger.info("Node started (pid %d), log at %s", self._proc.pid, log_path)

    def stop(self) -> None:
        if self._proc is None or self._proc.poll() is not None:
            return
        logger.info("Stopping node (pid %d)", self._proc.pid)
        self._proc.send_signal(signal.SIGTERM)
        try:
            self._proc.wait(timeout=_STOP_TIMEOUT)
        except subprocess.TimeoutExpired:
            logger.warning("Node did not exit, killing pid %d", self._proc.pid)
            self._proc.kill()
            self._proc.wait()


class ComposeNode:
    """A node running from a published image under docker compose."""

    def __init__(self, config: NodeConfig, checkout: Path) -> None:
        self.config = config
        self.checkout = checkout

    @property
    def compose_dir(self) -> Path:
        return self.checkout / self.config.compose_dir

    def _compose(self, *args: str, check: bool = True) -> subprocess.CompletedProcess[str]:
        cmd = ["docker", "compose", *args]
        try:
            return subprocess.run(
                cmd, cwd=self.compose_dir, text=True, capture_output=True, check=check
            )
        except subprocess.CalledProcessError as exc:
            msg = f"{shlex.join(cmd)} failed: {exc.stderr.strip()}"
            raise DeployError(msg) from exc
        except OSError as exc:
            msg = f"{shlex.join(cmd)} could not start: {exc}"
            raise DeployError(msg) from exc

    def clean(self) -> None:
        self._compose("down", "--volumes", "--remove-orphans")

    def build(self) -> None:
        logger.info("Compose mode uses a prebuilt image, skipping build")

    def start(self) -> None:
        logger.info("Starting containers in %s and waiting for health", self.compose_dir)
        self._compose("up", "-d", "--wait")
        ps = self._compose("ps", check=False)
        logger.info("%s", ps.stdout.strip())
        logs = self._compose("logs", "--tail", "6", check=False)
        logger.debug("%s", logs.stdout.strip())

    def stop(self) -> None:
        try:
            self._compose("down")
        except DeployError as exc:
            logger.warning("Stopping containers failed: %s", exc)


Node = ProcessNode | ComposeNode


def make_node(config: NodeConfig, checkout: Path) -> Node:
    if config.mode == "compose":
        return ComposeNode(config, checkout)
    if config.mode == "process":
        return ProcessNode(config, checkout)
    msg = f"Unknown node mode: {config.mode!r}"
    raise DeployError(msg)
