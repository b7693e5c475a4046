import docker
import io
import json
import logging
import math
import os
import re
import tarfile
import time
import uuid
from pathlib import Path

import requests
from docker.errors import DockerException, APIError, NotFound

from arena.core.config import settings
from arena.core.errors import InvalidScoreError, SandboxError
from arena.core.metrics import CUSTOM_SCORER_RUNS_TOTAL

logger = logging.getLogger(__name__)

RUNNER_SOURCE = Path(__file__).resolve().parent.parent / "sandbox" / "runner.py"
WORKDIR = "/tmp"


def parse_scorer_output(logs: str) -> dict:
    """Extract the last JSON object line written by the runner."""
    lines = [line.strip() for line in (logs or "").splitlines() if line.strip()]
    if not lines:
        return {"error": "No output received from scoring code"}
    for line in reversed(lines):
        if line.startswith("{") and line.endswith("}"):
            try:
                parsed = json.loads(line)
            except ValueError:
                continue
            if isinstance(parsed, dict):
                return parsed
    return {"error": "No JSON result found in scorer output", "raw_output": logs[-500:]}


def validate_score(value) -> float:
    """Accept only a finite real number; bools are rejected."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidScoreError(
            f"Custom scorer must return a number, got {type(value).__name__}",
        )
    if not math.isfinite(value):
        raise InvalidScoreError(f"Custom scorer returned a non-finite value: {value}")
    return float(value)


def _normalize_docker_host(value: str) -> str:
    """Ensure Docker host has a proper scheme for docker-py.

    Common mistakes corrected here:
      - "/var/run/docker.sock" -> "unix:///var/run/docker.sock"
      - "unix:/var/run/docker.sock" -> "unix:///var/run/docker.sock"
    """
    host = (value or "").strip()
    if not host:
        return "unix:///var/run/docker.sock"
    if host.startswith("/"):
        return f"unix://{host}"
    if host.startswith("unix:/") and not host.startswith("unix://"):
        return "unix://" + host[len("unix:/"):].lstrip("/")
    return host


def get_docker_client():
    """Create a Docker client with proper configuration"""
    configured_host = os.getenv("DOCKER_HOST") or settings.DOCKER_SOCKET
    base_url = _normalize_docker_host(configured_host)
    logger.debug(f"Initializing Docker client with base_url={base_url}")
    try:
        return docker.DockerClient(base_url=base_url, timeout=60, version="auto")
    except DockerException as e:
        logger.critical(f"Docker client initialization failed: {str(e)}")
        raise SandboxError("Scoring sandbox is unavailable") from e


def _build_archive(payload: dict) -> bytes:
    files = {
        "runner.py": RUNNER_SOURCE.read_bytes(),
        "payload.json": json.dumps(payload).encode("utf-8"),
    }
    stream = io.BytesIO()
    now_ts = int(time.time())
    with tarfile.open(fileobj=stream, mode="w") as tar:
        for name, content in files.items():
            info = tarfile.TarInfo(name=name)
            info.size = len(content)
            info.mtime = now_ts
            info.mode = 0o444
            tar.addfile(info, io.BytesIO(content))
    return stream.getvalue()


class DockerScoringSandbox:
    """Runs creator-supplied scoring code in a throwaway container.

    The container has no network, no capabilities, a memory and pid cap and
    a CPU quota. Only the two row sequences are copied in. The host waits at
    most ``timeout`` seconds before killing it.
    """

    def __init__(
        self,
        client_factory=get_docker_client,
        image: str | None = None,
        timeout: float | None = None,
        mem_limit: str | None = None,
        pids_limit: int | None = None,
        cpu_quota: int | None = None,
    ):
        self.client_factory = client_factory
        self.image = image or settings.SCORER_IMAGE
        self.timeout = timeout if timeout is not None else settings.SCORER_TIMEOUT_SECONDS
        self.mem_limit = mem_limit or settings.SCORER_MEMORY_LIMIT
        self.pids_limit = pids_limit or settings.SCORER_PIDS_LIMIT
        self.cpu_quota = cpu_quota or settings.SCORER_CPU_QUOTA

    def score(self, code: str, answer_rows: list[dict], submission_rows: list[dict], task_id: str | None = None) -> float:
        client = None
        container = None
        stage = "init"
        log_extra = {"task_id": task_id}
        try:
            client = self.client_factory()
            name = re.sub(r"[^a-zA-Z0-9_.-]", "", f"scorer-{uuid.uuid4()}")[:63]
            archive = _build_archive({
                "code": code,
                "answer_rows": answer_rows,
                "submission_rows": submission_rows,
                "cpu_seconds": self.timeout,
            })

            stage = "create_container"
            container = client.containers.create(
                image=self.image,
                command=["python", "-I", f"{WORKDIR}/runner.py", f"{WORKDIR}/payload.json"],
                name=name,
                labels={"com.arena.role": "custom-scorer", "com.arena.task_id": str(task_id or "")},
                user="nobody",
                working_dir=WORKDIR,
                network_mode="none",
                mem_limit=self.mem_limit,
                memswap_limit=self.mem_limit,
                pids_limit=self.pids_limit,
                cpu_quota=self.cpu_quota,
                security_opt=["no-new-privileges"],
                cap_drop=["ALL"],
                detach=True,
            )
            log_extra["container_id"] = getattr(container, "id", None)

            stage = "inject_payload"
            container.put_archive(path=WORKDIR, data=archive)

            stage = "start"
            container.start()

            stage = "wait"
            try:
                wait_result = container.wait(timeout=self.timeout)
            except requests.exceptions.RequestException:
                CUSTOM_SCORER_RUNS_TOTAL.labels(outcome="timeout").inc()
                logger.info("custom_scorer_timeout", extra={**log_extra, "stage": stage})
                raise InvalidScoreError(
                    f"Custom scorer exceeded its {self.timeout:g}s time limit",
                    timeout_seconds=self.timeout,
                )
            exit_code = int(wait_result.get("StatusCode", 1))

            stage = "collect_output"
            stdout = container.logs(stdout=True, stderr=False).decode(errors="replace")
            output = parse_scorer_output(stdout)

            if exit_code == 137:
                CUSTOM_SCORER_RUNS_TOTAL.labels(outcome="invalid").inc()
                raise InvalidScoreError("Custom scorer was killed (memory limit exceeded)")
            if exit_code != 0 or "score" not in output:
                CUSTOM_SCORER_RUNS_TOTAL.labels(outcome="invalid").inc()
                reason = output.get("error") or f"scorer exited with status {exit_code}"
                raise InvalidScoreError(f"Custom scorer failed: {reason}", exit_code=exit_code)

            try:
                score = validate_score(output["score"])
            except InvalidScoreError:
                CUSTOM_SCORER_RUNS_TOTAL.labels(outcome="invalid").inc()
                raise
            CUSTOM_SCORER_RUNS_TOTAL.labels(outcome="ok").inc()
            logger.info(f"Custom scorer finished with score {score}", extra={**log_extra, "stage": stage})
            return score

        except NotFound as e:
            CUSTOM_SCORER_RUNS_TOTAL.labels(outcome="sandbox_error").inc()
            logger.error(f"Scorer image not found: {self.image}", extra={**log_extra, "stage": stage})
            raise SandboxError(f"Scorer image not found: {self.image}") from e
        except APIError as e:
            CUSTOM_SCORER_RUNS_TOTAL.labels(outcome="sandbox_error").inc()
            logger.error(f"Docker API error at stage '{stage}': {str(e)}", extra={**log_extra, "stage": stage})
            raise SandboxError("Scoring sandbox failed") from e
        except DockerException as e:
            CUSTOM_SCORER_RUNS_TOTAL.labels(outcome="sandbox_error").inc()
            logger.error(f"Docker failure at stage '{stage}': {str(e)}", extra={**log_extra, "stage": stage})
            raise SandboxError("Scoring sandbox failed") from e

        finally:
            if container is not None:
                try:
                    container.remove(force=True)
                except DockerException as e:
                    logger.warning(f"Failed to remove scorer container: {str(e)}", extra=log_extra)
            if client is not None:
                client.close()


def get_scoring_sandbox() -> DockerScoringSandbox:
    return DockerScoringSandbox()
