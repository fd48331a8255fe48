import asyncio
import json
import logging
import os
import re
import shlex
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Tuple

from storage_console.config import settings
from storage_console.core.event_stream import EventStream, drive
from storage_console.database.record_store import BUCKETS, RecordStore
from storage_console.modules.deployments.error_patterns import INSTALL_COMMAND, match_error
from storage_console.modules.deployments.schemas import DeploymentEvent, DeployRequest

logger = logging.getLogger(__name__)

SUCCESS_MARKER = "✅"
# mtime granularity and clock source differ from time.time(); allow this much slack
OUTPUTS_CLOCK_TOLERANCE_SEC = 2.0
_STREAM_LIMIT = 1024 * 1024
_PROGRESS_RE = re.compile(r"\d+/\d+|⏳|✅|✨|★|⚡")


def is_progress_line(line: str) -> bool:
    """CDK writes progress to stderr; these lines are not warnings."""
    return bool(_PROGRESS_RE.search(line)) or "CDK" in line or "Outputs:" in line


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class DeploymentRunner:
    def __init__(
        self,
        store: RecordStore,
        toolchain_dir: Optional[str] = None,
        cdk_command: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        require_fresh_outputs: Optional[bool] = None,
        spawn: Optional[Callable[..., Awaitable[Any]]] = None,
    ):
        """
        Args:
            store: Record store holding the bucket records to update
            toolchain_dir: CDK app directory; defaults to settings.toolchain_dir
            cdk_command: Command prefix used to invoke the CDK CLI
            timeout_seconds: Ceiling after which the process is killed
            require_fresh_outputs: Ignore an outputs file older than the run
            spawn: Process factory, asyncio.create_subprocess_exec by default
        """
        self.store = store
        self.toolchain_dir = Path(toolchain_dir or settings.toolchain_dir)
        self.cdk_command = shlex.split(cdk_command or settings.cdk_command)
        self.timeout_seconds = settings.deploy_timeout_seconds if timeout_seconds is None else timeout_seconds
        self.require_fresh_outputs = (
            settings.require_fresh_outputs if require_fresh_outputs is None else require_fresh_outputs
        )
        self.spawn = spawn or asyncio.create_subprocess_exec
        self.outputs_path = self.toolchain_dir / settings.outputs_file

    def run(self, request: DeployRequest) -> AsyncIterator[DeploymentEvent]:
        """Execute ``request`` and yield its progress events in order."""
        return drive(lambda stream: self._execute(request, stream))

    async def _execute(self, request: DeployRequest, stream: EventStream) -> None:
        request = self._resolve_bucket(request)

        if not self._run_pre_checks(stream):
            stream.write(DeploymentEvent(
                type="result", status="error", level="error", message="Pre-deployment checks failed",
            ))
            return

        is_tracked_deploy = request.action == "deploy" and bool(request.bucket_id)
        if is_tracked_deploy:
            self._update_bucket(request.bucket_id, status="deploying")
            stream.write(DeploymentEvent(
                type="status", level="info", label='Bucket status set to "deploying"',
            ))

        command = self.cdk_command + self._action_args(request.action)
        stream.write(DeploymentEvent(type="command", level="command", label=f"Running: {' '.join(command)}"))

        started_at = time.time()
        try:
            process = await self.spawn(
                *command,
                cwd=str(self.toolchain_dir),
                env=self._get_cdk_env(request),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=_STREAM_LIMIT,
            )
        except OSError as e:
            logger.error(f"Could not start CDK for {request.action}: {e}")
            self._report_failure(stream, request, text=str(e), message=str(e))
            return

        stdout_lines: List[str] = []
        stderr_lines: List[str] = []
        timed_out = False
        try:
            exit_code = await asyncio.wait_for(
                self._pump(process, stream, stdout_lines, stderr_lines),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            timed_out = True
            exit_code = await self._kill(process)
            logger.warning(f"CDK {request.action} timed out after {self.timeout_seconds}s")
        except Exception as e:
            logger.error(f"Lost CDK {request.action} output: {e}")
            await self._kill(process)
            combined = "\n".join(stdout_lines + stderr_lines + [str(e)])
            self._report_failure(stream, request, text=combined, message=f"{request.action} failed: {e}")
            return
        finally:
            # the child must not outlive this run, including on cancellation
            if process.returncode is None:
                self._signal_kill(process)

        combined = "\n".join(stdout_lines + stderr_lines)
        if timed_out:
            succeeded, evidence = False, None
        else:
            succeeded, evidence = self.determine_success(exit_code, request, combined, started_at)

        if succeeded:
            logger.info(f"CDK {request.action} succeeded (evidence: {evidence}, exit code {exit_code})")
            if exit_code == 0:
                message = f"{request.action} completed successfully"
            else:
                message = f"{request.action} completed successfully (exit code {exit_code}, verified via {evidence})"
            stream.write(DeploymentEvent(type="result", status="success", level="success", message=message))
            if is_tracked_deploy:
                self._record_outputs(stream, request, started_at)
            return

        if timed_out:
            message = f"{request.action} timed out after {self.timeout_seconds:g}s and was killed"
        else:
            message = f"{request.action} failed with exit code {exit_code}"
        logger.error(f"CDK {request.action} failed: {message}")
        self._report_failure(stream, request, text=combined, message=message)

    def _resolve_bucket(self, request: DeployRequest) -> DeployRequest:
        """Fill object-store name and region from the bucket record when only the id was sent."""
        if not request.bucket_id or (request.s3_bucket_name and request.region):
            return request
        bucket = self.store.find_by_id(BUCKETS, request.bucket_id)
        if not bucket:
            return request
        return request.model_copy(update={
            "s3_bucket_name": request.s3_bucket_name or bucket.get("s3_bucket_name"),
            "region": request.region or bucket.get("region"),
        })

    def _run_pre_checks(self, stream: EventStream) -> bool:
        stream.write(DeploymentEvent(type="check", level="info", label="Checking CDK directory..."))
        if not self.toolchain_dir.is_dir():
            stream.write(DeploymentEvent(
                type="check",
                level="error",
                label=f"CDK directory not found at {self.toolchain_dir}",
                suggestion=(
                    f"Create the CDK project: mkdir -p {self.toolchain_dir} && cd {self.toolchain_dir} "
                    "&& npx cdk init app --language python"
                ),
            ))
            return False

        if (self.toolchain_dir / settings.toolchain_dependency_dir).exists():
            stream.write(DeploymentEvent(type="check", level="success", label="CDK dependencies found"))
        else:
            stream.write(DeploymentEvent(
                type="check",
                level="warn",
                label="CDK dependencies not installed",
                suggestion=f"Run: {INSTALL_COMMAND}",
            ))

        stream.write(DeploymentEvent(type="check", level="success", label="Pre-checks complete"))
        return True

    def _action_args(self, action: str) -> List[str]:
        if action == "deploy":
            return ["deploy", "--require-approval", "never", "--outputs-file", self.outputs_path.name]
        return ["synth"]

    def _get_cdk_env(self, request: DeployRequest) -> Dict[str, str]:
        """Isolated environment for the CDK process; stack parameters go in as env vars."""
        env = os.environ.copy()
        env["SCR_BUCKET_NAME"] = request.s3_bucket_name or ""
        env["SCR_REGION"] = request.region or settings.aws_region
        if settings.aws_access_key_id and settings.aws_secret_access_key:
            env["AWS_ACCESS_KEY_ID"] = settings.aws_access_key_id
            env["AWS_SECRET_ACCESS_KEY"] = settings.aws_secret_access_key
            env.pop("AWS_SESSION_TOKEN", None)
        return env

    async def _pump(self, process, stream: EventStream, stdout_lines: List[str], stderr_lines: List[str]) -> Optional[int]:
        readers = [
            asyncio.ensure_future(self._read_lines(process.stdout, "stdout", stream, stdout_lines)),
            asyncio.ensure_future(self._read_lines(process.stderr, "stderr", stream, stderr_lines)),
        ]
        try:
            await asyncio.gather(*readers)
        finally:
            # a failing reader must not leave its sibling writing to the stream
            for reader in readers:
                reader.cancel()
        return await process.wait()

    async def _read_lines(self, reader, channel: str, stream: EventStream, lines: List[str]) -> None:
        if reader is None:
            return
        async for raw in reader:
            line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
            if not line.strip():
                continue
            lines.append(line)
            if channel == "stdout" or is_progress_line(line):
                level = "info"
            else:
                level = "warn"
            stream.write(DeploymentEvent(type=channel, message=line, level=level))

    def _signal_kill(self, process) -> None:
        try:
            process.kill()
        except ProcessLookupError:
            pass

    async def _kill(self, process) -> Optional[int]:
        self._signal_kill(process)
        return await process.wait()

    def determine_success(
        self,
        exit_code: Optional[int],
        request: DeployRequest,
        combined_output: str,
        started_at: float,
    ) -> Tuple[bool, Optional[str]]:
        """
        The CDK exit code is not reliable on every platform (it can be None or
        non-zero after a good deploy), so fall back to other evidence.

        Returns:
            (succeeded, evidence) where evidence is "exit code", "outputs" or "success marker"
        """
        if exit_code == 0:
            return True, "exit code"
        if request.action == "deploy" and self._outputs_reference(request.s3_bucket_name, started_at):
            return True, "outputs"
        if SUCCESS_MARKER in combined_output:
            return True, "success marker"
        return False, None

    def _load_outputs(self, started_at: float) -> Optional[Dict[str, Any]]:
        try:
            mtime = self.outputs_path.stat().st_mtime
        except OSError:
            return None
        if self.require_fresh_outputs and mtime < started_at - OUTPUTS_CLOCK_TOLERANCE_SEC:
            logger.warning(f"Ignoring {self.outputs_path}: written before this run started")
            return None
        try:
            with open(self.outputs_path, "r", encoding="utf-8") as f:
                outputs = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Could not read CDK outputs: {e}")
            return None
        return outputs if isinstance(outputs, dict) else None

    def _outputs_reference(self, s3_bucket_name: Optional[str], started_at: float) -> bool:
        if not s3_bucket_name:
            return False
        outputs = self._load_outputs(started_at)
        if not outputs:
            return False
        return any(s3_bucket_name in key and value for key, value in outputs.items())

    def _stack_outputs(self, outputs: Optional[Dict[str, Any]], s3_bucket_name: Optional[str]) -> Optional[Dict[str, Any]]:
        if not outputs:
            return None
        stack_outputs = None
        if s3_bucket_name:
            stack_outputs = next((v for k, v in outputs.items() if s3_bucket_name in k), None)
        if stack_outputs is None:
            stack_outputs = next(iter(outputs.values()), None)
        return stack_outputs if isinstance(stack_outputs, dict) else None

    def _record_outputs(self, stream: EventStream, request: DeployRequest, started_at: float) -> None:
        stack_outputs = self._stack_outputs(self._load_outputs(started_at), request.s3_bucket_name)
        if not stack_outputs:
            # Infra most likely exists; outputs can be recovered later by a sync
            logger.warning(f"No usable CDK outputs for bucket {request.bucket_id}, marking active without them")
            self._update_bucket(request.bucket_id, status="active")
            return

        self._update_bucket(
            request.bucket_id,
            status="active",
            s3_bucket_arn=stack_outputs.get("BucketArn") or "",
            cloudfront_domain=stack_outputs.get("CloudFrontDomain") or "",
            cloudfront_distribution_id=stack_outputs.get("DistributionId") or "",
        )
        stream.write(DeploymentEvent(
            type="outputs", level="success", message="Stack outputs captured", data=stack_outputs,
        ))

    def _report_failure(self, stream: EventStream, request: DeployRequest, text: str, message: str) -> None:
        stream.write(DeploymentEvent(type="result", status="error", level="error", message=message))
        hint = match_error(text)
        if hint:
            stream.write(DeploymentEvent(
                type="error-intelligence",
                level="warn",
                title=hint.title,
                suggestion=hint.suggestion,
                command=hint.command,
            ))
        if request.action == "deploy" and request.bucket_id:
            self._update_bucket(request.bucket_id, status="failed")

    def _update_bucket(self, bucket_id: str, **fields: Any) -> None:
        updated = self.store.update_by_id(BUCKETS, bucket_id, {**fields, "updated_at": _now()})
        if updated is None:
            logger.warning(f"Bucket {bucket_id} not found while setting {fields.get('status')}")
