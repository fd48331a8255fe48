import pytest
from fastapi import HTTPException

from conftest import FakeSpawner, collect
from storage_console.core.process_registry import ProcessRegistry
from storage_console.modules.terminal.command_runner import CommandRunner, is_blocked


@pytest.mark.parametrize("command", ["rm -rf /", "sudo rm  -rf /var", "mkfs.ext4 /dev/sda", "dd if=/dev/zero of=x",
                                     "FORMAT c:", "del /s /q C:\\"])
def test_dangerous_commands_blocked(command):
    assert is_blocked(command)


@pytest.mark.parametrize("command", ["ls -la", "aws s3 ls", "npx cdk diff"])
def test_ordinary_commands_allowed(command):
    assert not is_blocked(command)


def test_blocked_command_raises_403():
    runner = CommandRunner(ProcessRegistry(), spawn=FakeSpawner())
    with pytest.raises(HTTPException) as exc:
        runner.run("rm -rf /")
    assert exc.value.status_code == 403


@pytest.mark.asyncio
async def test_streams_session_output_and_exit():
    registry = ProcessRegistry()
    spawner = FakeSpawner(stdout=b"one\n\ntwo\n", stderr=b"careful\n", returncode=0)
    runner = CommandRunner(registry, shell="/bin/sh", spawn=spawner)

    events = await collect(runner.run("echo hi", cwd="/tmp"))

    assert events[0].type == "session"
    assert events[0].session_id
    assert events[1].type == "command"
    assert events[1].message == "$ echo hi"
    output = events[2:-1]
    assert [(e.message, e.level) for e in output if e.type == "stdout"] == [("one", "info"), ("two", "info")]
    assert [(e.message, e.level) for e in output if e.type == "stderr"] == [("careful", "warn")]
    assert events[-1].type == "exit"
    assert events[-1].exit_code == 0
    assert events[-1].level == "success"
    assert spawner.calls[0]["args"] == ["/bin/sh", "-c", "echo hi"]
    assert spawner.calls[0]["cwd"] == "/tmp"
    assert registry.sessions() == []


@pytest.mark.asyncio
async def test_nonzero_exit_is_error_level():
    runner = CommandRunner(ProcessRegistry(), spawn=FakeSpawner(returncode=2))
    events = await collect(runner.run("false"))

    assert events[-1].exit_code == 2
    assert events[-1].level == "error"


@pytest.mark.asyncio
async def test_spawn_failure_emits_error_event():
    runner = CommandRunner(ProcessRegistry(), spawn=FakeSpawner(error=PermissionError("denied")))
    events = await collect(runner.run("ls"))

    assert events[-1].type == "error"
    assert events[-1].message == "denied"


@pytest.mark.asyncio
async def test_kill_by_session_id():
    registry = ProcessRegistry()
    spawner = FakeSpawner(hang=True)
    runner = CommandRunner(registry, spawn=spawner)

    events = []
    async for event in runner.run("sleep 100"):
        events.append(event)
        if event.type == "command":
            assert await registry.terminate(events[0].session_id, wait_seconds=1)

    assert spawner.process.terminated
    assert events[-1].type == "exit"
    assert events[-1].exit_code == -15


@pytest.mark.asyncio
async def test_timeout_kills_command():
    spawner = FakeSpawner(hang=True)
    runner = CommandRunner(ProcessRegistry(), timeout_seconds=0.05, spawn=spawner)

    events = await collect(runner.run("sleep 100"))

    assert spawner.process.killed
    assert events[-1].exit_code == -9
