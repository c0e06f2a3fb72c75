import dataclasses
import io
import threading

import pytest

import esc
from esc.errors import (
    CancellationError,
    ConfigurationError,
    ContainerStartError,
    HealthCheckTimeoutError,
    ImageAcquisitionError,
    InitHookError,
    TeardownError,
    caused_by,
)
from esc.options import (
    with_command,
    with_env,
    with_health_check,
    with_health_check_interval,
    with_init,
    with_log_writer,
    with_registry_auth,
    with_timeout,
    with_token,
    with_use_local_images_first,
)
from esc.ports import default_tcp, tcp


def ready(token, container):
    return None


def never_ready(token, container):
    raise RuntimeError("this container should not start")


def test_happy_flow(orchestrator, runtime):
    ports = {"web80": tcp(80), "web8080": tcp(8080)}
    seen = []

    container = orchestrator.start(
        "test-image",
        ports,
        with_health_check_interval(0.001),
        with_health_check(ready),
        with_init(lambda t, c: seen.append(c.id)),
        with_timeout(60),
        with_env("ESC_TEST_1=foo"),
        with_env("ESC_TEST_2=bar"),
        with_registry_auth(""),
    )

    assert container is not None
    assert seen == [container.id]
    assert len(container.ports) == len(ports)
    assert container.address("web80") and container.address("web8080")
    assert container.address("web80") != container.address("web8080")
    assert container.ports.find("tcp", 8080).name == "web8080"
    assert container.default_address() == ""
    assert container.default_port() == 0

    spec = runtime.containers[container.id]["spec"]
    assert spec.env == ("ESC_TEST_1=foo", "ESC_TEST_2=bar")
    assert runtime.running() == [container.id]

    orchestrator.stop(container)
    assert runtime.containers == {}


def test_default_port_convenience(orchestrator):
    container = orchestrator.start("test-image", default_tcp(80), with_health_check(ready))
    assert container.default_address() == container.address("default") != ""
    assert container.default_port() > 0
    orchestrator.stop(container)


def test_steps_run_in_order(orchestrator, runtime):
    container = orchestrator.start("test-image", default_tcp(80), with_health_check(ready))
    methods = [c[0] for c in runtime.calls]
    assert methods[:4] == ["pull", "create", "start", "inspect"]
    orchestrator.stop(container)
    assert [c[0] for c in runtime.calls][-2:] == ["stop", "remove"]


def test_configuration_error_never_touches_runtime(orchestrator, runtime):
    with pytest.raises(ConfigurationError):
        orchestrator.start("", default_tcp(80))
    assert runtime.calls == []


def test_pull_failure_creates_nothing(orchestrator, runtime):
    runtime.fail["pull"] = RuntimeError("manifest unknown")
    with pytest.raises(ImageAcquisitionError):
        orchestrator.start("docker.io/nobody/noimage", default_tcp(80), with_health_check(ready))
    assert runtime.count("create") == 0


def test_start_failure_leaves_nothing(orchestrator, runtime):
    runtime.fail["start"] = RuntimeError("port is already allocated")
    with pytest.raises(ContainerStartError):
        orchestrator.start("test-image", default_tcp(80), with_health_check(ready))
    assert runtime.containers == {}


def test_timeout_tears_down(orchestrator, runtime):
    with pytest.raises(HealthCheckTimeoutError) as exc_info:
        orchestrator.start(
            "test-image",
            default_tcp(80),
            with_timeout(0.05),
            with_health_check(never_ready),
            with_health_check_interval(0.01),
        )
    assert isinstance(exc_info.value.__cause__, RuntimeError)
    assert runtime.containers == {}
    assert runtime.count("stop") == 1


def test_cancellation_tears_down(orchestrator, runtime):
    token = esc.CancelToken()
    threading.Timer(0.1, token.cancel).start()

    with pytest.raises(CancellationError) as exc_info:
        orchestrator.start(
            "test-image",
            default_tcp(80),
            with_token(token),
            with_health_check(never_ready),
            with_health_check_interval(0.01),
        )
    assert caused_by(exc_info.value, CancellationError)
    assert not caused_by(exc_info.value, HealthCheckTimeoutError)
    assert runtime.containers == {}


def test_init_error_is_wrapped_and_container_removed(orchestrator, runtime):
    nope = ValueError("nope")

    def init(token, container):
        raise nope

    with pytest.raises(InitHookError) as exc_info:
        orchestrator.start("test-image", default_tcp(80), with_health_check(ready), with_init(init))
    assert exc_info.value.cause is nope
    assert exc_info.value.__cause__ is nope
    assert caused_by(exc_info.value, ValueError)
    assert runtime.containers == {}


def test_init_runs_after_health_check(orchestrator):
    order = []
    container = orchestrator.start(
        "test-image",
        default_tcp(80),
        with_health_check(lambda t, c: order.append("health")),
        with_init(lambda t, c: order.append("init")),
    )
    assert order == ["health", "init"]
    orchestrator.stop(container)


def test_teardown_failure_does_not_mask_original_error(orchestrator, runtime, events):
    runtime.fail["remove"] = RuntimeError("daemon gone")

    with pytest.raises(HealthCheckTimeoutError) as exc_info:
        orchestrator.start(
            "test-image",
            default_tcp(80),
            with_timeout(0.05),
            with_health_check(never_ready),
            with_health_check_interval(0.01),
        )
    assert isinstance(exc_info.value.teardown_error, TeardownError)
    assert any("Cleanup failed" in m for m in events.messages("ERROR"))


def test_standalone_stop_reports_teardown_error(orchestrator, runtime):
    container = orchestrator.start("test-image", default_tcp(80), with_health_check(ready))
    runtime.fail["remove"] = RuntimeError("daemon gone")

    with pytest.raises(TeardownError):
        orchestrator.stop(container)

    del runtime.fail["remove"]
    orchestrator.stop(container)
    assert runtime.containers == {}


def test_stop_twice_and_stop_none(orchestrator):
    container = orchestrator.start("test-image", default_tcp(80), with_health_check(ready))
    orchestrator.stop(container)
    orchestrator.stop(container)
    orchestrator.stop(None)
    esc.stop(None)


def test_log_writer_receives_output_before_stop_returns(orchestrator, runtime):
    sink = io.BytesIO()
    container = orchestrator.start(
        "test-image", default_tcp(80), with_health_check(ready), with_log_writer(sink), with_command("foo", "bar")
    )
    runtime.streams[container.id].feed(b"[foo bar]\n")
    orchestrator.stop(container)

    assert b"ready\n" in sink.getvalue()
    assert sink.getvalue().endswith(b"[foo bar]\n")
    assert runtime.containers == {}


def test_local_images_first_skips_repeated_pulls(orchestrator, runtime):
    runtime.local_images.add("docker.io/library/mongo:4.4")
    for _ in range(2):
        c = orchestrator.start(
            "docker.io/library/mongo:4.4", default_tcp(80), with_health_check(ready), with_use_local_images_first()
        )
        orchestrator.stop(c)
    assert runtime.count("pull") == 0

    c = orchestrator.start(
        "docker.io/circleci/mongo:4.4", default_tcp(80), with_health_check(ready), with_use_local_images_first()
    )
    orchestrator.stop(c)
    assert runtime.count("pull") == 1


def test_concurrent_starts_share_one_runtime(orchestrator, runtime):
    results, errors = [], []

    def worker():
        try:
            results.append(orchestrator.start("test-image", default_tcp(80), with_health_check(ready)))
        except Exception as e:  # pragma: no cover - surfaced by the assertion below
            errors.append(e)

    threads = [threading.Thread(target=worker) for _ in range(5)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert len({c.id for c in results}) == 5
    for c in results:
        orchestrator.stop(c)
    assert runtime.containers == {}


def test_returned_container_is_read_only(orchestrator):
    container = orchestrator.start("test-image", default_tcp(80), with_health_check(ready))
    with pytest.raises(dataclasses.FrozenInstanceError):
        container.ports = esc.ResolvedPorts()
    with pytest.raises(dataclasses.FrozenInstanceError):
        container.id = "other"

    orchestrator.stop(container)
    assert container.stopped
