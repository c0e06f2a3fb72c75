import base64
import json
from unittest import mock

import pytest
from docker.errors import ImageNotFound, NotFound

from esc.docker_ops import DockerRuntime, decode_registry_auth
from esc.options import MANAGED_LABEL, resolve, with_command, with_container_name, with_env, with_extra_host, with_host_mount
from esc.ports import tcp, udp


@pytest.fixture
def client():
    return mock.MagicMock()


def test_decode_registry_auth():
    payload = {"username": "u", "password": "p"}
    encoded = base64.urlsafe_b64encode(json.dumps(payload).encode()).decode().rstrip("=")

    assert decode_registry_auth("") is None
    assert decode_registry_auth(encoded) == payload
    assert decode_registry_auth(json.dumps(payload)) == payload
    with pytest.raises(ValueError):
        decode_registry_auth("!!!not-base64!!!")
    with pytest.raises(ValueError):
        decode_registry_auth(base64.b64encode(b"[1, 2]").decode())


def test_image_exists_locally(client):
    rt = DockerRuntime(client)
    assert rt.image_exists_locally("redis:7") is True
    client.images.get.side_effect = ImageNotFound("missing")
    assert rt.image_exists_locally("redis:7") is False


@pytest.mark.parametrize(
    "image,repository,tag",
    [
        ("redis", "redis", "latest"),
        ("redis:7", "redis", "7"),
        ("localhost:5000/team/api:1.2", "localhost:5000/team/api", "1.2"),
    ],
)
def test_pull_always_passes_a_tag(client, image, repository, tag):
    DockerRuntime(client).pull(image)
    client.images.pull.assert_called_once_with(repository, tag=tag, auth_config=None)


def test_create_maps_spec(client):
    client.containers.create.return_value.id = "abc123"
    spec, _ = resolve(
        "img:1",
        {"web": tcp(80), "dns": udp(53)},
        (
            with_env("A=1"),
            with_command("serve", "--fast"),
            with_container_name("esc-web"),
            with_host_mount("/srv/data", "/data"),
            with_extra_host("db:10.0.0.2"),
        ),
    )

    assert DockerRuntime(client).create(spec) == "abc123"

    args, kwargs = client.containers.create.call_args
    assert args == ("img:1",)
    assert kwargs["command"] == ["serve", "--fast"]
    assert kwargs["environment"] == ["A=1"]
    assert kwargs["ports"] == {"80/tcp": None, "53/udp": None}
    assert kwargs["name"] == "esc-web"
    assert kwargs["volumes"] == {"/srv/data": {"bind": "/data", "mode": "rw"}}
    assert kwargs["extra_hosts"] == {"db": "10.0.0.2"}
    assert kwargs["labels"] == {MANAGED_LABEL: "true"}
    assert kwargs["privileged"] is False


def test_inspect_returns_published_ports(client):
    ports = {"80/tcp": [{"HostIp": "0.0.0.0", "HostPort": "49153"}]}
    client.containers.get.return_value.attrs = {"NetworkSettings": {"Ports": ports}}
    assert DockerRuntime(client).inspect("abc") == ports

    client.containers.get.return_value.attrs = {"NetworkSettings": {"Ports": None}}
    assert DockerRuntime(client).inspect("abc") == {}


def test_open_logs_follows_combined_output(client):
    DockerRuntime(client).open_logs("abc")
    client.containers.get.return_value.logs.assert_called_once_with(stream=True, follow=True, stdout=True, stderr=True)


def test_stop_and_remove_tolerate_missing_container(client):
    client.containers.get.side_effect = NotFound("gone")
    rt = DockerRuntime(client)
    rt.stop("abc", timeout=5)
    rt.remove("abc")


def test_stop_and_remove(client):
    rt = DockerRuntime(client)
    rt.stop("abc", timeout=5)
    rt.remove("abc")
    cont = client.containers.get.return_value
    cont.stop.assert_called_once_with(timeout=5)
    cont.remove.assert_called_once_with(force=True, v=True)


def test_list_managed(client):
    c1 = mock.MagicMock(id="1")
    c1.name = "n1"
    client.containers.list.return_value = [c1]
    refs = DockerRuntime(client).list_managed()
    assert [(r.id, r.name) for r in refs] == [("1", "n1")]
    client.containers.list.assert_called_once_with(all=True, filters={"label": [f"{MANAGED_LABEL}=true"]})
