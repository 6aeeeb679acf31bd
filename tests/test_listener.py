"""Tests for the webhook listener and signature verification."""

import asyncio
import hashlib
import hmac
import json
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

import pytest
from aiohttp.test_utils import TestClient, TestServer
from hypothesis import given
from hypothesis import strategies as st

from hubhook.config import Config, Project
from hubhook.dispatch import CLOSED, DispatchQueue
from hubhook.listener import (
    create_app,
    extract_repository,
    parse_address,
    verify_signature,
)

SECRET = "s3cr3t"
PUSH = {"ref": "refs/heads/main", "repository": {"full_name": "acme/svc"}}


def sign(payload: bytes, algorithm: str = "sha256") -> str:
    digest = hmac.new(SECRET.encode(), payload, getattr(hashlib, algorithm))
    return f"{algorithm}={digest.hexdigest()}"


def make_config(
    tmp_path: Path, secret: str | None = SECRET, allow_unsigned: bool = False
) -> Config:
    project = Project(id="svc", repo="acme/svc", branch="main", command="./deploy.sh")
    return Config(
        location=tmp_path,
        secret=secret,
        allow_unsigned=allow_unsigned,
        projects={"svc": project},
    )


def run_client(
    config: Config,
    queue: DispatchQueue,
    scenario: Callable[[TestClient], Awaitable[Any]],
) -> Any:
    """Runs an async scenario against an in-process listener."""

    async def main() -> Any:
        async with TestClient(TestServer(create_app(config, queue))) as client:
            return await scenario(client)

    return asyncio.run(main())


def pending(queue: DispatchQueue) -> list[str]:
    queue.close()
    items = []
    while (item := queue.get(timeout=1)) is not CLOSED:
        items.append(item)
    return items


def test_signed_push_is_queued(tmp_path: Path) -> None:
    """Verifies that a correctly signed push enqueues the repository slug."""
    queue = DispatchQueue()
    body = json.dumps(PUSH).encode()

    async def scenario(client: TestClient) -> int:
        resp = await client.post(
            "/",
            data=body,
            headers={"X-Hub-Signature-256": sign(body), "X-GitHub-Event": "push"},
        )
        return resp.status

    assert run_client(make_config(tmp_path), queue, scenario) == 202
    assert pending(queue) == ["acme/svc"]


def test_legacy_sha1_signature_is_accepted(tmp_path: Path) -> None:
    """Verifies that the older X-Hub-Signature header still authenticates."""
    queue = DispatchQueue()
    body = json.dumps(PUSH).encode()

    async def scenario(client: TestClient) -> int:
        resp = await client.post(
            "/webhook", data=body, headers={"X-Hub-Signature": sign(body, "sha1")}
        )
        return resp.status

    assert run_client(make_config(tmp_path), queue, scenario) == 202
    assert pending(queue) == ["acme/svc"]


@pytest.mark.parametrize(
    "headers",
    [
        {},
        {"X-Hub-Signature-256": "sha256=deadbeef"},
        {"X-Hub-Signature-256": "md5=deadbeef"},
    ],
)
def test_bad_signature_is_rejected(tmp_path: Path, headers: dict[str, str]) -> None:
    """Verifies that unsigned or wrongly signed notifications are refused."""
    queue = DispatchQueue()

    async def scenario(client: TestClient) -> int:
        resp = await client.post("/", data=json.dumps(PUSH), headers=headers)
        return resp.status

    assert run_client(make_config(tmp_path), queue, scenario) == 403
    assert pending(queue) == []


def test_unsigned_push_rejected_without_secret(tmp_path: Path) -> None:
    """Verifies that a missing secret never means notifications are trusted."""
    queue = DispatchQueue()

    async def scenario(client: TestClient) -> int:
        resp = await client.post("/", data=json.dumps(PUSH))
        return resp.status

    assert run_client(make_config(tmp_path, secret=None), queue, scenario) == 403
    assert pending(queue) == []


def test_unsigned_push_accepted_when_explicitly_allowed(tmp_path: Path) -> None:
    """Verifies the allow_unsigned opt-out queues notifications without a check."""
    queue = DispatchQueue()
    config = make_config(tmp_path, secret=None, allow_unsigned=True)

    async def scenario(client: TestClient) -> int:
        resp = await client.post("/", data=json.dumps(PUSH))
        return resp.status

    assert run_client(config, queue, scenario) == 202
    assert pending(queue) == ["acme/svc"]


def test_secret_wins_over_allow_unsigned(tmp_path: Path) -> None:
    """Verifies that a configured secret is always enforced."""
    queue = DispatchQueue()
    config = make_config(tmp_path, allow_unsigned=True)

    async def scenario(client: TestClient) -> int:
        resp = await client.post("/", data=json.dumps(PUSH))
        return resp.status

    assert run_client(config, queue, scenario) == 403
    assert pending(queue) == []


def test_ping_is_acknowledged_without_queueing(tmp_path: Path) -> None:
    """Verifies that GitHub's ping event does not trigger an update."""
    queue = DispatchQueue()
    body = json.dumps({"zen": "Keep it logically awesome."}).encode()

    async def scenario(client: TestClient) -> int:
        resp = await client.post(
            "/",
            data=body,
            headers={"X-Hub-Signature-256": sign(body), "X-GitHub-Event": "ping"},
        )
        return resp.status

    assert run_client(make_config(tmp_path), queue, scenario) == 200
    assert pending(queue) == []


@pytest.mark.parametrize("body", [b"not json", b'{"repository": {}}', b"[]"])
def test_malformed_payload_is_bad_request(tmp_path: Path, body: bytes) -> None:
    """Verifies that payloads without a repository are rejected."""
    queue = DispatchQueue()

    async def scenario(client: TestClient) -> int:
        resp = await client.post(
            "/", data=body, headers={"X-Hub-Signature-256": sign(body)}
        )
        return resp.status

    assert run_client(make_config(tmp_path), queue, scenario) == 400
    assert pending(queue) == []


def test_closed_queue_returns_unavailable(tmp_path: Path) -> None:
    """Verifies that notifications arriving during shutdown get a 503."""
    queue = DispatchQueue()
    queue.close()

    async def scenario(client: TestClient) -> int:
        resp = await client.post("/", data=json.dumps(PUSH))
        return resp.status

    config = make_config(tmp_path, secret=None, allow_unsigned=True)
    assert run_client(config, queue, scenario) == 503


def test_health(tmp_path: Path) -> None:
    """Verifies the health endpoint."""

    async def scenario(client: TestClient) -> tuple[int, str]:
        resp = await client.get("/health")
        return resp.status, await resp.text()

    assert run_client(make_config(tmp_path), DispatchQueue(), scenario) == (200, "OK")


def test_verify_signature() -> None:
    """Verifies HMAC checking for both digest algorithms."""
    payload = b'{"a": 1}'
    assert verify_signature(SECRET, payload, sign(payload))
    assert verify_signature(SECRET, payload, sign(payload, "sha1"))
    assert not verify_signature("other", payload, sign(payload))
    assert not verify_signature(SECRET, payload, "sha256=")
    assert not verify_signature(SECRET, payload, "")


def test_extract_repository() -> None:
    """Verifies slug extraction from full_name or owner/name fields."""
    assert extract_repository(PUSH) == "acme/svc"
    assert (
        extract_repository(
            {"repository": {"name": "svc", "owner": {"name": "acme"}}}
        )
        == "acme/svc"
    )
    assert (
        extract_repository({"repository": {"name": "svc", "owner": {"login": "acme"}}})
        == "acme/svc"
    )
    assert extract_repository({"repository": {"name": "svc"}}) is None
    assert extract_repository(["acme/svc"]) is None


@pytest.mark.parametrize(
    ("address", "expected"),
    [
        ("127.0.0.1:8080", ("127.0.0.1", 8080)),
        (":9000", ("0.0.0.0", 9000)),
        ("[::1]:8080", ("::1", 8080)),
    ],
)
def test_parse_address(address: str, expected: tuple[str, int]) -> None:
    assert parse_address(address) == expected


@pytest.mark.parametrize("address", ["localhost", "host:http", "host:70000"])
def test_parse_address_rejects_invalid(address: str) -> None:
    with pytest.raises(ValueError, match="expected HOST:PORT"):
        parse_address(address)


@given(payload=st.binary(), secret=st.text(min_size=1), other=st.text(min_size=1))
def test_signature_property(payload: bytes, secret: str, other: str) -> None:
    """
    Property: A payload signed with the shared secret always verifies, and never
    verifies under a different secret.
    """
    digest = hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()
    header = f"sha256={digest}"

    assert verify_signature(secret, payload, header)
    if other.encode() != secret.encode():
        assert not verify_signature(other, payload, header)
