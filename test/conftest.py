import hashlib
import json
from typing import Any, Dict, List, Optional

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer
from loguru import logger

from craftlaunch.download import DownloadManager, FetchClient
from craftlaunch.models import EndpointsConfig, LauncherConfig


class FakeUpstream:
    """
    One local HTTP server standing in for every upstream service.

    Routes are registered by path: bytes are served as is, dicts and lists
    as JSON, and coroutine functions are called with the request.
    Unregistered paths answer 404.
    """

    def __init__(self):
        self.routes: Dict[str, Any] = {}
        self.requests: List[Dict[str, Any]] = []
        self.server: Optional[TestServer] = None

    def url(self, path: str) -> str:
        return str(self.server.make_url(path))

    def add(self, path: str, body: Any):
        self.routes[path] = body

    def paths(self, method: Optional[str] = None) -> List[str]:
        return [r["path"] for r in self.requests if method in (None, r["method"])]

    async def handle(self, request: web.Request) -> web.StreamResponse:
        self.requests.append(
            {"method": request.method, "path": request.path, "query": dict(request.query)}
        )
        route = self.routes.get(request.path)
        if route is None:
            return web.Response(status=404)
        if callable(route):
            return await route(request)
        if isinstance(route, (dict, list)):
            return web.Response(body=json.dumps(route).encode(), content_type="application/json")
        return web.Response(body=route)


@pytest.fixture
async def serve():
    """Start aiohttp applications on a local port for the duration of a test"""
    servers = []

    async def start(app) -> TestServer:
        server = TestServer(app)
        await server.start_server()
        servers.append(server)
        return server

    yield start
    for server in servers:
        await server.close()


@pytest.fixture
async def upstream(serve):
    fake = FakeUpstream()
    app = web.Application()
    app.router.add_route("*", "/{tail:.*}", fake.handle)
    fake.server = await serve(app)
    return fake


def make_config(tmp_path, **endpoints) -> LauncherConfig:
    return LauncherConfig(
        base_dir=tmp_path / "launcher",
        retry_delay=0,
        endpoints=EndpointsConfig(**endpoints),
    )


@pytest.fixture
def config(tmp_path):
    return make_config(tmp_path)


@pytest.fixture
async def fetcher():
    client = FetchClient(max_retries=3, retry_delay=0)
    yield client
    await client.close()


@pytest.fixture
def downloader(fetcher):
    return DownloadManager(fetcher)


@pytest.fixture
def log_records():
    """Loguru records emitted during the test"""
    records = []
    handler_id = logger.add(lambda message: records.append(message.record), level="DEBUG")
    yield records
    logger.remove(handler_id)


def sha1(data: bytes) -> str:
    return hashlib.sha1(data).hexdigest()


def publish_version(
    upstream: FakeUpstream,
    version_id: str = "1.20.1",
    assets: Optional[Dict[str, bytes]] = None,
) -> Dict[str, Any]:
    """
    Register a manifest, a version JSON and its files on the fake upstream.

    The version has one common library and one library denied on Linux.
    `assets` maps asset names to the object content served under /objects.
    """
    client = b"client jar " * 100
    logging_jar = b"logging library " * 50
    natives_jar = b"natives"
    objects = {}
    for name, content in (assets or {}).items():
        digest = sha1(content)
        objects[name] = {"hash": digest, "size": len(content)}
        upstream.add(f"/objects/{digest[:2]}/{digest}", content)
    index = json.dumps({"objects": objects}).encode()

    upstream.add(f"/files/{version_id}/client.jar", client)
    upstream.add("/maven/com/mojang/logging/1.1.1/logging-1.1.1.jar", logging_jar)
    upstream.add("/maven/org/lwjgl/lwjgl/3.3.1/lwjgl-3.3.1-natives-windows.jar", natives_jar)
    upstream.add("/files/indexes/5.json", index)

    document = {
        "id": version_id,
        "type": "release",
        "mainClass": "net.minecraft.client.main.Main",
        "assetIndex": {
            "id": "5",
            "url": upstream.url("/files/indexes/5.json"),
            "sha1": sha1(index),
            "size": len(index),
        },
        "downloads": {
            "client": {
                "url": upstream.url(f"/files/{version_id}/client.jar"),
                "sha1": sha1(client),
                "size": len(client),
            }
        },
        "libraries": [
            {
                "name": "com.mojang:logging:1.1.1",
                "downloads": {
                    "artifact": {
                        "path": "com/mojang/logging/1.1.1/logging-1.1.1.jar",
                        "url": upstream.url("/maven/com/mojang/logging/1.1.1/logging-1.1.1.jar"),
                        "sha1": sha1(logging_jar),
                        "size": len(logging_jar),
                    }
                },
            },
            {
                "name": "org.lwjgl:lwjgl:3.3.1:natives-windows",
                "downloads": {
                    "artifact": {
                        "url": upstream.url(
                            "/maven/org/lwjgl/lwjgl/3.3.1/lwjgl-3.3.1-natives-windows.jar"
                        ),
                        "sha1": sha1(natives_jar),
                        "size": len(natives_jar),
                    }
                },
                "rules": [{"action": "allow"}, {"action": "deny", "os": {"name": "linux"}}],
            },
        ],
    }
    body = json.dumps(document).encode()
    upstream.add(f"/meta/{version_id}.json", body)
    upstream.add(
        "/meta/version_manifest.json",
        {
            "latest": {"release": version_id, "snapshot": version_id},
            "versions": [
                {
                    "id": version_id,
                    "type": "release",
                    "url": upstream.url(f"/meta/{version_id}.json"),
                    "releaseTime": "2023-06-12T13:25:51+00:00",
                    "sha1": sha1(body),
                }
            ],
        },
    )
    return {
        "document": document,
        "client": client,
        "total_bytes": len(client) + len(logging_jar) + len(index),
    }
