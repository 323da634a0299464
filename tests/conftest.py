"""Shared fixtures for the rag bridge test suite."""

import json
import logging
import math

import httpx
import pytest
import pytest_asyncio

from shared.clients.rag.qdrant.RAGClientQdrant import RAGClientQdrant
from shared.helper.HelperConfig import HelperConfig


def make_config(**overrides) -> HelperConfig:
    """Build a HelperConfig whose settings come from keyword overrides."""
    base = {
        "EMBED_OLLAMA_BASE_URL": "http://ollama.test",
        "RAG_QDRANT_BASE_URL": "http://qdrant.test",
        "APP_API_KEY": "test-key",
    }
    base.update({k: str(v) for k, v in overrides.items()})
    return HelperConfig(logger=logging.getLogger("rag_bridge.tests"), overrides=base)


@pytest.fixture
def helper_config() -> HelperConfig:
    return make_config()


def build_pdf(page_texts: list[str], title: str | None = None) -> bytes:
    """Assemble a minimal PDF with one Helvetica text line per page."""
    count = len(page_texts)
    kids = " ".join(f"{4 + 2 * i} 0 R" for i in range(count))
    objects = [
        "<< /Type /Catalog /Pages 2 0 R >>",
        f"<< /Type /Pages /Kids [{kids}] /Count {count} >>",
        "<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
    ]
    for i, text in enumerate(page_texts):
        stream = f"BT /F1 12 Tf 72 720 Td ({text}) Tj ET"
        objects.append(
            "<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] "
            f"/Resources << /Font << /F1 3 0 R >> >> /Contents {5 + 2 * i} 0 R >>"
        )
        objects.append(f"<< /Length {len(stream)} >>\nstream\n{stream}\nendstream")
    if title:
        objects.append(f"<< /Title ({title}) /Author (Test Suite) /Keywords (alpha, beta; gamma) >>")

    out = b"%PDF-1.4\n"
    offsets = []
    for number, body in enumerate(objects, start=1):
        offsets.append(len(out))
        out += f"{number} 0 obj\n{body}\nendobj\n".encode("latin-1")
    xref_at = len(out)
    out += f"xref\n0 {len(objects) + 1}\n0000000000 65535 f \n".encode("latin-1")
    for offset in offsets:
        out += f"{offset:010d} 00000 n \n".encode("latin-1")
    info = f" /Info {len(objects)} 0 R" if title else ""
    out += f"trailer\n<< /Size {len(objects) + 1} /Root 1 0 R{info} >>\nstartxref\n{xref_at}\n%%EOF\n".encode("latin-1")
    return out


@pytest.fixture
def pdf_factory():
    return build_pdf


class FakeQdrant:
    """In-memory stand-in for the Qdrant REST API, served through httpx.MockTransport."""

    def __init__(self) -> None:
        self.collections: dict[str, dict] = {}
        self.requests: list[tuple[str, str]] = []
        self.fail_upserts = False

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def add_collection(self, name: str, size: int, points: int = 0) -> None:
        self.collections[name] = {"size": size, "m": 16, "points": {}}
        for i in range(points):
            self.collections[name]["points"][f"seed-{i}"] = {"vector": [1.0] * size, "payload": {}}

    def handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.requests.append((request.method, path))
        body = json.loads(request.content) if request.content else {}
        parts = path.strip("/").split("/")

        if path == "/healthz":
            return httpx.Response(200, text="ok")
        if path == "/collections":
            names = [{"name": n} for n in self.collections]
            return httpx.Response(200, json={"result": {"collections": names}, "status": "ok"})

        name = parts[1]
        collection = self.collections.get(name)
        if len(parts) == 2:
            if request.method == "PUT":
                self.collections[name] = {
                    "size": body["vectors"]["content"]["size"],
                    "m": body["hnsw_config"]["m"],
                    "points": {},
                }
                return httpx.Response(200, json={"result": True, "status": "ok"})
            if collection is None:
                return httpx.Response(404, json={"status": {"error": f"Collection `{name}` doesn't exist!"}})
            if request.method == "DELETE":
                del self.collections[name]
                return httpx.Response(200, json={"result": True, "status": "ok"})
            return httpx.Response(200, json=self._info(collection))

        if collection is None:
            return httpx.Response(404, json={"status": {"error": "Not found"}})
        action = parts[3] if len(parts) > 3 else "upsert"
        points = collection["points"]
        if action == "upsert":
            if self.fail_upserts:
                return httpx.Response(500, json={"status": {"error": "disk full"}})
            for point in body["points"]:
                points[point["id"]] = {"vector": point["vector"].get("content"), "payload": point["payload"]}
            return httpx.Response(200, json={"result": {"status": "completed"}, "status": "ok"})

        matching = [(pid, p) for pid, p in points.items() if self._matches(p["payload"], body.get("filter"))]
        if action == "count":
            return httpx.Response(200, json={"result": {"count": len(matching)}})
        if action == "scroll":
            limit = body.get("limit") or 10
            result = [{"id": pid, "payload": p["payload"]} for pid, p in matching[:limit]]
            return httpx.Response(200, json={"result": {"points": result, "next_page_offset": None}, "status": "ok"})
        if action == "search":
            query = body["vector"]["vector"]
            hits = []
            for pid, point in matching:
                if not point["vector"]:
                    continue
                score = _cosine(query, point["vector"])
                if score >= body.get("score_threshold", -1.0):
                    hits.append({"id": pid, "score": score, "payload": point["payload"]})
            hits.sort(key=lambda h: h["score"], reverse=True)
            return httpx.Response(200, json={"result": hits[: body["limit"]], "status": "ok"})
        return httpx.Response(400)

    def _info(self, collection: dict) -> dict:
        count = len(collection["points"])
        return {
            "result": {
                "status": "green",
                "points_count": count,
                "indexed_vectors_count": count,
                "config": {
                    "params": {"vectors": {"content": {"size": collection["size"], "distance": "Cosine"}}},
                    "hnsw_config": {"m": collection["m"], "ef_construct": 200, "full_scan_threshold": 10000},
                },
                "payload_schema": {},
            },
            "status": "ok",
        }

    @staticmethod
    def _matches(payload: dict, qfilter: dict | None) -> bool:
        for condition in (qfilter or {}).get("must", []):
            if payload.get(condition["key"]) != condition["match"]["value"]:
                return False
        return True


def _cosine(a: list[float], b: list[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


@pytest.fixture
def fake_qdrant() -> FakeQdrant:
    return FakeQdrant()


@pytest_asyncio.fixture
async def rag_client(helper_config, fake_qdrant):
    client = RAGClientQdrant(helper_config)
    await client.boot(transport=fake_qdrant.transport())
    yield client
    await client.close()
