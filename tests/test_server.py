import json
import unittest
from unittest import mock

import requests
from fastapi.testclient import TestClient

from pageask import model_client
from pageask.server import create_app


def _reply(status_code: int, payload) -> model_client.UpstreamReply:
    return model_client.UpstreamReply(status_code=status_code, body=json.dumps(payload).encode("utf-8"))


class AskEndpointTest(unittest.TestCase):
    def setUp(self) -> None:
        self.config = model_client.ClientConfig(api_key="sk-test")
        self.client = TestClient(create_app(self.config))

    def test_health(self) -> None:
        resp = self.client.get("/api/health")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"status": "ok", "message": "service is running"})

    def test_ask_returns_answer_and_camel_case_usage(self) -> None:
        reply = _reply(
            200,
            {
                "choices": [{"message": {"role": "assistant", "content": "It's an example page."}}],
                "usage": {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15},
            },
        )
        with mock.patch.object(model_client, "post_request", return_value=reply):
            resp = self.client.post(
                "/api/ask",
                json={
                    "question": "What is this page about?",
                    "title": "Example",
                    "url": "https://example.com",
                    "pageContent": "",
                    "screenshot": "",
                    "useWebSearch": False,
                    "isSimple": False,
                },
            )
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(
            resp.json(),
            {
                "answer": "It's an example page.",
                "usage": {"promptTokens": 10, "completionTokens": 5, "totalTokens": 15},
            },
        )

    def test_missing_question_is_client_error(self) -> None:
        resp = self.client.post("/api/ask", json={"url": "https://example.com"})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["type"], "ValidationError")

    def test_blank_question_is_client_error(self) -> None:
        with mock.patch.object(model_client, "post_request") as mocked_post:
            resp = self.client.post("/api/ask", json={"question": "  "})
        self.assertEqual(resp.status_code, 400)
        mocked_post.assert_not_called()

    def test_upstream_error_maps_to_bad_gateway(self) -> None:
        reply = _reply(401, {"error": {"message": "invalid key", "type": "auth", "code": "401"}})
        with mock.patch.object(model_client, "post_request", return_value=reply):
            resp = self.client.post("/api/ask", json={"question": "Hi"})
        self.assertEqual(resp.status_code, 502)
        self.assertEqual(resp.json(), {"error": "invalid key", "type": "UpstreamError"})

    def test_extraction_error_has_its_own_status(self) -> None:
        with mock.patch.object(model_client, "post_request", return_value=_reply(200, {"id": "x"})):
            resp = self.client.post("/api/ask", json={"question": "Hi"})
        self.assertEqual(resp.status_code, 503)
        self.assertEqual(resp.json()["type"], "ExtractionError")

    def test_transport_error_maps_to_gateway_timeout(self) -> None:
        with mock.patch.object(model_client.requests, "post", side_effect=requests.Timeout("slow")):
            resp = self.client.post("/api/ask", json={"question": "Hi"})
        self.assertEqual(resp.status_code, 504)
        self.assertEqual(resp.json()["type"], "TransportError")

    def test_missing_credential_is_server_error(self) -> None:
        client = TestClient(create_app(model_client.ClientConfig(api_key=None)))
        resp = client.post("/api/ask", json={"question": "Hi"})
        self.assertEqual(resp.status_code, 511)
        self.assertEqual(resp.json()["type"], "MissingCredential")


if __name__ == "__main__":
    unittest.main()
