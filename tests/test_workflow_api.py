import base64
import os
import sys
import unittest
from dataclasses import replace
from pathlib import Path
from unittest.mock import patch

import httpx

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# Keep API tests independent of the per-client request budget.
os.environ.setdefault("RATE_LIMIT_ENABLED", "0")

from fastapi.testclient import TestClient

from app.api.v1 import workflow as workflow_api
from app.integrations.coze import CozeConfig
from app.main import app
from app.services.workflow_service import WorkflowService, get_workflow_service

CONFIG = CozeConfig(api_token="test-token", workflow_id="wf-123", base_url="https://coze.test")

RESUME_BYTES = b"%PDF-1.4 resume body"
JD_BYTES = b"\x89PNG\r\n\x1a\n jd body"


class FakeVendor:
    def __init__(self):
        self.upload_responses: list[httpx.Response] = []
        self.run_response = httpx.Response(200, json={"code": 0, "data": "", "execute_id": "exec123"})
        self.history_response = httpx.Response(200, json={"code": 0, "data": None})
        self.requests: list[httpx.Request] = []
        self._next_id = 0

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == CONFIG.upload_path:
            if self.upload_responses:
                return self.upload_responses.pop(0)
            self._next_id += 1
            return httpx.Response(200, json={"code": 0, "data": {"id": f"file-{self._next_id}"}})
        if request.url.path == CONFIG.run_path:
            return self.run_response
        return self.history_response


class WorkflowApiTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.client = TestClient(app)

    def setUp(self):
        self.vendor = FakeVendor()
        self.config = CONFIG
        app.dependency_overrides[get_workflow_service] = self._service

    def tearDown(self):
        app.dependency_overrides.clear()

    def _service(self) -> WorkflowService:
        http_client = httpx.Client(transport=httpx.MockTransport(self.vendor.handler))
        return WorkflowService(self.config, http_client)

    def _payload(self, **overrides) -> dict:
        payload = {
            "resumeBase64": "data:application/pdf;base64," + base64.b64encode(RESUME_BYTES).decode(),
            "resumeName": "cv.pdf",
            "jdBase64": base64.b64encode(JD_BYTES).decode(),
            "jdName": "role.png",
            "content": "compare",
        }
        payload.update(overrides)
        return payload

    def test_health(self):
        response = self.client.get("/v1/health")
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["status"], "healthy")
        self.assertIsInstance(body["workflow_configured"], bool)

    def test_run_workflow_inline_success(self):
        self.vendor.run_response = httpx.Response(
            200,
            json={"code": 0, "data": '{"data":"match: 82%"}', "execute_id": "exec1", "debug_url": "https://dbg/1"},
        )
        response = self.client.post("/v1/run-workflow", json=self._payload())
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["status"], "Success")
        self.assertEqual(body["output"], "match: 82%")
        self.assertEqual(body["debug_url"], "https://dbg/1")

        jd_upload = self.vendor.requests[1]
        self.assertIn(b'filename="role.png"', jd_upload.content)
        self.assertIn(b"Content-Type: image/png", jd_upload.content)
        self.assertIn(JD_BYTES, jd_upload.content)

    def test_run_workflow_started(self):
        response = self.client.post("/v1/run-workflow", json=self._payload())
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["status"], "Started")
        self.assertEqual(body["execute_id"], "exec123")
        self.assertIsNone(body["output"])
        self.assertTrue(body["message"])

    def test_run_workflow_accepts_snake_case_fields(self):
        payload = {
            "resume_base64": base64.b64encode(RESUME_BYTES).decode(),
            "jd_base64": base64.b64encode(JD_BYTES).decode(),
        }
        response = self.client.post("/v1/run-workflow", json=payload)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "Started")

    def test_run_workflow_requires_both_files(self):
        response = self.client.post("/v1/run-workflow", json=self._payload(jdBase64=""))
        self.assertEqual(response.status_code, 400)
        body = response.json()
        self.assertEqual(body["status"], "Error")
        self.assertEqual(body["code"], "invalid_input")
        self.assertEqual(self.vendor.requests, [])

    def test_run_workflow_rejects_bad_base64(self):
        response = self.client.post("/v1/run-workflow", json=self._payload(resumeBase64="%%%not-base64%%%"))
        self.assertEqual(response.status_code, 400)
        self.assertIn("resumeBase64", response.json()["error"])

    def test_run_workflow_upload_failure(self):
        self.vendor.upload_responses = [httpx.Response(413, text="too large")]
        response = self.client.post("/v1/run-workflow", json=self._payload())
        self.assertEqual(response.status_code, 502)
        body = response.json()
        self.assertEqual(body["code"], "upload_failed")
        self.assertEqual(body["http_status"], 413)
        self.assertEqual(len(self.vendor.requests), 1)

    def test_run_workflow_vendor_rejection(self):
        self.vendor.run_response = httpx.Response(
            200, json={"code": 4100, "msg": "token expired", "debug_url": "https://dbg/err"}
        )
        response = self.client.post("/v1/run-workflow", json=self._payload())
        self.assertEqual(response.status_code, 502)
        body = response.json()
        self.assertEqual(body["error"], "token expired")
        self.assertEqual(body["vendor_code"], 4100)
        self.assertEqual(body["debug_url"], "https://dbg/err")

    def test_run_workflow_not_configured(self):
        self.config = replace(CONFIG, api_token=None)
        response = self.client.post("/v1/run-workflow", json=self._payload())
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json()["error"], "Missing COZE_API_TOKEN or COZE_WORKFLOW_ID")

    def test_run_workflow_payload_too_large(self):
        small = replace(workflow_api.settings, max_upload_bytes=4)
        with patch.object(workflow_api, "settings", small):
            response = self.client.post("/v1/run-workflow", json=self._payload())
        self.assertEqual(response.status_code, 413)
        self.assertEqual(self.vendor.requests, [])

    def test_run_workflow_multipart_upload(self):
        self.vendor.run_response = httpx.Response(200, json={"code": 0, "data": "REPORT TEXT"})
        response = self.client.post(
            "/v1/run-workflow/upload",
            files={
                "resume": ("cv.pdf", RESUME_BYTES, "application/pdf"),
                "jd": ("role.png", JD_BYTES, "image/png"),
            },
            data={"content": "compare"},
        )
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["status"], "Success")
        self.assertEqual(body["output"], "REPORT TEXT")
        self.assertIn(b'filename="cv.pdf"', self.vendor.requests[0].content)

    def test_run_workflow_multipart_requires_both_files(self):
        response = self.client.post(
            "/v1/run-workflow/upload",
            files={"resume": ("cv.pdf", RESUME_BYTES, "application/pdf")},
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.vendor.requests, [])

    def test_check_status_running_then_success(self):
        response = self.client.get("/v1/check-status", params={"id": "exec123"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "Running")

        self.vendor.history_response = httpx.Response(
            200, json={"code": 0, "data": '{"status":"completed","data":"result text"}'}
        )
        response = self.client.get("/v1/check-status", params={"execute_id": "exec123"})
        body = response.json()
        self.assertEqual(body["status"], "Success")
        self.assertEqual(body["output"], "result text")
        self.assertEqual(body["execute_id"], "exec123")
        self.assertEqual(body["execution_status"], "completed")

    def test_check_status_vendor_error(self):
        self.vendor.history_response = httpx.Response(200, json={"code": 4019, "msg": "not found"})
        response = self.client.get("/v1/check-status", params={"id": "exec123"})
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["status"], "Error")
        self.assertEqual(body["error"], "not found")

    def test_check_status_requires_id(self):
        response = self.client.get("/v1/check-status")
        self.assertEqual(response.status_code, 400)

    def test_check_status_network_error(self):
        def broken(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("unreachable")

        self.vendor.handler = broken
        response = self.client.get("/v1/check-status", params={"id": "exec123"})
        self.assertEqual(response.status_code, 502)
        self.assertEqual(response.json()["code"], "network_error")


if __name__ == "__main__":
    unittest.main()
