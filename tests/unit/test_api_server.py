import unittest

from fastapi.testclient import TestClient

from src.api.server import create_app
from src.llm.client import GenerativeVisualizationClient
from src.utils.config_loader import VisualizerConfig
from tests.mocks import mock_llm_responses as mocks


class _FakeChatModel:
    def __init__(self, content="", error=None):
        self.content = content
        self.error = error

    def invoke(self, messages):
        if self.error is not None:
            raise self.error
        return type("Response", (), {"content": self.content})()


def _client_with(chat_model=None, enabled=True):
    if chat_model is None:
        return GenerativeVisualizationClient(config={"enabled": enabled})
    return GenerativeVisualizationClient(chat_model=chat_model)


class ApiServerTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.llm = _client_with(enabled=False)
        self.client = TestClient(create_app(config=VisualizerConfig(), client=self.llm))

    def test_health(self) -> None:
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["status"], "ok")
        self.assertFalse(payload["llm"]["available"])

    def test_extract(self) -> None:
        response = self.client.post("/v1/extract", json={"text": mocks.FENCED_MINIMAL})
        self.assertEqual(response.status_code, 200)
        payload = response.json()["response"]
        self.assertEqual(payload["visualizationParams"]["type"], "function2D")
        self.assertEqual(payload["visualizationParams"]["domain"], [-10, 10])

    def test_extract_with_target_library(self) -> None:
        response = self.client.post("/v1/extract", json={"text": mocks.FENCED_COMPLETE, "target_library": "jsxgraph"})
        payload = response.json()
        self.assertEqual(payload["library"], "jsxgraph")
        self.assertEqual(payload["params"]["boundingBox"], [-6.28, 1.5, 6.28, -1.5])
        self.assertEqual(payload["params"]["expression"], "sin(x)")

    def test_extract_with_unknown_library(self) -> None:
        response = self.client.post("/v1/extract", json={"text": "", "target_library": "plotly"})
        self.assertEqual(response.status_code, 422)

    def test_convert(self) -> None:
        response = self.client.post(
            "/v1/convert",
            json={"params": {"domain": [-10, 10], "range": [-2, 2]}, "to_library": "jsxgraph"},
        )
        payload = response.json()
        self.assertTrue(payload["converted"])
        self.assertEqual(payload["params"], {"boundingBox": [-10, 2, 10, -2]})

    def test_convert_unknown_library_is_noop(self) -> None:
        params = {"domain": [0, 1], "range": [0, 1]}
        payload = self.client.post("/v1/convert", json={"params": params, "to_library": "plotly"}).json()
        self.assertFalse(payload["converted"])
        self.assertEqual(payload["params"], params)

    def test_expression_convert(self) -> None:
        payload = self.client.post(
            "/v1/expressions/convert",
            json={"expression": "Math.sin(x * Math.PI)", "to_format": "mathbox"},
        ).json()
        self.assertEqual(payload, {"expression": "sin(x * PI)", "changed": True})

    def test_evaluate(self) -> None:
        payload = self.client.post("/v1/expressions/evaluate", json={"expression": "x*x", "bindings": {"x": 3}}).json()
        self.assertEqual(payload["value"], 9.0)
        self.assertTrue(payload["finite"])
        self.assertEqual(payload["variables"], ["x"])

    def test_evaluate_non_finite(self) -> None:
        payload = self.client.post("/v1/expressions/evaluate", json={"expression": "1/x", "bindings": {"x": 0}}).json()
        self.assertIsNone(payload["value"])
        self.assertFalse(payload["finite"])

    def test_evaluate_error(self) -> None:
        response = self.client.post("/v1/expressions/evaluate", json={"expression": "alert(1)"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"]["kind"], "UnknownIdentifier")

    def test_sample(self) -> None:
        payload = self.client.post(
            "/v1/expressions/sample", json={"expression": "1/x", "domain": [-1, 1], "steps": 2}
        ).json()
        self.assertEqual(payload["requested"], 3)
        self.assertEqual(payload["skipped"], 1)
        self.assertEqual(len(payload["data"]), 2)

    def test_sample_validation(self) -> None:
        response = self.client.post("/v1/expressions/sample", json={"expression": "x", "steps": 0})
        self.assertEqual(response.status_code, 422)
        response = self.client.post("/v1/expressions/sample", json={"expression": "x +"})
        self.assertEqual(response.status_code, 400)

    def test_defaults_and_libraries(self) -> None:
        payload = self.client.get("/v1/defaults/vectorField").json()
        self.assertTrue(payload["known"])
        self.assertEqual(payload["defaults"]["density"], 10)

        unknown = self.client.get("/v1/defaults/mandelbrotSet").json()
        self.assertFalse(unknown["known"])
        self.assertEqual(unknown["defaults"]["domain"], [-10, 10])

        libraries = self.client.get("/v1/libraries").json()["libraries"]
        self.assertEqual(libraries, ["generic", "mafs", "jsxgraph", "mathbox", "three", "d3"])

    def test_visualize_unavailable(self) -> None:
        response = self.client.post("/v1/visualize", json={"query": "Explain sine"})
        self.assertEqual(response.status_code, 503)

    def test_visualize_requires_query(self) -> None:
        response = self.client.post("/v1/visualize", json={"query": "   "})
        self.assertEqual(response.status_code, 422)


class VisualizeEndpointTestCase(unittest.TestCase):
    def test_visualize_selects_library(self) -> None:
        llm = _client_with(_FakeChatModel(mocks.WHOLE_TEXT_JSON))
        client = TestClient(create_app(config=VisualizerConfig(), client=llm))

        payload = client.post("/v1/visualize", json={"query": "Show a saddle"}).json()

        self.assertEqual(payload["library"], "mathbox")
        self.assertEqual(payload["response"]["visualizationParams"]["type"], "function3D")
        self.assertEqual(payload["params"]["zRange"], [-1.0, 1.0])

    def test_visualize_respects_preferred_libraries(self) -> None:
        llm = _client_with(_FakeChatModel(mocks.WHOLE_TEXT_JSON))
        client = TestClient(create_app(config=VisualizerConfig(), client=llm))

        payload = client.post("/v1/visualize", json={"query": "Show a saddle", "preferred_libraries": ["three"]}).json()

        self.assertEqual(payload["library"], "three")
        self.assertEqual(payload["params"]["resolution"], 64)

    def test_visualize_provider_failure(self) -> None:
        llm = _client_with(_FakeChatModel(error=RuntimeError("timeout")))
        client = TestClient(create_app(config=VisualizerConfig(), client=llm))

        response = client.post("/v1/visualize", json={"query": "Explain sine"})
        self.assertEqual(response.status_code, 502)


if __name__ == "__main__":
    unittest.main()
