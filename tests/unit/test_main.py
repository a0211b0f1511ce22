import io
import json
import tempfile
import unittest
from contextlib import redirect_stdout
from pathlib import Path
from unittest.mock import patch

from src.main import main
from tests.mocks import mock_llm_responses as mocks


def _run(argv):
    buffer = io.StringIO()
    with redirect_stdout(buffer):
        code = main(argv)
    return code, buffer.getvalue()


class MainCliTestCase(unittest.TestCase):
    def test_extract_mode(self) -> None:
        code, output = _run(["--mode", "extract", "--text", mocks.FREE_TEXT_GRAPH])
        self.assertEqual(code, 0)
        self.assertEqual(json.loads(output)["visualizationParams"]["expression"], "x*x - 3*x + 2")

    def test_extract_mode_with_target_library(self) -> None:
        code, output = _run(["--mode", "extract", "--text", mocks.FENCED_COMPLETE, "--to-library", "jsxgraph"])
        payload = json.loads(output)
        self.assertEqual(payload["library"], "jsxgraph")
        self.assertIn("boundingBox", payload["params"])

    def test_convert_mode_reads_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "params.json"
            path.write_text(json.dumps({"type": "function3D", "expression": "x*y"}), encoding="utf-8")
            code, output = _run(["--mode", "convert", "--input", str(path)])
        payload = json.loads(output)
        self.assertEqual(code, 0)
        self.assertEqual(payload["library"], "mathbox")
        self.assertEqual(payload["params"]["zRange"], [-1.0, 1.0])

    def test_evaluate_mode(self) -> None:
        code, output = _run(["--mode", "evaluate", "--expression", "x + y", "--bind", "x=1", "--bind", "y=2.5"])
        self.assertEqual(code, 0)
        self.assertEqual(json.loads(output)["value"], "3.5")

        code, output = _run(["--mode", "evaluate", "--expression", "x + y", "--bind", "x=1"])
        self.assertEqual(code, 1)
        self.assertEqual(json.loads(output)["kind"], "UnknownIdentifier")

    def test_sample_mode(self) -> None:
        code, output = _run(["--mode", "sample", "--expression", "x^2", "--x-min", "0", "--x-max", "1", "--points", "3"])
        self.assertEqual(code, 0)
        self.assertEqual(len(json.loads(output)["result"]), 3)

    def test_visualize_mode_without_provider(self) -> None:
        with patch("src.main.GenerativeVisualizationClient") as client_cls:
            client = client_cls.return_value
            client.request_visualization.return_value = {
                "explanation": "x",
                "visualizationParams": {"type": "probabilityDistribution", "domain": [-4, 4], "range": [0, 1]},
                "educationalContent": {},
                "followUpQuestions": [],
            }
            client.describe.return_value = {"available": False}
            code, output = _run(["--mode", "visualize", "--query", "Normal curve"])

        payload = json.loads(output)
        self.assertEqual(code, 0)
        self.assertEqual(payload["library"], "d3")
        self.assertIn("margin", payload["params"])

    def test_docs_mode(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            target = str(Path(tmpdir) / "DEFAULTS.md")
            code, output = _run(["--mode", "docs", "--docs-output", target])
            self.assertTrue(Path(target).exists())
        self.assertEqual(code, 0)
        self.assertIn("Documentation generated at", output)


if __name__ == "__main__":
    unittest.main()
