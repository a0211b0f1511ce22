import unittest
from unittest.mock import patch

from src.extraction.extractor import (
    CANONICAL_KEYS,
    STAGE_FENCED,
    STAGE_FREE_TEXT,
    STAGE_WHOLE_TEXT,
    ResponseExtractor,
    decode_fenced_block,
    decode_whole_text,
    extract,
    merge_defaults,
)
from src.visualization.defaults import get_defaults_table
from tests.mocks import mock_llm_responses as mocks


class DecoderTestCase(unittest.TestCase):
    def test_fenced_block(self) -> None:
        decoded = decode_fenced_block(mocks.FENCED_MINIMAL)
        self.assertEqual(decoded["visualizationParams"], {"type": "function2D"})

    def test_fenced_block_skips_undecodable_blocks(self) -> None:
        text = "```\nnot json\n```\n\n```json\n{\"explanation\": \"second\"}\n```"
        self.assertEqual(decode_fenced_block(text), {"explanation": "second"})

    def test_whole_text_and_brace_slice(self) -> None:
        self.assertEqual(decode_whole_text(mocks.WHOLE_TEXT_JSON)["explanation"], "A saddle surface.")
        self.assertEqual(decode_whole_text(mocks.EMBEDDED_JSON)["explanation"], "Two lines cross.")
        self.assertIsNone(decode_whole_text("no braces here"))
        self.assertIsNone(decode_whole_text("[1, 2, 3]"))

    def test_bare_parameters_are_wrapped(self) -> None:
        decoded = decode_whole_text(mocks.BARE_PARAMS_JSON)
        self.assertEqual(decoded["visualizationParams"]["type"], "vector field")

    def test_unrelated_objects_are_ignored(self) -> None:
        self.assertIsNone(decode_whole_text('{"foo": 1}'))


class ResponseExtractorTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.extractor = ResponseExtractor()

    def assertCanonical(self, response) -> None:
        self.assertEqual(set(response), set(CANONICAL_KEYS))
        self.assertTrue(response["explanation"])
        params = response["visualizationParams"]
        self.assertIn("type", params)
        self.assertIn("title", params)
        for key in ("domain", "range"):
            low, high = params[key]
            self.assertLess(low, high)
        education = response["educationalContent"]
        for key in ("title", "summary", "steps", "keyInsights", "exercises"):
            self.assertIn(key, education)
        self.assertIsInstance(response["followUpQuestions"], list)

    def test_minimal_fenced_response_is_completed(self) -> None:
        response = self.extractor.extract(mocks.FENCED_MINIMAL)

        self.assertCanonical(response)
        params = response["visualizationParams"]
        self.assertEqual(params["type"], "function2D")
        self.assertEqual(params["domain"], [-10, 10])
        self.assertEqual(params["range"], [-10, 10])
        self.assertTrue(params["gridLines"])
        self.assertEqual(response["explanation"], "A parabola opens upwards.")
        self.assertEqual(response["educationalContent"]["title"], "A parabola opens upwards.")
        self.assertEqual(response["educationalContent"]["steps"], [])
        self.assertEqual(response["followUpQuestions"], [])

    def test_complete_response_is_preserved(self) -> None:
        response = self.extractor.extract(mocks.FENCED_COMPLETE)

        self.assertCanonical(response)
        params = response["visualizationParams"]
        self.assertEqual(params["title"], "Sine wave")
        self.assertEqual(params["expression"], "Math.sin(x)")
        self.assertEqual(params["domain"], [-6.28, 6.28])
        self.assertEqual(params["recommendedLibrary"], "mafs")
        education = response["educationalContent"]
        self.assertEqual(education["title"], "Periodic functions")
        self.assertEqual(education["steps"], [{"title": "Start at zero", "content": "sin(0) = 0"}])
        self.assertEqual(education["exercises"], [{"question": "What is sin(PI/2)?", "solution": "1"}])
        self.assertEqual(response["followUpQuestions"], ["How does cosine relate to sine?"])

    def test_stage_reporting(self) -> None:
        self.assertEqual(self.extractor.extract_candidate(mocks.FENCED_MINIMAL)[1], STAGE_FENCED)
        self.assertEqual(self.extractor.extract_candidate(mocks.WHOLE_TEXT_JSON)[1], STAGE_WHOLE_TEXT)
        self.assertEqual(self.extractor.extract_candidate(mocks.EMBEDDED_JSON)[1], STAGE_WHOLE_TEXT)
        self.assertEqual(self.extractor.extract_candidate(mocks.INVALID_JSON)[1], STAGE_FREE_TEXT)

    def test_whole_text_json(self) -> None:
        response = self.extractor.extract(mocks.WHOLE_TEXT_JSON)
        self.assertCanonical(response)
        self.assertEqual(response["visualizationParams"]["type"], "function3D")
        self.assertEqual(response["visualizationParams"]["resolution"], 64)
        self.assertEqual(response["followUpQuestions"], ["What is a saddle point?"])

    def test_bare_parameters(self) -> None:
        response = self.extractor.extract(mocks.BARE_PARAMS_JSON)
        self.assertCanonical(response)
        params = response["visualizationParams"]
        self.assertEqual(params["type"], "vectorField")
        self.assertEqual(params["expressions"], {"x": "-y", "y": "x"})
        self.assertEqual(params["density"], 10)

    def test_inverted_and_degenerate_intervals(self) -> None:
        params = self.extractor.extract(mocks.INVERTED_INTERVALS)["visualizationParams"]
        self.assertEqual(params["domain"], [-5, 5])
        self.assertEqual(params["range"], [-10, 10])

    def test_unknown_type_is_kept_with_generic_intervals(self) -> None:
        params = self.extractor.extract(mocks.UNKNOWN_TYPE)["visualizationParams"]
        self.assertEqual(params["type"], "mandelbrotSet")
        self.assertEqual(params["iterations"], 100)
        self.assertEqual(params["domain"], [-10, 10])
        self.assertEqual(params["range"], [-10, 10])
        self.assertEqual(params["title"], "mandelbrotSet Visualization")

    def test_invalid_json_degrades_to_free_text(self) -> None:
        response = self.extractor.extract(mocks.INVALID_JSON)
        self.assertCanonical(response)
        self.assertEqual(response["visualizationParams"]["type"], "geometry")

    def test_empty_and_non_string_input(self) -> None:
        for raw in ("", "   ", None, 42, {"explanation": "dict"}):
            response = self.extractor.extract(raw)
            self.assertCanonical(response)
            self.assertEqual(response["visualizationParams"]["type"], "geometry")
            self.assertEqual(response["visualizationParams"]["domain"], [-5, 5])

    def test_prose_gets_defaults(self) -> None:
        response = self.extractor.extract(mocks.FREE_TEXT_PROSE)
        self.assertCanonical(response)
        self.assertEqual(response["explanation"], mocks.FREE_TEXT_PROSE)
        self.assertEqual(response["visualizationParams"]["type"], "geometry")

    def test_free_text_graph(self) -> None:
        response = self.extractor.extract(mocks.FREE_TEXT_GRAPH)
        params = response["visualizationParams"]
        self.assertEqual(params["type"], "function2D")
        self.assertEqual(params["expression"], "x*x - 3*x + 2")
        self.assertEqual(params["title"], "Graph of f(x) = x*x - 3*x + 2")
        self.assertEqual(params["domain"], [-10, 10])

    def test_free_text_structured_answer(self) -> None:
        response = self.extractor.extract(mocks.FREE_TEXT_STRUCTURED)
        self.assertCanonical(response)

        params = response["visualizationParams"]
        self.assertEqual(params["type"], "function2D")
        self.assertEqual(params["expression"], "x^2 - 4")
        self.assertEqual(params["domain"], [-5, 5])
        self.assertEqual(params["range"], [-6, 10])
        self.assertEqual(params["title"], "Graph of f(x) = x^2 - 4")

        education = response["educationalContent"]
        self.assertEqual(education["title"], "Quadratic Functions")
        self.assertEqual(
            education["steps"],
            [
                {"title": "Identify coefficients", "content": "a = 1, b = 0, c = -4"},
                {"title": "Find the vertex", "content": "the vertex is at (0, -4)"},
                {"title": "Step 3", "content": "Solve for roots"},
            ],
        )
        self.assertEqual(len(education["keyInsights"]), 2)
        self.assertEqual(
            education["exercises"], [{"question": "Find the roots of x^2 - 9.", "solution": "x = 3 and x = -3"}]
        )
        self.assertEqual(
            response["followUpQuestions"],
            ["How does changing c move the graph?", "What happens when a is negative?"],
        )

    def test_free_text_calculus(self) -> None:
        response = self.extractor.extract(mocks.FREE_TEXT_INTEGRAL)
        params = response["visualizationParams"]
        self.assertEqual(params["type"], "calculus")
        self.assertEqual(params["function"], {"expression": "x^2", "color": "#3090FF"})
        self.assertEqual(params["domain"], [-0.5, 2.5])
        self.assertEqual(response["educationalContent"]["summary"], "integration accumulates area.")

    def test_free_text_multiple_functions(self) -> None:
        params = self.extractor.extract(mocks.FREE_TEXT_MULTIPLE)["visualizationParams"]
        self.assertEqual(params["type"], "functions2D")
        self.assertEqual(
            params["functions"],
            [
                {"expression": "sin(x)", "label": "f(x)", "color": "#3090FF"},
                {"expression": "cos(x)", "label": "g(x)", "color": "#FF9030"},
            ],
        )

    def test_free_text_failure_degrades_to_defaults(self) -> None:
        def broken_rule(document, draft, evaluator):
            raise RuntimeError("boom")

        extractor = ResponseExtractor(rules=(broken_rule,))
        response = extractor.extract("Something without structure")
        self.assertCanonical(response)

    def test_deeply_nested_input_degrades_to_defaults(self) -> None:
        for raw in ("[" * 100000 + "]" * 100000, "```json\n" + "{\"a\": " * 50000 + "1" + "}" * 50000 + "\n```"):
            response = self.extractor.extract(raw)
            self.assertCanonical(response)
            self.assertEqual(response["visualizationParams"]["type"], "geometry")

    def test_unexpected_failure_degrades_to_defaults(self) -> None:
        with patch.object(self.extractor, "extract_candidate", side_effect=RuntimeError("boom")):
            response = self.extractor.extract(mocks.FENCED_MINIMAL)
        self.assertCanonical(response)
        self.assertEqual(response["visualizationParams"]["type"], "geometry")

    def test_module_level_extract(self) -> None:
        self.assertEqual(extract(mocks.FENCED_MINIMAL)["visualizationParams"]["type"], "function2D")


class MergeDefaultsTestCase(unittest.TestCase):
    def test_explanation_placeholder_and_education_fallbacks(self) -> None:
        response = merge_defaults({"visualizationParams": {"type": "calculus", "title": "Area"}}, get_defaults_table())
        self.assertEqual(response["explanation"], "This visualization shows Area.")
        self.assertEqual(response["educationalContent"]["summary"], "This visualization shows Area.")
        self.assertEqual(response["visualizationParams"]["integral"]["upperBound"], 2)

    def test_education_title_is_truncated(self) -> None:
        explanation = "word " * 40
        response = merge_defaults({"explanation": explanation}, get_defaults_table())
        self.assertLessEqual(len(response["educationalContent"]["title"]), 80)
        self.assertTrue(response["educationalContent"]["title"].endswith("..."))

    def test_list_fields_are_normalized(self) -> None:
        candidate = {
            "explanation": "x",
            "educationalContent": {
                "steps": ["First do this", {"description": "then that"}, 3, {}],
                "keyInsights": "single insight",
                "exercises": ["Compute 2 + 2", {"problem": "Solve x", "answer": "0"}, None],
            },
            "followUpQuestions": [{"question": "Why?"}, "", "How?"],
        }
        education = merge_defaults(candidate, get_defaults_table())["educationalContent"]

        self.assertEqual(
            education["steps"],
            [
                {"title": "Step 1", "content": "First do this"},
                {"title": "Step 2", "content": "then that"},
                {"title": "Step 3", "content": "3"},
            ],
        )
        self.assertEqual(education["keyInsights"], ["single insight"])
        self.assertEqual(
            education["exercises"],
            [{"question": "Compute 2 + 2", "solution": ""}, {"question": "Solve x", "solution": "0"}],
        )

    def test_parameter_ranges_are_sanitized(self) -> None:
        candidate = {"visualizationParams": {"type": "parametric3D", "parameterRanges": [[1, 1], [0, 3]]}}
        params = merge_defaults(candidate, get_defaults_table())["visualizationParams"]
        self.assertEqual(params["parameterRanges"], [[0, 6.283185307179586], [0, 3]])

    def test_non_string_title_is_coerced(self) -> None:
        params = merge_defaults({"visualizationParams": {"type": "function2D", "title": 5}}, get_defaults_table())[
            "visualizationParams"
        ]
        self.assertEqual(params["title"], "5")

        params = merge_defaults({"visualizationParams": {"type": "geometry", "title": ["x"]}}, get_defaults_table())[
            "visualizationParams"
        ]
        self.assertEqual(params["title"], "geometry Visualization")

    def test_candidate_is_not_mutated(self) -> None:
        candidate = {"visualizationParams": {"type": "function2D", "domain": [3, 1]}}
        merge_defaults(candidate, get_defaults_table())
        self.assertEqual(candidate, {"visualizationParams": {"type": "function2D", "domain": [3, 1]}})


if __name__ == "__main__":
    unittest.main()
