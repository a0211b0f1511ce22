"""Deterministic raw model answers used by extraction and client tests."""

FENCED_MINIMAL = """Here is the visualization you asked for:

```json
{"explanation": "A parabola opens upwards.", "visualizationParams": {"type": "function2D"}}
```
"""

FENCED_COMPLETE = """```json
{
  "explanation": "The sine function oscillates between -1 and 1.",
  "visualizationParams": {
    "type": "function2D",
    "title": "Sine wave",
    "expression": "Math.sin(x)",
    "domain": [-6.28, 6.28],
    "range": [-1.5, 1.5],
    "recommendedLibrary": "mafs"
  },
  "educationalContent": {
    "title": "Periodic functions",
    "summary": "Sine repeats every 2*PI.",
    "steps": [{"title": "Start at zero", "content": "sin(0) = 0"}],
    "keyInsights": ["The period is 2*PI"],
    "exercises": [{"question": "What is sin(PI/2)?", "solution": "1"}]
  },
  "followUpQuestions": ["How does cosine relate to sine?"]
}
```"""

WHOLE_TEXT_JSON = (
    '{"explanation": "A saddle surface.", '
    '"visualizationParams": {"type": "function3D", "expression": "x^2 - y^2"}, '
    '"followUpQuestions": ["What is a saddle point?"]}'
)

EMBEDDED_JSON = (
    "Sure! The answer follows. "
    '{"explanation": "Two lines cross.", "visualizationParams": {"type": "geometry", "elements": []}} '
    "Let me know if you need more."
)

BARE_PARAMS_JSON = '{"type": "vector field", "expressions": {"x": "-y", "y": "x"}}'

INVALID_JSON = '```json\n{"explanation": "broken", "visualizationParams": {"type": "function2D",}\n```'

INVERTED_INTERVALS = """```json
{
  "explanation": "A line.",
  "visualizationParams": {"type": "function2D", "expression": "2*x", "domain": [5, -5], "range": [3, 3]}
}
```"""

UNKNOWN_TYPE = """```json
{"explanation": "A fractal.", "visualizationParams": {"type": "mandelbrotSet", "iterations": 100}}
```"""

FREE_TEXT_STRUCTURED = """# Quadratic Functions

A quadratic function f(x) = x^2 - 4 describes a parabola with roots at -2 and 2.

Steps:
1. Identify coefficients: a = 1, b = 0, c = -4
2. Find the vertex: the vertex is at (0, -4)
3. Solve for roots

Key Insights:
- The parabola opens upwards because a > 0
- The axis of symmetry is x = 0

Exercises:
1. Find the roots of x^2 - 9.
Solution: x = 3 and x = -3

Follow-up Questions:
- How does changing c move the graph?
- What happens when a is negative
- Interesting fact about parabolas.

Use a domain from -5 to 5 and y from -6 to 10.
"""

FREE_TEXT_GRAPH = "Graph f(x) = x*x - 3*x + 2"

FREE_TEXT_INTEGRAL = """The integral of the function f(x) = x^2 from 0 to 2 measures the area under the curve.

In summary, integration accumulates area.
"""

FREE_TEXT_MULTIPLE = """We compare multiple functions on the same axes.
f(x) = sin(x), g(x) = cos(x)
"""

FREE_TEXT_PROSE = "Mathematics is the study of patterns, structure and change."
