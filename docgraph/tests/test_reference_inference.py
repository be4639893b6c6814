import unittest

from docgraph.reference_inference import (
    DIRECTORY_WEIGHT,
    LINK_WEIGHT,
    PATH_WEIGHT,
    TITLE_WEIGHT,
    infer_references,
)


def _doc(doc_id: str, path: str, title: str, content: str, metadata: dict | None = None) -> dict:
    return {"id": doc_id, "path": path, "title": title, "content": content, "metadata": metadata or {}}


def _edges(documents: list[dict]) -> dict[tuple[str, str], object]:
    return {(ref.source, ref.target): ref for ref in infer_references(documents)}


class ReferenceInferenceTests(unittest.TestCase):
    def test_title_mention_in_same_directory(self) -> None:
        edges = _edges([
            _doc("a", "tasks/active-tasks/a.html", "Alpha", "See Beta for details"),
            _doc("b", "tasks/active-tasks/b.html", "Beta", "Standalone"),
        ])

        forward = edges[("a", "b")]
        self.assertEqual(forward.type, "title")
        self.assertAlmostEqual(forward.weight, TITLE_WEIGHT + DIRECTORY_WEIGHT)
        self.assertEqual(forward.signals, ["title", "directory"])

        backward = edges[("b", "a")]
        self.assertEqual(backward.type, "directory")
        self.assertAlmostEqual(backward.weight, DIRECTORY_WEIGHT)

    def test_more_signals_never_lower_the_weight(self) -> None:
        target = _doc("b", "tasks/active-tasks/b.html", "Beta", "")
        variants = [
            _doc("a", "tasks/active-tasks/a.html", "Alpha", "See Beta"),
            _doc("a", "tasks/active-tasks/a.html", "Alpha", "See Beta at tasks/active-tasks/b.html"),
            _doc(
                "a",
                "tasks/active-tasks/a.html",
                "Alpha",
                "See Beta at tasks/active-tasks/b.html",
                {"links": ["tasks/active-tasks/b.html"]},
            ),
        ]
        weights = [_edges([variant, target])[("a", "b")].weight for variant in variants]

        self.assertEqual(weights, sorted(weights))
        self.assertAlmostEqual(weights[1], TITLE_WEIGHT + PATH_WEIGHT + DIRECTORY_WEIGHT)
        self.assertAlmostEqual(weights[2], TITLE_WEIGHT + PATH_WEIGHT + DIRECTORY_WEIGHT + LINK_WEIGHT)
        # Weights are additive and uncapped
        self.assertGreater(weights[2], 1.0)
        self.assertEqual(_edges([variants[2], target])[("a", "b")].type, "link")

    def test_related_tasks_section_counts_as_link(self) -> None:
        edges = _edges([
            _doc("a", "docs/a.html", "Alpha", "Notes.\nRelated Tasks: tasks/b.html"),
            _doc("b", "tasks/b.html", "Zeta", ""),
        ])

        self.assertEqual(edges[("a", "b")].type, "link")
        self.assertAlmostEqual(edges[("a", "b")].weight, PATH_WEIGHT + LINK_WEIGHT)

    def test_no_self_edges_and_no_zero_weight_edges(self) -> None:
        edges = _edges([
            _doc("a", "docs/a.html", "Alpha", "Alpha mentions itself"),
            _doc("b", "projects/b.html", "Beta", "Unrelated"),
        ])

        self.assertEqual(edges, {})

    def test_empty_title_matches_nothing(self) -> None:
        edges = _edges([
            _doc("a", "docs/a.html", "Alpha", "anything at all"),
            _doc("b", "projects/b.html", "", ""),
        ])

        self.assertNotIn(("a", "b"), edges)

    def test_one_edge_per_ordered_pair(self) -> None:
        references = infer_references([
            _doc("a", "tasks/x/a.html", "Alpha", "Beta Beta Beta tasks/x/b.html"),
            _doc("b", "tasks/x/b.html", "Beta", "Alpha"),
        ])
        pairs = [(ref.source, ref.target) for ref in references]

        self.assertEqual(len(pairs), len(set(pairs)))


if __name__ == "__main__":
    unittest.main()
