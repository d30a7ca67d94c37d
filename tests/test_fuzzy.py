import copy
from types import SimpleNamespace
import unittest

from coda_ai.fuzzy import (
    extract_doc_id,
    filter_tree,
    looks_like_doc_id,
    matches,
    search_by_name,
    similarity,
)
from coda_ai.hierarchy import PageNode


def _node(page_id, name, *children):
    return PageNode(page_id=page_id, name=name, child=list(children) or None)


class SimilarityTests(unittest.TestCase):
    def test_substring_is_full_match(self):
        self.assertEqual(similarity("report", "Quarterly Report"), 1.0)

    def test_case_and_punctuation_ignored(self):
        self.assertEqual(similarity("ROADMAP!", "roadmap"), 1.0)

    def test_empty_strings_never_match(self):
        self.assertEqual(similarity("", "anything"), 0.0)
        self.assertFalse(matches("", "anything", 0.0))
        self.assertFalse(matches("query", "", 0.0))

    def test_short_name_does_not_match_long_query(self):
        self.assertFalse(matches("onboarding", "Team"))

    def test_threshold(self):
        self.assertTrue(matches("report", "Quarterly report", 0.6))
        self.assertFalse(matches("report", "Alpha", 0.6))


class SearchByNameTests(unittest.TestCase):
    def test_ranks_best_first_and_drops_misses(self):
        items = [SimpleNamespace(name=n) for n in ["Road map", "Roadmap", "Alpha"]]

        result = search_by_name(items, "roadmap")

        self.assertEqual([i.name for i in result], ["Roadmap", "Road map"])

    def test_ties_keep_input_order(self):
        items = [SimpleNamespace(name=n) for n in ["Roadmap 2025", "roadmap"]]

        result = search_by_name(items, "roadmap")

        self.assertEqual([i.name for i in result], ["Roadmap 2025", "roadmap"])

    def test_custom_key(self):
        items = [{"title": "Quarterly report"}, {"title": "Alpha"}]

        result = search_by_name(items, "report", key=lambda i: i["title"])

        self.assertEqual(result, [{"title": "Quarterly report"}])


class FilterTreeTests(unittest.TestCase):
    def test_ancestors_of_a_deep_match_are_kept(self):
        forest = [
            _node("a", "Team", _node("b", "Guides", _node("c", "Onboarding checklist"), _node("x", "Budget"))),
            _node("z", "Budget"),
        ]

        result = filter_tree(forest, "onboarding")

        self.assertEqual(len(result), 1)
        self.assertEqual(result[0].page_id, "a")
        self.assertEqual([n.page_id for n in result[0].child], ["b"])
        self.assertEqual([n.page_id for n in result[0].child[0].child], ["c"])

    def test_matching_node_keeps_whole_subtree(self):
        forest = [_node("a", "Onboarding", _node("b", "Laptop"), _node("c", "Accounts"))]

        result = filter_tree(forest, "onboarding")

        self.assertIs(result[0], forest[0])
        self.assertEqual([n.page_id for n in result[0].child], ["b", "c"])

    def test_input_not_modified(self):
        forest = [_node("a", "Team", _node("b", "Onboarding checklist"), _node("c", "Budget"))]
        before = copy.deepcopy(forest)

        filter_tree(forest, "onboarding")

        self.assertEqual(forest, before)

    def test_no_match_is_empty(self):
        forest = [_node("a", "Team", _node("b", "Budget"))]

        self.assertEqual(filter_tree(forest, "onboarding"), [])


class DocIdHeuristicTests(unittest.TestCase):
    def test_looks_like_doc_id(self):
        self.assertTrue(looks_like_doc_id("AbCdEf1234"))
        self.assertTrue(looks_like_doc_id("a_b-c_d-e_f"))
        self.assertFalse(looks_like_doc_id("short"))
        self.assertFalse(looks_like_doc_id("Team handbook"))

    def test_extract_doc_id_from_url(self):
        url = "https://coda.io/d/Team-Handbook_dAbC123xyz/Intro_su1"

        self.assertEqual(extract_doc_id(url), "AbC123xyz")

    def test_extract_doc_id_without_marker(self):
        self.assertIsNone(extract_doc_id("https://example.com/page"))


if __name__ == "__main__":
    unittest.main()
