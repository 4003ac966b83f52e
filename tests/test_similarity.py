"""Tests for vector utilities."""

from __future__ import annotations

import math

from memograph.similarity import average, cosineSimilarity, normalize, rankBySimilarity


class _Item:
    def __init__(self, label: str, embedding: list[float]):
        self.label = label
        self.embedding = embedding


class TestCosineSimilarity:
    def test_identical(self):
        assert math.isclose(cosineSimilarity([0.3, 0.4, 0.5], [0.3, 0.4, 0.5]), 1.0)

    def test_opposite(self):
        assert math.isclose(cosineSimilarity([1.0, 2.0], [-1.0, -2.0]), -1.0)

    def test_orthogonal(self):
        assert cosineSimilarity([1.0, 0.0], [0.0, 1.0]) == 0.0

    def test_degenerateInputsAreZero(self):
        assert cosineSimilarity([], []) == 0.0
        assert cosineSimilarity([1.0, 2.0], [1.0, 2.0, 3.0]) == 0.0
        assert cosineSimilarity([0.0, 0.0], [1.0, 1.0]) == 0.0

    def test_staysInRange(self):
        a = [0.1] * 384
        assert -1.0 <= cosineSimilarity(a, a) <= 1.0


class TestRankBySimilarity:
    def test_bestFirstAndTopK(self):
        items = [
            _Item("far", [0.0, 1.0]),
            _Item("close", [1.0, 0.1]),
            _Item("exact", [1.0, 0.0]),
        ]
        ranked = rankBySimilarity([1.0, 0.0], items, top_k=2)
        assert [i.label for i, _ in ranked] == ["exact", "close"]
        assert ranked[0][1] >= ranked[1][1]

    def test_minSimilarityDrops(self):
        items = [_Item("a", [1.0, 0.0]), _Item("b", [0.0, 1.0])]
        ranked = rankBySimilarity([1.0, 0.0], items, min_similarity=0.5)
        assert [i.label for i, _ in ranked] == ["a"]

    def test_tiesKeepInsertionOrder(self):
        items = [_Item("first", [1.0, 1.0]), _Item("second", [1.0, 1.0])]
        ranked = rankBySimilarity([1.0, 1.0], items)
        assert [i.label for i, _ in ranked] == ["first", "second"]

    def test_skipsMissingEmbeddings(self):
        items = [_Item("empty", []), _Item("ok", [1.0, 0.0])]
        ranked = rankBySimilarity([1.0, 0.0], items)
        assert [i.label for i, _ in ranked] == ["ok"]

    def test_emptyQuery(self):
        assert rankBySimilarity([], [_Item("a", [1.0])]) == []

    def test_customKey(self):
        pairs = [("x", [0.0, 1.0]), ("y", [1.0, 0.0])]
        ranked = rankBySimilarity([1.0, 0.0], pairs, top_k=1, key=lambda p: p[1])
        assert ranked[0][0][0] == "y"


class TestVectorHelpers:
    def test_average(self):
        assert average([[1.0, 2.0], [3.0, 4.0]]) == [2.0, 3.0]

    def test_averageEmptyOrMismatched(self):
        assert average([]) == []
        assert average([[1.0], [1.0, 2.0]]) == []

    def test_normalize(self):
        v = normalize([3.0, 4.0])
        assert math.isclose(v[0], 0.6)
        assert math.isclose(v[1], 0.8)

    def test_normalizeZero(self):
        assert normalize([0.0, 0.0]) == [0.0, 0.0]
