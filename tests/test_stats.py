"""Tests for corpus statistics."""

from __future__ import annotations

from context_nodes.stats import compute_stats


class TestComputeStats:
    def test_empty_corpus(self):
        stats = compute_stats([])
        assert stats.total_nodes == 0
        assert stats.nodes_by_type == {}
        assert stats.average_tokens == 0
        assert stats.total_tokens == 0

    def test_counts_by_type_and_tokens(self):
        stats = compute_stats(
            [
                {"chunk_type": "code", "token_count": 100},
                {"chunk_type": "code", "token_count": 50},
                {"chunk_type": "text", "token_count": 30},
            ]
        )
        assert stats.total_nodes == 3
        assert stats.nodes_by_type == {"code": 2, "text": 1}
        assert stats.total_tokens == 180
        assert stats.average_tokens == 60

    def test_missing_type_is_unknown(self):
        stats = compute_stats([{"token_count": 10}, None, {"chunk_type": "", "token_count": 5}])
        assert stats.nodes_by_type == {"unknown": 3}
        assert stats.total_tokens == 15

    def test_average_rounds_half_up(self):
        stats = compute_stats([{"chunk_type": "text", "token_count": 1}, {"chunk_type": "text", "token_count": 2}])
        assert stats.average_tokens == 2
