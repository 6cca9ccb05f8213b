"""Tests for resource profile selection and dataset advisories."""

import pytest

from cladeflow.clustering.profile import (
    PROFILE_TIERS,
    recommend_chunking,
    select_resource_profile,
)

pytestmark = [pytest.mark.unit, pytest.mark.clustering]


class TestSelectResourceProfile:
    """Tier boundaries are exclusive lower bounds: 100, 200, 300."""

    @pytest.mark.parametrize("n, tier", [
        (1, "default"),
        (100, "default"),
        (101, "moderate"),
        (150, "moderate"),
        (200, "moderate"),
        (201, "conservative"),
        (300, "conservative"),
        (301, "most_conservative"),
        (5000, "most_conservative"),
    ])
    def test_tier_boundaries(self, n, tier):
        assert select_resource_profile(n).tier == tier

    def test_selection_is_pure(self):
        assert select_resource_profile(250) is select_resource_profile(250)

    def test_knobs_shrink_with_tier(self):
        profiles = [p for _, p in reversed(PROFILE_TIERS)]
        sketches = [p.sketch_size for p in profiles]
        batches = [p.batch_size for p in profiles]
        assert sketches == sorted(sketches, reverse=True)
        assert batches == sorted(batches, reverse=True)

    def test_conservative_tiers_scale_ceiling(self):
        assert select_resource_profile(50).ceiling_scale == 1.0
        assert select_resource_profile(250).ceiling_scale > 1.0
        assert select_resource_profile(400).ceiling_scale > select_resource_profile(250).ceiling_scale

    @pytest.mark.parametrize("bad", [0, -5])
    def test_non_positive_rejected(self, bad):
        with pytest.raises(ValueError, match="positive"):
            select_resource_profile(bad)

    @pytest.mark.parametrize("bad", [True, 12.0, "12"])
    def test_non_int_rejected(self, bad):
        with pytest.raises(ValueError, match="int"):
            select_resource_profile(bad)

    def test_placeholders(self):
        values = select_resource_profile(150).as_placeholders()
        assert values["profile_tier"] == "moderate"
        assert values["sketch_size"] == 5000
        assert set(values) == {"profile_tier", "sketch_size", "min_k", "max_k", "k_step", "batch_size"}


class TestRecommendChunking:

    def test_large_dataset_without_chunking(self):
        lines = recommend_chunking(620, 0)
        assert lines[0].startswith("Large dataset")
        assert any("100-150" in line for line in lines)
        assert lines[-1].startswith("Chunking disabled")

    def test_large_dataset_with_chunking(self):
        lines = recommend_chunking(620, 150)
        assert not any("100-150" in line for line in lines)
        assert "5 chunk(s)" in lines[-1]

    def test_medium_large_dataset(self):
        assert recommend_chunking(250, 150)[0].startswith("Medium-large")

    def test_manageable_dataset(self):
        lines = recommend_chunking(40, 150)
        assert lines[0].startswith("Manageable")
        assert "1 chunk(s)" in lines[-1]
