"""Tests for surface_registry module."""
import numpy as np
import pytest

from surface_placement.core.surface_clusterer import SurfaceClusterer
from surface_placement.core.surface_registry import SurfaceRegistry
from surface_placement.models.spatial import Sample, SurfaceSource
from surface_placement.utils.config import DetectionSettings

from conftest import TABLE_SAMPLES, make_placement, make_surface


def cluster_of(settings, points):
    samples = [Sample(position=p, normal=(0.0, 1.0, 0.0), captured_at=0.0) for p in points]
    clusters = SurfaceClusterer(settings).cluster(samples)
    assert len(clusters) == 1
    return clusters[0]


@pytest.fixture
def surfaces(settings):
    return SurfaceRegistry(settings)


class TestPromotion:
    """Clusters must be big enough, in members and area, to become surfaces."""

    def test_hit_test_needs_five_members(self, settings, surfaces, registry):
        small = cluster_of(settings, TABLE_SAMPLES[:4])
        assert surfaces.apply_clusters(registry, [small], SurfaceSource.HIT_TEST, now=0.0) == []
        assert registry.surfaces == {}

        full = cluster_of(settings, TABLE_SAMPLES)
        created = surfaces.apply_clusters(registry, [full], SurfaceSource.HIT_TEST, now=0.0)
        assert len(created) == 1
        assert created[0].source == SurfaceSource.HIT_TEST

    def test_mesh_needs_three_members(self, settings, surfaces, registry):
        three = cluster_of(settings, [(0.0, 0.75, -1.0), (0.05, 0.75, -1.0), (0.0, 0.75, -0.95)])
        two = cluster_of(settings, [(0.0, 0.75, -1.0), (0.05, 0.75, -0.95)])

        assert surfaces.qualifies(three, SurfaceSource.MESH)
        assert not surfaces.qualifies(two, SurfaceSource.MESH)

    def test_small_area_is_rejected_by_default(self, surfaces):
        strict = SurfaceRegistry(DetectionSettings())
        cluster = cluster_of(DetectionSettings(), TABLE_SAMPLES)
        assert not strict.qualifies(cluster, SurfaceSource.HIT_TEST)
        assert surfaces.qualifies(cluster, SurfaceSource.HIT_TEST)

    def test_initial_confidence_by_source(self, settings, surfaces):
        cluster = cluster_of(settings, TABLE_SAMPLES)
        assert surfaces.initial_confidence(cluster, SurfaceSource.HIT_TEST) == pytest.approx(0.25)
        assert surfaces.initial_confidence(cluster, SurfaceSource.MESH) == pytest.approx(0.9)

    def test_surface_takes_cluster_geometry(self, settings, surfaces, registry):
        cluster = cluster_of(settings, TABLE_SAMPLES)
        surface = surfaces.apply_clusters(registry, [cluster], SurfaceSource.HIT_TEST, now=3.0)[0]

        np.testing.assert_allclose(surface.position, cluster.mean_position)
        assert surface.area == pytest.approx(cluster.area)
        assert surface.created_at == surface.last_seen_at == 3.0
        assert surface.id == surfaces.surface_id_for(cluster.mean_position, SurfaceSource.HIT_TEST)


class TestRedetection:
    """Seeing the same surface again updates it in place."""

    def test_same_cluster_keeps_id_and_raises_confidence(self, settings, surfaces, registry):
        cluster = cluster_of(settings, TABLE_SAMPLES)
        first = surfaces.apply_clusters(registry, [cluster], SurfaceSource.HIT_TEST, now=0.0)[0]
        second = surfaces.apply_clusters(registry, [cluster], SurfaceSource.HIT_TEST, now=1.0)[0]

        assert second is first
        assert len(registry.surfaces) == 1
        assert second.confidence == pytest.approx(0.30)
        assert second.detection_count == 2
        assert second.last_seen_at == 1.0

    def test_confidence_is_monotone_and_capped(self, settings, surfaces, registry):
        cluster = cluster_of(settings, TABLE_SAMPLES)
        previous = 0.0
        for tick in range(30):
            surface = surfaces.apply_clusters(registry, [cluster], SurfaceSource.HIT_TEST, now=tick)[0]
            assert surface.confidence >= previous
            previous = surface.confidence
        assert previous == pytest.approx(1.0)

    def test_nearby_cluster_merges_into_existing_surface(self, settings, surfaces, registry):
        registry.add_surface(make_surface("desk", (0.0, 0.75, -1.0), confidence=0.5))
        shifted = [(x + 0.03, y, z) for x, y, z in TABLE_SAMPLES]

        touched = surfaces.apply_clusters(registry, [cluster_of(settings, shifted)],
                                          SurfaceSource.HIT_TEST, now=1001.0)

        assert [s.id for s in touched] == ["desk"]
        assert list(registry.surfaces) == ["desk"]
        # Running mean of the stored position and the new observation
        assert registry.surfaces["desk"].position[0] == pytest.approx(0.016)

    def test_mesh_cluster_does_not_merge_into_hit_test_surface(self, settings, surfaces, registry):
        registry.add_surface(make_surface("hit-desk", (0.0, 0.75, -1.0), confidence=0.3))

        touched = surfaces.apply_clusters(registry, [cluster_of(settings, TABLE_SAMPLES)],
                                          SurfaceSource.MESH, now=1001.0)

        assert len(touched) == 1
        mesh_surface = touched[0]
        assert mesh_surface.id != "hit-desk"
        assert mesh_surface.source == SurfaceSource.MESH
        assert mesh_surface.confidence == pytest.approx(0.9)
        hit_desk = registry.surfaces["hit-desk"]
        assert hit_desk.source == SurfaceSource.HIT_TEST
        assert hit_desk.confidence == pytest.approx(0.3)
        assert hit_desk.detection_count == 1

    def test_same_position_gets_an_id_per_source(self, settings, surfaces, registry):
        cluster = cluster_of(settings, TABLE_SAMPLES)

        from_hits = surfaces.apply_clusters(registry, [cluster], SurfaceSource.HIT_TEST, now=0.0)[0]
        from_mesh = surfaces.apply_clusters(registry, [cluster], SurfaceSource.MESH, now=0.0)[0]

        assert from_hits.id != from_mesh.id
        assert len(registry.surfaces) == 2
        assert from_hits.confidence == pytest.approx(0.25)

    def test_surface_is_credited_once_per_pass(self, settings, surfaces, registry):
        registry.add_surface(make_surface("desk", (0.0, 0.75, -1.0), confidence=0.5))
        cluster = cluster_of(settings, TABLE_SAMPLES)
        clusters = [cluster, cluster]

        surfaces.apply_clusters(registry, clusters, SurfaceSource.HIT_TEST, now=1001.0)

        assert registry.surfaces["desk"].confidence == pytest.approx(0.55)
        assert surfaces.metrics.counters['surface_redetections'] == 1

    def test_redetection_keeps_placement_link(self, settings, surfaces, registry):
        surface = make_surface("desk", (0.0, 0.75, -1.0))
        registry.add_surface(surface)
        placement = make_placement(registry, surface)

        surfaces.apply_clusters(registry, [cluster_of(settings, TABLE_SAMPLES)],
                                SurfaceSource.HIT_TEST, now=1001.0)

        assert registry.surfaces["desk"].placement_id == placement.id
        assert registry.check_invariants() == []


class TestExpiry:
    """Unseen surfaces age out by source, taking their placement along."""

    def test_hit_test_surface_expires_after_ten_seconds(self, surfaces, registry):
        registry.add_surface(make_surface("desk", (0.0, 0.75, -1.0), seen_at=1000.0))

        assert surfaces.sweep(registry, now=1010.0) == []
        assert "desk" in registry.surfaces

        surfaces.sweep(registry, now=1010.1)
        assert "desk" not in registry.surfaces

    def test_mesh_surface_lives_thirty_seconds(self, surfaces, registry):
        registry.add_surface(make_surface("table", (0.0, 0.75, -1.0), source=SurfaceSource.MESH,
                                          seen_at=1000.0))

        surfaces.sweep(registry, now=1020.0)
        assert "table" in registry.surfaces

        surfaces.sweep(registry, now=1030.5)
        assert "table" not in registry.surfaces

    def test_expiry_removes_placement_in_same_pass(self, surfaces, registry):
        surface = make_surface("desk", (0.0, 0.75, -1.0), seen_at=1000.0)
        registry.add_surface(surface)
        placement = make_placement(registry, surface)

        events = surfaces.sweep(registry, now=1011.0)

        assert len(events) == 1
        assert events[0].placement_id == placement.id
        assert events[0].reason == "surface_expired"
        assert registry.placements == {}
        assert registry.check_invariants() == []
