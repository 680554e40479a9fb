"""
Unit tests for the FastAPI server.
"""

import json
import shutil
import tempfile
import unittest
from pathlib import Path

from fastapi.testclient import TestClient

from mapfilter.server import create_app
from mapfilter.tiles.projection import CoordinateProjector
from mapfilter.tiles.sources import TileSource
from mapfilter.utils.config import Config
from mapfilter.viewport.orchestrator import ViewportOrchestrator
from mapfilter.viewport.sinks import MarkerCollector, RenderingSink
from tile_fixtures import LOUISVILLE, ZOOM_15_SPAN, gzipped, poi_tile


VIEWPORT_BODY = {
    'center': {'latitude': LOUISVILLE.latitude, 'longitude': LOUISVILLE.longitude},
    'span': {
        'latitude_degrees': ZOOM_15_SPAN.latitude_degrees,
        'longitude_degrees': ZOOM_15_SPAN.longitude_degrees
    }
}


class TestServer(unittest.TestCase):
    """HTTP endpoints backed by a bundled tile directory."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.tile_dir = Path(self.temp_dir)

        projector = CoordinateProjector()
        self.center = projector.world_to_tile(LOUISVILLE.longitude, LOUISVILLE.latitude, 15)
        for dx in (-1, 0, 1):
            for dy in (-1, 0, 1):
                tile = self.center.offset(dx, dy)
                (self.tile_dir / f"15_{tile.x}_{tile.y}.mvt").write_bytes(poi_tile())

        self.config = Config.from_dict({'source': {'bundle_dir': self.temp_dir}})
        self.client = TestClient(create_app(self.config))

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def test_health(self):
        response = self.client.get("/health")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['status'], 'healthy')
        self.assertEqual(response.json()['processed_tiles'], 0)

    def test_root(self):
        data = self.client.get("/").json()
        self.assertEqual(data['poi_layer'], 'pois')
        self.assertIn('viewport', data['endpoints'])

    def test_get_tile(self):
        response = self.client.get(f"/tiles/15/{self.center.x}/{self.center.y}.mvt")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.headers['content-type'], 'application/x-protobuf')
        self.assertNotIn('content-encoding', response.headers)
        self.assertEqual(response.content, poi_tile())

    def test_get_tile_alternate_extension(self):
        response = self.client.get(f"/tiles/15/{self.center.x}/{self.center.y}.pbf")
        self.assertEqual(response.status_code, 200)

    def test_gzipped_tile_sets_encoding(self):
        (self.tile_dir / "3_1_2.mvt").write_bytes(gzipped(poi_tile()))

        response = self.client.get("/tiles/3/1/2.mvt")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.headers['content-encoding'], 'gzip')
        # The test client undoes the transfer encoding
        self.assertEqual(response.content, poi_tile())

    def test_missing_tile(self):
        self.assertEqual(self.client.get("/tiles/15/0/0.mvt").status_code, 404)

    def test_invalid_tile_requests(self):
        self.assertEqual(self.client.get("/tiles/23/0/0.mvt").status_code, 400)
        self.assertEqual(self.client.get("/tiles/1/0/0.png").status_code, 400)

    def test_bounds(self):
        data = self.client.get("/bounds/1/0/0").json()

        self.assertEqual(data['bounds']['west'], -180.0)
        self.assertAlmostEqual(data['bounds']['south'], 0.0, places=9)
        self.assertEqual(data['bounds']['east'], 0.0)
        self.assertAlmostEqual(data['bounds']['north'], 85.0511287798, places=6)

    def test_bounds_outside_grid(self):
        self.assertEqual(self.client.get("/bounds/1/2/0").status_code, 400)

    def test_viewport_pass(self):
        response = self.client.post("/viewport", json=VIEWPORT_BODY)

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data['status'], 'ok')
        self.assertEqual(data['pass']['zoom'], 15)
        self.assertEqual(data['pass']['center_tile'], self.center.tile_id)
        self.assertEqual(data['pass']['tiles_by_status'], {'success': 9})
        self.assertEqual(data['pass']['skipped_features'], 0)
        self.assertFalse(data['pass']['superseded'])
        self.assertEqual(len(data['markers']['features']), 9)

        markers = self.client.get("/markers").json()
        self.assertEqual(len(markers['features']), 9)

    def test_repeated_viewport_is_idempotent(self):
        self.client.post("/viewport", json=VIEWPORT_BODY)
        data = self.client.post("/viewport", json=VIEWPORT_BODY).json()

        self.assertEqual(data['pass']['features_emitted'], 0)
        self.assertEqual(data['pass']['tiles_by_status'], {'skipped': 9})
        self.assertEqual(len(self.client.get("/markers").json()['features']), 9)

    def test_reset(self):
        self.client.post("/viewport", json=VIEWPORT_BODY)
        self.assertEqual(self.client.post("/reset").status_code, 200)

        self.assertEqual(self.client.get("/stats").json()['processed_tiles'], 0)
        data = self.client.post("/viewport", json=VIEWPORT_BODY).json()
        self.assertEqual(data['pass']['features_emitted'], 9)

    def test_undefined_viewport_ignored(self):
        data = self.client.post("/viewport", json={'center': None, 'span': None}).json()

        self.assertEqual(data['status'], 'ignored')
        self.assertEqual(self.client.get("/stats").json()['processed_tiles'], 0)

    def test_degenerate_viewport_ignored(self):
        body = dict(VIEWPORT_BODY, span={'latitude_degrees': 0, 'longitude_degrees': 0})
        self.assertEqual(self.client.post("/viewport", json=body).json()['status'], 'ignored')

    def test_infinite_span_ignored(self):
        infinite = {'latitude_degrees': float("inf"), 'longitude_degrees': float("inf")}
        # Serialized as the non-standard Infinity literal
        body = json.dumps(dict(VIEWPORT_BODY, span=infinite))

        response = self.client.post("/viewport", content=body, headers={"content-type": "application/json"})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['status'], 'ignored')
        self.assertEqual(self.client.get("/stats").json()['processed_tiles'], 0)

    def test_out_of_range_center_rejected(self):
        body = dict(VIEWPORT_BODY, center={'latitude': 95, 'longitude': 0})
        self.assertEqual(self.client.post("/viewport", json=body).status_code, 422)

    def test_stats_and_metrics(self):
        self.client.post("/viewport", json=VIEWPORT_BODY)

        stats = self.client.get("/stats").json()
        self.assertEqual(stats['processed_tiles'], 9)
        self.assertEqual(stats['markers'], 9)
        self.assertEqual(stats['errors'], [])

        response = self.client.get("/metrics")
        self.assertEqual(response.status_code, 200)
        self.assertIn('mapfilter_tiles_processed_total{status="success"} 9.0', response.text)


class FailingSource(TileSource):

    def fetch(self, z, x, y):
        raise RuntimeError("tile cache corrupted")


class TestServerErrors(unittest.TestCase):

    def test_unexpected_error_reported(self):
        config = Config()
        orchestrator = ViewportOrchestrator.from_config(
            config,
            sink=MarkerCollector(),
            tile_source=FailingSource()
        )
        client = TestClient(create_app(config, orchestrator=orchestrator))

        data = client.post("/viewport", json=VIEWPORT_BODY).json()

        self.assertEqual(data['status'], 'error')
        self.assertEqual(data['pass']['error'], 'tile cache corrupted')
        self.assertEqual(client.get("/stats").json()['errors'], ['tile cache corrupted'])

    def test_requires_marker_collector(self):
        class NullSink(RenderingSink):
            def add_features(self, features):
                pass

            def show_error(self, message):
                pass

        orchestrator = ViewportOrchestrator.from_config(Config(), sink=NullSink(), tile_source=FailingSource())
        with self.assertRaises(TypeError):
            create_app(Config(), orchestrator=orchestrator)
