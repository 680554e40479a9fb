"""
Unit tests for configuration loading and validation.
"""

import logging
import unittest

import pytest
import structlog

from mapfilter.utils.config import Config, OrchestrationConfig, TileConfig
from mapfilter.utils.exceptions import ConfigurationError
from mapfilter.utils.log_config import configure_logging


class TestConfigDefaults(unittest.TestCase):

    def test_defaults(self):
        config = Config()
        config.validate()

        self.assertEqual(config.tiles.tile_size, 512)
        self.assertEqual(config.tiles.max_zoom, 22)
        self.assertEqual(config.source.kind, "bundled")
        self.assertEqual(config.orchestration.poi_layer, "pois")
        self.assertEqual(config.orchestration.neighborhood_radius, 1)
        self.assertEqual(config.orchestration.max_workers, 1)
        self.assertTrue(config.metrics.enabled)


class TestConfigFromEnv(unittest.TestCase):
    """Loading from MAPFILTER_* variables."""

    def test_empty_environment_gives_defaults(self):
        self.assertEqual(Config.from_env({}), Config())

    def test_values_are_cast(self):
        config = Config.from_env({
            'MAPFILTER_TILE_SIZE': '256',
            'MAPFILTER_SOURCE_KIND': 'http',
            'MAPFILTER_SOURCE_BASE_URL': 'https://tiles.example.com',
            'MAPFILTER_SOURCE_TIMEOUT': '2.5',
            'MAPFILTER_POI_LAYER': 'places',
            'MAPFILTER_MAX_WORKERS': '4',
            'MAPFILTER_METRICS_ENABLED': 'off',
            'MAPFILTER_PORT': '9000',
        })

        self.assertEqual(config.tiles.tile_size, 256)
        self.assertEqual(config.source.kind, 'http')
        self.assertEqual(config.source.base_url, 'https://tiles.example.com')
        self.assertEqual(config.source.timeout_seconds, 2.5)
        self.assertEqual(config.orchestration.poi_layer, 'places')
        self.assertEqual(config.orchestration.max_workers, 4)
        self.assertFalse(config.metrics.enabled)
        self.assertEqual(config.server.port, 9000)

    def test_empty_value_uses_default(self):
        config = Config.from_env({'MAPFILTER_POI_LAYER': ''})
        self.assertEqual(config.orchestration.poi_layer, 'pois')

    def test_unparseable_value(self):
        with self.assertRaises(ConfigurationError) as context:
            Config.from_env({'MAPFILTER_TILE_SIZE': 'large'})

        self.assertEqual(context.exception.key, 'MAPFILTER_TILE_SIZE')
        self.assertEqual(context.exception.to_error_dict()['code'], 'CONFIG_INVALID')

    def test_unparseable_bool(self):
        with self.assertRaises(ConfigurationError):
            Config.from_env({'MAPFILTER_METRICS_ENABLED': 'maybe'})

    def test_out_of_range_value(self):
        with self.assertRaises(ConfigurationError):
            Config.from_env({'MAPFILTER_TILE_SIZE': '500'})


class TestConfigFromDict(unittest.TestCase):

    def test_sections(self):
        config = Config.from_dict({
            'environment': 'test',
            'tiles': {'tile_size': 256},
            'orchestration': {'poi_layer': 'places', 'neighborhood_radius': 2}
        })

        self.assertEqual(config.environment, 'test')
        self.assertEqual(config.tiles, TileConfig(tile_size=256, max_zoom=22))
        self.assertEqual(config.orchestration, OrchestrationConfig(poi_layer='places', neighborhood_radius=2))

    def test_unknown_section(self):
        with self.assertRaises(ConfigurationError):
            Config.from_dict({'database': {}})

    def test_unknown_key_in_section(self):
        with self.assertRaises(ConfigurationError) as context:
            Config.from_dict({'tiles': {'tile_size': 512, 'colour': 'red'}})
        self.assertEqual(context.exception.key, 'tiles.colour')

    def test_section_must_be_mapping(self):
        with self.assertRaises(ConfigurationError):
            Config.from_dict({'tiles': 512})


@pytest.mark.parametrize("section,values", [
    ('tiles', {'tile_size': 0}),
    ('tiles', {'tile_size': 300}),
    ('tiles', {'max_zoom': 31}),
    ('tiles', {'max_zoom': -1}),
    ('source', {'kind': 'ftp'}),
    ('source', {'timeout_seconds': 0}),
    ('orchestration', {'poi_layer': ''}),
    ('orchestration', {'neighborhood_radius': -1}),
    ('orchestration', {'max_workers': 0}),
])
def test_validation_rejects(section, values):
    with pytest.raises(ConfigurationError):
        Config.from_dict({section: values})


class TestConfigureLogging(unittest.TestCase):

    def tearDown(self):
        structlog.reset_defaults()
        logging.getLogger().setLevel(logging.WARNING)

    def test_sets_level_and_renderer(self):
        configure_logging("debug", json_output=False)

        self.assertEqual(logging.getLogger().level, logging.DEBUG)
        processors = structlog.get_config()['processors']
        self.assertIsInstance(processors[-1], structlog.dev.ConsoleRenderer)

    def test_json_renderer_by_default(self):
        configure_logging()

        self.assertEqual(logging.getLogger().level, logging.INFO)
        self.assertIsInstance(structlog.get_config()['processors'][-1], structlog.processors.JSONRenderer)
