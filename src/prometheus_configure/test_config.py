"""
Unit Tests for Configuration Management

Test Coverage:
    - Default values for discovery and polling bounds
    - Loading from environment variables
    - Resolver override parsing
    - Validation of numeric ranges, log level and templates
"""

import os
import shutil
import tempfile
import unittest
from importlib import reload

from . import config as config_module


class EnvTestCase(unittest.TestCase):

    def setUp(self):
        """Save original environment."""
        self.original_env = os.environ.copy()

    def tearDown(self):
        """Restore original environment and module defaults."""
        os.environ.clear()
        os.environ.update(self.original_env)
        reload(config_module)


class TestConfigLoading(EnvTestCase):
    """Test configuration loading from environment variables."""

    def test_default_bounds(self):
        for var in ('DISCOVERY_ATTEMPTS', 'DISCOVERY_BACKOFF_SECONDS', 'DNS_QUERY_TIMEOUT',
                    'SVC_POLL_ATTEMPTS', 'SVC_POLL_INTERVAL_SECONDS'):
            os.environ.pop(var, None)
        reload(config_module)
        cfg = config_module.Config()

        self.assertEqual(cfg.discovery_attempts, 10)
        self.assertEqual(cfg.discovery_backoff, 2)
        self.assertEqual(cfg.dns_query_timeout, 10)
        self.assertEqual(cfg.svc_poll_attempts, 6)
        self.assertEqual(cfg.svc_poll_interval, 5)

    def test_default_layout(self):
        for var in ('PERSIST_DIR', 'PROMETHEUS_CONFIG_FILE', 'SAPI_INST_DATA_JSON', 'CMON_KEY_FILE', 'CMON_CERT_FILE'):
            os.environ.pop(var, None)
        reload(config_module)
        cfg = config_module.Config()

        self.assertEqual(cfg.etc_dir, '/data/prometheus/etc')
        self.assertEqual(cfg.prometheus_config_file, '/data/prometheus/etc/prometheus.yml')
        self.assertEqual(cfg.sapi_inst_data_json, '/data/prometheus/etc/sapi-inst-data.json')
        self.assertEqual(cfg.cmon_key_file, '/data/prometheus/keys/prometheus.key.pem')
        self.assertEqual(cfg.cmon_cert_file, '/data/prometheus/keys/prometheus.cert.pem')
        self.assertTrue(os.path.isfile(os.path.join(cfg.templates_dir, 'prometheus.yml.in')))

    def test_environment_overrides(self):
        os.environ['PERSIST_DIR'] = '/tmp/prom'
        os.environ.pop('CMON_KEY_FILE', None)
        os.environ['SVC_POLL_ATTEMPTS'] = '3'
        os.environ['LOGGER_NAME'] = 'configure'
        reload(config_module)
        cfg = config_module.Config()

        self.assertEqual(cfg.etc_dir, '/tmp/prom/etc')
        self.assertEqual(cfg.cmon_key_file, '/tmp/prom/keys/prometheus.key.pem')
        self.assertEqual(cfg.svc_poll_attempts, 3)
        self.assertEqual(cfg.logger_name, 'CONFIGURE')

    def test_resolver_override(self):
        cfg = config_module.Config(resolvers=' 10.0.0.1, ,10.0.0.2 ')
        self.assertEqual(cfg.resolver_override(), ['10.0.0.1', '10.0.0.2'])
        self.assertEqual(config_module.Config(resolvers=None).resolver_override(), [])


class TestConfigValidation(EnvTestCase):
    """Test configuration validation logic."""

    def test_packaged_defaults_are_valid(self):
        for var in list(os.environ):
            if var in ('LOG_LEVEL', 'TEMPLATES_DIR', 'BIND_CONFIG_FILE', 'PROMETHEUS_CONFIG_FILE'):
                del os.environ[var]
        reload(config_module)
        self.assertEqual(config_module.validate_configuration(config_module.Config()), [])

    def test_out_of_range_values(self):
        cases = [('DISCOVERY_ATTEMPTS', '0'), ('SVC_POLL_ATTEMPTS', '1000'),
                 ('DNS_QUERY_TIMEOUT', 'soon')]
        for var, value in cases:
            with self.subTest(var=var, value=value):
                os.environ[var] = value
                errors = config_module.validate_configuration(config_module.Config())
                self.assertTrue(any(var in e for e in errors), errors)
                del os.environ[var]

    def test_bad_log_level(self):
        cfg = config_module.Config(log_level='LOUD')
        errors = config_module.validate_configuration(cfg)
        self.assertTrue(any('LOG_LEVEL' in e for e in errors))

    def test_missing_template(self):
        tmp = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, tmp)
        with open(os.path.join(tmp, 'prometheus.yml.in'), 'w') as f:
            f.write('x')

        cfg = config_module.Config(templates_dir=tmp)
        errors = config_module.validate_configuration(cfg)

        self.assertEqual(len(errors), 1)
        self.assertIn('named.conf.in', errors[0])


if __name__ == '__main__':
    unittest.main()
