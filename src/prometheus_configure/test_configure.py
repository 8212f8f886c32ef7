"""
Unit Tests for the Configure Run

These exercise a full run against the packaged templates in a temporary
directory, with zone metadata, DNS and SMF mocked.

Test Coverage:
    - First run renders both configs and enables disabled services
    - Second run with no upstream change touches nothing (idempotence)
    - A SAPI change refreshes only the affected service group
    - scrape_interval default renders as 10 and is byte-identical on re-render
    - Failures abort the run before any service is touched
"""

import json
import os
import shutil
import tempfile
import unittest
from unittest.mock import Mock, patch

from .config import Config
from .configure import (
    BIND_GROUP,
    BIND_PARAMS,
    PROMETHEUS_GROUP,
    PROMETHEUS_PARAMS,
    ReconcileReport,
    configure,
    fix_ownership,
)
from .errors import DiscoveryError, TemplateError
from .lifecycle import ServiceAction
from .smf import ServiceState, Smf
from .structured_events import ActionResult

PACKAGE_TEMPLATES = os.path.join(os.path.dirname(__file__), 'templates')


class FakeSmf(Smf):
    """SMF stand-in that moves services between states like svcadm would."""

    def __init__(self, states):
        super().__init__()
        self.states = dict(states)
        self.calls = []

    def query_state(self, fmri):
        return ServiceState.parse(self.states[fmri])

    def enable(self, fmri):
        self.calls.append(('enable', fmri))
        self.states[fmri] = 'online'

    def refresh(self, fmri):
        self.calls.append(('refresh', fmri))

    def clear(self, fmri):
        self.calls.append(('clear', fmri))
        self.states[fmri] = 'online'


class ConfigureTestCase(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.mkdtemp()
        etc = os.path.join(self.tmp, 'etc')
        os.makedirs(etc)
        self.cfg = Config(
            etc_dir=etc,
            templates_dir=PACKAGE_TEMPLATES,
            prometheus_config_file=os.path.join(etc, 'prometheus.yml'),
            bind_config_file=os.path.join(self.tmp, 'named', 'named.conf'),
            sapi_inst_data_json=os.path.join(etc, 'sapi-inst-data.json'),
            cmon_key_file='/data/prometheus/keys/prometheus.key.pem',
            cmon_cert_file='/data/prometheus/keys/prometheus.cert.pem',
            resolvers=None,
        )
        self.write_sapi({'datacenter': 'dc1', 'dns_domain': 'example.com',
                         'cmon_domain': 'cmon.dc1.cns.example.com'})

        self.metadata = Mock()
        self.metadata.resolvers.return_value = ['10.1.1.1', '10.1.1.2']

        self.smf = FakeSmf({self.cfg.prometheus_fmri: 'disabled', self.cfg.bind_fmri: 'disabled'})
        self.sleep = Mock()

        resolver_patch = patch('prometheus_configure.discovery.dns.resolver.Resolver')
        self.mock_resolver = resolver_patch.start().return_value
        self.mock_resolver.resolve.return_value = [Mock(address='10.0.0.5')]
        self.addCleanup(resolver_patch.stop)

        chown_patch = patch('prometheus_configure.configure.fix_ownership')
        self.mock_chown = chown_patch.start()
        self.addCleanup(chown_patch.stop)

    def tearDown(self):
        shutil.rmtree(self.tmp)

    def write_sapi(self, data):
        with open(self.cfg.sapi_inst_data_json, 'w') as f:
            json.dump(data, f)

    def run_configure(self):
        self.events = Mock()
        return configure(self.cfg, metadata=self.metadata, smf=self.smf, sleep=self.sleep,
                         structured_logger=self.events)

    def lifecycle_events(self, operation):
        return [c.args[0] for c in self.events.log_event.call_args_list
                if c.args[0].get("operation") == operation]

    def read(self, path):
        with open(path) as f:
            return f.read()


class TestConfigureRun(ConfigureTestCase):

    def test_first_run_renders_and_enables(self):
        report = self.run_configure()

        self.assertEqual(report.changed[PROMETHEUS_GROUP], [self.cfg.prometheus_config_file])
        self.assertEqual(report.changed[BIND_GROUP], [self.cfg.bind_config_file])
        self.assertEqual(report.actions, {BIND_GROUP: ServiceAction.ENABLE,
                                          PROMETHEUS_GROUP: ServiceAction.ENABLE})
        self.assertEqual(self.smf.calls, [('enable', self.cfg.bind_fmri),
                                          ('enable', self.cfg.prometheus_fmri)])
        self.mock_chown.assert_called_once_with(self.cfg.etc_dir, 'nobody', 'nobody')

        prom = self.read(self.cfg.prometheus_config_file)
        self.assertIn('scrape_interval: 10s', prom)
        self.assertIn('endpoint: cmon.dc1.cns.example.com', prom)
        self.assertIn('insecure_skip_verify: true', prom)
        self.assertNotIn('%%', prom)

        named = self.read(self.cfg.bind_config_file)
        self.assertIn('zone "cmon.dc1.cns.example.com"', named)
        self.assertIn('forwarders { 10.0.0.5; };', named)
        self.assertIn('forwarders { 10.1.1.1; };', named)
        self.assertNotIn('%%', named)

        self.assertFalse(os.path.exists(self.cfg.prometheus_config_file + '.bak'))
        self.assertFalse(os.path.exists(self.cfg.bind_config_file + '.bak'))

    def test_second_run_is_idempotent(self):
        self.run_configure()
        prom_before = self.read(self.cfg.prometheus_config_file)
        named_before = self.read(self.cfg.bind_config_file)
        self.smf.calls.clear()

        report = self.run_configure()

        self.assertEqual(report.changed_groups(), [])
        self.assertEqual(report.actions, {BIND_GROUP: ServiceAction.NONE,
                                          PROMETHEUS_GROUP: ServiceAction.NONE})
        self.assertEqual(self.smf.calls, [])
        self.assertEqual(self.read(self.cfg.prometheus_config_file), prom_before)
        self.assertEqual(self.read(self.cfg.bind_config_file), named_before)
        self.assertFalse(os.path.exists(self.cfg.prometheus_config_file + '.bak'))

    def test_scrape_change_refreshes_prometheus_only(self):
        self.run_configure()
        old = self.read(self.cfg.prometheus_config_file)
        self.smf.calls.clear()
        self.write_sapi({'datacenter': 'dc1', 'dns_domain': 'example.com',
                         'cmon_domain': 'cmon.dc1.cns.example.com', 'scrape_interval': 30})

        report = self.run_configure()

        self.assertEqual(report.changed_groups(), [PROMETHEUS_GROUP])
        self.assertEqual(self.smf.calls, [('refresh', self.cfg.prometheus_fmri)])
        self.assertIn('scrape_interval: 30s', self.read(self.cfg.prometheus_config_file))
        self.assertEqual(self.read(self.cfg.prometheus_config_file + '.bak'), old)

    def test_explicit_default_matches_existing_file(self):
        self.run_configure()
        self.smf.calls.clear()
        self.write_sapi({'datacenter': 'dc1', 'dns_domain': 'example.com',
                         'cmon_domain': 'cmon.dc1.cns.example.com', 'scrape_interval': 10})

        report = self.run_configure()

        self.assertFalse(report.group_changed(PROMETHEUS_GROUP))
        self.assertEqual(self.smf.calls, [])

    def test_maintenance_is_cleared(self):
        self.run_configure()
        self.smf.calls.clear()
        self.smf.states[self.cfg.bind_fmri] = 'maintenance'

        report = self.run_configure()

        self.assertEqual(report.actions[BIND_GROUP], ServiceAction.CLEAR)
        self.assertEqual(self.smf.calls, [('clear', self.cfg.bind_fmri)])

    def test_bind_rendered_before_prometheus(self):
        self.run_configure()
        rendered = [c.args[0] for c in self.events.log_config_render.call_args_list]
        self.assertEqual(rendered, [self.cfg.bind_config_file, self.cfg.prometheus_config_file])

    def test_ownership_skip_is_reported(self):
        self.mock_chown.return_value = False
        self.run_configure()
        events = self.lifecycle_events('fix_ownership')
        self.assertEqual([e['result'] for e in events], [ActionResult.SKIPPED.value])

        self.mock_chown.return_value = True
        self.run_configure()
        events = self.lifecycle_events('fix_ownership')
        self.assertEqual([e['result'] for e in events], [ActionResult.SUCCESS.value])

    def test_resolver_override(self):
        self.cfg.resolvers = '10.9.9.9'
        self.run_configure()
        self.assertEqual(self.mock_resolver.nameservers, ['10.9.9.9'])
        self.metadata.resolvers.assert_not_called()


class TestConfigureFailures(ConfigureTestCase):

    def test_discovery_failure_touches_nothing(self):
        import dns.resolver
        self.mock_resolver.resolve.side_effect = dns.resolver.NXDOMAIN()

        with self.assertRaises(DiscoveryError):
            self.run_configure()

        self.assertEqual(self.sleep.call_count, 9)
        self.assertFalse(os.path.exists(self.cfg.prometheus_config_file))
        self.assertEqual(self.smf.calls, [])

    def test_template_error_touches_no_service(self):
        templates = os.path.join(self.tmp, 'templates')
        os.makedirs(templates)
        shutil.copy(os.path.join(PACKAGE_TEMPLATES, 'named.conf.in'), templates)
        with open(os.path.join(templates, 'prometheus.yml.in'), 'w') as f:
            f.write("scrape_interval: %%SCRAPE_INTERVAL%%s\n")
        self.cfg.templates_dir = templates

        with self.assertRaises(TemplateError):
            self.run_configure()

        self.assertEqual(self.smf.calls, [])


class TestParameterLists(unittest.TestCase):
    """The packaged templates use exactly the parameters passed to them."""

    def placeholders(self, name):
        import re
        with open(os.path.join(PACKAGE_TEMPLATES, name)) as f:
            return set(re.findall(r'%%([A-Z_]+)%%', f.read()))

    def test_prometheus_template(self):
        self.assertEqual(self.placeholders('prometheus.yml.in'), set(PROMETHEUS_PARAMS))

    def test_bind_template(self):
        self.assertEqual(self.placeholders('named.conf.in'), set(BIND_PARAMS))


class TestFixOwnership(unittest.TestCase):

    @patch('prometheus_configure.configure.shutil.chown')
    @patch('prometheus_configure.configure.os.geteuid', return_value=1000)
    def test_skipped_when_not_root(self, _geteuid, mock_chown):
        self.assertFalse(fix_ownership('/data/prometheus/etc', 'nobody', 'nobody'))
        mock_chown.assert_not_called()

    @patch('prometheus_configure.configure.shutil.chown')
    @patch('prometheus_configure.configure.os.geteuid', return_value=0)
    def test_recursive_when_root(self, _geteuid, mock_chown):
        tmp = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, tmp)
        os.makedirs(os.path.join(tmp, 'rules'))
        open(os.path.join(tmp, 'prometheus.yml'), 'w').close()

        self.assertTrue(fix_ownership(tmp, 'nobody', 'nobody'))

        chowned = {c.args[0] for c in mock_chown.call_args_list}
        self.assertEqual(chowned, {tmp, os.path.join(tmp, 'rules'), os.path.join(tmp, 'prometheus.yml')})


class TestReconcileReport(unittest.TestCase):

    def test_groups_are_independent(self):
        report = ReconcileReport()
        report.flag(BIND_GROUP).append('/opt/local/etc/named.conf')
        self.assertTrue(report.group_changed(BIND_GROUP))
        self.assertFalse(report.group_changed(PROMETHEUS_GROUP))
        self.assertEqual(report.changed_groups(), [BIND_GROUP])


if __name__ == '__main__':
    unittest.main()
