import io
import os
import tempfile
import unittest as ut
from pathlib import Path
from unittest import mock

import depfile_provider as provider
from incbuild.config import BuildConfig, expand, load_config, parse_variables
from incbuild.errors import ConfigError


class ConfigTests(ut.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.root = Path(self.tmp.name)

    def tearDown(self):
        self.tmp.cleanup()

    def write(self, text):
        path = self.root / 'Make.inc'
        path.write_text(text)
        return path

    def test_load(self):
        config = load_config(self.write(provider.config()))
        self.assertEqual(config.sources, [Path('main.c'), Path('a.c'), Path('b.c')])
        self.assertEqual(config.target, 'app')
        self.assertEqual(config.root, self.root)
        self.assertEqual(config.build_path, self.root / 'out')
        self.assertEqual(config.deps_path, self.root / '.deps')
        self.assertEqual(config.executable, self.root / 'out' / 'app')
        self.assertEqual(config.cc, 'cc')
        self.assertEqual(config.cflags, ['-Wall', '-O2'])
        self.assertEqual(config.ldflags, ['-lm'])
        self.assertEqual(config.include_dirs, [Path('include')])

    def test_defaults(self):
        config = load_config(self.write('SOURCES = main.c\nTARGET = app\n'))
        self.assertEqual(config.build_dir, Path('build'))
        self.assertEqual(config.deps_dir, Path('.d'))
        self.assertEqual(config.cc, 'gcc')
        self.assertEqual(config.jobs, 1)
        self.assertFalse(config.keep_going)

    def test_overrides(self):
        config = load_config(self.write(provider.config()), jobs=8, keep_going=None)
        self.assertEqual(config.jobs, 8)
        self.assertFalse(config.keep_going)

    def test_references(self):
        variables = parse_variables(io.StringIO(provider.config_references()))
        self.assertEqual(variables['CFLAGS'], '-O3 -g')
        self.assertEqual(variables['TARGET'], 'app')

    def test_environment_fallback(self):
        with mock.patch.dict(os.environ, {'TOOLCHAIN_PREFIX': 'arm-none-eabi-'}):
            self.assertEqual(expand('$(TOOLCHAIN_PREFIX)gcc', {}), 'arm-none-eabi-gcc')
        self.assertEqual(expand('${UNSET_FOR_SURE_42}x', {}), 'x')

    def test_missing_target(self):
        with self.assertRaises(ConfigError):
            load_config(self.write(provider.config_missing_target()))

    def test_recipe_is_rejected(self):
        with self.assertRaises(ConfigError):
            load_config(self.write(provider.config_with_recipe()))

    def test_garbage_line(self):
        with self.assertRaises(ConfigError):
            load_config(self.write('SOURCES = main.c\nthis is not an assignment\n'))

    def test_missing_file(self):
        with self.assertRaises(ConfigError):
            load_config(self.root / 'nope.inc')

    def test_records_inside_build_dir(self):
        with self.assertRaises(ConfigError):
            BuildConfig(sources=['a.c'], target='app', build_dir='out', deps_dir='out/deps')
        with self.assertRaises(ConfigError):
            BuildConfig(sources=['a.c'], target='app', build_dir='out', deps_dir='out')

    def test_sources_sharing_artifacts(self):
        for sources in (['a.c', 'a.S'], ['/abs/b.c', 'abs/b.c'], ['main.c', 'main.c']):
            with self.subTest(sources=sources):
                with self.assertRaises(ConfigError):
                    BuildConfig(sources=sources, target='app')

    def test_sources_sharing_artifacts_in_file(self):
        with self.assertRaises(ConfigError):
            load_config(self.write('SOURCES = a.c src/x.c a.S\nTARGET = app\n'))

    def test_distinct_stems(self):
        config = BuildConfig(sources=['a.c', 'src/a.c', 'lib/a.c'], target='app')
        self.assertEqual(len(config.sources), 3)

    def test_jobs(self):
        with self.assertRaises(ConfigError):
            BuildConfig(sources=['a.c'], target='app', jobs=0)


if __name__ == '__main__':
    ut.main()
