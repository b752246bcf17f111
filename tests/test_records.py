import os
import tempfile
import threading
import unittest as ut
from pathlib import Path

from incbuild.records import ensure_dir, mtime_ns, scoped_write


class ScopedWriteTests(ut.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.root = Path(self.tmp.name)

    def tearDown(self):
        self.tmp.cleanup()

    def test_commit(self):
        target = self.root / 'meta' / 'a.d'
        with scoped_write(target) as pending:
            self.assertNotEqual(pending, target)
            pending.write_text('a.o: a.c\n')
            self.assertFalse(target.exists())
        self.assertEqual(target.read_text(), 'a.o: a.c\n')
        self.assertFalse(pending.exists())

    def test_discard_on_error(self):
        target = self.root / 'a.d'
        target.write_text('old\n')
        with self.assertRaises(RuntimeError):
            with scoped_write(target, self.root / 'a.Td') as pending:
                pending.write_text('half writ')
                raise RuntimeError('compiler crashed')
        self.assertEqual(target.read_text(), 'old\n')
        self.assertFalse((self.root / 'a.Td').exists())

    def test_leftover_pending_is_discarded(self):
        target = self.root / 'a.d'
        leftover = self.root / 'a.Td'
        leftover.write_text('from a crashed run\n')
        with self.assertRaises(FileNotFoundError):
            with scoped_write(target, leftover):
                # nothing written: the stale file must not be committed
                pass
        self.assertFalse(target.exists())
        self.assertFalse(leftover.exists())

    def test_concurrent_directory_creation(self):
        target = self.root / 'a' / 'b' / 'c'
        errors = []

        def worker():
            try:
                ensure_dir(target)
            except OSError as e:
                errors.append(e)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        self.assertEqual(errors, [])
        self.assertTrue(target.is_dir())

    def test_mtime_ns(self):
        path = self.root / 'x'
        self.assertIsNone(mtime_ns(path))
        path.write_text('')
        os.utime(path, ns=(5 * 10 ** 9, 5 * 10 ** 9))
        self.assertEqual(mtime_ns(path), 5 * 10 ** 9)


if __name__ == '__main__':
    ut.main()
