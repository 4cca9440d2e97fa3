import glob
import os
import re
import unittest

import pipefilter

PACKAGE_DIR = os.path.dirname(os.path.abspath(pipefilter.__file__))
SETUP_PATH = os.path.join(os.path.dirname(PACKAGE_DIR), "setup.py")

LICENSE_HEADER = (
    "# -*- coding: utf-8 -*-\n"
    "# pipefilter is free software: you can redistribute it and/or modify\n"
)


class TestPackage(unittest.TestCase):

    def test_every_module_carries_license_header(self):
        modules = sorted(glob.glob(os.path.join(PACKAGE_DIR, "*.py")))
        self.assertIn(os.path.join(PACKAGE_DIR, "__init__.py"), modules)
        for path in modules:
            with self.subTest(module=os.path.basename(path)):
                with open(path, encoding="utf-8") as fh:
                    self.assertTrue(fh.read().startswith(LICENSE_HEADER))

    def test_public_names_resolve(self):
        for name in pipefilter.__all__:
            with self.subTest(name=name):
                self.assertTrue(hasattr(pipefilter, name))

    @unittest.skipUnless(os.path.isfile(SETUP_PATH), "source checkout only")
    def test_setup_metadata(self):
        with open(SETUP_PATH, encoding="utf-8") as fh:
            setup_source = fh.read()
        self.assertIn(f"version='{pipefilter.__version__}'", setup_source)
        self.assertIn("name='pipefilter'", setup_source)
        self.assertIsNone(re.search(r"yourusername|author_email", setup_source))


if __name__ == '__main__':
    unittest.main()
