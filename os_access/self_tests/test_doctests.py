# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import doctest
import unittest

from os_access import _posix_shell


def load_tests(loader, tests, ignore):
    tests.addTests(doctest.DocTestSuite(_posix_shell))
    return tests


if __name__ == '__main__':
    unittest.main()
