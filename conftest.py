"""
Pytest configuration for the CHIP-8 test suite.

    python -m pytest                 # everything
    python -m pytest -m roms         # only the reference-program corpus
    python -m pytest -m "not roms"   # unit tests only
"""

import logging


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers",
        "roms: reference programs run to completion and compared "
        "against their exact screen rendering")


def pytest_runtest_setup(item):
    # The per-instruction trace is very chatty; keep it out of captured logs
    # unless a test asks for it with assertLogs.
    logging.getLogger("chip8").setLevel(logging.INFO)
