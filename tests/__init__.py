"""Makes `tests.fakes` importable from test modules."""
