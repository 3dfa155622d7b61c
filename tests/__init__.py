"""chunk-export test suite.

- unit/test_reader.py: chunk loop, offsets, resume and failure handling
- unit/test_manifest.py: JSON and journal offset manifests
- unit/test_sinks.py: in-memory, callback, forwarding and file sinks
- unit/test_sql_source.py: SQL range fetches (SQLite end to end)
- unit/test_export.py: file exports, verification, status and reset
- unit/test_cli.py: command line interface

Shared test doubles live in helpers.py.
"""
