"""Bulk sync jobs.

Target selection policies live in `targets`, the worker pool in `runner`.
CLI entrypoint is wired via `python -m carrier_ingest sync`.
"""
