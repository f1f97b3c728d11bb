"""
Test suite for the NAND BBM inspector.

This package contains:
- Unit tests for the detectors, locator, decoder and validator
- Integration tests for complete scans and the command line
- Synthetic NAND image fixtures
"""
